"""Model-backed services: moderation, tagging, image synthesis, generation.

Modules
-------
openrouter
    Async OpenRouter client for structured text calls and image calls.
image_payload
    Extraction of the generated image from the many response shapes.
content_moderation
    Keyword denylist plus model moderation of user prompts.
tag_generator
    Gallery tags for a prompt, with a default fallback.
image_generator
    One coloring page image per call.
generation
    The end-to-end generation orchestrator.
"""
