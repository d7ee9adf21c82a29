"""Coloring page prompt compilation for the image model.

The user's description is wrapped in a fixed instruction that pins the output
to printable line art, then tuned by two user-selectable parts: the style
(four fixed descriptions) and the age group (element-count guidance).

Template Structure::

    Create a black and white line art coloring page for children.

    Subject: [User Prompt]
    Target age: [Age Group] years old
    Style: [Style Description]

    Requirements:
    - [Fixed line-art requirements]
    - Complexity: [Age Adjustment]
    - [Fixed composition requirements]

Usage
-----
::

    compiled = build_image_prompt("kot grający na gitarze", "4-8", "klasyczny")
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Fixed style and age guidance.
# Style keys are the Polish enumeration values used throughout the API.
# ---------------------------------------------------------------------------

STYLE_DESCRIPTIONS: dict[str, str] = {
    "prosty": (
        "Very simple shapes with thick bold lines, minimal details, large areas to color. "
        "For toddlers aged 0-3."
    ),
    "klasyczny": (
        "Classic coloring book style with medium detail and clear outlines. For children aged 4-8."
    ),
    "szczegolowy": (
        "Detailed illustration with many elements and finer lines. For older children aged 9-12."
    ),
    "mandala": "Circular symmetrical pattern with repeating geometric elements.",
}

AGE_ADJUSTMENTS: dict[str, str] = {
    "0-3": "Use very large, simple shapes. Maximum 3-4 main elements.",
    "4-8": "Use clear shapes with moderate complexity. Include 5-8 elements.",
    "9-12": "Can include intricate details. Allow for 10+ elements.",
}


def build_image_prompt(prompt: str, age_group: str, style: str) -> str:
    """Compile the full image prompt from the user's description.

    Args:
        prompt: The user's description of the coloring page.
        age_group: One of ``"0-3"``, ``"4-8"``, ``"9-12"``.
        style: One of ``"prosty"``, ``"klasyczny"``, ``"szczegolowy"``,
            ``"mandala"``.

    Returns:
        The compiled prompt string.

    Raises:
        KeyError: If *age_group* or *style* is not a known value.  Inputs
            are validated before reaching this point.
    """
    style_description = STYLE_DESCRIPTIONS[style]
    age_adjustment = AGE_ADJUSTMENTS[age_group]

    return "\n".join(
        [
            "Create a black and white line art coloring page for children.",
            "",
            f"Subject: {prompt.strip()}",
            f"Target age: {age_group} years old",
            f"Style: {style_description}",
            "",
            "Requirements:",
            "- Pure black outlines on white background",
            "- No shading, gradients, or filled areas",
            "- Clear, well-defined lines suitable for coloring",
            f"- Complexity: {age_adjustment}",
            "- Friendly, child-appropriate design",
            "- Centered composition",
            "- No text or letters",
        ]
    )
