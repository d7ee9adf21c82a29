"""Image payload extraction from image-model responses.

Image models on OpenRouter return the generated picture in several
incompatible shapes.  Each shape is handled by one small pure function that
returns an :class:`ImagePayload` or ``None``; :func:`extract_image` tries
them in a fixed order and fails only when none matches.

Extractor Order
---------------
``images[0]`` field:

1. data URL string (``data:<mime>;base64,<data>``)
2. raw base64 string (longer than 100 characters)
3. ``{"type": "image_url", "image_url": {"url": <data URL>}}``
4. ``{"b64_json": <base64>}``
5. ``{"url": <data URL>}``

Array ``content`` parts:

6. part of type ``image_url`` or ``image`` with ``image_url.url``
7. part of type ``image`` with ``inline_data {mime_type, data}``; a missing
   ``mime_type`` is detected from the data

A response whose ``content`` is non-empty text is a model that answered in
words instead of drawing; it fails with a distinct message.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from PIL import Image, UnidentifiedImageError

from malowanko.core.errors import ImageGenerationError

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(.+);base64,(.+)$", re.DOTALL)

# Shorter strings are status text, not image data
_MIN_RAW_BASE64_LENGTH = 100

DEFAULT_MIME_TYPE = "image/png"


@dataclass(frozen=True)
class ImagePayload:
    """A generated image as base64 data plus its MIME type."""

    mime_type: str
    base64_data: str

    @property
    def image_bytes(self) -> bytes:
        return base64.b64decode(self.base64_data)

    @property
    def data_url(self) -> str:
        """The payload as a ``data:`` URL, the form it is stored in."""
        return f"data:{self.mime_type};base64,{self.base64_data}"


def parse_data_url(value: Any) -> ImagePayload | None:
    """Parse ``data:<mime>;base64,<data>`` into a payload."""
    if not isinstance(value, str):
        return None
    match = _DATA_URL_RE.match(value)
    if match is None:
        return None
    return ImagePayload(mime_type=match.group(1), base64_data=match.group(2))


def sniff_mime_type(base64_data: str) -> str:
    """Detect the MIME type of base64 image data with Pillow.

    Falls back to ``image/png`` when the data cannot be decoded or the
    format is not recognised.
    """
    try:
        raw = base64.b64decode(base64_data, validate=False)
        with Image.open(io.BytesIO(raw)) as image:
            return Image.MIME.get(image.format or "", DEFAULT_MIME_TYPE)
    except (binascii.Error, ValueError, UnidentifiedImageError, OSError):
        return DEFAULT_MIME_TYPE


def _from_raw_base64(data: str) -> ImagePayload:
    return ImagePayload(mime_type=sniff_mime_type(data), base64_data=data)


# ---------------------------------------------------------------------------
# Extractors for the first element of the ``images`` field.
# ---------------------------------------------------------------------------


def _image_data_url(item: Any) -> ImagePayload | None:
    return parse_data_url(item)


def _image_raw_base64(item: Any) -> ImagePayload | None:
    if isinstance(item, str) and len(item) > _MIN_RAW_BASE64_LENGTH:
        return _from_raw_base64(item)
    return None


def _image_url_object(item: Any) -> ImagePayload | None:
    if isinstance(item, dict) and item.get("type") == "image_url":
        image_url = item.get("image_url")
        if isinstance(image_url, dict):
            return parse_data_url(image_url.get("url"))
    return None


def _image_b64_json(item: Any) -> ImagePayload | None:
    if isinstance(item, dict):
        data = item.get("b64_json")
        if isinstance(data, str) and data:
            return _from_raw_base64(data)
    return None


def _image_plain_url(item: Any) -> ImagePayload | None:
    if isinstance(item, dict):
        return parse_data_url(item.get("url"))
    return None


IMAGES_FIELD_EXTRACTORS: tuple[Callable[[Any], ImagePayload | None], ...] = (
    _image_data_url,
    _image_raw_base64,
    _image_url_object,
    _image_b64_json,
    _image_plain_url,
)


# ---------------------------------------------------------------------------
# Extractors for a single part of an array ``content``.
# ---------------------------------------------------------------------------


def _content_image_url_part(part: Any) -> ImagePayload | None:
    if isinstance(part, dict) and part.get("type") in ("image_url", "image"):
        image_url = part.get("image_url")
        if isinstance(image_url, dict):
            return parse_data_url(image_url.get("url"))
    return None


def _content_inline_data_part(part: Any) -> ImagePayload | None:
    if isinstance(part, dict) and part.get("type") == "image":
        inline = part.get("inline_data")
        if isinstance(inline, dict) and isinstance(inline.get("data"), str) and inline["data"]:
            mime_type = inline.get("mime_type")
            if not mime_type:
                return _from_raw_base64(inline["data"])
            return ImagePayload(mime_type=mime_type, base64_data=inline["data"])
    return None


CONTENT_PART_EXTRACTORS: tuple[Callable[[Any], ImagePayload | None], ...] = (
    _content_image_url_part,
    _content_inline_data_part,
)


def extract_from_images_field(message: dict[str, Any]) -> ImagePayload | None:
    """Try every ``images[0]`` shape in order."""
    images = message.get("images")
    if not isinstance(images, list) or not images:
        return None
    first = images[0]
    for extractor in IMAGES_FIELD_EXTRACTORS:
        payload = extractor(first)
        if payload is not None:
            return payload
    return None


def extract_from_content(message: dict[str, Any]) -> ImagePayload | None:
    """Try every content part shape on each part of an array ``content``."""
    content = message.get("content")
    if not isinstance(content, list):
        return None
    for part in content:
        for extractor in CONTENT_PART_EXTRACTORS:
            payload = extractor(part)
            if payload is not None:
                return payload
    return None


def extract_image(message: dict[str, Any] | None) -> ImagePayload:
    """Extract the generated image from a response message.

    Args:
        message: The first choice's message as a plain dict.

    Returns:
        The normalised image payload.

    Raises:
        ImageGenerationError: If the model answered with text, or the
            message has no recognisable image.
    """
    message = message or {}

    for extract in (extract_from_images_field, extract_from_content):
        payload = extract(message)
        if payload is not None:
            return payload

    content = message.get("content")
    if isinstance(content, str) and content:
        logger.error(f"Image model returned text instead of image ({len(content)} characters)")
        raise ImageGenerationError("Model returned text instead of image")

    logger.error(f"Unexpected image response format, message keys: {sorted(message)}")
    raise ImageGenerationError("Unexpected response format")
