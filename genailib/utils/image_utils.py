"""
Image Utilities
===============

Helper functions for frame images passed between steps and providers.
"""

import io
import base64
import logging
from typing import Tuple

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


PIL_FORMATS = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}

EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


def detect_mime_type(data: bytes, default: str = "image/png") -> str:
    """
    Detect the MIME type of image bytes by opening them with Pillow.

    Args:
        data: Encoded image bytes
        default: MIME type returned when the data is not a recognised image

    Returns:
        MIME type string
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            return PIL_FORMATS.get(img.format or "", default)
    except (UnidentifiedImageError, OSError):
        logger.debug(f"Could not identify image data, assuming {default}")
        return default


def extension_for_mime(mime_type: str) -> str:
    return EXTENSIONS.get(mime_type, "")


def encode_image(data: bytes) -> Tuple[str, str]:
    """
    Encode image bytes to base64.

    Returns:
        Tuple of (base64_data, mime_type)
    """
    return base64.b64encode(data).decode("utf-8"), detect_mime_type(data)


def to_data_uri(data: bytes) -> str:
    """
    Convert image bytes to a data URI.

    Returns:
        Data URI string (data:image/png;base64,...)
    """
    b64_data, mime_type = encode_image(data)
    return f"data:{mime_type};base64,{b64_data}"
