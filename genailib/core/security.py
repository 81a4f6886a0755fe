"""
Security Utilities
==================

Input sanitization for object names, URL validation for downloads and
API key redaction for log output.
"""

import re
import ipaddress
import logging
from pathlib import Path
from typing import Optional, Set
from urllib.parse import urlparse

from .exceptions import ValidationError

logger = logging.getLogger(__name__)


def sanitize_filename(filename: str, max_length: int = 255) -> str:
    """
    Sanitize a filename or object name by removing dangerous characters.

    Forward slashes are kept so object names may carry a prefix, but
    parent-directory segments are dropped.

    Args:
        filename: Original filename
        max_length: Maximum allowed length

    Returns:
        Sanitized name safe for filesystem and bucket operations
    """
    if not filename:
        return "unnamed"

    parts = []
    for part in filename.replace("\\", "/").split("/"):
        # Keep: alphanumeric, underscore, hyphen, dot
        cleaned = re.sub(r"[^\w\-.]", "_", part)
        cleaned = re.sub(r"_+", "_", cleaned).strip("._- ")
        if cleaned and cleaned not in (".", ".."):
            parts.append(cleaned)

    sanitized = "/".join(parts)

    # Truncate if too long (preserve extension)
    if len(sanitized) > max_length:
        ext = Path(sanitized).suffix
        sanitized = sanitized[: max_length - len(ext)] + ext

    return sanitized or "unnamed"


def redact_api_key(text: str) -> str:
    """
    Redact API keys and sensitive tokens from text.

    Args:
        text: Text that might contain API keys

    Returns:
        Text with API keys redacted
    """
    if not text:
        return text

    patterns = [
        # Generic Bearer / Token authorization values
        (r"(Bearer|Token)\s+[A-Za-z0-9_\-\.]+", r"\1 ***REDACTED***"),
        # OpenAI keys
        (r"sk-[A-Za-z0-9_\-]{16,}", "sk-***REDACTED***"),
        # Replicate tokens
        (r"r8_[A-Za-z0-9]+", "r8_***REDACTED***"),
        # Google API keys
        (r"AIza[A-Za-z0-9_\-]{35}", "AIza***REDACTED***"),
        # Query-string keys
        (r"([?&]key=)[^&\s]+", r"\1***REDACTED***"),
        # Environment variable patterns
        (
            r"(GEMINI_API_KEY|GOOGLE_API_KEY|OPENAI_API_KEY|REPLICATE_API_TOKEN)=[^\s]+",
            r"\1=***REDACTED***",
        ),
    ]

    result = text
    for pattern, replacement in patterns:
        result = re.sub(pattern, replacement, result)

    return result


def validate_url(url: str, allowed_hosts: Optional[Set[str]] = None, allow_private: bool = False) -> str:
    """
    Validate a URL before fetching it.

    Args:
        url: URL to validate
        allowed_hosts: Set of allowed hostnames (None = any public host)
        allow_private: Permit loopback and private-network hosts

    Returns:
        Validated URL

    Raises:
        ValidationError: If the URL is malformed or points somewhere disallowed
    """
    if not url:
        raise ValidationError("Empty URL", field="url")

    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise ValidationError(f"Invalid URL format: {e}", field="url", value=url)

    if parsed.scheme not in ("http", "https"):
        raise ValidationError(
            f"Invalid URL scheme: {parsed.scheme or '(none)'}",
            field="url",
            value=url,
            constraint="http or https",
        )

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise ValidationError("URL has no host", field="url", value=url)

    if not allow_private:
        if hostname in {"localhost", "0.0.0.0"}:
            raise ValidationError("URLs to local addresses are not allowed", field="url", value=url)
        try:
            address = ipaddress.ip_address(hostname)
        except ValueError:
            address = None
        if address is not None and (address.is_private or address.is_loopback or address.is_link_local):
            logger.warning(f"Blocked private address: {hostname}")
            raise ValidationError("URLs to private addresses are not allowed", field="url", value=url)

    if allowed_hosts and hostname not in allowed_hosts:
        raise ValidationError(f"Host not in allowed list: {hostname}", field="url", value=url)

    return url
