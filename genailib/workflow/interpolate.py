"""
Variable Interpolation
======================

Substitution of ``${name}`` placeholders from caller inputs and step results.
"""

import re
from typing import Any, Mapping, Optional

from .models import StepValue

PLACEHOLDER = re.compile(r"\$\{([^}]*)\}")
_BARE_REFERENCE = re.compile(r"^\s*\$\{([^}]*)\}\s*$")


def render_value(value: Any) -> str:
    """Render a value for substitution into a template."""
    if isinstance(value, StepValue):
        return value.render()
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    return str(value)


def _substitute(text: str, scope: Mapping[str, Any]) -> str:
    if not scope or "${" not in text:
        return text

    def replace(match: "re.Match") -> str:
        key = match.group(1)
        if key in scope:
            return render_value(scope[key])
        return match.group(0)

    return PLACEHOLDER.sub(replace, text)


def interpolate(
    template: str,
    inputs: Optional[Mapping[str, Any]] = None,
    results: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    Replace ``${key}`` placeholders in a template.

    Keys found in ``inputs`` are substituted first. The results pass then
    runs over that output, so it also expands placeholders that arrived
    inside input values. A key present in both scopes takes the input value.
    Unknown placeholders are left as they are.

    Args:
        template: Text possibly containing placeholders
        inputs: Caller-supplied values
        results: Step results produced so far

    Returns:
        The interpolated string
    """
    if not template:
        return template
    return _substitute(_substitute(template, inputs or {}), results or {})


def bare_reference(text: str) -> Optional[str]:
    """Return ``name`` when ``text`` is exactly ``${name}``, else None."""
    match = _BARE_REFERENCE.match(text or "")
    return match.group(1) if match else None
