"""``${path.to.value}`` placeholder substitution.

Unresolvable placeholders are left in the text so a missing variable
shows up in the rendered message instead of disappearing.
"""

import json
import re
from typing import Any, Optional

PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")

_MISSING = object()


def get_nested_value(variables: Any, path: str, default: Any = None) -> Any:
    """Resolve a dot-notation path like ``user.address.city``.

    Dicts are traversed by key and lists by integer index.
    """
    value = _resolve(variables, path)
    return default if value is _MISSING else value


def _resolve(current: Any, path: str) -> Any:
    for part in path.strip().split("."):
        if isinstance(current, dict):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, list):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return _MISSING
        else:
            return _MISSING
    return current


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def interpolate(template: Optional[str], variables: Optional[dict]) -> Optional[str]:
    """Substitute every ``${...}`` in ``template`` from ``variables``.

    >>> interpolate("Hello ${user.name}", {"user": {"name": "Ada"}})
    'Hello Ada'
    >>> interpolate("Hello ${missing.x}", {})
    'Hello ${missing.x}'
    """
    if not template or not isinstance(template, str):
        return template

    bag = variables or {}

    def _replace(match: re.Match) -> str:
        value = _resolve(bag, match.group(1))
        if value is _MISSING:
            return match.group(0)
        return _render(value)

    return PLACEHOLDER.sub(_replace, template)
