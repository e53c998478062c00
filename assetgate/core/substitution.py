"""Template variable substitution.

Replaces ``{{name}}``, ``{{name.path}}`` and ``${name}`` tokens with values
from a plain context mapping. Lookup is pure data access: no expressions,
no attribute access on arbitrary objects. Tokens that cannot be resolved are
left in the output verbatim.
"""

import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any

TOKEN_PATTERN = re.compile(
    r"\{\{\s*(?P<curly>[A-Za-z_][\w-]*(?:\.[\w-]+)*)\s*\}\}"
    r"|\$\{\s*(?P<dollar>[A-Za-z_][\w-]*(?:\.[\w-]+)*)\s*\}"
)
HEBREW_PATTERN = re.compile(r"[\u0590-\u05FF]")

_MISSING = object()


def contains_hebrew(text: str | None) -> bool:
    return bool(text) and HEBREW_PATTERN.search(text) is not None


def default_variables(frontend_url: str, now: datetime | None = None) -> dict[str, str]:
    """Variables every template can use without the caller providing them."""
    now = now or datetime.now()
    return {
        "date": now.strftime("%d/%m/%Y"),
        "time": now.strftime("%H:%M:%S"),
        "year": str(now.year),
        "FRONTEND_URL": frontend_url,
    }


def _lookup(source: Any, path: list[str]) -> Any:
    value = source
    for part in path:
        if not isinstance(value, Mapping):
            return _MISSING
        value = value.get(part, _MISSING)
        if value is _MISSING or value is None:
            return _MISSING
    return value


def _derived_user_field(context: Mapping[str, Any], field: str) -> Any:
    user = context.get("user")
    if not isinstance(user, str) or not user.strip():
        return _MISSING
    user = user.strip()
    if "@" in user and len(user) > 3:
        return user if field == "email" else user.split("@")[0]
    if field in ("email", "name"):
        return user
    return _MISSING


def _resolve(context: Mapping[str, Any], name: str) -> Any:
    path = name.split(".")

    value = _lookup(context, path)
    if value is not _MISSING:
        return value

    user_obj = context.get("userObj")
    value = _lookup(user_obj, path)
    if value is not _MISSING:
        return value

    if path[0] == "user" and len(path) == 2:
        value = _lookup(user_obj, path[1:])
        if value is not _MISSING:
            return value
        return _derived_user_field(context, path[1])

    return _MISSING


def _stringify(value: Any) -> str | None:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return None


def substitute(template: Any, context: Mapping[str, Any] | None) -> Any:
    """Resolve tokens in ``template`` against ``context``.

    Non-string templates are returned unchanged. Never raises.
    """
    if not isinstance(template, str) or not template:
        return template
    if not isinstance(context, Mapping):
        context = {}

    def replace(match: re.Match) -> str:
        name = match.group("curly") or match.group("dollar")
        text = _stringify(_resolve(context, name))
        return match.group(0) if text is None else text

    return TOKEN_PATTERN.sub(replace, template)
