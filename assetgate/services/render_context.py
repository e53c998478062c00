"""Substitution context for a render request."""

from datetime import datetime
from typing import Any

from assetgate.core.substitution import default_variables
from assetgate.models.user import User


def build_render_context(
    filename: str,
    user: User | None,
    frontend_url: str,
    anonymous_label: str,
    user_email: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build the context for ``{{token}}`` substitution.

    ``user_email`` overrides the email shown in overlays.
    """
    context: dict[str, Any] = default_variables(frontend_url, now)
    context["filename"] = filename

    user_obj: dict[str, Any] | None = user.to_context() if user is not None else None
    if user_email:
        user_obj = {**(user_obj or {}), "email": user_email}
        user_obj.setdefault("name", user_email.split("@")[0])

    if user_obj:
        context["userObj"] = user_obj
        context["user"] = user_obj.get("email") or user_obj.get("name") or anonymous_label
    else:
        context["user"] = anonymous_label
    return context
