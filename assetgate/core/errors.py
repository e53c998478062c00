"""Typed errors for media access and document rendering.

Every error carries the HTTP status it maps to and is rendered as
``{error, message, details?, hint?}`` by the handler in ``assetgate.main``.
"""

from typing import Any


class MediaError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 500
    error: str = "Internal server error"

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        hint: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.hint = hint
        self.headers = headers

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.error, "message": self.message}
        if self.details:
            payload["details"] = self.details
        if self.hint:
            payload["hint"] = self.hint
        return payload


class AuthenticationRequired(MediaError):
    status_code = 401
    error = "Authentication required"

    def __init__(self, message: str = "A valid access token is required", **kwargs: Any) -> None:
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class AuthenticationInvalid(MediaError):
    status_code = 403
    error = "Invalid token"

    def __init__(self, message: str = "Access token could not be verified", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class AccessDenied(MediaError):
    status_code = 403
    error = "Access denied"

    def __init__(
        self,
        message: str = "You do not have access to this content",
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("hint", "Purchase this content to get access")
        super().__init__(message, **kwargs)


class EntityNotFound(MediaError):
    status_code = 404
    error = "Not found"


class AssetNotFound(MediaError):
    status_code = 404
    error = "Asset not found"


class RangeNotSatisfiable(MediaError):
    status_code = 416
    error = "Range not satisfiable"

    def __init__(self, size: int, message: str | None = None) -> None:
        super().__init__(
            message or f"Requested range is outside of 0-{max(size - 1, 0)}",
            headers={"Content-Range": f"bytes */{size}"},
        )
        self.size = size


class CorruptSourceError(MediaError):
    """Stored document cannot be parsed and must be re-uploaded."""

    status_code = 422
    error = "Corrupted file"

    def __init__(
        self,
        message: str = "The stored file is corrupted and cannot be served",
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("hint", "Please re-upload the original file")
        super().__init__(message, **kwargs)


class TransformFailure(MediaError):
    status_code = 500
    error = "Processing failed"


class StreamTransportError(MediaError):
    status_code = 500
    error = "Streaming failed"


class TemplateValidationError(MediaError):
    status_code = 400
    error = "Invalid template"

    def __init__(self, errors: list[str]) -> None:
        super().__init__(
            "Template data failed validation",
            details={"errors": errors},
        )
        self.errors = errors


class CorruptDocumentError(Exception):
    """Raised by the PDF and SVG wrappers when the input cannot be parsed."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
