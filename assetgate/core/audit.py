"""Audit records for security-relevant delivery events.

Records go to the ``assetgate.audit`` logger with structured ``extra``
fields so they can be routed separately from request logs.
"""

import logging
from typing import Any
from uuid import UUID

audit_logger = logging.getLogger("assetgate.audit")


def _extra(event: str, **fields: Any) -> dict[str, Any]:
    return {"audit_event": event, **{k: str(v) if isinstance(v, UUID) else v for k, v in fields.items()}}


def log_corrupt_source(entity_type: str, entity_id: str, reason: str, user_id: UUID | None = None) -> None:
    audit_logger.error(
        "Corrupted source document %s/%s: %s",
        entity_type,
        entity_id,
        reason,
        extra=_extra(
            "corrupt_source",
            entity_type=entity_type,
            entity_id=entity_id,
            reason=reason,
            user_id=user_id,
        ),
    )


def log_unprotected_refusal(
    entity_type: str,
    entity_id: str,
    access_level: str,
    error: BaseException,
    user_id: UUID | None = None,
) -> None:
    audit_logger.warning(
        "Refused to serve unprocessed %s/%s to %s caller: %s",
        entity_type,
        entity_id,
        access_level,
        error,
        extra=_extra(
            "unprotected_refusal",
            entity_type=entity_type,
            entity_id=entity_id,
            access_level=access_level,
            error_type=type(error).__name__,
            user_id=user_id,
        ),
    )


def log_original_fallback(entity_type: str, entity_id: str, error: BaseException, user_id: UUID | None = None) -> None:
    audit_logger.warning(
        "Serving original %s/%s after processing failure: %s",
        entity_type,
        entity_id,
        error,
        extra=_extra(
            "original_fallback",
            entity_type=entity_type,
            entity_id=entity_id,
            error_type=type(error).__name__,
            user_id=user_id,
        ),
    )


def log_auto_purchase_failure(user_id: UUID, entity_type: str, entity_id: str, error: BaseException) -> None:
    audit_logger.error(
        "Auto-purchase for free %s/%s failed for user %s: %s",
        entity_type,
        entity_id,
        user_id,
        error,
        extra=_extra(
            "auto_purchase_failed",
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            error_type=type(error).__name__,
        ),
    )


def log_stream_denied(entity_type: str, entity_id: str, user_id: UUID | None, reason: str) -> None:
    audit_logger.warning(
        "Private video %s/%s denied for user %s (%s)",
        entity_type,
        entity_id,
        user_id,
        reason,
        extra=_extra(
            "stream_denied",
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            reason=reason,
        ),
    )
