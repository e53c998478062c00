"""Shared overlay configuration columns for renderable content."""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column


class OverlayConfigMixin:
    """Branding and watermark settings carried by documents and slide decks."""

    add_branding: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default="false",
        nullable=False,
    )
    branding_template_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("system_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    branding_settings: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    watermark_template_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("system_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    watermark_settings: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
