"""File model - a downloadable PDF document."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from assetgate.database import Base
from assetgate.models.overlay import OverlayConfigMixin


def _entity_id() -> str:
    return uuid4().hex


class FileEntity(OverlayConfigMixin, Base):
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_entity_id)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    file_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    file_type: Mapped[str] = mapped_column(String(20), default="pdf", nullable=False)
    target_format: Mapped[str] = mapped_column(
        String(50),
        default="pdf-a4-portrait",
        server_default="pdf-a4-portrait",
        nullable=False,
    )
    allow_preview: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default="false",
        nullable=False,
    )
    # 0-based page indices visible under preview; null means every page
    accessible_pages: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    creator_user_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
