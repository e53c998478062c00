"""Lesson plan model - a deck of SVG slides."""

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


class LessonPlan(OverlayConfigMixin, Base):
    __tablename__ = "lesson_plans"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_entity_id)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    # [{"id": "...", "filename": "...", "s3_key": "..."}]
    slides: Mapped[list] = mapped_column(JSONB, default=list, nullable=False)
    allow_slide_preview: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default="false",
        nullable=False,
    )
    # 0-based slide indices visible under preview; null means every slide
    accessible_slides: Mapped[list | None] = mapped_column(JSONB, nullable=True)
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

    def find_slide(self, slide_id: str) -> tuple[int, dict] | None:
        """Return (index, slide) for a slide id, or None."""
        for index, slide in enumerate(self.slides or []):
            if isinstance(slide, dict) and str(slide.get("id")) == slide_id:
                return index, slide
        return None
