"""Content entity registry.

Entity type strings from URLs are resolved through a closed enum and a static
table of model classes, each with its own access-profile accessor.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from assetgate.core.access import EntityAccessProfile
from assetgate.core.errors import EntityNotFound
from assetgate.database import Base
from assetgate.models.file import FileEntity
from assetgate.models.lesson_plan import LessonPlan
from assetgate.models.video import Course, Workshop


class EntityKind(str, Enum):
    """Content kinds the delivery layer knows how to protect."""

    FILE = "file"
    LESSON_PLAN = "lesson_plan"
    WORKSHOP = "workshop"
    COURSE = "course"


def _file_profile(entity: FileEntity) -> EntityAccessProfile:
    return EntityAccessProfile(
        allow_preview=bool(entity.allow_preview),
        accessible_pages=entity.accessible_pages,
    )


def _lesson_plan_profile(entity: LessonPlan) -> EntityAccessProfile:
    return EntityAccessProfile(
        allow_preview=bool(entity.allow_slide_preview),
        accessible_pages=entity.accessible_slides,
    )


def _video_profile(entity: Any) -> EntityAccessProfile:
    return EntityAccessProfile(allow_preview=False)


@dataclass(frozen=True)
class EntityBinding:
    model: type[Base]
    profile: Callable[[Any], EntityAccessProfile]
    document_bearing: bool = False
    video_bearing: bool = False


ENTITY_REGISTRY: dict[EntityKind, EntityBinding] = {
    EntityKind.FILE: EntityBinding(FileEntity, _file_profile, document_bearing=True),
    EntityKind.LESSON_PLAN: EntityBinding(LessonPlan, _lesson_plan_profile),
    EntityKind.WORKSHOP: EntityBinding(Workshop, _video_profile, video_bearing=True),
    EntityKind.COURSE: EntityBinding(Course, _video_profile, video_bearing=True),
}


def parse_entity_kind(entity_type: str) -> EntityKind:
    """Map a URL entity type to an EntityKind.

    Raises:
        EntityNotFound: for unknown types.
    """
    try:
        return EntityKind(entity_type.replace("-", "_"))
    except ValueError:
        raise EntityNotFound(f"Unknown entity type '{entity_type}'")


class EntityRepository:
    """Loads content entities through the static registry."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, kind: EntityKind, entity_id: str) -> Any | None:
        return await self.db.get(ENTITY_REGISTRY[kind].model, str(entity_id))

    async def get_or_404(self, kind: EntityKind, entity_id: str) -> Any:
        entity = await self.get(kind, entity_id)
        if entity is None:
            raise EntityNotFound(f"{kind.value.replace('_', ' ').capitalize()} '{entity_id}' not found")
        return entity

    async def get_profile(self, entity_type: str, entity_id: str) -> EntityAccessProfile | None:
        try:
            kind = parse_entity_kind(entity_type)
        except EntityNotFound:
            return None
        entity = await self.get(kind, entity_id)
        if entity is None:
            return None
        return ENTITY_REGISTRY[kind].profile(entity)
