"""System template storage and overlay resolution."""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from assetgate.core.elements import load_element_set, validate_template_data
from assetgate.core.errors import EntityNotFound
from assetgate.models.system_template import SystemTemplate
from assetgate.schemas.template import ElementSet, TargetFormat, TemplateCreate, TemplateType

logger = logging.getLogger(__name__)


class TemplateRepository:
    """Queries and default-template bookkeeping for system templates."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_default(self, template_type: str, target_format: str) -> SystemTemplate | None:
        result = await self.db.execute(
            select(SystemTemplate).where(
                SystemTemplate.template_type == template_type,
                SystemTemplate.target_format == target_format,
                SystemTemplate.is_default.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def find_by_id(self, template_id: UUID) -> SystemTemplate | None:
        return await self.db.get(SystemTemplate, template_id)

    async def create_template(self, data: TemplateCreate, created_by: UUID | None = None) -> SystemTemplate:
        """Validate and store a new template.

        Raises:
            TemplateValidationError: if ``template_data`` is invalid.
        """
        template = SystemTemplate(
            name=data.name,
            template_type=data.template_type.value,
            target_format=data.target_format.value,
            is_default=False,
            template_data=validate_template_data(data.template_type, data.template_data),
            created_by=created_by,
        )
        self.db.add(template)
        await self.db.commit()
        await self.db.refresh(template)

        if data.is_default:
            template = await self.set_as_default(template.id)
        return template

    async def set_as_default(self, template_id: UUID) -> SystemTemplate:
        """Make a template the default for its type and format.

        The previous default is cleared and the new one set in one
        transaction. Any failure rolls back and propagates.
        """
        template = await self.find_by_id(template_id)
        if template is None:
            raise EntityNotFound(f"Template '{template_id}' not found")

        try:
            await self.db.execute(
                update(SystemTemplate)
                .where(
                    SystemTemplate.template_type == template.template_type,
                    SystemTemplate.target_format == template.target_format,
                    SystemTemplate.is_default.is_(True),
                    SystemTemplate.id != template.id,
                )
                .values(is_default=False)
            )
            template.is_default = True
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception("Failed to set template %s as default", template_id)
            raise

        await self.db.refresh(template)
        logger.info(
            "Template %s is now the default %s for %s",
            template.id,
            template.template_type,
            template.target_format,
        )
        return template


def _has_elements(settings: Any) -> bool:
    return isinstance(settings, dict) and isinstance(settings.get("elements"), dict)


class TemplateResolver:
    """Resolves the branding and watermark ElementSets for an entity.

    Lookup order for each overlay: explicit template id on the entity, then
    the default template for the target format. A per-entity settings
    override with its own ``elements`` replaces both.
    """

    def __init__(self, templates: TemplateRepository) -> None:
        self.templates = templates

    async def _resolve(
        self,
        template_type: TemplateType,
        template_id: UUID | None,
        override: Any,
        target_format: TargetFormat,
    ) -> ElementSet | None:
        if _has_elements(override):
            return load_element_set(override)

        template = None
        if template_id is not None:
            template = await self.templates.find_by_id(template_id)
            if template is None:
                logger.warning(
                    "%s template %s not found, falling back to default",
                    template_type.value,
                    template_id,
                )
        if template is None:
            template = await self.templates.find_default(template_type.value, target_format.value)
        if template is None:
            return None
        return load_element_set(template.template_data)

    async def resolve_branding(self, entity: Any, target_format: TargetFormat) -> ElementSet | None:
        return await self._resolve(
            TemplateType.BRANDING,
            entity.branding_template_id,
            entity.branding_settings,
            target_format,
        )

    async def resolve_watermark(self, entity: Any, target_format: TargetFormat) -> ElementSet | None:
        """Resolve the watermark set; a lookup failure means no watermark."""
        try:
            return await self._resolve(
                TemplateType.WATERMARK,
                entity.watermark_template_id,
                entity.watermark_settings,
                target_format,
            )
        except Exception as e:
            logger.error("Watermark template resolution failed for %s: %s", getattr(entity, "id", "?"), e)
            return None


def entity_target_format(entity: Any, default: TargetFormat) -> TargetFormat:
    try:
        return TargetFormat(getattr(entity, "target_format", None) or default.value)
    except ValueError:
        return default
