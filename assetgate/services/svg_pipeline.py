"""Protected SVG slide rendering for lesson plans."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping
from uuid import UUID

from assetgate.core.access import AccessDecision
from assetgate.core.audit import log_corrupt_source, log_original_fallback, log_unprotected_refusal
from assetgate.core.errors import AssetNotFound, CorruptDocumentError, CorruptSourceError
from assetgate.core.overlay import RenderSettings
from assetgate.core.svg_overlay import SvgOverlayRenderer
from assetgate.schemas.template import TargetFormat
from assetgate.services.pdf_pipeline import build_overlay_plan
from assetgate.services.templates import TemplateResolver

logger = logging.getLogger(__name__)

PLACEHOLDER_PATH = Path(__file__).resolve().parent.parent / "assets" / "placeholder-slide.svg"


class SlideVariant(str, Enum):
    ORIGINAL = "original"
    BRANDED = "branded"
    WATERMARKED = "watermarked"
    PLACEHOLDER = "placeholder"


@dataclass(frozen=True)
class SlideResult:
    content: bytes
    variant: SlideVariant


@lru_cache
def placeholder_svg() -> bytes:
    return PLACEHOLDER_PATH.read_bytes()


def slide_is_visible(decision: AccessDecision, slide_index: int) -> bool:
    """Whether the real slide content may be shown under ``decision``."""
    if decision.is_full:
        return True
    if not decision.is_preview:
        return False
    return decision.accessible_pages is None or slide_index in decision.accessible_pages


class SvgPipeline:
    """Chooses and renders the SVG variant for one slide request."""

    def __init__(self, resolver: TemplateResolver, settings: RenderSettings) -> None:
        self.resolver = resolver
        self.settings = settings
        self.renderer = SvgOverlayRenderer(settings)

    async def process_slide(
        self,
        load: Callable[[], Awaitable[bytes | None]],
        lesson_plan: Any,
        slide_index: int,
        decision: AccessDecision,
        context: Mapping[str, Any],
        skip_branding: bool = False,
        skip_watermarks: bool = False,
        user_id: UUID | None = None,
    ) -> SlideResult:
        """Return the original, overlaid or placeholder SVG for one slide.

        Slides outside the caller's access are answered with the placeholder
        without reading the stored slide.

        Raises:
            AssetNotFound: the slide file is missing from storage.
            CorruptSourceError: the stored slide is not a readable SVG.
        """
        if not slide_is_visible(decision, slide_index):
            return SlideResult(placeholder_svg(), SlideVariant.PLACEHOLDER)

        data = await load()
        if data is None:
            raise AssetNotFound("Slide file not found")

        entity_id = str(getattr(lesson_plan, "id", ""))
        try:
            plan = await build_overlay_plan(
                self.resolver,
                lesson_plan,
                decision,
                TargetFormat.SVG_LESSONPLAN,
                context,
                self.settings,
                skip_branding=skip_branding,
                skip_watermarks=skip_watermarks,
                restrict_pages=False,
            )
            if plan.element_set is None or not plan.element_set.visible_elements():
                return SlideResult(data, SlideVariant.ORIGINAL)
            content = await asyncio.to_thread(self.renderer.render, data, plan.element_set)
            variant = SlideVariant.WATERMARKED if plan.watermark else SlideVariant.BRANDED
            return SlideResult(content, variant)
        except CorruptDocumentError as e:
            log_corrupt_source("lesson_plan", entity_id, e.reason, user_id)
            raise CorruptSourceError(details={"reason": e.reason}) from e
        except Exception as e:
            if decision.is_full:
                log_original_fallback("lesson_plan", entity_id, e, user_id)
                return SlideResult(data, SlideVariant.ORIGINAL)
            log_unprotected_refusal("lesson_plan", entity_id, decision.level.value, e, user_id)
            return SlideResult(placeholder_svg(), SlideVariant.PLACEHOLDER)
