"""Protected PDF rendering: overlay planning, rendering and fallback handling."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping
from uuid import UUID

from assetgate.core.access import AccessDecision
from assetgate.core.audit import log_corrupt_source, log_original_fallback, log_unprotected_refusal
from assetgate.core.elements import build_unified_element_set
from assetgate.core.errors import AccessDenied, CorruptDocumentError, CorruptSourceError, TransformFailure
from assetgate.core.overlay import RenderSettings, fill_default_content, substitute_element_set
from assetgate.core.pdf_overlay import PdfOverlayRenderer, has_pdf_header
from assetgate.schemas.template import ElementSet, TargetFormat
from assetgate.services.templates import TemplateResolver, entity_target_format

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverlayPlan:
    """What a render will apply, decided before touching the document.

    ``element_set`` is substituted against the request context. ``template_set``
    still holds its tokens for renderers that add per-page variables and
    substitute once while drawing.
    """

    element_set: ElementSet | None
    template_set: ElementSet | None
    accessible_pages: frozenset[int] | None
    branding: bool
    watermark: bool

    @property
    def is_passthrough(self) -> bool:
        return not (self.branding or self.watermark or self.accessible_pages is not None)


async def build_overlay_plan(
    resolver: TemplateResolver,
    entity: Any,
    decision: AccessDecision,
    target_format: TargetFormat,
    context: Mapping[str, Any],
    settings: RenderSettings,
    skip_branding: bool = False,
    skip_watermarks: bool = False,
    restrict_pages: bool = True,
) -> OverlayPlan:
    """Resolve templates and build the unified, substituted element set.

    Watermark elements come first and branding elements are appended to the
    same type arrays. Gates are independent and may combine.
    """
    branding_gate = bool(getattr(entity, "add_branding", False)) and not skip_branding
    watermark_gate = decision.is_preview and not skip_watermarks
    pages = decision.accessible_pages if restrict_pages and decision.is_preview else None

    branding = await resolver.resolve_branding(entity, target_format) if branding_gate else None
    watermark = await resolver.resolve_watermark(entity, target_format) if watermark_gate else None
    if watermark_gate and (watermark is None or watermark.count() == 0):
        logger.info("No watermark elements resolved for %s, rendering without watermark", getattr(entity, "id", "?"))

    template_set = None
    element_set = None
    if branding is not None or watermark is not None:
        template_set = fill_default_content(build_unified_element_set(watermark, branding), settings)
        element_set = substitute_element_set(template_set, context)

    return OverlayPlan(
        element_set=element_set,
        template_set=template_set,
        accessible_pages=pages,
        branding=branding_gate,
        watermark=watermark_gate,
    )


class PdfPipeline:
    """Renders a stored PDF for one request according to its access decision."""

    def __init__(self, resolver: TemplateResolver, settings: RenderSettings) -> None:
        self.resolver = resolver
        self.settings = settings
        self.renderer = PdfOverlayRenderer(settings)

    async def process_pdf(
        self,
        data: bytes,
        entity: Any,
        entity_type: str,
        decision: AccessDecision,
        context: Mapping[str, Any],
        skip_branding: bool = False,
        skip_watermarks: bool = False,
        user_id: UUID | None = None,
    ) -> bytes:
        """Return the bytes to serve for ``decision``.

        Corrupt sources are refused for everyone. Other failures fall back to
        the original bytes for full access and are refused otherwise.

        Raises:
            AccessDenied: the decision is Denied.
            CorruptSourceError: the stored PDF cannot be parsed.
            TransformFailure: a preview could not be produced safely.
        """
        if not decision.has_access:
            raise AccessDenied()

        entity_id = str(getattr(entity, "id", ""))
        try:
            plan = await build_overlay_plan(
                self.resolver,
                entity,
                decision,
                entity_target_format(entity, TargetFormat.PDF_A4_PORTRAIT),
                context,
                self.settings,
                skip_branding=skip_branding,
                skip_watermarks=skip_watermarks,
            )
            if plan.is_passthrough:
                if not has_pdf_header(data):
                    raise CorruptDocumentError("Invalid PDF header")
                return data
            return await asyncio.to_thread(
                self.renderer.render,
                data,
                plan.template_set,
                context,
                plan.accessible_pages,
            )
        except CorruptDocumentError as e:
            log_corrupt_source(entity_type, entity_id, e.reason, user_id)
            raise CorruptSourceError(details={"reason": e.reason}) from e
        except Exception as e:
            if decision.is_full:
                if not has_pdf_header(data):
                    log_corrupt_source(entity_type, entity_id, "Invalid PDF header", user_id)
                    raise CorruptSourceError(details={"reason": "Invalid PDF header"}) from e
                log_original_fallback(entity_type, entity_id, e, user_id)
                return data
            log_unprotected_refusal(entity_type, entity_id, decision.level.value, e, user_id)
            if isinstance(e, TransformFailure):
                raise
            raise TransformFailure("Unable to prepare a protected preview of this document") from e
