"""Protected document and slide delivery endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Query
from fastapi.responses import Response

from assetgate.config import get_settings
from assetgate.core.access import AccessDecision, AccessLevel, AccessSubject
from assetgate.core.errors import AccessDenied, AssetNotFound, EntityNotFound, StreamTransportError
from assetgate.core.filenames import content_disposition
from assetgate.deps import (
    AccessEngine,
    CurrentUser,
    Entities,
    OptionalUser,
    PdfRenderer,
    RenderConfig,
    Resolver,
    Storage,
    SvgRenderer,
)
from assetgate.schemas.template import ElementSet, TargetFormat, TemplatePreviewResponse
from assetgate.services.delivery import PRIVATE_CACHE_HEADERS
from assetgate.services.entities import ENTITY_REGISTRY, EntityKind, parse_entity_kind
from assetgate.services.pdf_pipeline import build_overlay_plan
from assetgate.services.render_context import build_render_context
from assetgate.services.storage import StorageService
from assetgate.services.templates import entity_target_format

logger = logging.getLogger(__name__)

router = APIRouter()


async def _download(storage: StorageService, key: str) -> bytes | None:
    try:
        return await storage.download_to_buffer(key)
    except Exception as e:
        logger.error("Storage download failed for %s: %s", key, e)
        raise StreamTransportError("Failed to read the stored file") from e


@router.get("/download/lesson-plan-slide/{lesson_plan_id}/{slide_id}")
async def download_lesson_plan_slide(
    lesson_plan_id: str,
    slide_id: str,
    user: OptionalUser,
    entities: Entities,
    engine: AccessEngine,
    storage: Storage,
    pipeline: SvgRenderer,
    render_settings: RenderConfig,
    skip_branding: Annotated[bool, Query(alias="skipBranding")] = False,
    skip_watermarks: Annotated[bool, Query(alias="skipWatermarks")] = False,
) -> Response:
    """Serve one slide as original, overlaid or placeholder SVG."""
    lesson_plan = await entities.get_or_404(EntityKind.LESSON_PLAN, lesson_plan_id)
    found = lesson_plan.find_slide(slide_id)
    if found is None:
        raise AssetNotFound(f"Slide '{slide_id}' not found in lesson plan")
    index, slide = found

    subject = AccessSubject(id=user.id, role=user.role) if user is not None else None
    decision = await engine.decide(subject, EntityKind.LESSON_PLAN.value, lesson_plan.id)

    filename = slide.get("filename") or f"slide-{index + 1}.svg"
    key = slide.get("s3_key") or StorageService.construct_s3_path(
        "lesson-plan-slide", EntityKind.LESSON_PLAN.value, lesson_plan.id, filename
    )
    settings = get_settings()
    context = build_render_context(
        filename,
        user,
        render_settings.frontend_url,
        settings.anonymous_user_label,
    )
    context["slideNumber"] = index + 1

    result = await pipeline.process_slide(
        lambda: _download(storage, key),
        lesson_plan,
        index,
        decision,
        context,
        skip_branding=skip_branding,
        skip_watermarks=skip_watermarks,
        user_id=user.id if user is not None else None,
    )
    return Response(
        content=result.content,
        media_type="image/svg+xml",
        headers={**PRIVATE_CACHE_HEADERS, "X-Slide-Variant": result.variant.value},
    )


@router.get("/download/{entity_type}/{entity_id}")
async def download_document(
    entity_type: str,
    entity_id: str,
    user: CurrentUser,
    entities: Entities,
    engine: AccessEngine,
    storage: Storage,
    pipeline: PdfRenderer,
    render_settings: RenderConfig,
    skip_branding: Annotated[bool, Query(alias="skipBranding")] = False,
    skip_watermarks: Annotated[bool, Query(alias="skipWatermarks")] = False,
    user_email: Annotated[str | None, Query(alias="userEmail")] = None,
) -> Response:
    """Download a document with access-dependent overlays and page selection."""
    kind = parse_entity_kind(entity_type)
    if not ENTITY_REGISTRY[kind].document_bearing:
        raise EntityNotFound(f"Entity type '{entity_type}' has no downloadable document")

    entity = await entities.get_or_404(kind, entity_id)
    decision = await engine.decide(AccessSubject(id=user.id, role=user.role), kind.value, entity.id)
    if not decision.has_access:
        raise AccessDenied("You need to purchase this file to download it")

    if not entity.file_name:
        raise AssetNotFound("This file has no uploaded document")
    key = StorageService.construct_s3_path("document", kind.value, entity.id, entity.file_name)
    data = await _download(storage, key)
    if data is None:
        raise AssetNotFound("The document file does not exist in storage")

    context = build_render_context(
        entity.file_name,
        user,
        render_settings.frontend_url,
        get_settings().anonymous_user_label,
        user_email=user_email,
    )
    content = await pipeline.process_pdf(
        data,
        entity,
        kind.value,
        decision,
        context,
        skip_branding=skip_branding,
        skip_watermarks=skip_watermarks,
        user_id=user.id,
    )

    disposition = "attachment" if decision.is_full else "inline"
    return Response(
        content=content,
        media_type="application/pdf",
        headers={
            **PRIVATE_CACHE_HEADERS,
            "Content-Disposition": content_disposition(entity.file_name, disposition),
            "X-Access-Level": decision.level.value,
        },
    )


@router.get("/template-preview/{file_id}", response_model=TemplatePreviewResponse)
async def template_preview(
    file_id: str,
    user: CurrentUser,
    entities: Entities,
    resolver: Resolver,
    render_settings: RenderConfig,
    skip_branding: Annotated[bool, Query(alias="skipBranding")] = False,
    skip_watermarks: Annotated[bool, Query(alias="skipWatermarks")] = False,
    user_email: Annotated[str | None, Query(alias="userEmail")] = None,
) -> TemplatePreviewResponse:
    """Return the resolved, substituted overlay set a preview download would use."""
    entity = await entities.get_or_404(EntityKind.FILE, file_id)
    target_format = entity_target_format(entity, TargetFormat.PDF_A4_PORTRAIT)
    context = build_render_context(
        entity.file_name or entity.title,
        user,
        render_settings.frontend_url,
        get_settings().anonymous_user_label,
        user_email=user_email,
    )
    plan = await build_overlay_plan(
        resolver,
        entity,
        AccessDecision(level=AccessLevel.PREVIEW),
        target_format,
        context,
        render_settings,
        skip_branding=skip_branding,
        skip_watermarks=skip_watermarks,
        restrict_pages=False,
    )
    template = plan.element_set or ElementSet()
    return TemplatePreviewResponse(
        file_id=entity.id,
        target_format=target_format,
        branding_enabled=plan.branding,
        watermark_enabled=plan.watermark,
        element_count=template.count(),
        template=template,
        variables={k: str(v) for k, v in context.items() if isinstance(v, (str, int, float))},
    )
