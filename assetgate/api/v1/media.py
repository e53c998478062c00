"""Video streaming endpoints."""

from typing import Annotated

from fastapi import APIRouter, Header, Request
from fastapi.responses import Response

from assetgate.config import get_settings
from assetgate.core.access import AccessSubject
from assetgate.core.audit import log_stream_denied
from assetgate.core.errors import AccessDenied, AuthenticationRequired, EntityNotFound
from assetgate.deps import AccessEngine, AccessToken, Authenticator, Storage
from assetgate.services.delivery import (
    PRIVATE_CACHE_HEADERS,
    fetch_metadata,
    marketing_cache_headers,
    stream_object,
)
from assetgate.services.entities import ENTITY_REGISTRY, parse_entity_kind
from assetgate.services.storage import StorageService

router = APIRouter()

VIDEO_FILENAME = "video.mp4"


@router.api_route("/stream/{entity_type}/{entity_id}", methods=["GET", "HEAD"])
async def stream_video(
    entity_type: str,
    entity_id: str,
    request: Request,
    token: AccessToken,
    authenticate: Authenticator,
    storage: Storage,
    engine: AccessEngine,
    range_header: Annotated[str | None, Header(alias="Range")] = None,
) -> Response:
    """Stream a video with Range support.

    The public marketing video is served when it exists; otherwise the
    private content video requires a token and full access.
    """
    kind = parse_entity_kind(entity_type)
    if not ENTITY_REGISTRY[kind].video_bearing:
        raise EntityNotFound(f"Entity type '{entity_type}' has no video")

    settings = get_settings()
    head_only = request.method == "HEAD"

    marketing_key = StorageService.construct_s3_path(
        "marketing-video", kind.value, entity_id, VIDEO_FILENAME, is_public=True
    )
    marketing = await fetch_metadata(storage, marketing_key)
    if marketing is not None:
        return await stream_object(
            storage,
            marketing_key,
            range_header,
            marketing_cache_headers(settings.marketing_cache_max_age),
            metadata=marketing,
            head_only=head_only,
        )

    if not token and not settings.dev_auth_bypass:
        raise AuthenticationRequired()
    user = await authenticate(token)
    if user is None:
        raise AuthenticationRequired()

    decision = await engine.decide(AccessSubject(id=user.id, role=user.role), kind.value, entity_id)
    if not decision.is_full:
        log_stream_denied(kind.value, entity_id, user.id, decision.reason)
        raise AccessDenied("You do not have access to this video")

    content_key = StorageService.construct_s3_path("content-video", kind.value, entity_id, VIDEO_FILENAME)
    return await stream_object(
        storage,
        content_key,
        range_header,
        PRIVATE_CACHE_HEADERS,
        head_only=head_only,
    )
