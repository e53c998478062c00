"""End-to-end API tests with dependencies overridden by in-memory fakes."""

import io
from contextlib import AsyncExitStack
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfReader

from assetgate.core.access import AccessDecisionEngine, EntityAccessProfile
from assetgate.core.errors import AuthenticationInvalid, EntityNotFound
from assetgate.database import get_db
from assetgate.deps import (
    get_access_engine,
    get_authenticator,
    get_entity_repository,
    get_storage,
    get_template_repository,
)
from assetgate.main import app
from assetgate.services.entities import EntityKind
from assetgate.services.storage import ObjectMetadata, ObjectStream
from conftest import SLIDE_SVG, make_entity, make_pdf, make_template_repo

VIDEO = bytes(range(256)) * 4


# ─── In-memory world ──────────────────────────────────────────────────────────

def _user(name: str, role: str = "user") -> SimpleNamespace:
    user = SimpleNamespace(id=uuid4(), email=f"{name}@example.com", name=name.title(), role=role)
    user.to_context = lambda: {"id": str(user.id), "email": user.email, "name": user.name, "role": user.role}
    return user


class FakeBody:
    def __init__(self, data: bytes):
        self.data = data

    async def read(self, size: int = -1) -> bytes:
        chunk, self.data = self.data[:size], self.data[size:]
        return chunk

    def close(self):
        pass


class World:
    """Users, commerce rows, entities and stored objects for one test."""

    def __init__(self):
        self.alice = _user("alice")
        self.bob = _user("bob")
        self.admin = _user("root", role="admin")
        self.tokens = {"token-a": self.alice, "token-b": self.bob, "token-admin": self.admin}

        self.products = {
            ("file", "file_42"): SimpleNamespace(creator_user_id=None, price=Decimal("0")),
            ("file", "file_99"): SimpleNamespace(creator_user_id=self.alice.id, price=Decimal("30")),
            ("workshop", "w1"): SimpleNamespace(creator_user_id=self.alice.id, price=Decimal("50")),
        }
        self.purchases: dict[tuple, SimpleNamespace] = {}

        slides = [{"id": "s1", "filename": "slide-1.svg"}, {"id": "s2", "filename": "slide-2.svg"}]
        self.entities = {
            (EntityKind.FILE, "file_42"): make_entity(id="file_42", allow_preview=False),
            (EntityKind.FILE, "file_99"): make_entity(id="file_99", allow_preview=True, accessible_pages=[0]),
            (EntityKind.LESSON_PLAN, "lp_7"): make_entity(
                id="lp_7",
                target_format="svg-lessonplan",
                allow_slide_preview=True,
                accessible_slides=[0],
                find_slide=lambda slide_id: next(
                    ((i, s) for i, s in enumerate(slides) if s["id"] == slide_id), None
                ),
            ),
        }

        self.objects = {"document": make_pdf(3), "lesson-plan-slide": SLIDE_SVG}
        self.marketing_videos: set[str] = set()

    # authentication
    async def authenticate(self, token):
        if not token:
            return None
        if token not in self.tokens:
            raise AuthenticationInvalid()
        return self.tokens[token]

    # products / purchases / access records
    async def find_by_type_and_entity(self, product_type, entity_id):
        return self.products.get((product_type, entity_id))

    async def find_completed_for_user(self, user_id):
        return [p for (buyer, _, _), p in self.purchases.items() if buyer == user_id]

    async def ensure_free_access(self, user_id, entity_type, entity_id):
        key = (user_id, entity_type, entity_id)
        return self.purchases.setdefault(
            key,
            SimpleNamespace(purchasable_type=entity_type, purchasable_id=entity_id, access_expires_at=None),
        )

    # entities
    async def get_or_404(self, kind, entity_id):
        entity = self.entities.get((kind, entity_id))
        if entity is None:
            raise EntityNotFound(f"'{entity_id}' not found")
        return entity

    async def get_profile(self, entity_type, entity_id):
        entity = self.entities.get((EntityKind(entity_type), entity_id))
        if entity is None:
            return None
        if entity_type == EntityKind.LESSON_PLAN.value:
            return EntityAccessProfile(entity.allow_slide_preview, entity.accessible_slides)
        return EntityAccessProfile(entity.allow_preview, entity.accessible_pages)

    # storage
    def storage(self) -> MagicMock:
        storage = MagicMock()

        async def download_to_buffer(key):
            return self.objects.get(key.split("/")[2])

        async def get_object_metadata(key):
            if "/public/marketing-video/" in key:
                entity_id = key.split("/")[-2]
                return ObjectMetadata(len(VIDEO), "video/mp4") if entity_id in self.marketing_videos else None
            return ObjectMetadata(len(VIDEO), "video/mp4")

        async def open_read_stream(key, start=None, end=None, chunk_size=None):
            data = VIDEO if start is None else VIDEO[start:end + 1]
            return ObjectStream(AsyncExitStack(), FakeBody(data), 100)

        storage.download_to_buffer = AsyncMock(side_effect=download_to_buffer)
        storage.get_object_metadata = AsyncMock(side_effect=get_object_metadata)
        storage.open_read_stream = AsyncMock(side_effect=open_read_stream)
        return storage


@pytest.fixture
def world():
    return World()


@pytest.fixture
def client(world):
    engine = AccessDecisionEngine(
        products=world,
        purchases=world,
        access_records=world,
        entities=world,
    )
    storage = world.storage()
    world.storage_mock = storage

    async def no_db():
        yield MagicMock()

    app.dependency_overrides[get_db] = no_db
    app.dependency_overrides[get_authenticator] = lambda: world.authenticate
    app.dependency_overrides[get_access_engine] = lambda: engine
    app.dependency_overrides[get_entity_repository] = lambda: world
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_template_repository] = lambda: make_template_repo()
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _pdf_texts(content: bytes) -> list[str]:
    return [page.extract_text() or "" for page in PdfReader(io.BytesIO(content)).pages]


# ─── Health ───────────────────────────────────────────────────────────────────

class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


# ─── Document download ────────────────────────────────────────────────────────

class TestDocumentDownload:
    def test_free_file_creates_one_access_record(self, client, world):
        first = client.get("/api/v1/assets/download/file/file_42", headers=_auth("token-a"))
        assert first.status_code == 200
        assert len(world.purchases) == 1

        second = client.get("/api/v1/assets/download/file/file_42", headers=_auth("token-a"))
        assert second.status_code == 200
        assert len(world.purchases) == 1

        assert second.headers["x-access-level"] == "full"
        assert second.headers["content-disposition"].startswith("attachment;")
        assert second.headers["cache-control"] == "private, no-cache, no-store, must-revalidate"
        assert second.content == world.objects["document"]

    def test_preview_is_restricted_and_watermarked(self, client):
        response = client.get("/api/v1/assets/download/file/file_99", headers=_auth("token-b"))

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["x-access-level"] == "preview"
        assert response.headers["content-disposition"].startswith("inline;")
        texts = _pdf_texts(response.content)
        assert len(texts) == 1
        assert "PAGE-1" in texts[0]
        assert "CONFIDENTIAL" in texts[0]

    def test_skip_watermarks_keeps_page_restriction(self, client):
        response = client.get(
            "/api/v1/assets/download/file/file_99",
            params={"skipWatermarks": "true"},
            headers=_auth("token-b"),
        )

        assert response.status_code == 200
        texts = _pdf_texts(response.content)
        assert len(texts) == 1
        assert "CONFIDENTIAL" not in texts[0]

    def test_query_token_accepted(self, client):
        response = client.get("/api/v1/assets/download/file/file_42", params={"token": "token-a"})
        assert response.status_code == 200

    def test_creator_gets_original(self, client, world):
        response = client.get("/api/v1/assets/download/file/file_99", headers=_auth("token-a"))
        assert response.status_code == 200
        assert response.content == world.objects["document"]

    def test_missing_token(self, client):
        response = client.get("/api/v1/assets/download/file/file_42")
        assert response.status_code == 401
        assert response.json()["error"] == "Authentication required"

    def test_invalid_token(self, client):
        response = client.get("/api/v1/assets/download/file/file_42", headers=_auth("forged"))
        assert response.status_code == 403
        assert response.json()["error"] == "Invalid token"

    def test_denied_without_preview(self, client, world):
        world.products[("file", "file_42")].price = Decimal("12")
        response = client.get("/api/v1/assets/download/file/file_42", headers=_auth("token-b"))
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "Access denied"
        assert body["hint"] == "Purchase this content to get access"

    def test_unknown_entity(self, client):
        response = client.get("/api/v1/assets/download/file/nope", headers=_auth("token-a"))
        assert response.status_code == 404

    def test_entity_type_without_document(self, client):
        response = client.get("/api/v1/assets/download/workshop/w1", headers=_auth("token-a"))
        assert response.status_code == 404

    def test_missing_stored_document(self, client, world):
        del world.objects["document"]
        response = client.get("/api/v1/assets/download/file/file_42", headers=_auth("token-a"))
        assert response.status_code == 404
        assert response.json()["error"] == "Asset not found"

    def test_corrupt_stored_document(self, client, world):
        world.objects["document"] = b"this is not a pdf"
        response = client.get("/api/v1/assets/download/file/file_99", headers=_auth("token-b"))
        assert response.status_code == 422
        assert response.json()["hint"] == "Please re-upload the original file"


# ─── Template preview ─────────────────────────────────────────────────────────

class TestTemplatePreview:
    def test_preview_payload(self, client):
        response = client.get("/api/v1/assets/template-preview/file_99", headers=_auth("token-b"))

        assert response.status_code == 200
        body = response.json()
        assert body["file_id"] == "file_99"
        assert body["watermark_enabled"] is True
        assert body["branding_enabled"] is False
        assert body["element_count"] == 1
        element = body["template"]["elements"]["watermark-text"][0]
        assert element["content"] == "CONFIDENTIAL bob@example.com"
        assert body["variables"]["filename"] == "fractions.pdf"


# ─── Slides ───────────────────────────────────────────────────────────────────

class TestSlideDownload:
    def test_anonymous_preview_slide_is_watermarked(self, client):
        response = client.get("/api/v1/assets/download/lesson-plan-slide/lp_7/s1")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("image/svg+xml")
        assert response.headers["x-slide-variant"] == "watermarked"
        assert b"CONFIDENTIAL Anonymous" in response.content

    def test_slide_outside_allowlist_is_placeholder(self, client):
        response = client.get("/api/v1/assets/download/lesson-plan-slide/lp_7/s2")
        assert response.status_code == 200
        assert response.headers["x-slide-variant"] == "placeholder"
        assert b"Content Restricted" in response.content

    def test_unknown_slide(self, client):
        response = client.get("/api/v1/assets/download/lesson-plan-slide/lp_7/s9")
        assert response.status_code == 404


# ─── Video streaming ──────────────────────────────────────────────────────────

class TestVideoStreaming:
    def test_marketing_video_is_public(self, client, world):
        world.marketing_videos.add("w1")
        response = client.get("/api/v1/media/stream/workshop/w1", headers={"Range": "bytes=0-99"})

        assert response.status_code == 206
        assert response.headers["content-range"] == f"bytes 0-99/{len(VIDEO)}"
        assert response.headers["cache-control"].startswith("public, max-age=")
        assert response.content == VIDEO[:100]

    def test_private_video_requires_token(self, client):
        response = client.get("/api/v1/media/stream/workshop/w1")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_private_video_denied_without_purchase(self, client):
        response = client.get("/api/v1/media/stream/workshop/w1", headers=_auth("token-b"))
        assert response.status_code == 403

    def test_private_video_first_byte(self, client):
        response = client.get(
            "/api/v1/media/stream/workshop/w1",
            headers={**_auth("token-admin"), "Range": "bytes=0-0"},
        )
        assert response.status_code == 206
        assert response.headers["content-range"] == f"bytes 0-0/{len(VIDEO)}"
        assert response.headers["content-length"] == "1"
        assert response.headers["cache-control"] == "private, no-cache, no-store, must-revalidate"
        assert response.content == VIDEO[:1]

    def test_private_video_full_body(self, client):
        response = client.get("/api/v1/media/stream/workshop/w1", params={"authToken": "token-a"})
        assert response.status_code == 200
        assert response.headers["accept-ranges"] == "bytes"
        assert response.content == VIDEO

    def test_range_past_end(self, client):
        size = len(VIDEO)
        response = client.get(
            "/api/v1/media/stream/workshop/w1",
            headers={**_auth("token-a"), "Range": f"bytes={size}-{size}"},
        )
        assert response.status_code == 416
        assert response.headers["content-range"] == f"bytes */{size}"

    def test_head_request(self, client, world):
        response = client.head("/api/v1/media/stream/workshop/w1", headers=_auth("token-a"))
        assert response.status_code == 200
        assert response.headers["content-length"] == str(len(VIDEO))
        world.storage_mock.open_read_stream.assert_not_awaited()

    def test_unknown_entity_type(self, client):
        response = client.get("/api/v1/media/stream/podcast/p1")
        assert response.status_code == 404

    def test_file_has_no_video(self, client):
        response = client.get("/api/v1/media/stream/file/file_42", headers=_auth("token-a"))
        assert response.status_code == 404
