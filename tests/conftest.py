"""Shared fixtures: generated documents, fake entities and template repos."""

import io
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from assetgate.core.overlay import RenderSettings
from assetgate.services.templates import TemplateResolver

WATERMARK_DATA = {
    "elements": {
        "watermark-text": [
            {
                "id": "wm-1",
                "type": "watermark-text",
                "content": "CONFIDENTIAL {{user.email}}",
                "position": {"x": 50, "y": 50},
                "style": {"fontSize": 20, "opacity": 30},
            }
        ]
    }
}

BRANDING_DATA = {
    "elements": {
        "copyright-text": [
            {
                "id": "br-1",
                "type": "copyright-text",
                "content": "Assetgate {{year}}",
                "position": {"x": 50, "y": 95},
                "style": {"fontSize": 10},
            }
        ],
        "logo": [
            {"id": "br-logo", "type": "logo", "position": {"x": 90, "y": 5}, "style": {"size": 40}}
        ],
    }
}

SLIDE_SVG = (
    b'<?xml version="1.0" encoding="UTF-8"?>'
    b'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 1024 768">'
    b'<rect width="1024" height="768" fill="#ffffff"/>'
    b'<text x="100" y="100">Slide body</text>'
    b"</svg>"
)


def make_pdf(pages: int = 4) -> bytes:
    """Build an A4 PDF whose page N carries the text ``PAGE-N``."""
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle("Sample document")
    for number in range(1, pages + 1):
        c.setFont("Helvetica", 14)
        c.drawString(72, 720, f"PAGE-{number}")
        c.showPage()
    c.save()
    return buffer.getvalue()


def make_entity(**overrides) -> SimpleNamespace:
    values = {
        "id": "file_42",
        "title": "Fractions worksheet",
        "file_name": "fractions.pdf",
        "target_format": "pdf-a4-portrait",
        "add_branding": False,
        "branding_template_id": None,
        "branding_settings": None,
        "watermark_template_id": None,
        "watermark_settings": None,
        "allow_preview": True,
        "accessible_pages": None,
        "creator_user_id": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def make_template_repo(watermark=WATERMARK_DATA, branding=BRANDING_DATA) -> MagicMock:
    """Template repository whose defaults are the given template data."""
    defaults = {
        "watermark": SimpleNamespace(template_data=watermark) if watermark is not None else None,
        "branding": SimpleNamespace(template_data=branding) if branding is not None else None,
    }
    repo = MagicMock()
    repo.find_by_id = AsyncMock(return_value=None)
    repo.find_default = AsyncMock(side_effect=lambda template_type, target_format: defaults[template_type])
    return repo


@pytest.fixture
def render_settings():
    return RenderSettings(frontend_url="http://localhost:3000")


@pytest.fixture
def template_repo():
    return make_template_repo()


@pytest.fixture
def resolver(template_repo):
    return TemplateResolver(template_repo)


@pytest.fixture
def render_context():
    return {
        "filename": "fractions.pdf",
        "user": "dana@example.com",
        "userObj": {"email": "dana@example.com", "name": "Dana"},
        "year": "2026",
        "FRONTEND_URL": "http://localhost:3000",
    }
