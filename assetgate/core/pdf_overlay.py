"""PDF overlay rendering.

Each output page gets one reportlab-drawn overlay page merged on top with
pypdf. Page selection and overlay merging happen in a single pass over the
source document.
"""

import io
import logging
import os
from typing import Any, Iterable, Mapping

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from assetgate.core.elements import expand_pattern_positions
from assetgate.core.errors import CorruptDocumentError, TransformFailure
from assetgate.core.overlay import (
    DEFAULT_FONT_SIZE,
    DEFAULT_LOGO_SIZE,
    DEFAULT_TEXT_COLOR,
    DEFAULT_TEXT_WIDTH,
    DEFAULT_URL_COLOR,
    DOT_DASH,
    LINE_HEIGHT_FACTOR,
    LOGO_FALLBACK_COLOR,
    RenderSettings,
    element_kind,
    element_opacity,
    element_rotation,
    needs_wrap,
    parse_color,
    style_number,
    visual_order,
    wrap_text,
)
from assetgate.core.substitution import contains_hebrew, substitute
from assetgate.schemas.template import ElementSet, TemplateElement

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"
HEADER_SCAN_BYTES = 1024

HEBREW_FONT = "AssetgateHebrew"
HEBREW_BOLD_FONT = "AssetgateHebrew-Bold"


def has_pdf_header(data: bytes | None) -> bool:
    return bool(data) and PDF_MAGIC in data[:HEADER_SCAN_BYTES]


def open_pdf(data: bytes) -> PdfReader:
    """Parse a PDF, raising CorruptDocumentError for unreadable input."""
    if not has_pdf_header(data):
        raise CorruptDocumentError("Invalid PDF header")
    try:
        reader = PdfReader(io.BytesIO(data))
        if len(reader.pages) == 0:
            raise CorruptDocumentError("PDF has no pages")
    except PyPdfError as e:
        raise CorruptDocumentError(f"PDF parse failure: {e}") from e
    except (ValueError, KeyError, TypeError) as e:
        raise CorruptDocumentError(f"PDF structure error: {e}") from e
    return reader


def select_pages(total: int, accessible_pages: Iterable[int] | None) -> list[int]:
    """0-based page indices to emit, ascending; None keeps every page."""
    if accessible_pages is None:
        return list(range(total))
    return sorted({p for p in accessible_pages if 0 <= p < total})


def _register_font(name: str, path: str | None) -> bool:
    if name in pdfmetrics.getRegisteredFontNames():
        return True
    if not path or not os.path.exists(path):
        return False
    pdfmetrics.registerFont(TTFont(name, path))
    return True


class PdfOverlayRenderer:
    """Draws ElementSet overlays onto PDF pages."""

    def __init__(self, settings: RenderSettings) -> None:
        self.settings = settings
        self._logo: ImageReader | None = None
        self._logo_loaded = False

    # ─── Fonts and assets ───

    def _font_for(self, element: TemplateElement, text: str) -> str:
        bold = element.style.get("bold") is True or element.style.get("fontWeight") == "bold"
        italic = element.style.get("italic") is True or element.style.get("fontStyle") == "italic"
        if contains_hebrew(text):
            if bold and _register_font(HEBREW_BOLD_FONT, self.settings.hebrew_bold_font_path):
                return HEBREW_BOLD_FONT
            if _register_font(HEBREW_FONT, self.settings.hebrew_font_path):
                return HEBREW_FONT
        if bold and italic:
            return "Helvetica-BoldOblique"
        if bold:
            return "Helvetica-Bold"
        if italic:
            return "Helvetica-Oblique"
        return "Helvetica"

    def _logo_image(self) -> ImageReader | None:
        if not self._logo_loaded:
            self._logo_loaded = True
            path = self.settings.logo_path
            if path and os.path.exists(path):
                self._logo = ImageReader(path)
            elif path:
                logger.warning("Logo file not found at %s, using text fallback", path)
        return self._logo

    # ─── Element drawing (origin at element anchor) ───

    def _draw_text(
        self,
        c: canvas.Canvas,
        element: TemplateElement,
        text: str,
        default_color: str,
        href: str | None = None,
    ) -> None:
        font_size = style_number(element, "fontSize", DEFAULT_FONT_SIZE)
        font = self._font_for(element, text)
        c.setFont(font, font_size)
        c.setFillColorRGB(*parse_color(element.style.get("color"), default_color))

        def measure(s: str) -> float:
            return pdfmetrics.stringWidth(s, font, font_size)

        if needs_wrap(text):
            lines = wrap_text(text, style_number(element, "width", DEFAULT_TEXT_WIDTH), measure)
        else:
            lines = [text]

        line_height = font_size * LINE_HEIGHT_FACTOR
        top = (len(lines) - 1) * line_height / 2
        baseline_shift = font_size * 0.35
        for index, line in enumerate(lines):
            y = top - index * line_height - baseline_shift
            c.drawCentredString(0, y, visual_order(line))

        if href:
            width = max((measure(line) for line in lines), default=0)
            bottom = top - (len(lines) - 1) * line_height - baseline_shift
            c.setStrokeColorRGB(*parse_color(element.style.get("color"), default_color))
            c.setLineWidth(0.5)
            c.line(-width / 2, bottom - 1.5, width / 2, bottom - 1.5)
            c.linkURL(
                href,
                (-width / 2, bottom - 2, width / 2, top + font_size),
                relative=1,
                thickness=0,
            )

    def _draw_logo(self, c: canvas.Canvas, element: TemplateElement) -> None:
        size = style_number(element, "size", DEFAULT_LOGO_SIZE)
        image = self._logo_image()
        if image is not None:
            c.drawImage(
                image,
                -size / 2,
                -size / 2,
                width=size,
                height=size,
                mask="auto",
                preserveAspectRatio=True,
                anchor="c",
            )
            return
        font_size = max(size / 4, 1)
        c.setFont("Helvetica-Bold", font_size)
        c.setFillColorRGB(*LOGO_FALLBACK_COLOR)
        c.drawCentredString(0, -font_size * 0.35, "LOGO")

    def _draw_shape(self, c: canvas.Canvas, kind: str, element: TemplateElement) -> None:
        style = element.style
        stroke = parse_color(style.get("borderColor") or style.get("color"), DEFAULT_TEXT_COLOR)
        c.setStrokeColorRGB(*stroke)
        if kind == "box":
            width = style_number(element, "width", 100)
            height = style_number(element, "height", 100)
            c.setLineWidth(style_number(element, "borderWidth", 2))
            fill = style.get("fillColor")
            if fill and fill != "transparent":
                c.setFillColorRGB(*parse_color(fill))
            c.rect(-width / 2, -height / 2, width, height, stroke=1, fill=1 if fill and fill != "transparent" else 0)
        elif kind == "circle":
            radius = style_number(element, "size", style_number(element, "radius", 50)) / 2
            c.setLineWidth(style_number(element, "borderWidth", 2))
            fill = style.get("fillColor")
            if fill and fill != "transparent":
                c.setFillColorRGB(*parse_color(fill))
            c.circle(0, 0, radius, stroke=1, fill=1 if fill and fill != "transparent" else 0)
        else:
            length = style_number(element, "width", style_number(element, "length", 100))
            c.setLineWidth(style_number(element, "thickness", style_number(element, "height", 2)))
            if kind == "dotted-line":
                c.setDash(*DOT_DASH)
            c.line(-length / 2, 0, length / 2, 0)

    def _draw_element(
        self,
        c: canvas.Canvas,
        kind: str,
        element: TemplateElement,
        context: Mapping[str, Any],
    ) -> None:
        if kind == "logo":
            self._draw_logo(c, element)
        elif kind == "text":
            text = substitute(element.content, context)
            if text:
                self._draw_text(c, element, text, DEFAULT_TEXT_COLOR)
        elif kind == "url":
            text = substitute(element.content or element.href or self.settings.frontend_url, context)
            href = substitute(element.href, context) if element.href else text
            if text:
                self._draw_text(c, element, text, DEFAULT_URL_COLOR, href=href)
        else:
            self._draw_shape(c, kind, element)

    # ─── Page composition ───

    def build_overlay(
        self,
        width: float,
        height: float,
        element_set: ElementSet,
        context: Mapping[str, Any],
        origin: tuple[float, float] = (0.0, 0.0),
    ) -> Any:
        """Draw one overlay page and return it as a pypdf page."""
        buffer = io.BytesIO()
        c = canvas.Canvas(buffer, pagesize=(origin[0] + width, origin[1] + height))
        c.translate(*origin)

        for type_key, element in element_set.visible_elements():
            kind = element_kind(type_key, element)
            if kind is None:
                logger.debug("Skipping element %s with unknown type %s", element.id, type_key)
                continue
            opacity = element_opacity(element)
            rotation = element_rotation(element)
            for x, y in expand_pattern_positions(element, width, height):
                c.saveState()
                c.setFillAlpha(opacity)
                c.setStrokeAlpha(opacity)
                c.translate(x, height - y)
                if rotation:
                    # Template rotation is clockwise, PDF rotation is counter-clockwise
                    c.rotate(-rotation)
                self._draw_element(c, kind, element, context)
                c.restoreState()

        c.showPage()
        c.save()
        buffer.seek(0)
        return PdfReader(buffer).pages[0]

    def render(
        self,
        data: bytes,
        element_set: ElementSet | None,
        context: Mapping[str, Any],
        accessible_pages: Iterable[int] | None = None,
    ) -> bytes:
        """Emit the selected pages with overlays merged.

        Element content is substituted once per page, against ``context`` plus
        the page variables.

        Raises:
            CorruptDocumentError: the source cannot be parsed.
            TransformFailure: no requested page exists in the source.
        """
        reader = open_pdf(data)
        total = len(reader.pages)
        indices = select_pages(total, accessible_pages)
        if not indices:
            raise TransformFailure(
                "None of the accessible pages exist in this document",
                details={"total_pages": total},
            )

        draw = element_set is not None and bool(element_set.visible_elements())
        writer = PdfWriter()
        for index in indices:
            page = writer.add_page(reader.pages[index])
            if draw:
                box = page.mediabox
                page_context = {
                    **context,
                    "page": index + 1,
                    "pageNumber": index + 1,
                    "totalPages": total,
                }
                overlay = self.build_overlay(
                    float(box.width),
                    float(box.height),
                    element_set,
                    page_context,
                    origin=(float(box.left), float(box.bottom)),
                )
                page.merge_page(overlay)

        if reader.metadata:
            writer.add_metadata(dict(reader.metadata))
        output = io.BytesIO()
        writer.write(output)
        return output.getvalue()
