"""SVG overlay rendering for lesson plan slides."""

import base64
import logging
import os
import re
from typing import Any

from bs4 import BeautifulSoup

from assetgate.core.elements import expand_pattern_positions
from assetgate.core.errors import CorruptDocumentError
from assetgate.core.overlay import (
    DEFAULT_FONT_SIZE,
    DEFAULT_LOGO_SIZE,
    DEFAULT_TEXT_COLOR,
    DEFAULT_TEXT_WIDTH,
    DEFAULT_URL_COLOR,
    LINE_HEIGHT_FACTOR,
    RenderSettings,
    css_color,
    element_kind,
    element_opacity,
    element_rotation,
    needs_wrap,
    style_number,
    wrap_text,
)
from assetgate.schemas.template import ElementSet, TemplateElement

logger = logging.getLogger(__name__)

LAYER_ID = "assetgate-templates"
DEFAULT_DIMENSIONS = (800.0, 600.0)
CHAR_WIDTH_FACTOR = 0.6

_NUMBER = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")


def _parse_length(value: Any) -> float | None:
    match = _NUMBER.match(value) if isinstance(value, str) else None
    if match is None:
        return None
    number = float(match.group(1))
    return number if number > 0 else None


def svg_viewport(svg: Any) -> tuple[float, float, float, float]:
    """Return (min_x, min_y, width, height) from viewBox or width/height."""
    view_box = svg.get("viewBox")
    if isinstance(view_box, str):
        parts = view_box.replace(",", " ").split()
        if len(parts) == 4:
            try:
                min_x, min_y, width, height = (float(p) for p in parts)
                if width > 0 and height > 0:
                    return min_x, min_y, width, height
            except ValueError:
                pass
    width = _parse_length(svg.get("width")) or DEFAULT_DIMENSIONS[0]
    height = _parse_length(svg.get("height")) or DEFAULT_DIMENSIONS[1]
    return 0.0, 0.0, width, height


def _fmt(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


class SvgOverlayRenderer:
    """Injects ElementSet overlays into an SVG as one template layer group."""

    def __init__(self, settings: RenderSettings) -> None:
        self.settings = settings
        self._logo_uri: str | None = None
        self._logo_loaded = False

    def _logo_data_uri(self) -> str | None:
        if not self._logo_loaded:
            self._logo_loaded = True
            path = self.settings.logo_path
            if path and os.path.exists(path):
                with open(path, "rb") as handle:
                    encoded = base64.b64encode(handle.read()).decode("ascii")
                self._logo_uri = f"data:image/png;base64,{encoded}"
        return self._logo_uri

    def _text_tag(self, soup: BeautifulSoup, element: TemplateElement, text: str, color: str) -> Any:
        font_size = style_number(element, "fontSize", DEFAULT_FONT_SIZE)
        attrs = {
            "x": "0",
            "y": "0",
            "text-anchor": "middle",
            "dominant-baseline": "middle",
            "font-family": element.style.get("fontFamily") or "Arial, sans-serif",
            "font-size": _fmt(font_size),
            "fill": css_color(element.style.get("color"), color),
        }
        if element.style.get("bold") is True or element.style.get("fontWeight") == "bold":
            attrs["font-weight"] = "bold"
        if element.style.get("italic") is True or element.style.get("fontStyle") == "italic":
            attrs["font-style"] = "italic"
        tag = soup.new_tag("text", attrs=attrs)

        if not needs_wrap(text):
            tag.string = text
            return tag

        lines = wrap_text(
            text,
            style_number(element, "width", DEFAULT_TEXT_WIDTH),
            lambda s: len(s) * font_size * CHAR_WIDTH_FACTOR,
        )
        line_height = font_size * LINE_HEIGHT_FACTOR
        first_dy = -(len(lines) - 1) * line_height / 2
        for index, line in enumerate(lines):
            span = soup.new_tag(
                "tspan",
                attrs={"x": "0", "dy": _fmt(first_dy if index == 0 else line_height)},
            )
            span.string = line
            tag.append(span)
        return tag

    def _logo_tag(self, soup: BeautifulSoup, element: TemplateElement) -> Any:
        size = style_number(element, "size", DEFAULT_LOGO_SIZE)
        uri = self._logo_data_uri()
        if uri:
            return soup.new_tag(
                "image",
                attrs={
                    "href": uri,
                    "x": _fmt(-size / 2),
                    "y": _fmt(-size / 2),
                    "width": _fmt(size),
                    "height": _fmt(size),
                    "preserveAspectRatio": "xMidYMid meet",
                },
            )
        tag = soup.new_tag(
            "text",
            attrs={
                "x": "0",
                "y": "0",
                "text-anchor": "middle",
                "dominant-baseline": "middle",
                "font-family": "Arial, sans-serif",
                "font-weight": "bold",
                "font-size": _fmt(max(size / 4, 1)),
                "fill": "#3366cc",
            },
        )
        tag.string = "LOGO"
        return tag

    def _shape_tag(self, soup: BeautifulSoup, kind: str, element: TemplateElement) -> Any:
        style = element.style
        stroke = css_color(style.get("borderColor") or style.get("color"), DEFAULT_TEXT_COLOR)
        fill = style.get("fillColor")
        fill = css_color(fill) if fill and fill != "transparent" else "none"
        if kind == "box":
            width = style_number(element, "width", 100)
            height = style_number(element, "height", 100)
            return soup.new_tag(
                "rect",
                attrs={
                    "x": _fmt(-width / 2),
                    "y": _fmt(-height / 2),
                    "width": _fmt(width),
                    "height": _fmt(height),
                    "stroke": stroke,
                    "stroke-width": _fmt(style_number(element, "borderWidth", 2)),
                    "fill": fill,
                },
            )
        if kind == "circle":
            radius = style_number(element, "size", style_number(element, "radius", 50)) / 2
            return soup.new_tag(
                "circle",
                attrs={
                    "cx": "0",
                    "cy": "0",
                    "r": _fmt(radius),
                    "stroke": stroke,
                    "stroke-width": _fmt(style_number(element, "borderWidth", 2)),
                    "fill": fill,
                },
            )
        length = style_number(element, "width", style_number(element, "length", 100))
        attrs = {
            "x1": _fmt(-length / 2),
            "y1": "0",
            "x2": _fmt(length / 2),
            "y2": "0",
            "stroke": stroke,
            "stroke-width": _fmt(style_number(element, "thickness", style_number(element, "height", 2))),
        }
        if kind == "dotted-line":
            attrs["stroke-dasharray"] = "3,3"
        return soup.new_tag("line", attrs=attrs)

    def _element_tag(
        self,
        soup: BeautifulSoup,
        kind: str,
        element: TemplateElement,
    ) -> Any | None:
        if kind == "logo":
            return self._logo_tag(soup, element)
        if kind == "text":
            text = element.content
            return self._text_tag(soup, element, text, DEFAULT_TEXT_COLOR) if text else None
        if kind == "url":
            text = element.content or element.href or self.settings.frontend_url
            if not text:
                return None
            link = soup.new_tag("a", attrs={"href": element.href or text})
            link.append(self._text_tag(soup, element, text, DEFAULT_URL_COLOR))
            return link
        return self._shape_tag(soup, kind, element)

    def render(
        self,
        data: bytes,
        element_set: ElementSet | None,
    ) -> bytes:
        """Return the SVG with overlay elements appended in a template layer.

        ``element_set`` is drawn as given; its content must already be
        substituted.

        Raises:
            CorruptDocumentError: the input has no ``<svg>`` root.
        """
        try:
            soup = BeautifulSoup(data, "xml")
        except (ValueError, TypeError) as e:
            raise CorruptDocumentError(f"SVG parse failure: {e}") from e

        svg = soup.find("svg")
        if svg is None:
            raise CorruptDocumentError("Missing <svg> root element")
        if element_set is None or not element_set.visible_elements():
            return data

        min_x, min_y, width, height = svg_viewport(svg)
        layer = soup.new_tag("g", attrs={"id": LAYER_ID, "class": "template-layer"})

        for type_key, element in element_set.visible_elements():
            kind = element_kind(type_key, element)
            if kind is None:
                logger.debug("Skipping element %s with unknown type %s", element.id, type_key)
                continue
            opacity = element_opacity(element)
            rotation = element_rotation(element)
            for x, y in expand_pattern_positions(element, width, height):
                tag = self._element_tag(soup, kind, element)
                if tag is None:
                    continue
                px, py = _fmt(min_x + x), _fmt(min_y + y)
                transform = f"translate({px} {py})"
                if rotation:
                    transform += f" rotate({_fmt(rotation)})"
                group = soup.new_tag(
                    "g",
                    attrs={
                        "data-element-id": element.id,
                        "transform": transform,
                        "opacity": _fmt(opacity),
                    },
                )
                group.append(tag)
                layer.append(group)

        svg.append(layer)
        return str(soup).encode("utf-8")
