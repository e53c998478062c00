"""Helpers shared by the PDF and SVG overlay renderers."""

import re
from dataclasses import dataclass
from typing import Any, Mapping

from assetgate.core.substitution import contains_hebrew, substitute
from assetgate.schemas.template import ElementSet, TemplateElement

LOGO_KINDS = frozenset({"logo", "watermark-logo"})
TEXT_KINDS = frozenset({"text", "copyright-text", "free-text", "user-info", "watermark-text"})
SHAPE_KINDS = frozenset({"box", "circle", "line", "dotted-line"})
URL_KIND = "url"

DEFAULT_USER_INFO = "This file was created for {{user.email}}"
DEFAULT_USER_INFO_HEBREW = "קובץ זה נוצר עבור {{user.email}}"

DEFAULT_FONT_SIZE = 12.0
DEFAULT_TEXT_COLOR = "#000000"
DEFAULT_URL_COLOR = "#0066cc"
DEFAULT_TEXT_WIDTH = 300.0
DEFAULT_LOGO_SIZE = 80.0
LOGO_FALLBACK_COLOR = (0.2, 0.4, 0.8)
WRAP_THRESHOLD = 50
LINE_HEIGHT_FACTOR = 1.2
DOT_DASH = (3, 3)

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_LTR_RUN = re.compile(r"[A-Za-z0-9@._%+\-:/=?&#]+")


@dataclass(frozen=True)
class RenderSettings:
    """Configuration the renderers need, passed in rather than read globally."""

    frontend_url: str = "http://localhost:3000"
    logo_path: str | None = None
    hebrew_font_path: str | None = None
    hebrew_bold_font_path: str | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> "RenderSettings":
        return cls(
            frontend_url=settings.frontend_url,
            logo_path=settings.logo_path,
            hebrew_font_path=settings.hebrew_font_path,
            hebrew_bold_font_path=settings.hebrew_bold_font_path,
        )


def element_kind(type_key: str, element: TemplateElement) -> str | None:
    """Classify an element as logo, text, url or a shape kind."""
    for candidate in (type_key, element.type):
        if candidate in LOGO_KINDS:
            return "logo"
        if candidate in TEXT_KINDS:
            return "text"
        if candidate == URL_KIND:
            return "url"
        if candidate in SHAPE_KINDS:
            return candidate
    return None


def _style_number(style: Mapping[str, Any], key: str, default: float) -> float:
    value = style.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return default


def style_number(element: TemplateElement, key: str, default: float) -> float:
    return _style_number(element.style, key, default)


def element_opacity(element: TemplateElement) -> float:
    opacity = _style_number(element.style, "opacity", 100.0)
    return min(max(opacity, 0.0), 100.0) / 100.0


def element_rotation(element: TemplateElement) -> float:
    """Clockwise rotation in degrees; negligible values read as zero."""
    rotation = _style_number(element.style, "rotation", 0.0)
    return 0.0 if abs(rotation) <= 0.1 else rotation


def parse_color(value: Any, default: str = DEFAULT_TEXT_COLOR) -> tuple[float, float, float]:
    """Parse ``#rgb`` / ``#rrggbb`` into 0-1 floats."""
    match = _HEX_COLOR.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        match = _HEX_COLOR.match(default)
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return tuple(int(digits[i:i + 2], 16) / 255 for i in (0, 2, 4))


def css_color(value: Any, default: str = DEFAULT_TEXT_COLOR) -> str:
    r, g, b = parse_color(value, default)
    return "#{:02x}{:02x}{:02x}".format(round(r * 255), round(g * 255), round(b * 255))


def needs_wrap(text: str) -> bool:
    return len(text) > WRAP_THRESHOLD or "\n" in text


def wrap_text(text: str, max_width: float, measure) -> list[str]:
    """Greedy word wrap; ``measure`` returns the rendered width of a string."""
    lines: list[str] = []
    for paragraph in text.split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = words[0]
        for word in words[1:]:
            candidate = f"{current} {word}"
            if measure(candidate) <= max_width:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return lines


def visual_order(line: str) -> str:
    """Reorder a Hebrew line for renderers without bidi support.

    Hebrew runs are reversed; embedded Latin runs such as emails and URLs
    keep their reading order.
    """
    if not contains_hebrew(line):
        return line
    parts: list[str] = []
    pos = 0
    for match in _LTR_RUN.finditer(line):
        if match.start() > pos:
            parts.append(line[pos:match.start()][::-1])
        parts.append(match.group(0))
        pos = match.end()
    if pos < len(line):
        parts.append(line[pos:][::-1])
    return "".join(reversed(parts))


def default_content(type_key: str, element: TemplateElement, frontend_url: str) -> str | None:
    if element.content:
        return element.content
    if type_key == "user-info" or element.type == "user-info":
        hebrew = bool(element.style.get("rtl")) or element.style.get("language") == "he"
        return DEFAULT_USER_INFO_HEBREW if hebrew else DEFAULT_USER_INFO
    if element_kind(type_key, element) == "url":
        return element.href or frontend_url
    return element.content


def fill_default_content(element_set: ElementSet, settings: RenderSettings) -> ElementSet:
    """Copy of ``element_set`` with default content filled in, tokens untouched."""
    filled = element_set.model_copy(deep=True)
    for type_key, element in filled.iter_elements():
        element.content = default_content(type_key, element, settings.frontend_url)
    return filled


def substitute_element_set(element_set: ElementSet, context: Mapping[str, Any]) -> ElementSet:
    """Copy of ``element_set`` with ``content``/``href`` substituted exactly once."""
    substituted = element_set.model_copy(deep=True)
    for _, element in substituted.iter_elements():
        element.content = substitute(element.content, context)
        if element.href is not None:
            element.href = substitute(element.href, context)
    return substituted

