"""Overlay element sets: write-time validation, read-time loading and merging.

Templates are stored as JSONB. Validation is strict when an admin saves a
template and lenient when the renderer reads one back, so a stored row that
drifted from the schema still renders whatever it can.
"""

import logging
import random
from typing import Any

from pydantic import ValidationError

from assetgate.core.errors import TemplateValidationError
from assetgate.schemas.template import (
    ElementSet,
    TemplateElement,
    TemplateType,
    WatermarkPattern,
)

logger = logging.getLogger(__name__)

LOGO_TYPES = frozenset({"logo", "watermark-logo"})
TEXT_TYPES = frozenset({"text", "copyright-text", "free-text", "user-info", "watermark-text"})

# Legacy watermark layout keys and the unified type they map to
LEGACY_KEYS = {
    "textElements": "watermark-text",
    "logoElements": "watermark-logo",
}
LEGACY_LOGO_SOURCES = ("system-logo", "custom-url", "uploaded-file")

GRID_SPACING = (200.0, 150.0)
SCATTER_AREA_UNIT = 50000.0
DEFAULT_SCATTER_DENSITY = 0.3
MIN_GRID_SPACING = 20.0
MAX_SCATTER_DENSITY = 5.0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _convert_legacy(data: dict[str, Any]) -> dict[str, list[Any]]:
    elements: dict[str, list[Any]] = {}
    for legacy_key, type_key in LEGACY_KEYS.items():
        items = data.get(legacy_key)
        if not isinstance(items, list):
            continue
        converted = []
        for item in items:
            if isinstance(item, dict):
                item = {"type": type_key, **item}
            converted.append(item)
        elements[type_key] = converted
    return elements


def _raw_elements(data: dict[str, Any]) -> Any:
    if "elements" in data:
        return data["elements"]
    if any(key in data for key in LEGACY_KEYS):
        return _convert_legacy(data)
    return None


def _validate_element(type_key: str, index: int, element: Any, errors: list[str]) -> None:
    where = f"{type_key}[{index}]"
    if not isinstance(element, dict):
        errors.append(f"Element {where} must be an object")
        return

    if not isinstance(element.get("id"), str) or not element["id"]:
        errors.append(f"Element {where} missing required string 'id'")
    if not isinstance(element.get("type"), str) or not element["type"]:
        errors.append(f"Element {where} missing required string 'type'")

    position = element.get("position")
    if (
        not isinstance(position, dict)
        or not _is_number(position.get("x"))
        or not _is_number(position.get("y"))
    ):
        errors.append(f"Element {where} position must have numeric x and y values")

    style = element.get("style")
    if not isinstance(style, dict):
        errors.append(f"Element {where} missing required 'style' object")
        style = {}

    opacity = style.get("opacity")
    if opacity is not None and (not _is_number(opacity) or not 0 <= opacity <= 100):
        errors.append(f"Element {where} style.opacity must be a number between 0 and 100")
    if style.get("rotation") is not None and not _is_number(style["rotation"]):
        errors.append(f"Element {where} style.rotation must be a number")
    if type_key in LOGO_TYPES and style.get("size") is not None and not _is_number(style["size"]):
        errors.append(f"Logo element {where} style.size must be a number if provided")
    if type_key in TEXT_TYPES and element.get("content") is not None and not isinstance(
        element["content"], str
    ):
        errors.append(f"Text element {where} content must be a string")

    source = element.get("source")
    if source is not None and source not in LEGACY_LOGO_SOURCES:
        errors.append(
            f"Logo element {where} source must be one of {', '.join(LEGACY_LOGO_SOURCES)}"
        )
    elif source in ("custom-url", "uploaded-file") and not isinstance(element.get("url"), str):
        errors.append(f"Logo element {where} with source '{source}' must have a valid url string")


def validate_template_data(template_type: TemplateType, data: Any) -> dict[str, Any]:
    """Validate template data on save and return it normalized.

    Normalization converts the legacy ``textElements``/``logoElements`` layout
    into the unified ``elements`` map and fills ``visible``, ``deletable`` and
    ``pattern`` defaults.

    Raises:
        TemplateValidationError: with every problem found, not just the first.
    """
    errors: list[str] = []
    if not isinstance(data, dict):
        raise TemplateValidationError(["Template data must be an object"])

    raw = _raw_elements(data)
    if not isinstance(raw, dict):
        raise TemplateValidationError(["Template data must contain an 'elements' object"])

    for type_key, items in raw.items():
        if not isinstance(items, list):
            errors.append(f"Elements for '{type_key}' must be an array")
            continue
        for index, element in enumerate(items):
            _validate_element(type_key, index, element, errors)

    global_settings = data.get("globalSettings")
    if global_settings is not None and not isinstance(global_settings, dict):
        errors.append("globalSettings must be an object")

    if template_type == TemplateType.WATERMARK and not any(
        isinstance(items, list) and items for items in raw.values()
    ):
        errors.append("Watermark template must contain at least one element")

    if errors:
        raise TemplateValidationError(errors)

    element_set = load_element_set({"elements": raw, "globalSettings": global_settings})
    return element_set.model_dump(mode="json", by_alias=True, exclude_none=True)


def _coerce_element(type_key: str, index: int, raw: Any) -> TemplateElement | None:
    if not isinstance(raw, dict):
        return None

    item = dict(raw)
    if not isinstance(item.get("id"), str) or not item["id"]:
        item["id"] = f"{type_key}-{index}"
    if not isinstance(item.get("type"), str) or not item["type"]:
        item["type"] = type_key
    if not isinstance(item.get("visible"), bool):
        item["visible"] = True
    if not isinstance(item.get("deletable"), bool):
        item["deletable"] = True
    if item.get("pattern") not in {p.value for p in WatermarkPattern}:
        item["pattern"] = WatermarkPattern.SINGLE.value

    position = item.get("position") if isinstance(item.get("position"), dict) else {}
    item["position"] = {
        "x": position["x"] if _is_number(position.get("x")) else 50,
        "y": position["y"] if _is_number(position.get("y")) else 50,
    }
    if not isinstance(item.get("style"), dict):
        item["style"] = {}
    for key in ("content", "href"):
        if item.get(key) is not None and not isinstance(item[key], str):
            item[key] = str(item[key])

    try:
        return TemplateElement.model_validate(item)
    except ValidationError as e:
        logger.warning("Skipping unreadable template element %s[%d]: %s", type_key, index, e)
        return None


def load_element_set(data: Any) -> ElementSet:
    """Read stored template data into an ElementSet. Never raises."""
    if isinstance(data, ElementSet):
        return data.model_copy(deep=True)
    if not isinstance(data, dict):
        return ElementSet()

    raw = _raw_elements(data)
    elements: dict[str, list[TemplateElement]] = {}
    if isinstance(raw, dict):
        for type_key, items in raw.items():
            if not isinstance(items, list):
                continue
            loaded = [_coerce_element(str(type_key), i, item) for i, item in enumerate(items)]
            elements[str(type_key)] = [el for el in loaded if el is not None]

    global_settings = data.get("globalSettings")
    return ElementSet(
        elements=elements,
        globalSettings=global_settings if isinstance(global_settings, dict) else None,
    )


def build_unified_element_set(
    watermark: ElementSet | None,
    branding: ElementSet | None,
) -> ElementSet:
    """Merge watermark and branding sets into one set keyed by element type.

    Watermark elements come first in each type's array and branding elements
    are appended after them, so the result always holds every element of both.
    """
    elements: dict[str, list[TemplateElement]] = {}
    global_settings: dict[str, Any] = {}

    for source in (watermark, branding):
        if source is None:
            continue
        for type_key, items in source.elements.items():
            elements.setdefault(type_key, []).extend(
                item.model_copy(deep=True) for item in items
            )
        if source.global_settings:
            global_settings.update(source.global_settings)

    return ElementSet(elements=elements, globalSettings=global_settings or None)


def expand_pattern_positions(
    element: TemplateElement,
    width: float,
    height: float,
) -> list[tuple[float, float]]:
    """Return element anchor points in page units, origin at the top-left corner.

    ``scattered`` positions are seeded from the element id so a given element
    always lands in the same places.
    """
    if element.pattern == WatermarkPattern.GRID:
        spacing = getattr(element, "gridSpacing", None)
        sx, sy = GRID_SPACING
        if isinstance(spacing, dict) and _is_number(spacing.get("x")) and _is_number(spacing.get("y")):
            sx, sy = max(float(spacing["x"]), MIN_GRID_SPACING), max(float(spacing["y"]), MIN_GRID_SPACING)
        cols = max(int(-(-width // sx)), 1)
        rows = max(int(-(-height // sy)), 1)
        return [
            (col * sx + sx / 2, row * sy + sy / 2)
            for row in range(rows)
            for col in range(cols)
        ]

    if element.pattern == WatermarkPattern.SCATTERED:
        density = getattr(element, "scatterDensity", None)
        if not _is_number(density) or density <= 0:
            density = DEFAULT_SCATTER_DENSITY
        density = min(float(density), MAX_SCATTER_DENSITY)
        count = max(int(width * height / SCATTER_AREA_UNIT * density), 1)
        rng = random.Random(element.id)
        return [(rng.random() * width, rng.random() * height) for _ in range(count)]

    return [(width * element.position.x / 100, height * element.position.y / 100)]
