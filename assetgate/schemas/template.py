"""Overlay template schemas."""

from enum import Enum
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field


class TemplateType(str, Enum):
    """Kind of overlay a template provides."""

    BRANDING = "branding"
    WATERMARK = "watermark"


class TargetFormat(str, Enum):
    """Output format a template is designed for."""

    PDF_A4_LANDSCAPE = "pdf-a4-landscape"
    PDF_A4_PORTRAIT = "pdf-a4-portrait"
    SVG_LESSONPLAN = "svg-lessonplan"


class WatermarkPattern(str, Enum):
    SINGLE = "single"
    GRID = "grid"
    SCATTERED = "scattered"


class ElementPosition(BaseModel):
    """Position as a percentage of the page, measured from the top-left corner."""

    x: float = 50
    y: float = 50


class TemplateElement(BaseModel):
    """A single overlay element (logo, text, url, shape)."""

    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    visible: bool = True
    deletable: bool = True
    position: ElementPosition = Field(default_factory=ElementPosition)
    style: dict[str, Any] = Field(default_factory=dict)
    content: str | None = None
    href: str | None = None
    pattern: WatermarkPattern = WatermarkPattern.SINGLE


class ElementSet(BaseModel):
    """Overlay elements grouped by element type key."""

    model_config = ConfigDict(populate_by_name=True)

    elements: dict[str, list[TemplateElement]] = Field(default_factory=dict)
    global_settings: dict[str, Any] | None = Field(default=None, alias="globalSettings")

    def count(self) -> int:
        return sum(len(items) for items in self.elements.values())

    def iter_elements(self) -> Iterator[tuple[str, TemplateElement]]:
        for type_key, items in self.elements.items():
            for element in items:
                yield type_key, element

    def visible_elements(self) -> list[tuple[str, TemplateElement]]:
        return [(key, el) for key, el in self.iter_elements() if el.visible]


class TemplateCreate(BaseModel):
    """Schema for creating a system template."""

    name: str
    template_type: TemplateType
    target_format: TargetFormat
    is_default: bool = False
    template_data: dict[str, Any]


class TemplatePreviewResponse(BaseModel):
    """Resolved overlay configuration for the template editor."""

    file_id: str
    target_format: TargetFormat
    branding_enabled: bool
    watermark_enabled: bool
    element_count: int
    template: ElementSet
    variables: dict[str, str]
