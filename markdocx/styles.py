"""
Style Configuration
===================
Closed style configuration type, named presets, and resolution of a
template name plus overrides into one immutable StyleConfig.

A run of the compiler reads exactly one StyleConfig and never mutates it.
Missing or invalid fields are a configuration fault (StyleConfigError),
not a content problem.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

HEX_COLOR_PATTERN = re.compile(r"^[0-9A-Fa-f]{6}$")


class StyleConfigError(ValueError):
    """Raised when a style configuration is incomplete or invalid."""


class Alignment(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    JUSTIFY = "justify"


class Template(str, Enum):
    """Named style presets, plus the all-custom variant."""
    STANDARD = "standard"
    ACADEMIC = "academic"
    NOTE = "note"
    CUSTOM = "custom"


class StyleConfig(BaseModel):
    """
    Presentation settings applied to a whole conversion run.

    Sizes are in points, spacing is in twentieths of a point (the unit
    Word uses for paragraph spacing), line spacing is a multiplier.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    font_face: str = Field(min_length=1)
    base_font_size: float = Field(gt=0, le=96)
    line_spacing: float = Field(gt=0, le=5)
    heading_color: str
    body_color: str
    alignment: Alignment
    paragraph_spacing: int = Field(ge=0)

    @field_validator("heading_color", "body_color", mode="before")
    @classmethod
    def _normalize_color(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("color must be a hex string")
        color = value.strip().lstrip("#")
        if not HEX_COLOR_PATTERN.match(color):
            raise ValueError(f"invalid hex color: {value!r}")
        return color.upper()


PRESETS: dict[Template, StyleConfig] = {
    Template.STANDARD: StyleConfig(
        font_face="SimSun",
        base_font_size=12,
        line_spacing=1.2,
        heading_color="000000",
        body_color="000000",
        alignment=Alignment.JUSTIFY,
        paragraph_spacing=200,
    ),
    Template.ACADEMIC: StyleConfig(
        font_face="Times New Roman",
        base_font_size=10.5,
        line_spacing=1.5,
        heading_color="000000",
        body_color="000000",
        alignment=Alignment.JUSTIFY,
        paragraph_spacing=100,
    ),
    Template.NOTE: StyleConfig(
        font_face="Microsoft YaHei",
        base_font_size=11,
        line_spacing=1.5,
        heading_color="2563EB",
        body_color="374151",
        alignment=Alignment.LEFT,
        paragraph_spacing=300,
    ),
}

# Accepted spellings for the compact note preset
_TEMPLATE_ALIASES = {
    "compact-note": Template.NOTE,
    "compact_note": Template.NOTE,
}


def parse_template(name: Union[str, Template]) -> Template:
    """Map a template name (case-insensitive) to a Template."""
    if isinstance(name, Template):
        return name
    key = str(name).strip().lower()
    if key in _TEMPLATE_ALIASES:
        return _TEMPLATE_ALIASES[key]
    try:
        return Template(key)
    except ValueError:
        valid = ", ".join(t.value for t in Template)
        raise StyleConfigError(
            f"Unknown template {name!r} (expected one of: {valid})"
        ) from None


def resolve_style(
    template: Union[str, Template] = Template.STANDARD,
    overrides: Optional[Union[Mapping[str, Any], StyleConfig]] = None,
) -> StyleConfig:
    """
    Resolve a template and optional overrides into a StyleConfig.

    Named presets accept partial overrides; unset fields keep the preset's
    value. The custom template has no base, so every field is required.

    Raises:
        StyleConfigError: Unknown template, unknown field, missing field
            for a custom style, or an invalid value.
    """
    tpl = parse_template(template)

    if isinstance(overrides, StyleConfig):
        return overrides

    values = {k: v for k, v in dict(overrides or {}).items() if v is not None}

    if tpl is Template.CUSTOM:
        base: dict[str, Any] = {}
    else:
        base = PRESETS[tpl].model_dump()

    base.update(values)

    try:
        style = StyleConfig(**base)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise StyleConfigError(
            f"Invalid style configuration for template '{tpl.value}': {problems}"
        ) from e

    if values:
        logger.debug(
            f"Resolved style from '{tpl.value}' with overrides: "
            f"{sorted(values)}"
        )
    return style
