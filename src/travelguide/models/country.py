from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


class _WireModel(BaseModel):
    """Base for models exchanged with the backend as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ColorPalette(_WireModel):
    primary: str
    secondary: str
    accent: str
    background: str
    text: str


DEFAULT_PALETTE = ColorPalette(
    primary="#3b82f6",
    secondary="#1e40af",
    accent="#f59e0b",
    background="#1f2937",
    text="#f3f4f6",
)


class MenuItem(_WireModel):
    """A region, city or sight in a country's navigation tree."""

    id: str
    type: Literal["region", "city", "sight"]
    title: str
    slug: str
    content_type: Literal["markdown", "pdf"]
    content_path: str
    order: int = 0
    children: list[MenuItem] | None = None


class Country(_WireModel):
    id: str
    name: str
    slug: str
    description: str | None = None
    image_url: str | None = None
    landing_page: str | None = None
    palette: ColorPalette = Field(default_factory=lambda: DEFAULT_PALETTE.model_copy())
    menu_items: list[MenuItem] = Field(default_factory=list)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        if not _SLUG_RE.match(v):
            raise ValueError(f"Invalid country slug: {v!r}")
        return v

    @field_validator("palette", mode="before")
    @classmethod
    def default_palette(cls, v: object) -> object:
        # The backend stores countries created before palettes existed with
        # a null or missing palette.
        if v is None:
            return DEFAULT_PALETTE.model_copy()
        return v


class CountryDraft(_WireModel):
    """Payload for creating a country; the backend assigns the id."""

    name: str
    slug: str
    description: str | None = None
    image_url: str | None = None
    landing_page: str | None = None
    palette: ColorPalette = Field(default_factory=lambda: DEFAULT_PALETTE.model_copy())
    menu_items: list[MenuItem] = Field(default_factory=list)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        if not _SLUG_RE.match(v):
            raise ValueError(f"Invalid country slug: {v!r}")
        return v
