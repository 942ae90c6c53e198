"""Template definitions and the merged, render-ready template."""

from __future__ import annotations

import hashlib
import json
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from claimpacket.reports.catalog import SECTION_KEYS


class TemplateScope(StrEnum):
    BUILTIN = "builtin"
    ORG_CUSTOM = "org-custom"
    MARKETPLACE = "marketplace"


class BrandingOverrides(BaseModel):
    """Branding values a template may pin. Unknown keys pass through."""

    model_config = ConfigDict(frozen=True, extra="allow")

    company_name: str | None = None
    logo_url: str | None = None
    primary_color: str | None = None
    accent_color: str | None = None
    header_text: str | None = None
    footer_text: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    website: str | None = None
    license_number: str | None = None


class TemplateDefaults(BaseModel):
    """Template-level defaults. Unknown keys pass through."""

    model_config = ConfigDict(frozen=True, extra="allow")

    branding: BrandingOverrides = Field(default_factory=BrandingOverrides)
    title: str | None = None
    show_page_numbers: bool | None = None


def _validate_section_keys(keys: tuple[str, ...]) -> tuple[str, ...]:
    unknown = [k for k in keys if k not in SECTION_KEYS]
    if unknown:
        raise ValueError(f"Unknown section keys: {', '.join(unknown)}")
    if len(set(keys)) != len(keys):
        raise ValueError("section_order contains duplicate keys")
    return keys


class TemplateDefinition(BaseModel):
    """A stored layout: which sections render, in what order, with what defaults.

    Every key in section_order must be in the section catalog. section_enabled
    need not cover every key; absence means enabled.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    scope: TemplateScope
    org_id: str | None = Field(
        default=None, description="Owning org for org-custom templates"
    )
    section_order: tuple[str, ...]
    section_enabled: dict[str, bool] = Field(default_factory=dict)
    defaults: TemplateDefaults = Field(default_factory=TemplateDefaults)
    is_default: bool = False

    @field_validator("section_order")
    @classmethod
    def check_section_order(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return _validate_section_keys(v)

    def is_enabled(self, key: str) -> bool:
        return self.section_enabled.get(key, True)


class MergedSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    title: str
    enabled: bool


class MergedTemplate(BaseModel):
    """A template after section overlay and branding injection.

    Merging a MergedTemplate again with the same branding yields an
    identical value, so canonical_json() is stable and usable as a cache key.
    """

    model_config = ConfigDict(frozen=True)

    template_id: str | None
    name: str
    scope: TemplateScope
    org_id: str
    sections: tuple[MergedSection, ...]
    defaults: TemplateDefaults

    def enabled_sections(self) -> list[MergedSection]:
        return [s for s in self.sections if s.enabled]

    def as_mapping(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def canonical_json(self) -> str:
        """Deterministic JSON: sorted keys, compact separators."""
        return json.dumps(self.as_mapping(), sort_keys=True, separators=(",", ":"))

    def fingerprint(self) -> str:
        return hashlib.sha256(self.canonical_json().encode("utf-8")).hexdigest()
