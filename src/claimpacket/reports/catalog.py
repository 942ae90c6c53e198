"""The canonical section catalog.

Thirteen sections in default order. Template definitions may only reference
keys listed here; the renderer may implement a subset of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class SectionCategory(StrEnum):
    HEADER = "header"
    CONTENT = "content"
    EVIDENCE = "evidence"
    TECHNICAL = "technical"
    FINANCIAL = "financial"
    LEGAL = "legal"
    FOOTER = "footer"


@dataclass(frozen=True)
class SectionDefinition:
    """Catalog entry.

    Attributes:
        key: Stable section identifier used in templates.
        title: Default display title.
        category: Grouping used by template editors.
        required_fields: Dotted context paths the section needs to render
            meaningfully; preview reports the empty ones as missing.
        namespaces: Optional context namespaces the generator receives; the
            rest are emptied before rendering. `claim` is always present.
    """

    key: str
    title: str
    category: SectionCategory
    required_fields: tuple[str, ...] = ()
    namespaces: tuple[str, ...] = ()


SECTION_CATALOG: tuple[SectionDefinition, ...] = (
    SectionDefinition(
        "cover",
        "Cover Page",
        SectionCategory.HEADER,
        ("company.name", "company.logo", "claim.claim_number", "property.full_address"),
        namespaces=("company", "property"),
    ),
    SectionDefinition("toc", "Table of Contents", SectionCategory.HEADER),
    SectionDefinition(
        "executive-summary",
        "Executive Summary",
        SectionCategory.CONTENT,
        ("claim.damage_type", "findings"),
        namespaces=("property", "findings", "media"),
    ),
    SectionDefinition(
        "weather-verification",
        "Loss & Weather Verification",
        SectionCategory.EVIDENCE,
        ("claim.date_of_loss", "weather"),
        namespaces=("weather",),
    ),
    SectionDefinition(
        "adjuster-notes",
        "Adjuster & Contractor Notes",
        SectionCategory.CONTENT,
        ("notes",),
        namespaces=("notes",),
    ),
    SectionDefinition(
        "photo-evidence",
        "Photo Evidence",
        SectionCategory.EVIDENCE,
        ("media.photos",),
        namespaces=("media",),
    ),
    SectionDefinition(
        "test-cuts",
        "Test Cuts & Measurements",
        SectionCategory.TECHNICAL,
        ("property.roof_type", "findings"),
        namespaces=("property", "findings"),
    ),
    SectionDefinition("scope-matrix", "Scope & Line-Item Matrix", SectionCategory.FINANCIAL),
    SectionDefinition(
        "code-compliance",
        "Code Compliance & Manufacturer Requirements",
        SectionCategory.LEGAL,
    ),
    SectionDefinition(
        "pricing-comparison", "Comparative Pricing & Market Data", SectionCategory.FINANCIAL
    ),
    SectionDefinition("supplements", "Supplements & Variances", SectionCategory.FINANCIAL),
    SectionDefinition(
        "signature-page",
        "Signature Page",
        SectionCategory.FOOTER,
        ("company.name", "claim.insured_name"),
        namespaces=("company",),
    ),
    SectionDefinition(
        "attachments-index",
        "Attachments & Appendices",
        SectionCategory.FOOTER,
        namespaces=("media",),
    ),
)

SECTIONS_BY_KEY: dict[str, SectionDefinition] = {s.key: s for s in SECTION_CATALOG}
SECTION_KEYS: tuple[str, ...] = tuple(s.key for s in SECTION_CATALOG)


def get_section(key: str) -> SectionDefinition | None:
    return SECTIONS_BY_KEY.get(key)
