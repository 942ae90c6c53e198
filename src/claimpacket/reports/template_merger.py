"""Template Merger: decide which sections render, in what order, with which branding.

Resolution order for resolve_template(template_id, org_id):
1. An explicit template_id is looked up as a marketplace template, then as an
   org-custom template of org_id. Nothing found raises TemplateNotFoundError.
2. Without a template_id, the org's default custom template is used, else the
   built-in catalog layout with every section enabled.

Marketplace layouts are used verbatim. Org-custom layouts are overlaid on the
catalog: keys the template does not list are appended in catalog order.
Branding precedence is template defaults > org branding > fallback palette.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import Any

from claimpacket.models.records import OrgBranding
from claimpacket.models.template import (
    BrandingOverrides,
    MergedSection,
    MergedTemplate,
    TemplateDefaults,
    TemplateDefinition,
    TemplateScope,
)
from claimpacket.persistence.repositories.records import ClaimRecordsRepository
from claimpacket.persistence.repositories.templates import TemplateRepository
from claimpacket.reports.catalog import SECTION_KEYS, SECTIONS_BY_KEY
from claimpacket.reports.errors import TemplateNotFoundError

logger = logging.getLogger(__name__)

BUILTIN_TEMPLATE_ID = "builtin-default"

BUILTIN_DEFAULT = TemplateDefinition(
    id=BUILTIN_TEMPLATE_ID,
    name="Claim Report",
    scope=TemplateScope.BUILTIN,
    section_order=SECTION_KEYS,
)

FALLBACK_BRANDING = BrandingOverrides(
    primary_color="#0A1A2F",
    accent_color="#117CFF",
)


def _branding_layer(branding: OrgBranding | None) -> dict[str, Any]:
    if branding is None:
        return {}
    return BrandingOverrides(
        company_name=branding.company_name,
        logo_url=branding.logo_url,
        primary_color=branding.primary_color,
        accent_color=branding.accent_color,
        header_text=branding.pdf_header_text,
        footer_text=branding.pdf_footer_text,
        contact_email=branding.email,
        contact_phone=branding.phone,
        website=branding.website,
        license_number=branding.license_number,
    ).model_dump(exclude_none=True)


def _overlay(*layers: dict[str, Any]) -> dict[str, Any]:
    """Combine layers; earlier layers win, None never overrides."""
    result: dict[str, Any] = {}
    for layer in reversed(layers):
        result.update({k: v for k, v in layer.items() if v is not None})
    return result


def _layout(definition: TemplateDefinition) -> tuple[MergedSection, ...]:
    keys = list(definition.section_order)
    if definition.scope != TemplateScope.MARKETPLACE:
        keys += [k for k in SECTION_KEYS if k not in definition.section_order]
    return tuple(
        MergedSection(key=k, title=SECTIONS_BY_KEY[k].title, enabled=definition.is_enabled(k))
        for k in keys
    )


def merge_template(
    template: TemplateDefinition | MergedTemplate,
    branding: OrgBranding | None,
    org_id: str,
) -> MergedTemplate:
    """Merge a template with an org's branding. Pure and idempotent.

    merge_template(merge_template(t, b, o), b, o) == merge_template(t, b, o)
    """
    if isinstance(template, MergedTemplate):
        template_id: str | None = template.template_id
        sections = template.sections
    else:
        template_id = template.id
        sections = _layout(template)

    explicit = template.defaults.branding.model_dump(exclude_none=True)
    merged_branding = BrandingOverrides.model_validate(
        _overlay(
            explicit,
            _branding_layer(branding),
            FALLBACK_BRANDING.model_dump(exclude_none=True),
        )
    )
    defaults = TemplateDefaults.model_validate(
        {**template.defaults.model_dump(), "branding": merged_branding.model_dump()}
    )

    return MergedTemplate(
        template_id=template_id,
        name=template.name,
        scope=template.scope,
        org_id=org_id,
        sections=sections,
        defaults=defaults,
    )


def _source_fingerprint(definition: TemplateDefinition, branding: OrgBranding | None) -> str:
    payload = {
        "definition": definition.model_dump(mode="json"),
        "branding": branding.model_dump(mode="json") if branding is not None else None,
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


class TemplateMerger:
    """Resolves and merges templates, caching per (template id, org id).

    A cache entry is reused only while the definition and the org's branding
    are unchanged.
    """

    def __init__(self, templates: TemplateRepository, records: ClaimRecordsRepository) -> None:
        self._templates = templates
        self._records = records
        self._cache: dict[tuple[str, str], tuple[str, MergedTemplate]] = {}
        self._lock = threading.Lock()

    def find_definition(self, template_id: str | None, org_id: str) -> TemplateDefinition:
        """Look up the definition a request refers to.

        Raises:
            TemplateNotFoundError: If template_id is given but unknown to both stores.
        """
        if template_id:
            definition = self._templates.get_marketplace(
                template_id
            ) or self._templates.get_org_template(org_id, template_id)
            if definition is None:
                raise TemplateNotFoundError(
                    "Template not found", context={"template_id": template_id}
                )
            return definition
        return self._templates.get_org_default(org_id) or BUILTIN_DEFAULT

    def resolve_template(self, template_id: str | None, org_id: str) -> MergedTemplate:
        """Return the merged template for a request. Performs no writes.

        Raises:
            TemplateNotFoundError: If an explicit template_id resolves to nothing.
        """
        definition = self.find_definition(template_id, org_id)
        branding = self._records.get_branding(org_id)
        fingerprint = _source_fingerprint(definition, branding)
        cache_key = (definition.id, org_id)

        with self._lock:
            cached = self._cache.get(cache_key)
        if cached is not None and cached[0] == fingerprint:
            return cached[1]

        merged = merge_template(definition, branding, org_id)
        with self._lock:
            self._cache[cache_key] = (fingerprint, merged)

        logger.info(
            "Resolved template %s (%s) for org %s: %d of %d sections enabled",
            definition.id,
            definition.scope.value,
            org_id,
            len(merged.enabled_sections()),
            len(merged.sections),
        )
        return merged

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
