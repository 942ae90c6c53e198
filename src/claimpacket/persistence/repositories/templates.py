"""Template definition storage.

Marketplace templates are global and curated; org-custom templates belong to
one organization, which may mark one of them as its default.
"""

from __future__ import annotations

import json
import threading
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import text

from claimpacket.models.template import TemplateDefinition, TemplateScope
from claimpacket.persistence.db import org_transaction

if TYPE_CHECKING:
    from sqlalchemy import Engine


class TemplateRepository(Protocol):
    def get_marketplace(self, template_id: str) -> TemplateDefinition | None: ...

    def get_org_template(self, org_id: str, template_id: str) -> TemplateDefinition | None: ...

    def get_org_default(self, org_id: str) -> TemplateDefinition | None: ...


def _row_to_definition(row: Any) -> TemplateDefinition:
    data = dict(row._mapping)
    for column in ("section_order", "section_enabled", "defaults"):
        if isinstance(data.get(column), str):
            data[column] = json.loads(data[column])
    return TemplateDefinition.model_validate(data)


_SELECT = """
    SELECT id, name, scope, org_id, section_order, section_enabled, defaults, is_default
    FROM report_templates
"""


class PostgresTemplateRepository:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get_marketplace(self, template_id: str) -> TemplateDefinition | None:
        # Marketplace rows have org_id NULL and are readable by every org.
        with self._engine.connect() as conn:
            row = conn.execute(
                text(_SELECT + " WHERE id = :id AND scope = 'marketplace'"),
                {"id": template_id},
            ).fetchone()
        return _row_to_definition(row) if row is not None else None

    def get_org_template(self, org_id: str, template_id: str) -> TemplateDefinition | None:
        with org_transaction(self._engine, org_id) as conn:
            row = conn.execute(
                text(_SELECT + " WHERE id = :id AND org_id = :org_id AND scope = 'org-custom'"),
                {"id": template_id, "org_id": org_id},
            ).fetchone()
        return _row_to_definition(row) if row is not None else None

    def get_org_default(self, org_id: str) -> TemplateDefinition | None:
        with org_transaction(self._engine, org_id) as conn:
            row = conn.execute(
                text(
                    _SELECT
                    + " WHERE org_id = :org_id AND scope = 'org-custom' AND is_default"
                    + " ORDER BY id LIMIT 1"
                ),
                {"org_id": org_id},
            ).fetchone()
        return _row_to_definition(row) if row is not None else None


class InMemoryTemplateRepository:
    """In-memory twin for development and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._templates: dict[str, TemplateDefinition] = {}

    def add(self, definition: TemplateDefinition) -> TemplateDefinition:
        if definition.scope == TemplateScope.ORG_CUSTOM and not definition.org_id:
            raise ValueError("org-custom templates require org_id")
        with self._lock:
            self._templates[definition.id] = definition
        return definition

    def get_marketplace(self, template_id: str) -> TemplateDefinition | None:
        definition = self._templates.get(template_id)
        if definition is None or definition.scope != TemplateScope.MARKETPLACE:
            return None
        return definition

    def get_org_template(self, org_id: str, template_id: str) -> TemplateDefinition | None:
        definition = self._templates.get(template_id)
        if (
            definition is None
            or definition.scope != TemplateScope.ORG_CUSTOM
            or definition.org_id != org_id
        ):
            return None
        return definition

    def get_org_default(self, org_id: str) -> TemplateDefinition | None:
        with self._lock:
            candidates = sorted(
                (
                    t
                    for t in self._templates.values()
                    if t.scope == TemplateScope.ORG_CUSTOM and t.org_id == org_id and t.is_default
                ),
                key=lambda t: t.id,
            )
        return candidates[0] if candidates else None
