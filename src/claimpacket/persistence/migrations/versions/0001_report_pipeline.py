"""Report pipeline tables: report_templates, report_artifacts, claim_timeline_events.

Revision ID: 0001
Revises:
Create Date: 2026-09-14

All tables use Row-Level Security with FORCE enabled, keyed on
current_setting('claimpacket.org_id', true). Marketplace templates
(org_id NULL) are readable by every organization. Timeline events are
append-only, enforced by trigger.
"""

from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS report_templates (
            id TEXT PRIMARY KEY,
            org_id TEXT,
            name TEXT NOT NULL,
            scope TEXT NOT NULL CHECK (scope IN ('org-custom', 'marketplace')),
            section_order JSONB NOT NULL,
            section_enabled JSONB NOT NULL DEFAULT '{}'::jsonb,
            defaults JSONB NOT NULL DEFAULT '{}'::jsonb,
            is_default BOOLEAN NOT NULL DEFAULT FALSE,
            CHECK ((scope = 'marketplace') = (org_id IS NULL))
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_report_templates_org_id ON report_templates (org_id)"
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS report_artifacts (
            id TEXT PRIMARY KEY,
            org_id TEXT NOT NULL,
            claim_id TEXT NOT NULL,
            type TEXT NOT NULL,
            status TEXT NOT NULL CHECK (status IN ('DRAFT', 'FINALIZED', 'SENT')),
            title TEXT NOT NULL,
            content_json JSONB,
            content_text TEXT,
            pdf_url TEXT,
            checksum TEXT,
            size_bytes BIGINT,
            storage_key TEXT,
            thumbnail_url TEXT,
            template_id TEXT,
            created_by_id TEXT,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL,
            attachments JSONB NOT NULL DEFAULT '{}'::jsonb,
            CHECK ((content_json IS NULL) <> (content_text IS NULL)),
            CHECK ((pdf_url IS NULL) = (checksum IS NULL))
        )
        """
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_report_artifacts_org_claim
        ON report_artifacts (org_id, claim_id)
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS claim_timeline_events (
            id TEXT PRIMARY KEY,
            claim_id TEXT NOT NULL,
            org_id TEXT NOT NULL,
            actor_id TEXT,
            actor_type TEXT NOT NULL,
            type TEXT NOT NULL,
            description TEXT NOT NULL,
            metadata JSONB NOT NULL,
            created_at TIMESTAMPTZ NOT NULL
        )
        """
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_claim_timeline_events_org_claim
        ON claim_timeline_events (org_id, claim_id, created_at)
        """
    )

    for table in ("report_templates", "report_artifacts", "claim_timeline_events"):
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")

    op.execute(
        """
        CREATE POLICY report_templates_org_isolation ON report_templates
        USING (
            org_id IS NULL
            OR org_id = NULLIF(current_setting('claimpacket.org_id', true), '')
        )
        WITH CHECK (org_id = NULLIF(current_setting('claimpacket.org_id', true), ''))
        """
    )
    op.execute(
        """
        CREATE POLICY report_artifacts_org_isolation ON report_artifacts
        USING (org_id = NULLIF(current_setting('claimpacket.org_id', true), ''))
        WITH CHECK (org_id = NULLIF(current_setting('claimpacket.org_id', true), ''))
        """
    )
    op.execute(
        """
        CREATE POLICY claim_timeline_events_org_isolation ON claim_timeline_events
        USING (org_id = NULLIF(current_setting('claimpacket.org_id', true), ''))
        WITH CHECK (org_id = NULLIF(current_setting('claimpacket.org_id', true), ''))
        """
    )

    op.execute(
        """
        CREATE OR REPLACE FUNCTION claimpacket_reject_timeline_mutation()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION 'Timeline events are immutable: UPDATE and DELETE are not allowed';
        END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        """
        CREATE TRIGGER claim_timeline_events_immutability
        BEFORE UPDATE OR DELETE ON claim_timeline_events
        FOR EACH ROW EXECUTE FUNCTION claimpacket_reject_timeline_mutation()
        """
    )


def downgrade() -> None:
    op.execute(
        "DROP TRIGGER IF EXISTS claim_timeline_events_immutability ON claim_timeline_events"
    )
    op.execute("DROP FUNCTION IF EXISTS claimpacket_reject_timeline_mutation()")
    op.execute("DROP TABLE IF EXISTS claim_timeline_events")
    op.execute("DROP TABLE IF EXISTS report_artifacts")
    op.execute("DROP TABLE IF EXISTS report_templates")
