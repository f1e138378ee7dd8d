"""006: create webhooks and webhook_logs tables

Revision ID: 006
Revises: 005
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE webhooks (
            id                  UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id             UUID            NOT NULL REFERENCES users (id) ON DELETE CASCADE,
            name                VARCHAR(100)    NOT NULL,
            url                 VARCHAR(2048)   NOT NULL,
            events              VARCHAR(32)[]   NOT NULL DEFAULT '{}',
            secret              VARCHAR(64)     NOT NULL,
            is_active           BOOLEAN         NOT NULL DEFAULT TRUE,
            fail_count          INTEGER         NOT NULL DEFAULT 0,
            last_triggered_at   TIMESTAMPTZ,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_webhooks_fail_count CHECK (fail_count >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_webhooks_user_active ON webhooks (user_id) WHERE is_active;")

    op.execute("""
        CREATE TABLE webhook_logs (
            id              BIGSERIAL       PRIMARY KEY,
            webhook_id      UUID            NOT NULL REFERENCES webhooks (id) ON DELETE CASCADE,
            event           VARCHAR(32)     NOT NULL,
            payload         JSONB           NOT NULL,
            response_code   INTEGER,
            response_body   VARCHAR(1000),
            success         BOOLEAN         NOT NULL,
            executed_at     TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_webhook_logs_webhook_time ON webhook_logs (webhook_id, executed_at DESC);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS webhook_logs CASCADE;")
    op.execute("DROP TABLE IF EXISTS webhooks CASCADE;")
