"""007: create notifications, admin_logs and fraud_alerts tables

Revision ID: 007
Revises: 006
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE notifications (
            id              BIGSERIAL       PRIMARY KEY,
            user_id         UUID            NOT NULL REFERENCES users (id) ON DELETE CASCADE,
            type            VARCHAR(16)     NOT NULL,
            title           VARCHAR(200)    NOT NULL,
            message         TEXT            NOT NULL,
            is_read         BOOLEAN         NOT NULL DEFAULT FALSE,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_notifications_type CHECK (type IN ('PAYMENT', 'SYSTEM', 'WITHDRAWAL'))
        );
    """)
    op.execute("CREATE INDEX idx_notifications_user ON notifications (user_id, created_at DESC);")

    # admin_id is NULL for cron-triggered jobs
    op.execute("""
        CREATE TABLE admin_logs (
            id              BIGSERIAL       PRIMARY KEY,
            admin_id        UUID            REFERENCES users (id),
            action          VARCHAR(64)     NOT NULL,
            target          VARCHAR(128),
            details         JSONB           NOT NULL DEFAULT '{}'::jsonb,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_admin_logs_action ON admin_logs (action, id DESC);")

    op.execute("""
        CREATE TABLE fraud_alerts (
            id              BIGSERIAL       PRIMARY KEY,
            user_id         UUID            NOT NULL REFERENCES users (id),
            type            VARCHAR(32)     NOT NULL,
            severity        VARCHAR(16)     NOT NULL,
            status          VARCHAR(16)     NOT NULL DEFAULT 'OPEN',
            description     TEXT            NOT NULL,
            ip_address      VARCHAR(64),
            metadata        JSONB           NOT NULL DEFAULT '{}'::jsonb,
            review_note     TEXT,
            reviewed_by_id  UUID            REFERENCES users (id),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            resolved_at     TIMESTAMPTZ,
            CONSTRAINT ck_fraud_type CHECK (
                type IN ('VELOCITY', 'SUSPICIOUS_PAYMENT', 'MULTIPLE_ACCOUNTS', 'UNUSUAL_ACTIVITY')
            ),
            CONSTRAINT ck_fraud_severity CHECK (severity IN ('LOW', 'MEDIUM', 'HIGH')),
            CONSTRAINT ck_fraud_status CHECK (status IN ('OPEN', 'RESOLVED', 'DISMISSED'))
        );
    """)
    op.execute("CREATE INDEX idx_fraud_user_type_time ON fraud_alerts (user_id, type, created_at);")
    op.execute("""
        CREATE INDEX idx_fraud_ip_time ON fraud_alerts (ip_address, created_at)
        WHERE ip_address IS NOT NULL;
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS fraud_alerts CASCADE;")
    op.execute("DROP TABLE IF EXISTS admin_logs CASCADE;")
    op.execute("DROP TABLE IF EXISTS notifications CASCADE;")
