"""005: create withdrawal_requests and spending_limits tables

Revision ID: 005
Revises: 004
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE withdrawal_requests (
            id              UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id         UUID            NOT NULL REFERENCES users (id),
            amount          BIGINT          NOT NULL,
            method          VARCHAR(16)     NOT NULL,
            details         JSONB           NOT NULL DEFAULT '{}'::jsonb,
            status          VARCHAR(16)     NOT NULL DEFAULT 'PENDING',
            admin_note      TEXT,
            processed_at    TIMESTAMPTZ,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_withdrawal_amount_min CHECK (amount >= 10000),
            CONSTRAINT ck_withdrawal_method     CHECK (method IN ('CARD', 'YOOMONEY', 'QIWI', 'CRYPTO')),
            CONSTRAINT ck_withdrawal_status     CHECK (
                status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'REJECTED')
            )
        );
    """)
    op.execute("CREATE INDEX idx_withdrawal_user_time ON withdrawal_requests (user_id, created_at DESC);")
    op.execute("CREATE INDEX idx_withdrawal_status ON withdrawal_requests (status, created_at DESC);")

    op.execute("""
        CREATE TABLE spending_limits (
            user_id         UUID            PRIMARY KEY REFERENCES users (id) ON DELETE CASCADE,
            daily_limit     BIGINT,
            monthly_limit   BIGINT,
            alert_at        INTEGER         NOT NULL DEFAULT 80,
            is_enabled      BOOLEAN         NOT NULL DEFAULT FALSE,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_limits_daily_gte_0    CHECK (daily_limit IS NULL OR daily_limit >= 0),
            CONSTRAINT ck_limits_monthly_gte_0  CHECK (monthly_limit IS NULL OR monthly_limit >= 0),
            CONSTRAINT ck_limits_alert_at       CHECK (alert_at BETWEEN 10 AND 100)
        );
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS spending_limits CASCADE;")
    op.execute("DROP TABLE IF EXISTS withdrawal_requests CASCADE;")
