"""003: create transactions table

Revision ID: 003
Revises: 002
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE transactions (
            id              BIGSERIAL       PRIMARY KEY,
            user_id         UUID            NOT NULL REFERENCES users (id),
            type            VARCHAR(20)     NOT NULL,
            amount          BIGINT          NOT NULL,
            balance_before  BIGINT          NOT NULL,
            balance_after   BIGINT          NOT NULL,
            status          VARCHAR(20)     NOT NULL DEFAULT 'COMPLETED',
            description     VARCHAR(500),
            payment_method  VARCHAR(32),
            payment_id      VARCHAR(128),
            reference_type  VARCHAR(30),
            reference_id    VARCHAR(64),
            metadata        JSONB           NOT NULL DEFAULT '{}'::jsonb,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_tx_type CHECK (
                type IN ('DEPOSIT', 'WITHDRAWAL', 'PURCHASE', 'REFUND',
                         'REFERRAL', 'PROMOCODE', 'BONUS')
            ),
            CONSTRAINT ck_tx_status CHECK (
                status IN ('PENDING', 'COMPLETED', 'FAILED', 'CANCELLED')
            ),
            CONSTRAINT ck_tx_reference_type CHECK (
                reference_type IS NULL OR reference_type IN (
                    'PROMOCODE', 'GIFT_CERTIFICATE', 'REFERRED_USER',
                    'TRANSACTION', 'WITHDRAWAL_REQUEST', 'ADMIN'
                )
            ),
            CONSTRAINT ck_tx_balance_arithmetic CHECK (
                status <> 'COMPLETED' OR balance_after = balance_before + amount
            ),
            CONSTRAINT ck_tx_balance_after_gte_0 CHECK (balance_after >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_tx_user_id ON transactions (user_id, id DESC);")
    op.execute("CREATE INDEX idx_tx_type_time ON transactions (type, status, created_at);")
    op.execute("CREATE INDEX idx_tx_time ON transactions (created_at);")
    op.execute("""
        CREATE UNIQUE INDEX uq_tx_payment
        ON transactions (payment_method, payment_id)
        WHERE payment_id IS NOT NULL;
    """)
    op.execute("""
        CREATE INDEX idx_tx_reference
        ON transactions (reference_type, reference_id)
        WHERE reference_id IS NOT NULL;
    """)
    # One referral bonus per referred user, whatever races the application loses
    op.execute("""
        CREATE UNIQUE INDEX uq_tx_referral_once
        ON transactions (reference_id)
        WHERE type = 'REFERRAL' AND reference_type = 'REFERRED_USER';
    """)
    op.execute("""
        CREATE TRIGGER trg_transactions_updated_at
            BEFORE UPDATE ON transactions
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("""
        CREATE TRIGGER trg_transactions_append_only
            BEFORE UPDATE OR DELETE ON transactions
            FOR EACH ROW EXECUTE FUNCTION fn_guard_ledger_row();
    """)
    op.execute("COMMENT ON TABLE transactions IS 'Ledger; only status moves, and only out of PENDING. Amounts in kopecks';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS transactions CASCADE;")
