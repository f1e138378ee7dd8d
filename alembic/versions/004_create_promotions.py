"""004: create promotion tables

Revision ID: 004
Revises: 003
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE promocodes (
            id                  UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            code                VARCHAR(50)     NOT NULL,
            type                VARCHAR(16)     NOT NULL,
            value               BIGINT          NOT NULL,
            min_amount          BIGINT,
            max_uses            INTEGER,
            max_uses_per_user   INTEGER         NOT NULL DEFAULT 1,
            valid_from          TIMESTAMPTZ     DEFAULT NOW(),
            valid_until         TIMESTAMPTZ,
            plan_types          VARCHAR(16)[]   NOT NULL DEFAULT '{}',
            is_active           BOOLEAN         NOT NULL DEFAULT TRUE,
            used_count          INTEGER         NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_promocodes_code       UNIQUE (code),
            CONSTRAINT ck_promocodes_type       CHECK (type IN ('PERCENT', 'FIXED', 'BALANCE')),
            CONSTRAINT ck_promocodes_value      CHECK (value > 0),
            CONSTRAINT ck_promocodes_percent    CHECK (type <> 'PERCENT' OR value <= 100),
            CONSTRAINT ck_promocodes_code_upper CHECK (code = UPPER(code)),
            CONSTRAINT ck_promocodes_used_count CHECK (
                used_count >= 0 AND (max_uses IS NULL OR used_count <= max_uses)
            )
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_promocodes_updated_at
            BEFORE UPDATE ON promocodes
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE promocode_usages (
            id              BIGSERIAL       PRIMARY KEY,
            promocode_id    UUID            NOT NULL REFERENCES promocodes (id),
            user_id         UUID            NOT NULL REFERENCES users (id),
            amount          BIGINT          NOT NULL DEFAULT 0,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_promocode_usages_promo_user ON promocode_usages (promocode_id, user_id);")

    op.execute("""
        CREATE TABLE gift_certificates (
            id                  UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            code                VARCHAR(32)     NOT NULL,
            amount              BIGINT          NOT NULL,
            balance             BIGINT          NOT NULL,
            is_active           BOOLEAN         NOT NULL DEFAULT TRUE,
            message             VARCHAR(500),
            recipient_email     VARCHAR(255),
            redeemed_by_id      UUID            REFERENCES users (id),
            redeemed_at         TIMESTAMPTZ,
            expires_at          TIMESTAMPTZ,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_gift_certificates_code UNIQUE (code),
            CONSTRAINT ck_gift_amount_gt_0      CHECK (amount > 0),
            CONSTRAINT ck_gift_balance_range    CHECK (balance >= 0 AND balance <= amount)
        );
    """)

    op.execute("""
        CREATE TABLE volume_discounts (
            id                  UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            name                VARCHAR(64)     NOT NULL,
            min_amount          BIGINT          NOT NULL,
            discount_percent    INTEGER         NOT NULL,
            is_active           BOOLEAN         NOT NULL DEFAULT TRUE,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_volume_discounts_min      CHECK (min_amount >= 0),
            CONSTRAINT ck_volume_discounts_percent  CHECK (discount_percent BETWEEN 0 AND 50)
        );
    """)

    op.execute("""
        CREATE TABLE user_discounts (
            user_id             UUID            PRIMARY KEY REFERENCES users (id) ON DELETE CASCADE,
            total_spent         BIGINT          NOT NULL DEFAULT 0,
            discount_percent    INTEGER         NOT NULL DEFAULT 0,
            discount_tier       VARCHAR(64),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("COMMENT ON TABLE user_discounts IS 'Derived snapshot of COMPLETED DEPOSIT totals; recomputed after each deposit';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_discounts CASCADE;")
    op.execute("DROP TABLE IF EXISTS volume_discounts CASCADE;")
    op.execute("DROP TABLE IF EXISTS gift_certificates CASCADE;")
    op.execute("DROP TABLE IF EXISTS promocode_usages CASCADE;")
    op.execute("DROP TABLE IF EXISTS promocodes CASCADE;")
