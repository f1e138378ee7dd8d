"""002: create users and login_history tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE users (
            id                  UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            username            VARCHAR(64)     NOT NULL,
            email               VARCHAR(255)    NOT NULL,
            password_hash       VARCHAR(255)    NOT NULL,
            role                VARCHAR(16)     NOT NULL DEFAULT 'USER',
            is_active           BOOLEAN         NOT NULL DEFAULT TRUE,
            balance             BIGINT          NOT NULL DEFAULT 0,
            referral_code       VARCHAR(16)     NOT NULL,
            referral_balance    BIGINT          NOT NULL DEFAULT 0,
            referred_by_id      UUID            REFERENCES users (id),
            last_login_at       TIMESTAMPTZ,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_users_username        UNIQUE (username),
            CONSTRAINT uq_users_email           UNIQUE (email),
            CONSTRAINT uq_users_referral_code   UNIQUE (referral_code),
            CONSTRAINT ck_users_username_len    CHECK (LENGTH(username) >= 3),
            CONSTRAINT ck_users_role            CHECK (role IN ('USER', 'ADMIN')),
            CONSTRAINT ck_users_balance_gte_0   CHECK (balance >= 0),
            CONSTRAINT ck_users_no_self_referral CHECK (referred_by_id IS NULL OR referred_by_id <> id)
        );
    """)
    op.execute("CREATE INDEX idx_users_email ON users (email);")
    op.execute("CREATE INDEX idx_users_referred_by ON users (referred_by_id) WHERE referred_by_id IS NOT NULL;")
    op.execute("""
        CREATE TRIGGER trg_users_updated_at
            BEFORE UPDATE ON users
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE users IS 'Accounts; balance is kopecks, changed only with a transactions row';")

    # ip_address is VARCHAR: values come from X-Forwarded-For and may be malformed
    op.execute("""
        CREATE TABLE login_history (
            id              BIGSERIAL       PRIMARY KEY,
            user_id         UUID            NOT NULL REFERENCES users (id) ON DELETE CASCADE,
            ip_address      VARCHAR(64),
            user_agent      VARCHAR(500),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_login_history_ip_time ON login_history (ip_address, created_at);")
    op.execute("CREATE INDEX idx_login_history_user ON login_history (user_id, created_at DESC);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS login_history CASCADE;")
    op.execute("DROP TABLE IF EXISTS users CASCADE;")
