"""001: shared trigger functions

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_update_timestamp()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    # Ledger rows are append-only: a PENDING row may be settled once,
    # everything else about a row is fixed at insert.
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_guard_ledger_row()
        RETURNS TRIGGER AS $$
        BEGIN
            IF TG_OP = 'DELETE' THEN
                RAISE EXCEPTION 'ledger row % cannot be deleted', OLD.id;
            END IF;
            IF NEW.user_id IS DISTINCT FROM OLD.user_id
               OR NEW.type IS DISTINCT FROM OLD.type
               OR NEW.amount IS DISTINCT FROM OLD.amount
               OR NEW.payment_method IS DISTINCT FROM OLD.payment_method
               OR NEW.payment_id IS DISTINCT FROM OLD.payment_id
               OR NEW.reference_type IS DISTINCT FROM OLD.reference_type
               OR NEW.reference_id IS DISTINCT FROM OLD.reference_id
               OR NEW.created_at IS DISTINCT FROM OLD.created_at THEN
                RAISE EXCEPTION 'ledger row % is immutable', OLD.id;
            END IF;
            IF OLD.status <> 'PENDING' AND (
                NEW.status IS DISTINCT FROM OLD.status
                OR NEW.balance_after IS DISTINCT FROM OLD.balance_after
            ) THEN
                RAISE EXCEPTION 'ledger row % is already %', OLD.id, OLD.status;
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS fn_guard_ledger_row();")
    op.execute("DROP FUNCTION IF EXISTS fn_update_timestamp();")
