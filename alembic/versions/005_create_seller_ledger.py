"""005: create transactions, seller_balances

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
        CREATE TABLE transactions (
            id                  BIGSERIAL       PRIMARY KEY,
            transaction_number  VARCHAR(40)     NOT NULL,
            seller_org_id       UUID            NOT NULL,
            type                VARCHAR(20)     NOT NULL,
            status              VARCHAR(20)     NOT NULL,
            amount_minor        BIGINT          NOT NULL,
            platform_fee_minor  BIGINT          NOT NULL DEFAULT 0,
            net_amount_minor    BIGINT          NOT NULL,
            currency            VARCHAR(3)      NOT NULL,
            payment_method      VARCHAR(20),
            gateway_intent_id   VARCHAR(255)    NOT NULL,
            description         TEXT,
            metadata            JSONB           NOT NULL DEFAULT '{}'::jsonb,
            processed_at        TIMESTAMPTZ,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_transactions_number UNIQUE (transaction_number),
            CONSTRAINT uq_transactions_intent_seller UNIQUE (gateway_intent_id, seller_org_id),
            CONSTRAINT ck_transactions_type CHECK (type IN ('sale')),
            CONSTRAINT ck_transactions_status CHECK (status IN ('completed')),
            CONSTRAINT ck_transactions_amount CHECK (amount_minor >= 0 AND net_amount_minor >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_transactions_seller ON transactions (seller_org_id, created_at DESC);")

    op.execute("""
        CREATE TABLE seller_balances (
            seller_org_id           UUID            PRIMARY KEY,
            available_amount_minor  BIGINT          NOT NULL DEFAULT 0,
            pending_amount_minor    BIGINT          NOT NULL DEFAULT 0,
            currency                VARCHAR(3)      NOT NULL,
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_seller_balances_available CHECK (available_amount_minor >= 0),
            CONSTRAINT ck_seller_balances_pending CHECK (pending_amount_minor >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_seller_balances_updated_at
            BEFORE UPDATE ON seller_balances
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS seller_balances CASCADE;")
    op.execute("DROP TABLE IF EXISTS transactions CASCADE;")
