"""003: create payment_intent_orders

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
        CREATE TABLE payment_intent_orders (
            id                  BIGSERIAL       PRIMARY KEY,
            payment_intent_id   VARCHAR(255)    NOT NULL,
            order_id            UUID            NOT NULL REFERENCES orders(id),
            seller_org_id       UUID            NOT NULL,
            split_amount_minor  BIGINT          NOT NULL,
            currency            VARCHAR(3)      NOT NULL,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_payment_intent_orders UNIQUE (payment_intent_id, order_id),
            CONSTRAINT ck_payment_intent_orders_split CHECK (split_amount_minor >= 0)
        );
    """)
    op.execute(
        "CREATE INDEX idx_payment_intent_orders_order ON payment_intent_orders (order_id);"
    )
    op.execute(
        "COMMENT ON TABLE payment_intent_orders IS "
        "'Intent -> order mapping; source of truth for settlement';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS payment_intent_orders CASCADE;")
