"""002: create orders, order_items, order_timeline

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
    # buyer/seller org + user ids reference tables owned by other services: no FKs
    op.execute("""
        CREATE TABLE orders (
            id                          UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            order_number                VARCHAR(40)     NOT NULL,
            checkout_group_id           UUID            NOT NULL,
            buyer_org_id                UUID            NOT NULL,
            buyer_user_id               UUID            NOT NULL,
            seller_org_id               UUID            NOT NULL,
            status                      VARCHAR(20)     NOT NULL DEFAULT 'pending',
            payment_status              VARCHAR(20)     NOT NULL DEFAULT 'pending',
            subtotal                    NUMERIC(12,2)   NOT NULL,
            tax_amount                  NUMERIC(12,2)   NOT NULL DEFAULT 0,
            shipping_amount             NUMERIC(12,2)   NOT NULL DEFAULT 0,
            discount_amount             NUMERIC(12,2)   NOT NULL DEFAULT 0,
            total_amount                NUMERIC(12,2)   NOT NULL,
            currency                    VARCHAR(3)      NOT NULL,
            gateway_intent_id           VARCHAR(255),
            gateway_payment_method_id   VARCHAR(255),
            shipping_address            JSONB           NOT NULL,
            billing_address             JSONB           NOT NULL,
            buyer_notes                 TEXT,
            paid_at                     TIMESTAMPTZ,
            created_at                  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at                  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_orders_order_number UNIQUE (order_number),
            CONSTRAINT ck_orders_status CHECK (
                status IN ('pending', 'confirmed', 'processing', 'shipped', 'delivered', 'cancelled')
            ),
            CONSTRAINT ck_orders_payment_status CHECK (
                payment_status IN ('pending', 'paid', 'payment_failed')
            ),
            CONSTRAINT ck_orders_amounts CHECK (
                subtotal >= 0 AND tax_amount >= 0 AND shipping_amount >= 0
                AND discount_amount >= 0 AND total_amount >= 0
            ),
            CONSTRAINT ck_orders_paid_at CHECK (payment_status <> 'paid' OR paid_at IS NOT NULL)
        );
    """)
    op.execute("CREATE INDEX idx_orders_buyer ON orders (buyer_org_id, created_at DESC);")
    op.execute("CREATE INDEX idx_orders_seller ON orders (seller_org_id, created_at DESC);")
    op.execute("CREATE INDEX idx_orders_checkout_group ON orders (checkout_group_id);")
    op.execute("CREATE INDEX idx_orders_gateway_intent ON orders (gateway_intent_id);")
    op.execute("""
        CREATE TRIGGER trg_orders_updated_at
            BEFORE UPDATE ON orders
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE orders IS 'One order per seller per checkout; never deleted';")

    op.execute("""
        CREATE TABLE order_items (
            id                  BIGSERIAL       PRIMARY KEY,
            order_id            UUID            NOT NULL REFERENCES orders(id),
            product_id          UUID            NOT NULL,
            product_name        VARCHAR(255),
            product_sku         VARCHAR(100),
            unit_price          NUMERIC(12,2)   NOT NULL,
            quantity            INTEGER         NOT NULL,
            total_price         NUMERIC(12,2)   NOT NULL,
            product_snapshot    JSONB           NOT NULL DEFAULT '{}'::jsonb,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_order_items_quantity CHECK (quantity > 0),
            CONSTRAINT ck_order_items_price CHECK (unit_price >= 0 AND total_price >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_order_items_order ON order_items (order_id);")
    op.execute("CREATE INDEX idx_order_items_product ON order_items (product_id);")

    op.execute("""
        CREATE TABLE order_timeline (
            id              BIGSERIAL       PRIMARY KEY,
            order_id        UUID            NOT NULL REFERENCES orders(id),
            event_type      VARCHAR(50)     NOT NULL,
            description     TEXT            NOT NULL,
            metadata        JSONB           NOT NULL DEFAULT '{}'::jsonb,
            created_by      UUID,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_order_timeline_order ON order_timeline (order_id, created_at);")
    op.execute("COMMENT ON TABLE order_timeline IS 'Append-only order audit trail';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS order_timeline CASCADE;")
    op.execute("DROP TABLE IF EXISTS order_items CASCADE;")
    op.execute("DROP TABLE IF EXISTS orders CASCADE;")
