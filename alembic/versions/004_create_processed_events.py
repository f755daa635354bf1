"""004: create processed_events

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
    # The PK on the gateway event id is the webhook idempotency barrier
    op.execute("""
        CREATE TABLE processed_events (
            id                  VARCHAR(255)    PRIMARY KEY,
            type                VARCHAR(100)    NOT NULL,
            payment_intent_id   VARCHAR(255),
            payload             JSONB           NOT NULL DEFAULT '{}'::jsonb,
            received_at         TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute(
        "CREATE INDEX idx_processed_events_intent ON processed_events (payment_intent_id);"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS processed_events CASCADE;")
