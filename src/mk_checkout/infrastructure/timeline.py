"""DB helper for order_timeline (append-only order audit trail).

Called from OrderFactory, SettlementHandler and FailureHandler within the
caller's transaction.
"""
import json

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

_INSERT_TIMELINE_SQL = text("""
    INSERT INTO order_timeline (order_id, event_type, description, metadata, created_by)
    VALUES (:order_id, :event_type, :description, CAST(:metadata AS JSONB), :created_by)
""")


async def write_timeline_entry(
    order_id: str,
    event_type: str,
    description: str,
    metadata: dict[str, object],
    created_by: str | None,
    db: AsyncSession,
) -> None:
    """Insert one row into order_timeline. created_by is None for system events."""
    await db.execute(
        _INSERT_TIMELINE_SQL,
        {
            "order_id": order_id,
            "event_type": event_type,
            "description": description,
            "metadata": json.dumps(metadata),
            "created_by": created_by,
        },
    )
