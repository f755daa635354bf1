"""Unit tests for payment repositories with a mocked AsyncSession."""

from unittest.mock import MagicMock

import pytest

from src.mk_common.errors import DuplicateEventError
from src.mk_payment.domain.models import IntentLink, ProcessedEvent
from src.mk_payment.infrastructure.persistence import (
    IntentRepository,
    ProcessedEventRepository,
)


def _result(fetchone=None, fetchall=None) -> MagicMock:
    result = MagicMock()
    result.fetchone.return_value = fetchone
    result.fetchall.return_value = fetchall or []
    return result


EVENT = ProcessedEvent(id="evt_1", type="payment_intent.succeeded", payment_intent_id="pi_1")


class TestProcessedEventClaim:
    async def test_claim_succeeds_when_row_returned(self, db) -> None:
        db.execute.return_value = _result(fetchone=MagicMock(id="evt_1"))
        await ProcessedEventRepository().claim(db, EVENT, "{}")

        params = db.execute.await_args.args[1]
        assert params["id"] == "evt_1"
        assert params["payment_intent_id"] == "pi_1"
        assert "ON CONFLICT (id) DO NOTHING" in str(db.execute.await_args.args[0])

    async def test_conflict_raises_duplicate(self, db) -> None:
        db.execute.return_value = _result(fetchone=None)
        with pytest.raises(DuplicateEventError) as exc_info:
            await ProcessedEventRepository().claim(db, EVENT, "{}")
        assert exc_info.value.event_id == "evt_1"


class TestIntentRepository:
    async def test_save_links_single_executemany(self, db) -> None:
        links = [
            IntentLink("pi_1", "o1", "s1", 100, "USD"),
            IntentLink("pi_1", "o2", "s2", 250, "USD"),
        ]
        await IntentRepository().save_links(db, links)

        db.execute.assert_awaited_once()
        rows = db.execute.await_args.args[1]
        assert [r["order_id"] for r in rows] == ["o1", "o2"]
        assert [r["split_amount_minor"] for r in rows] == [100, 250]

    async def test_save_no_links_is_noop(self, db) -> None:
        await IntentRepository().save_links(db, [])
        db.execute.assert_not_awaited()

    async def test_get_links_maps_rows(self, db) -> None:
        row = MagicMock(
            payment_intent_id="pi_1",
            order_id="o1",
            seller_org_id="s1",
            split_amount_minor=100,
            currency="USD",
        )
        db.execute.return_value = _result(fetchall=[row])

        links = await IntentRepository().get_links(db, "pi_1")

        assert links == [IntentLink("pi_1", "o1", "s1", 100, "USD")]
