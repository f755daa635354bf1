"""WebhookProcessor — verify, claim, dispatch, commit, then follow up.

  1. construct_event: signature over the raw body. Any failure raises before
     the database is touched.
  2. claim the event id (INSERT ... ON CONFLICT DO NOTHING). A duplicate is a
     normal outcome, answered with 200 and no side effects.
  3. dispatch to SettlementHandler / FailureHandler; other types are only
     recorded.
  4. commit claim + critical writes together. If anything in 2-3 raises, the
     rollback drops the claim too and the non-2xx answer makes Stripe redeliver.
  5. after commit: best-effort settlement follow-up.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Literal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.enums import GatewayEventType
from src.mk_common.errors import (
    DuplicateEventError,
    InvalidWebhookPayloadError,
    PersistenceError,
)
from src.mk_payment.domain.models import ProcessedEvent
from src.mk_payment.domain.repository import (
    PaymentGatewayProtocol,
    ProcessedEventRepositoryProtocol,
)
from src.mk_payment.infrastructure.persistence import ProcessedEventRepository
from src.mk_settlement.application.best_effort import TaskOutcome
from src.mk_settlement.application.failure import FailureHandler
from src.mk_settlement.application.settlement import SettlementHandler
from src.mk_settlement.domain.models import FailureResult, SettlementResult

logger = logging.getLogger(__name__)

_HANDLED_TYPES = {e.value for e in GatewayEventType}


@dataclass
class WebhookOutcome:
    event_id: str
    event_type: str
    status: Literal["applied", "duplicate", "ignored"]
    settlement: SettlementResult | None = None
    failure: FailureResult | None = None
    follow_up: list[TaskOutcome] = field(default_factory=list)


class WebhookProcessor:
    def __init__(
        self,
        gateway: PaymentGatewayProtocol,
        settlement: SettlementHandler,
        failure: FailureHandler,
        events_repo: ProcessedEventRepositoryProtocol | None = None,
    ) -> None:
        self._gateway = gateway
        self._settlement = settlement
        self._failure = failure
        self._events: ProcessedEventRepositoryProtocol = (
            events_repo or ProcessedEventRepository()
        )

    async def process(
        self, db: AsyncSession, raw_body: bytes, signature: str | None
    ) -> WebhookOutcome:
        event = self._gateway.construct_event(raw_body, signature)
        if event.type in _HANDLED_TYPES and event.intent is None:
            raise InvalidWebhookPayloadError(f"{event.type} without a payment_intent object")

        outcome = WebhookOutcome(event_id=event.id, event_type=event.type, status="ignored")
        record = ProcessedEvent(
            id=event.id,
            type=event.type,
            payment_intent_id=event.intent.id if event.intent else None,
        )
        try:
            await self._events.claim(db, record, json.dumps(event.payload))
            if event.intent is not None:
                if event.type == GatewayEventType.PAYMENT_SUCCEEDED:
                    outcome.settlement = await self._settlement.apply(db, event.intent)
                    outcome.status = "applied"
                elif event.type == GatewayEventType.PAYMENT_FAILED:
                    outcome.failure = await self._failure.apply(db, event.intent)
                    outcome.status = "applied"
            await db.commit()
        except DuplicateEventError:
            await db.rollback()
            logger.info("Duplicate delivery of event %s (%s); skipped", event.id, event.type)
            outcome.status = "duplicate"
            return outcome
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("Database error while applying event %s", event.id)
            raise PersistenceError(type(exc).__name__) from exc
        except Exception:
            await db.rollback()
            logger.exception("Failed to apply event %s (%s)", event.id, event.type)
            raise

        if outcome.status == "ignored":
            logger.info("Recorded unhandled event type %s (%s)", event.type, event.id)
        else:
            logger.info("Applied event %s (%s)", event.id, event.type)

        if outcome.settlement is not None:
            outcome.follow_up = await self._settlement.follow_up(outcome.settlement)
        return outcome
