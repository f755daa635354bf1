"""FailureHandler — pending -> payment_failed for every order on the intent.

Writes one payment_failed timeline entry per order that transitioned in this
call. Never touches stock, ledger or balances.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_checkout.infrastructure.timeline import write_timeline_entry
from src.mk_common.enums import TimelineEventType
from src.mk_payment.domain.models import GatewayIntent
from src.mk_payment.domain.repository import IntentRepositoryProtocol
from src.mk_payment.infrastructure.persistence import IntentRepository
from src.mk_settlement.domain.models import FailureResult
from src.mk_settlement.domain.repository import SettlementRepositoryProtocol
from src.mk_settlement.infrastructure.persistence import SettlementRepository

logger = logging.getLogger(__name__)


class FailureHandler:
    def __init__(
        self,
        repo: SettlementRepositoryProtocol | None = None,
        intent_repo: IntentRepositoryProtocol | None = None,
    ) -> None:
        self._repo: SettlementRepositoryProtocol = repo or SettlementRepository()
        self._intents: IntentRepositoryProtocol = intent_repo or IntentRepository()

    async def apply(self, db: AsyncSession, intent: GatewayIntent) -> FailureResult:
        links = await self._intents.get_links(db, intent.id)
        result = FailureResult(
            intent_id=intent.id,
            linked_order_ids=[link.order_id for link in links],
            failure_code=intent.failure_code,
            failure_message=intent.failure_message,
        )
        if not links:
            logger.warning("No orders linked to failed intent %s", intent.id)
            return result

        failed = await self._repo.mark_failed(db, result.linked_order_ids)
        result.failed_order_ids = [o.id for o in failed]
        reason = intent.failure_message or "Payment was declined"
        for order in failed:
            await write_timeline_entry(
                order_id=order.id,
                event_type=TimelineEventType.PAYMENT_FAILED.value,
                description=f"Payment failed: {reason}",
                metadata={
                    "payment_intent_id": intent.id,
                    "failure_code": intent.failure_code,
                    "failure_message": intent.failure_message,
                },
                created_by=None,
                db=db,
            )

        logger.info(
            "Intent %s failed (%s): %d of %d linked order(s) marked payment_failed",
            intent.id,
            intent.failure_code or "no code",
            len(failed),
            len(links),
        )
        return result
