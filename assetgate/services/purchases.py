"""Purchase lookups and the free-content access record."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy import select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from assetgate.models.purchase import PaymentStatus, Purchase

logger = logging.getLogger(__name__)


def free_order_number(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"FREE-AUTO-{int(now.timestamp() * 1000)}-{uuid4().hex[:8].upper()}"


class PurchaseRepository:
    """Purchase queries.

    Reads use the request session. ``find_or_create_free`` opens its own
    session from ``session_factory`` so its transaction commits or rolls back
    independently of the request.
    """

    def __init__(self, db: AsyncSession, session_factory: Callable[[], AsyncSession]) -> None:
        self.db = db
        self.session_factory = session_factory

    async def find_completed_for_user(self, user_id: UUID) -> list[Purchase]:
        result = await self.db.execute(
            select(Purchase).where(
                Purchase.buyer_user_id == user_id,
                Purchase.payment_status == PaymentStatus.COMPLETED.value,
            )
        )
        return list(result.scalars().all())

    async def find_or_create_free(self, user_id: UUID, purchasable_type: str, purchasable_id: str) -> Purchase:
        """Return the zero-amount completed purchase, creating it if needed.

        Concurrent callers race on the partial unique index; the loser's
        insert is a no-op and both read back the same row.
        """
        now = datetime.now(timezone.utc)
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    pg_insert(Purchase)
                    .values(
                        id=uuid4(),
                        buyer_user_id=user_id,
                        purchasable_type=purchasable_type,
                        purchasable_id=str(purchasable_id),
                        payment_status=PaymentStatus.COMPLETED.value,
                        payment_amount=Decimal("0"),
                        original_price=Decimal("0"),
                        order_number=free_order_number(now),
                        access_expires_at=None,
                        first_accessed_at=now,
                    )
                    .on_conflict_do_nothing(
                        index_elements=["buyer_user_id", "purchasable_type", "purchasable_id"],
                        index_where=text("payment_amount = 0"),
                    )
                )
                result = await session.execute(
                    select(Purchase).where(
                        Purchase.buyer_user_id == user_id,
                        Purchase.purchasable_type == purchasable_type,
                        Purchase.purchasable_id == str(purchasable_id),
                        Purchase.payment_amount == 0,
                    )
                )
                purchase = result.scalar_one()

        logger.info(
            "Free access record %s for user %s on %s/%s",
            purchase.order_number,
            user_id,
            purchasable_type,
            purchasable_id,
        )
        return purchase

    async def ensure_free_access(self, user_id: UUID, entity_type: str, entity_id: str) -> Purchase:
        return await self.find_or_create_free(user_id, entity_type, entity_id)
