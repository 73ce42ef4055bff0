import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional, Any

from sqlalchemy import select, update, and_, exists

from database.models import Order, OrderStatusHistory, Claim
from database.models.enums import MarketplaceStatus, ClaimStatus
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


def generate_order_number() -> str:
    return f"ORD-{uuid.uuid4().hex[:8].upper()}"


def _still_open(order_id: Any):
    # Shared by every conditional write that must lose to a bind
    return and_(
        Order.id == order_id,
        Order.open_for_bids.is_(True),
        Order.assigned_provider_id.is_(None),
        Order.marketplace_status == MarketplaceStatus.OPEN.value,
    )


class OrderRepository(BaseRepository):
    def create_order(
        self,
        requester_id: str,
        category: str,
        urgency: str,
        matching_mode: str,
        marketplace_status: str,
        open_for_bids: bool,
        target_budget: Optional[Decimal] = None,
        assigned_provider_id: Any = None,
        expected_delivery_date: Optional[date] = None
    ) -> Order:
        order = Order(
            order_number=generate_order_number(),
            requester_id=requester_id,
            category=category,
            urgency=urgency,
            target_budget=target_budget,
            matching_mode=matching_mode,
            marketplace_status=marketplace_status,
            open_for_bids=open_for_bids,
            assigned_provider_id=assigned_provider_id,
            expected_delivery_date=expected_delivery_date,
            bound_at=datetime.now(timezone.utc) if assigned_provider_id else None,
            version=0
        )
        self.db.add(order)
        self.db.flush()
        return order

    def get_by_id(self, order_id: Any) -> Optional[Order]:
        # populate_existing: conditional UPDATEs bypass the identity map
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def touch_if_open(self, order_id: Any) -> bool:
        """Bump the version only while the order is still open for bids."""
        result = self.db.execute(
            update(Order)
            .where(_still_open(order_id))
            .values(version=Order.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def bind_if_open(
        self,
        order_id: Any,
        provider_id: Any,
        expected_delivery_date: Optional[date]
    ) -> bool:
        """
        Compare-and-swap the order into the bound state.

        Returns True for exactly one caller per order; every other caller
        sees a zero row count.
        """
        result = self.db.execute(
            update(Order)
            .where(_still_open(order_id))
            .values(
                open_for_bids=False,
                assigned_provider_id=provider_id,
                marketplace_status=MarketplaceStatus.BOUND.value,
                expected_delivery_date=expected_delivery_date,
                bound_at=datetime.now(timezone.utc),
                version=Order.version + 1
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def record_agreed_price(self, order_id: Any, agreed_price: Optional[Decimal]) -> None:
        self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(agreed_price=agreed_price)
            .execution_options(synchronize_session=False)
        )

    def open_draft(self, order_id: Any) -> bool:
        result = self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.marketplace_status == MarketplaceStatus.DRAFT.value,
                Order.assigned_provider_id.is_(None)
            )
            .values(
                open_for_bids=True,
                marketplace_status=MarketplaceStatus.OPEN.value,
                version=Order.version + 1
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def advance_status_if(
        self,
        order_id: Any,
        from_status: str,
        to_status: str,
        delivered_at: Optional[datetime] = None
    ) -> bool:
        values = {"status": to_status, "version": Order.version + 1}
        if delivered_at is not None:
            values["delivered_at"] = delivered_at
        result = self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == from_status,
                Order.marketplace_status == MarketplaceStatus.BOUND.value
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_open_orders(
        self,
        category: Optional[str] = None,
        exclude_refused_for: Any = None,
        limit: int = 50
    ) -> List[Order]:
        """
        Orders currently accepting claims, newest first.

        With ``exclude_refused_for`` set, orders where that provider already
        holds a refused claim are left out.
        """
        stmt = select(Order).where(
            Order.open_for_bids.is_(True),
            Order.marketplace_status == MarketplaceStatus.OPEN.value
        )
        if category:
            stmt = stmt.where(Order.category == category)
        if exclude_refused_for is not None:
            refused = exists().where(
                Claim.order_id == Order.id,
                Claim.provider_id == exclude_refused_for,
                Claim.status == ClaimStatus.REFUSED.value
            )
            stmt = stmt.where(~refused)
        stmt = stmt.order_by(Order.created_at.desc(), Order.order_number).limit(limit)
        return self.db.execute(stmt).scalars().all()

    def add_status_history(
        self,
        order_id: Any,
        old_status: Optional[str],
        new_status: str,
        changed_by: Optional[str] = None,
        note: Optional[str] = None
    ) -> OrderStatusHistory:
        entry = OrderStatusHistory(
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=changed_by,
            note=note
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def get_status_history(self, order_id: Any) -> List[OrderStatusHistory]:
        stmt = (
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.created_at, OrderStatusHistory.id)
        )
        return self.db.execute(stmt).scalars().all()
