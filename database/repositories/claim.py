import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Any, Tuple

from sqlalchemy import select, update, delete, exists

from database.models import Claim, Order
from database.models.enums import ClaimStatus, BidStatus, MarketplaceStatus
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class ClaimRepository(BaseRepository):
    def get_by_id(self, claim_id: Any) -> Optional[Claim]:
        stmt = (
            select(Claim)
            .where(Claim.id == claim_id)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_for_order_provider(self, order_id: Any, provider_id: Any) -> Optional[Claim]:
        stmt = (
            select(Claim)
            .where(Claim.order_id == order_id, Claim.provider_id == provider_id)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_order(self, order_id: Any) -> List[Claim]:
        stmt = (
            select(Claim)
            .where(Claim.order_id == order_id)
            .order_by(Claim.created_at, Claim.id)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalars().all()

    def list_pending_for_order(self, order_id: Any) -> List[Claim]:
        stmt = select(Claim).where(
            Claim.order_id == order_id,
            Claim.status == ClaimStatus.PENDING.value
        )
        return self.db.execute(stmt).scalars().all()

    def create_claim(
        self,
        order_id: Any,
        provider_id: Any,
        submitted_by: str,
        proposed_price: Optional[Decimal] = None,
        terms: Optional[str] = None,
        status: str = ClaimStatus.PENDING.value,
        is_override: bool = False
    ) -> Claim:
        """Insert a claim. A duplicate (order, provider) raises IntegrityError on flush."""
        claim = Claim(
            order_id=order_id,
            provider_id=provider_id,
            submitted_by=submitted_by,
            proposed_price=proposed_price,
            terms=terms,
            status=status,
            is_override=is_override
        )
        self.db.add(claim)
        self.db.flush()
        return claim

    def accept_if_pending(self, claim_id: Any) -> bool:
        result = self.db.execute(
            update(Claim)
            .where(Claim.id == claim_id, Claim.status == ClaimStatus.PENDING.value)
            .values(status=ClaimStatus.ACCEPTED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def mark_accepted(self, claim_id: Any) -> bool:
        """Unconditional accept, for an administrator override onto an existing claim."""
        result = self.db.execute(
            update(Claim)
            .where(Claim.id == claim_id)
            .values(status=ClaimStatus.ACCEPTED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def refuse_pending_siblings(self, order_id: Any, winner_claim_id: Any) -> List[Tuple[Any, Any]]:
        """
        Refuse every pending claim on the order other than the winner.

        Returns (claim_id, provider_id) pairs for the claims that changed.
        """
        rows = self.db.execute(
            select(Claim.id, Claim.provider_id).where(
                Claim.order_id == order_id,
                Claim.id != winner_claim_id,
                Claim.status == ClaimStatus.PENDING.value
            )
        ).all()
        if not rows:
            return []

        self.db.execute(
            update(Claim)
            .where(
                Claim.id.in_([r.id for r in rows]),
                Claim.status == ClaimStatus.PENDING.value
            )
            .values(status=ClaimStatus.REFUSED.value)
            .execution_options(synchronize_session=False)
        )
        return [(r.id, r.provider_id) for r in rows]

    def refuse_if_pending(self, claim_id: Any, bid_status: Optional[str] = None) -> bool:
        stmt = update(Claim).where(Claim.id == claim_id, Claim.status == ClaimStatus.PENDING.value)
        if bid_status is not None:
            stmt = stmt.where(Claim.bid_status == bid_status)
        result = self.db.execute(
            stmt
            .values(status=ClaimStatus.REFUSED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def request_revision_if_pending(self, claim_id: Any, note: str) -> bool:
        """Ask the lab to revise its bid; allowed again after a revision came in."""
        result = self.db.execute(
            update(Claim)
            .where(
                Claim.id == claim_id,
                Claim.status == ClaimStatus.PENDING.value,
                Claim.bid_status.in_([BidStatus.SUBMITTED.value, BidStatus.REVISED.value])
            )
            .values(
                bid_status=BidStatus.REVISION_REQUESTED.value,
                revision_note=note,
                revision_requested_at=datetime.now(timezone.utc)
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def revise_if_requested(self, claim_id: Any, revised_price: Decimal) -> bool:
        result = self.db.execute(
            update(Claim)
            .where(
                Claim.id == claim_id,
                Claim.status == ClaimStatus.PENDING.value,
                Claim.bid_status == BidStatus.REVISION_REQUESTED.value
            )
            .values(
                bid_status=BidStatus.REVISED.value,
                revised_price=revised_price,
                revised_at=datetime.now(timezone.utc)
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def delete_pending_if_order_open(self, claim_id: Any) -> bool:
        order_open = exists().where(
            Order.id == Claim.order_id,
            Order.open_for_bids.is_(True),
            Order.marketplace_status == MarketplaceStatus.OPEN.value
        )
        result = self.db.execute(
            delete(Claim)
            .where(
                Claim.id == claim_id,
                Claim.status == ClaimStatus.PENDING.value,
                order_open
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_stale_pending(self, limit: int = 500) -> List[Claim]:
        """Pending claims whose order is already bound."""
        stmt = (
            select(Claim)
            .join(Order, Order.id == Claim.order_id)
            .where(
                Claim.status == ClaimStatus.PENDING.value,
                Order.marketplace_status == MarketplaceStatus.BOUND.value,
                Claim.provider_id != Order.assigned_provider_id
            )
            .order_by(Claim.order_id, Claim.id)
            .limit(limit)
        )
        return self.db.execute(stmt).scalars().all()

    def detach(self, claim: Claim) -> None:
        """Drop a deleted claim from the session so callers can still read it."""
        if claim in self.db:
            self.db.expunge(claim)
