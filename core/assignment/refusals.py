"""
Refusal propagation for sibling claims.

Refusing the losing claims is part of the bind transaction, but it runs in
a SAVEPOINT so a failure there cannot undo the bind itself. When the
savepoint fails the bind commits anyway and the refusal is retried after
commit. Whatever is still pending after that is read as refused by
effective_claim_status() and repaired by sweep_stale_claims().
"""

import logging
from typing import Any, List, Optional, Tuple

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from tenacity import Retrying, RetryError, stop_after_attempt, wait_exponential, retry_if_exception_type

from database.models import Claim, Order
from database.models.enums import ClaimStatus, MarketplaceStatus
from database.repository import MarketplaceRepository
from database.uow import matching_uow

logger = logging.getLogger(__name__)

RefusedClaim = Tuple[Any, Any]  # (claim_id, provider_id)


def effective_claim_status(claim: Claim, order: Order) -> ClaimStatus:
    """
    Claim status as implied by the order row.

    A claim left pending on a bound order lost the bind, whatever the claim
    row says.
    """
    status = ClaimStatus(claim.status)
    if status != ClaimStatus.PENDING:
        return status
    if order.marketplace_status == MarketplaceStatus.BOUND.value or order.is_bound:
        if order.assigned_provider_id == claim.provider_id:
            return ClaimStatus.ACCEPTED
        return ClaimStatus.REFUSED
    return status


class RefusalPropagator:
    def __init__(
        self,
        retry_attempts: int = 3,
        retry_wait_seconds: float = 0.5,
        retry_max_wait_seconds: float = 5.0,
        sweep_batch_size: int = 500
    ):
        self.retry_attempts = retry_attempts
        self.retry_wait_seconds = retry_wait_seconds
        self.retry_max_wait_seconds = retry_max_wait_seconds
        self.sweep_batch_size = sweep_batch_size

    def refuse_in_bind(
        self,
        repo: MarketplaceRepository,
        order_id: Any,
        winner_claim_id: Any
    ) -> Tuple[List[RefusedClaim], bool]:
        """
        Refuse sibling claims inside the caller's transaction.

        Returns (refused, complete). ``complete`` is False when the savepoint
        was rolled back and the caller must retry after commit.
        """
        try:
            with repo.savepoint():
                refused = repo.claims.refuse_pending_siblings(order_id, winner_claim_id)
        except SQLAlchemyError as e:
            logger.warning(f"Sibling refusal for order {order_id} failed inside bind, deferring: {e}")
            return [], False

        if refused:
            logger.info(f"Refused {len(refused)} sibling claim(s) on order {order_id}")
        return refused, True

    def retry_after_commit(
        self,
        session_factory: Optional[sessionmaker],
        order_id: Any,
        winner_claim_id: Any
    ) -> Tuple[List[RefusedClaim], bool]:
        """
        Refuse the remaining siblings in a fresh unit of work, retrying on
        transient database errors.

        Returns (refused, complete). Database errors never escape: the bind
        has already committed, so anything left is logged for the sweep.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(
                multiplier=self.retry_wait_seconds,
                max=self.retry_max_wait_seconds
            ),
            retry=retry_if_exception_type(OperationalError),
        )

        try:
            for attempt in retrying:
                with attempt:
                    with matching_uow(session_factory) as repo:
                        refused = repo.claims.refuse_pending_siblings(order_id, winner_claim_id)
        except RetryError as e:
            logger.error(
                f"Sibling refusal for order {order_id} still failing after "
                f"{self.retry_attempts} attempts; left for sweep: {e.last_attempt.exception()}"
            )
            return [], False
        except SQLAlchemyError as e:
            logger.error(f"Sibling refusal for order {order_id} failed; left for sweep: {e}")
            return [], False

        logger.info(f"Deferred refusal refused {len(refused)} claim(s) on order {order_id}")
        return refused, True

    def sweep(self, repo: MarketplaceRepository) -> List[Tuple[Any, Any, Any]]:
        """Refuse pending claims on bound orders. Returns (claim_id, provider_id, order_id)."""
        repaired = []
        for claim in repo.claims.list_stale_pending(limit=self.sweep_batch_size):
            if repo.claims.refuse_if_pending(claim.id):
                repaired.append((claim.id, claim.provider_id, claim.order_id))

        if repaired:
            logger.warning(f"Sweep refused {len(repaired)} stale pending claim(s)")
        return repaired
