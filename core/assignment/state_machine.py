"""
Order assignment state machine.

Marketplace orders move draft -> open -> bound. The move to bound is a
single conditional UPDATE on the order row; whichever transaction lands it
first wins and every other bind attempt sees a zero row count.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError

from database.models import Order, Claim, Provider
from database.models.enums import (
    Urgency, ClaimStatus, BidStatus, MarketplaceStatus, MatchingModeName, DeliveryStatus, DELIVERY_SEQUENCE
)
from database.repository import MarketplaceRepository
from core.errors import (
    IneligibleProvider, DuplicateClaim, OrderNotOpen, AlreadyBound,
    CapacityExceeded, NotFound, InvalidTransition, InvalidBid
)
from core.quote import QuoteCalculator, Quote, to_money
from core.ranking import TrustRankingEngine, calculate_trust_score, calculate_visibility_tier
from core.assignment.refusals import RefusalPropagator, RefusedClaim

logger = logging.getLogger(__name__)


def agreed_price(claim: Claim) -> Optional[Decimal]:
    """The price an accepted claim binds at: the revised bid if any, else the original."""
    if claim.revised_price is not None:
        return claim.revised_price
    return claim.proposed_price


@dataclass
class BindResult:
    order: Order
    claim: Claim
    refused: List[RefusedClaim] = field(default_factory=list)
    # False when sibling refusal has to be retried after commit
    refusals_complete: bool = True


class AssignmentStateMachine:
    def __init__(
        self,
        quote_calculator: QuoteCalculator,
        ranking_engine: TrustRankingEngine,
        refusals: Optional[RefusalPropagator] = None
    ):
        self.quote_calculator = quote_calculator
        self.ranking_engine = ranking_engine
        self.refusals = refusals or RefusalPropagator()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _get_order(repo: MarketplaceRepository, order_id: Any) -> Order:
        order = repo.orders.get_by_id(order_id)
        if order is None:
            raise NotFound("Order not found.")
        return order

    @staticmethod
    def _get_provider(repo: MarketplaceRepository, provider_id: Any) -> Provider:
        provider = repo.providers.get_provider(provider_id)
        if provider is None:
            raise NotFound("Lab not found.")
        return provider

    def _quote(self, repo: MarketplaceRepository, provider: Provider, category: str, urgency: str) -> Quote:
        return self.quote_calculator.quote(
            provider,
            urgency,
            repo.providers.get_specialization(provider.id, category),
            repo.providers.get_pricing(provider.id, category)
        )

    @staticmethod
    def _ensure_bindable(order: Order) -> None:
        if order.marketplace_status == MarketplaceStatus.DRAFT.value:
            raise OrderNotOpen()
        if order.marketplace_status == MarketplaceStatus.BOUND.value or order.assigned_provider_id is not None:
            raise AlreadyBound(order.assigned_provider_id)

    # ------------------------------------------------------------------
    # Order creation and publishing
    # ------------------------------------------------------------------

    def create_order(
        self,
        repo: MarketplaceRepository,
        requester_id: str,
        category: str,
        urgency: str,
        target_budget: Optional[Decimal] = None,
        provider_id: Any = None,
        marketplace: bool = True,
        matching_mode: str = MatchingModeName.TRUST_RANKED.value
    ) -> Order:
        """
        Create an order.

        With ``provider_id`` the order is direct and bound at creation.
        Otherwise it is open for claims when ``marketplace`` is set, or kept
        as a draft to publish later.
        """
        urgency = Urgency(urgency).value
        matching_mode = MatchingModeName(matching_mode).value

        if provider_id is not None:
            provider = self._get_provider(repo, provider_id)
            if not provider.is_active:
                raise IneligibleProvider()
            if provider.current_load >= provider.max_capacity:
                raise CapacityExceeded()

            quote = self._quote(repo, provider, category, urgency)
            order = repo.orders.create_order(
                requester_id=requester_id,
                category=category,
                urgency=urgency,
                target_budget=target_budget,
                matching_mode=matching_mode,
                marketplace_status=MarketplaceStatus.BOUND.value,
                open_for_bids=False,
                assigned_provider_id=provider.id,
                expected_delivery_date=quote.estimated_delivery_date
            )
            if not repo.providers.increment_load(provider.id, enforce_capacity=True):
                raise CapacityExceeded()
            repo.orders.add_status_history(
                order.id, None, MarketplaceStatus.BOUND.value, requester_id, "Direct order"
            )
            logger.info(f"Direct order {order.order_number} bound to provider {provider.id}")
            return repo.orders.get_by_id(order.id)

        status = MarketplaceStatus.OPEN if marketplace else MarketplaceStatus.DRAFT
        order = repo.orders.create_order(
            requester_id=requester_id,
            category=category,
            urgency=urgency,
            target_budget=target_budget,
            matching_mode=matching_mode,
            marketplace_status=status.value,
            open_for_bids=marketplace
        )
        repo.orders.add_status_history(order.id, None, status.value, requester_id)
        logger.info(f"Order {order.order_number} created ({status.value}, {matching_mode})")
        return repo.orders.get_by_id(order.id)

    def open_for_bids(self, repo: MarketplaceRepository, order_id: Any, changed_by: Optional[str] = None) -> Order:
        """Publish a draft. Publishing an already open order is a no-op."""
        if repo.orders.open_draft(order_id):
            repo.orders.add_status_history(
                order_id, MarketplaceStatus.DRAFT.value, MarketplaceStatus.OPEN.value, changed_by
            )
            logger.info(f"Order {order_id} opened for bids")
            return repo.orders.get_by_id(order_id)

        order = self._get_order(repo, order_id)
        if order.marketplace_status == MarketplaceStatus.OPEN.value:
            return order
        raise AlreadyBound(order.assigned_provider_id)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def submit_claim(
        self,
        repo: MarketplaceRepository,
        order_id: Any,
        provider_id: Any,
        submitted_by: str,
        proposed_price: Optional[Decimal] = None,
        terms: Optional[str] = None
    ) -> Claim:
        order = self._get_order(repo, order_id)
        if order.marketplace_status != MarketplaceStatus.OPEN.value or not order.open_for_bids:
            raise OrderNotOpen()

        provider = self._get_provider(repo, provider_id)
        mode = self.ranking_engine.mode_for(order.matching_mode)
        specialization = repo.providers.get_specialization(provider.id, order.category)
        if not provider.is_active or (mode.requires_specialization and specialization is None):
            raise IneligibleProvider()

        if repo.claims.get_for_order_provider(order.id, provider.id) is not None:
            raise DuplicateClaim()

        if provider.current_load >= provider.max_capacity:
            raise CapacityExceeded()

        # Serializes with a concurrent bind on the same order row
        if not repo.orders.touch_if_open(order.id):
            raise OrderNotOpen()

        try:
            with repo.savepoint():
                claim = repo.claims.create_claim(
                    order_id=order.id,
                    provider_id=provider.id,
                    submitted_by=submitted_by,
                    proposed_price=proposed_price,
                    terms=terms
                )
        except IntegrityError:
            logger.info(f"Duplicate claim race on order {order.id} for provider {provider.id}")
            raise DuplicateClaim()

        logger.info(f"Claim {claim.id} submitted on order {order.order_number} by provider {provider.id}")
        return repo.claims.get_by_id(claim.id)

    def withdraw_claim(self, repo: MarketplaceRepository, claim_id: Any) -> Claim:
        claim = repo.claims.get_by_id(claim_id)
        if claim is None:
            raise NotFound("Request not found.")

        if not repo.claims.delete_pending_if_order_open(claim.id):
            raise OrderNotOpen("This request can no longer be withdrawn.")

        repo.claims.detach(claim)
        logger.info(f"Claim {claim.id} withdrawn from order {claim.order_id}")
        return claim

    # ------------------------------------------------------------------
    # Negotiation on pending claims
    # ------------------------------------------------------------------

    @staticmethod
    def _claim_on_open_order(repo: MarketplaceRepository, claim_id: Any) -> Claim:
        claim = repo.claims.get_by_id(claim_id)
        if claim is None:
            raise NotFound("Request not found.")
        # Serializes with a concurrent bind on the same order row
        if not repo.orders.touch_if_open(claim.order_id):
            raise OrderNotOpen()
        return claim

    def request_revision(self, repo: MarketplaceRepository, claim_id: Any, note: str) -> Claim:
        """Ask the lab for a revised bid. A reason is required."""
        if not note or not note.strip():
            raise InvalidBid("Please provide a reason for the revision request.")

        claim = self._claim_on_open_order(repo, claim_id)
        if not repo.claims.request_revision_if_pending(claim.id, note.strip()):
            raise InvalidTransition("A revision cannot be requested on this request right now.")

        logger.info(f"Revision requested on claim {claim.id} (order {claim.order_id})")
        return repo.claims.get_by_id(claim.id)

    def submit_revised_bid(self, repo: MarketplaceRepository, claim_id: Any, revised_price: Decimal) -> Claim:
        if revised_price is None or Decimal(str(revised_price)) <= 0:
            raise InvalidBid("Please enter a valid amount.")

        claim = self._claim_on_open_order(repo, claim_id)
        if not repo.claims.revise_if_requested(claim.id, to_money(Decimal(str(revised_price)))):
            raise InvalidTransition("No revision was requested for this request.")

        logger.info(f"Claim {claim.id} revised to {revised_price}")
        return repo.claims.get_by_id(claim.id)

    def decline_revision(self, repo: MarketplaceRepository, claim_id: Any) -> Claim:
        """The lab answers a revision request by stepping back; the claim is refused."""
        claim = self._claim_on_open_order(repo, claim_id)
        if not repo.claims.refuse_if_pending(claim.id, bid_status=BidStatus.REVISION_REQUESTED.value):
            raise InvalidTransition("No revision was requested for this request.")

        logger.info(f"Claim {claim.id} declined after revision request")
        return repo.claims.get_by_id(claim.id)

    def refuse_claim(self, repo: MarketplaceRepository, claim_id: Any) -> Claim:
        """Refuse one pending claim; the order stays open for the others."""
        claim = self._claim_on_open_order(repo, claim_id)
        if not repo.claims.refuse_if_pending(claim.id):
            raise InvalidTransition("Only pending requests can be refused.")

        logger.info(f"Claim {claim.id} refused on order {claim.order_id}")
        return repo.claims.get_by_id(claim.id)

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------

    def accept_claim(self, repo: MarketplaceRepository, claim_id: Any, accepted_by: str) -> BindResult:
        claim = repo.claims.get_by_id(claim_id)
        if claim is None:
            raise NotFound("Request not found.")

        order = self._get_order(repo, claim.order_id)
        self._ensure_bindable(order)
        if claim.status != ClaimStatus.PENDING.value:
            raise InvalidTransition("This request was already refused.")

        provider = self._get_provider(repo, claim.provider_id)
        if provider.current_load >= provider.max_capacity:
            raise CapacityExceeded()

        return self._bind(repo, order, provider, claim, accepted_by, "Request accepted")

    def admin_override(
        self,
        repo: MarketplaceRepository,
        order_id: Any,
        provider_id: Any,
        actor: str
    ) -> BindResult:
        """Bind to a named provider; capacity is not enforced."""
        order = self._get_order(repo, order_id)
        provider = self._get_provider(repo, provider_id)
        if not provider.is_active:
            raise IneligibleProvider()

        self._ensure_bindable(order)
        return self._bind(
            repo, order, provider, None, actor, "Administrator override", enforce_capacity=False
        )

    def auto_assign(self, repo: MarketplaceRepository, order_id: Any, actor: str) -> BindResult:
        """Bind to the top-ranked eligible provider that still has capacity."""
        order = self._get_order(repo, order_id)
        self._ensure_bindable(order)

        ranked = self.ranking_engine.rank_providers(
            repo.providers,
            order.category,
            order.urgency,
            requester_id=order.requester_id,
            limit=1,
            mode=order.matching_mode,
            require_capacity=True
        )
        if not ranked:
            if self.ranking_engine.rank_providers(
                repo.providers, order.category, order.urgency, limit=1, mode=order.matching_mode
            ):
                raise CapacityExceeded("Every eligible lab is at full capacity.")
            raise IneligibleProvider("No eligible lab is available for this order.")

        return self._bind(repo, order, ranked[0].provider, None, actor, "Auto-assigned")

    def _bind(
        self,
        repo: MarketplaceRepository,
        order: Order,
        provider: Provider,
        claim: Optional[Claim],
        actor: str,
        note: str,
        enforce_capacity: bool = True
    ) -> BindResult:
        quote = self._quote(repo, provider, order.category, order.urgency)

        if not repo.orders.bind_if_open(order.id, provider.id, quote.estimated_delivery_date):
            self._raise_bind_conflict(repo, order.id)

        # Load moves with the bind; a full provider rolls the whole bind back
        if not repo.providers.increment_load(provider.id, enforce_capacity=enforce_capacity):
            logger.info(f"Provider {provider.id} filled up before order {order.order_number} could bind")
            raise CapacityExceeded()

        if claim is not None:
            if not repo.claims.accept_if_pending(claim.id):
                if repo.claims.get_by_id(claim.id) is None:
                    raise NotFound("This request was withdrawn.")
                raise InvalidTransition("This request was already refused.")
        else:
            claim = repo.claims.get_for_order_provider(order.id, provider.id)
            if claim is None:
                claim = repo.claims.create_claim(
                    order_id=order.id,
                    provider_id=provider.id,
                    submitted_by=actor,
                    status=ClaimStatus.ACCEPTED.value,
                    is_override=True
                )
            else:
                # The override lab may have been refused earlier
                repo.claims.mark_accepted(claim.id)

        # Read after the bind so a revision that committed first is seen
        claim = repo.claims.get_by_id(claim.id)
        repo.orders.record_agreed_price(order.id, agreed_price(claim))
        repo.orders.add_status_history(
            order.id, MarketplaceStatus.OPEN.value, MarketplaceStatus.BOUND.value, actor, note
        )

        refused, complete = self.refusals.refuse_in_bind(repo, order.id, claim.id)

        logger.info(f"Order {order.order_number} bound to provider {provider.id} ({note})")
        return BindResult(
            order=repo.orders.get_by_id(order.id),
            claim=repo.claims.get_by_id(claim.id),
            refused=refused,
            refusals_complete=complete
        )

    @staticmethod
    def _raise_bind_conflict(repo: MarketplaceRepository, order_id: Any) -> None:
        order = repo.orders.get_by_id(order_id)
        if order is None:
            raise NotFound("Order not found.")
        if order.marketplace_status == MarketplaceStatus.DRAFT.value:
            raise OrderNotOpen()
        logger.info(f"Lost bind on order {order_id}; held by provider {order.assigned_provider_id}")
        raise AlreadyBound(order.assigned_provider_id)

    # ------------------------------------------------------------------
    # Delivery lifecycle
    # ------------------------------------------------------------------

    def advance_delivery_status(
        self,
        repo: MarketplaceRepository,
        order_id: Any,
        new_status: str,
        changed_by: Optional[str] = None
    ) -> Order:
        """Move a bound order one step along the delivery lifecycle."""
        try:
            target = DeliveryStatus(new_status)
        except ValueError:
            raise InvalidTransition(f"Unknown status: {new_status}")

        order = self._get_order(repo, order_id)
        if order.marketplace_status != MarketplaceStatus.BOUND.value:
            raise InvalidTransition("Only assigned orders can change delivery status.")

        current = DeliveryStatus(order.status)
        if DELIVERY_SEQUENCE.index(target) != DELIVERY_SEQUENCE.index(current) + 1:
            raise InvalidTransition(f"Cannot move from {current.value} to {target.value}.")

        delivered_at = datetime.now(timezone.utc) if target == DeliveryStatus.DELIVERED else None
        if not repo.orders.advance_status_if(order.id, current.value, target.value, delivered_at):
            raise InvalidTransition("The order status changed in the meantime.")

        repo.orders.add_status_history(order.id, current.value, target.value, changed_by)

        if target == DeliveryStatus.DELIVERED:
            self._complete_delivery(repo, order)

        logger.info(f"Order {order.order_number} moved {current.value} -> {target.value}")
        return repo.orders.get_by_id(order.id)

    def _complete_delivery(self, repo: MarketplaceRepository, order: Order) -> None:
        provider_id = order.assigned_provider_id
        today = self.quote_calculator.clock()
        on_time = order.expected_delivery_date is None or today <= order.expected_delivery_date

        repo.providers.decrement_load(provider_id)
        metrics = repo.providers.record_delivery(provider_id, on_time)

        score = calculate_trust_score(metrics)
        tier = calculate_visibility_tier(metrics, score)
        repo.providers.update_trust_profile(provider_id, score, tier.value)
