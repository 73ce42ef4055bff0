"""
MatchingFacade - the library entry point for the marketplace.

Each call resolves the caller, checks the role, runs one unit of work and,
only after that has committed, hands events to the notification service.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.orm import sessionmaker

from database.models import Order, Claim
from database.models.enums import MatchingModeName
from database.uow import matching_uow
from core.errors import NotFound, PermissionDenied
from core.identity import Caller, IdentityProvider, Role
from core.quote import Quote, QuoteCalculator
from core.ranking import TrustRankingEngine, OpenMarketMode, RankedProvider
from core.assignment import AssignmentStateMachine, BindResult, RefusalPropagator, effective_claim_status
from notification.events import EventType, MatchingEvent
from notification.service import NotificationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimView:
    """A claim as the caller should see it; ``status`` is read through the order row."""
    claim_id: Any
    order_id: Any
    provider_id: Any
    status: str
    proposed_price: Optional[Decimal]
    bid_status: str
    revised_price: Optional[Decimal]
    terms: Optional[str]
    is_override: bool
    created_at: Optional[datetime]


class MatchingFacade:
    def __init__(
        self,
        session_factory: Optional[sessionmaker],
        identity: IdentityProvider,
        ranking_engine: TrustRankingEngine,
        state_machine: AssignmentStateMachine,
        notifier: Optional[NotificationService] = None
    ):
        self.session_factory = session_factory
        self.identity = identity
        self.ranking_engine = ranking_engine
        self.state_machine = state_machine
        self.notifier = notifier

    @property
    def quote_calculator(self) -> QuoteCalculator:
        return self.state_machine.quote_calculator

    @property
    def refusals(self) -> RefusalPropagator:
        return self.state_machine.refusals

    # ------------------------------------------------------------------
    # Access checks
    # ------------------------------------------------------------------

    def _caller(self, user_id: str, *roles: Role) -> Caller:
        caller = self.identity.resolve(user_id)
        if roles and caller.role not in roles:
            raise PermissionDenied()
        if caller.role == Role.PROVIDER_STAFF and caller.provider_id is None:
            raise PermissionDenied("This account is not linked to a lab.")
        return caller

    @staticmethod
    def _require_owner_or_admin(caller: Caller, order: Order) -> None:
        if caller.is_admin:
            return
        if caller.role != Role.REQUESTER or order.requester_id != caller.user_id:
            raise PermissionDenied()

    @staticmethod
    def _claim_and_order(repo, claim_id: Any):
        claim = repo.claims.get_by_id(claim_id)
        if claim is None:
            raise NotFound("Request not found.")
        return claim, repo.orders.get_by_id(claim.order_id)

    # ------------------------------------------------------------------
    # Ranking and quotes
    # ------------------------------------------------------------------

    def rank_providers(
        self,
        user_id: str,
        category: str,
        urgency: str,
        limit: Optional[int] = None
    ) -> List[RankedProvider]:
        caller = self._caller(user_id, Role.REQUESTER, Role.ADMINISTRATOR)
        requester_id = caller.user_id if caller.role == Role.REQUESTER else None
        with matching_uow(self.session_factory) as repo:
            return self.ranking_engine.rank_providers(
                repo.providers, category, urgency, requester_id=requester_id, limit=limit
            )

    def open_market_providers(
        self,
        user_id: str,
        category: str,
        urgency: str,
        limit: Optional[int] = None
    ) -> List[RankedProvider]:
        caller = self._caller(user_id, Role.REQUESTER, Role.ADMINISTRATOR)
        requester_id = caller.user_id if caller.role == Role.REQUESTER else None
        with matching_uow(self.session_factory) as repo:
            return self.ranking_engine.rank_providers(
                repo.providers, category, urgency,
                requester_id=requester_id, limit=limit, mode=OpenMarketMode()
            )

    def quote(self, user_id: str, provider_id: Any, category: str, urgency: str) -> Quote:
        self._caller(user_id)
        with matching_uow(self.session_factory) as repo:
            provider = repo.providers.get_provider(provider_id)
            if provider is None:
                raise NotFound("Lab not found.")
            return self.quote_calculator.quote(
                provider,
                urgency,
                repo.providers.get_specialization(provider.id, category),
                repo.providers.get_pricing(provider.id, category)
            )

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(
        self,
        user_id: str,
        category: str,
        urgency: str,
        target_budget: Optional[Decimal] = None,
        provider_id: Any = None,
        marketplace: bool = True,
        matching_mode: str = MatchingModeName.TRUST_RANKED.value
    ) -> Order:
        caller = self._caller(user_id, Role.REQUESTER)
        with matching_uow(self.session_factory) as repo:
            order = self.state_machine.create_order(
                repo,
                requester_id=caller.user_id,
                category=category,
                urgency=urgency,
                target_budget=target_budget,
                provider_id=provider_id,
                marketplace=marketplace,
                matching_mode=matching_mode
            )

        if order.assigned_provider_id is not None:
            self._dispatch(MatchingEvent(
                type=EventType.ORDER_BOUND,
                order_id=order.id,
                order_number=order.order_number,
                provider_id=order.assigned_provider_id,
                new_status=order.marketplace_status,
                recipients=self.identity.staff_for_provider(order.assigned_provider_id)
            ))
        return order

    def open_order_for_bids(self, user_id: str, order_id: Any) -> Order:
        caller = self._caller(user_id, Role.REQUESTER, Role.ADMINISTRATOR)
        with matching_uow(self.session_factory) as repo:
            order = repo.orders.get_by_id(order_id)
            if order is None:
                raise NotFound("Order not found.")
            self._require_owner_or_admin(caller, order)
            return self.state_machine.open_for_bids(repo, order_id, caller.user_id)

    def list_open_orders(
        self,
        user_id: str,
        category: Optional[str] = None,
        limit: int = 50
    ) -> List[Order]:
        """Open orders; provider staff do not see orders where their lab was refused."""
        caller = self._caller(user_id, Role.PROVIDER_STAFF, Role.ADMINISTRATOR)
        exclude = caller.provider_id if caller.role == Role.PROVIDER_STAFF else None
        with matching_uow(self.session_factory) as repo:
            return repo.orders.list_open_orders(
                category=category, exclude_refused_for=exclude, limit=limit
            )

    def advance_delivery_status(self, user_id: str, order_id: Any, new_status: str) -> Order:
        caller = self._caller(user_id, Role.PROVIDER_STAFF, Role.ADMINISTRATOR)
        with matching_uow(self.session_factory) as repo:
            order = repo.orders.get_by_id(order_id)
            if order is None:
                raise NotFound("Order not found.")
            if not caller.is_admin and order.assigned_provider_id != caller.provider_id:
                raise PermissionDenied()
            return self.state_machine.advance_delivery_status(repo, order_id, new_status, caller.user_id)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def submit_claim(
        self,
        user_id: str,
        order_id: Any,
        proposed_price: Optional[Decimal] = None,
        terms: Optional[str] = None
    ) -> Claim:
        caller = self._caller(user_id, Role.PROVIDER_STAFF)
        with matching_uow(self.session_factory) as repo:
            claim = self.state_machine.submit_claim(
                repo, order_id, caller.provider_id, caller.user_id, proposed_price, terms
            )
            order = repo.orders.get_by_id(order_id)

        self._dispatch(MatchingEvent(
            type=EventType.CLAIM_SUBMITTED,
            order_id=order.id,
            order_number=order.order_number,
            provider_id=claim.provider_id,
            claim_id=claim.id,
            new_status=claim.status,
            recipients=[order.requester_id]
        ))
        return claim

    def withdraw_claim(self, user_id: str, claim_id: Any) -> Claim:
        caller = self._caller(user_id, Role.PROVIDER_STAFF)
        with matching_uow(self.session_factory) as repo:
            claim = repo.claims.get_by_id(claim_id)
            if claim is None:
                raise NotFound("Request not found.")
            if claim.provider_id != caller.provider_id:
                raise PermissionDenied()
            order = repo.orders.get_by_id(claim.order_id)
            claim = self.state_machine.withdraw_claim(repo, claim_id)

        self._dispatch(MatchingEvent(
            type=EventType.CLAIM_WITHDRAWN,
            order_id=order.id,
            order_number=order.order_number,
            provider_id=claim.provider_id,
            claim_id=claim.id,
            recipients=[order.requester_id]
        ))
        return claim

    def accept_claim(self, user_id: str, claim_id: Any) -> BindResult:
        caller = self._caller(user_id, Role.REQUESTER, Role.ADMINISTRATOR)
        with matching_uow(self.session_factory) as repo:
            claim = repo.claims.get_by_id(claim_id)
            if claim is None:
                raise NotFound("Request not found.")
            order = repo.orders.get_by_id(claim.order_id)
            self._require_owner_or_admin(caller, order)
            result = self.state_machine.accept_claim(repo, claim_id, caller.user_id)

        return self._after_bind(result)

    def admin_override(self, user_id: str, order_id: Any, provider_id: Any) -> BindResult:
        caller = self._caller(user_id, Role.ADMINISTRATOR)
        with matching_uow(self.session_factory) as repo:
            result = self.state_machine.admin_override(repo, order_id, provider_id, caller.user_id)

        return self._after_bind(result)

    def auto_assign(self, user_id: str, order_id: Any) -> BindResult:
        caller = self._caller(user_id, Role.REQUESTER, Role.ADMINISTRATOR)
        with matching_uow(self.session_factory) as repo:
            order = repo.orders.get_by_id(order_id)
            if order is None:
                raise NotFound("Order not found.")
            self._require_owner_or_admin(caller, order)
            result = self.state_machine.auto_assign(repo, order_id, caller.user_id)

        return self._after_bind(result)

    def request_revision(self, user_id: str, claim_id: Any, note: str) -> Claim:
        caller = self._caller(user_id, Role.REQUESTER, Role.ADMINISTRATOR)
        with matching_uow(self.session_factory) as repo:
            claim, order = self._claim_and_order(repo, claim_id)
            self._require_owner_or_admin(caller, order)
            claim = self.state_machine.request_revision(repo, claim_id, note)

        self._dispatch(MatchingEvent(
            type=EventType.BID_REVISION_REQUESTED,
            order_id=order.id,
            order_number=order.order_number,
            provider_id=claim.provider_id,
            claim_id=claim.id,
            new_status=claim.bid_status,
            recipients=self.identity.staff_for_provider(claim.provider_id)
        ))
        return claim

    def submit_revised_bid(self, user_id: str, claim_id: Any, revised_price: Decimal) -> Claim:
        caller = self._caller(user_id, Role.PROVIDER_STAFF)
        with matching_uow(self.session_factory) as repo:
            claim, order = self._claim_and_order(repo, claim_id)
            if claim.provider_id != caller.provider_id:
                raise PermissionDenied()
            claim = self.state_machine.submit_revised_bid(repo, claim_id, revised_price)

        self._dispatch(MatchingEvent(
            type=EventType.BID_REVISED,
            order_id=order.id,
            order_number=order.order_number,
            provider_id=claim.provider_id,
            claim_id=claim.id,
            new_status=claim.bid_status,
            recipients=[order.requester_id]
        ))
        return claim

    def decline_revision(self, user_id: str, claim_id: Any) -> Claim:
        """The lab turns down a revision request, which refuses its claim."""
        caller = self._caller(user_id, Role.PROVIDER_STAFF)
        with matching_uow(self.session_factory) as repo:
            claim, order = self._claim_and_order(repo, claim_id)
            if claim.provider_id != caller.provider_id:
                raise PermissionDenied()
            claim = self.state_machine.decline_revision(repo, claim_id)

        self._dispatch(MatchingEvent(
            type=EventType.REVISION_DECLINED,
            order_id=order.id,
            order_number=order.order_number,
            provider_id=claim.provider_id,
            claim_id=claim.id,
            new_status=claim.status,
            recipients=[order.requester_id]
        ))
        return claim

    def refuse_claim(self, user_id: str, claim_id: Any) -> Claim:
        caller = self._caller(user_id, Role.REQUESTER, Role.ADMINISTRATOR)
        with matching_uow(self.session_factory) as repo:
            claim, order = self._claim_and_order(repo, claim_id)
            self._require_owner_or_admin(caller, order)
            claim = self.state_machine.refuse_claim(repo, claim_id)

        self._notify_refused(order.id, order.order_number, claim.id, claim.provider_id)
        return claim

    def list_claims(self, user_id: str, order_id: Any) -> List[ClaimView]:
        """
        Claims on an order. Requesters and admins see all of them, provider
        staff only their own lab's.
        """
        caller = self._caller(user_id)
        with matching_uow(self.session_factory) as repo:
            order = repo.orders.get_by_id(order_id)
            if order is None:
                raise NotFound("Order not found.")
            if caller.role == Role.REQUESTER:
                self._require_owner_or_admin(caller, order)

            claims = repo.claims.list_for_order(order_id)
            if caller.role == Role.PROVIDER_STAFF:
                claims = [c for c in claims if c.provider_id == caller.provider_id]

            return [
                ClaimView(
                    claim_id=c.id,
                    order_id=c.order_id,
                    provider_id=c.provider_id,
                    status=effective_claim_status(c, order).value,
                    proposed_price=c.proposed_price,
                    bid_status=c.bid_status,
                    revised_price=c.revised_price,
                    terms=c.terms,
                    is_override=c.is_override,
                    created_at=c.created_at
                )
                for c in claims
            ]

    def sweep_stale_claims(self, user_id: str) -> int:
        """Refuse pending claims left on bound orders. Returns how many were repaired."""
        self._caller(user_id, Role.ADMINISTRATOR)
        with matching_uow(self.session_factory) as repo:
            repaired = self.refusals.sweep(repo)
            order_numbers = {
                order_id: repo.orders.get_by_id(order_id).order_number
                for order_id in {order_id for _, _, order_id in repaired}
            }

        for claim_id, provider_id, order_id in repaired:
            self._notify_refused(order_id, order_numbers.get(order_id), claim_id, provider_id)
        return len(repaired)

    # ------------------------------------------------------------------
    # Post-commit
    # ------------------------------------------------------------------

    def _after_bind(self, result: BindResult) -> BindResult:
        if not result.refusals_complete:
            result.refused, result.refusals_complete = self.refusals.retry_after_commit(
                self.session_factory, result.order.id, result.claim.id
            )

        order = result.order
        self._dispatch(MatchingEvent(
            type=EventType.CLAIM_ACCEPTED,
            order_id=order.id,
            order_number=order.order_number,
            provider_id=result.claim.provider_id,
            claim_id=result.claim.id,
            new_status=result.claim.status,
            recipients=self.identity.staff_for_provider(result.claim.provider_id)
        ))
        for claim_id, provider_id in result.refused:
            self._notify_refused(order.id, order.order_number, claim_id, provider_id)
        self._dispatch(MatchingEvent(
            type=EventType.ORDER_BOUND,
            order_id=order.id,
            order_number=order.order_number,
            provider_id=order.assigned_provider_id,
            claim_id=result.claim.id,
            new_status=order.marketplace_status,
            recipients=[order.requester_id]
        ))
        return result

    def _notify_refused(self, order_id: Any, order_number: Optional[str], claim_id: Any, provider_id: Any) -> None:
        self._dispatch(MatchingEvent(
            type=EventType.CLAIM_REFUSED,
            order_id=order_id,
            order_number=order_number,
            provider_id=provider_id,
            claim_id=claim_id,
            new_status="refused",
            recipients=self.identity.staff_for_provider(provider_id)
        ))

    def _dispatch(self, event: MatchingEvent) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.dispatch(event)
        except Exception as e:
            logger.error(f"Notification dispatch failed for {event.type.value} on order {event.order_id}: {e}")
