import unittest
import uuid
from datetime import date
from decimal import Decimal

import pytest

from database.models.enums import MarketplaceStatus, ClaimStatus, BidStatus
from database.repositories.order import generate_order_number
from database.uow import matching_uow
from tests import make_session_factory, seed_provider


@pytest.mark.db
class TestOrderRepository(unittest.TestCase):

    def setUp(self):
        self.session_factory = make_session_factory()
        self.lab = seed_provider(self.session_factory, "Lab")
        self.other_lab = seed_provider(self.session_factory, "Other")

    def create(self, status=MarketplaceStatus.OPEN, category="Zirconia"):
        with matching_uow(self.session_factory) as repo:
            order = repo.orders.create_order(
                requester_id="doc-1",
                category=category,
                urgency="Normal",
                matching_mode="trust_ranked",
                marketplace_status=status.value,
                open_for_bids=status == MarketplaceStatus.OPEN
            )
            return order.id

    def test_order_number_format(self):
        number = generate_order_number()
        self.assertRegex(number, r"^ORD-[0-9A-F]{8}$")

    def test_bind_if_open_succeeds_once(self):
        order_id = self.create()

        with matching_uow(self.session_factory) as repo:
            self.assertTrue(repo.orders.bind_if_open(order_id, self.lab, date(2026, 3, 9)))
            self.assertFalse(repo.orders.bind_if_open(order_id, self.other_lab, date(2026, 3, 9)))

        with matching_uow(self.session_factory) as repo:
            order = repo.orders.get_by_id(order_id)

        self.assertEqual(order.assigned_provider_id, self.lab)
        self.assertFalse(order.open_for_bids)
        self.assertEqual(order.marketplace_status, MarketplaceStatus.BOUND.value)
        self.assertEqual(order.version, 1)
        self.assertEqual(order.expected_delivery_date, date(2026, 3, 9))
        self.assertIsNotNone(order.bound_at)
        self.assertTrue(order.is_bound)

    def test_bind_loses_in_a_later_transaction(self):
        order_id = self.create()
        with matching_uow(self.session_factory) as repo:
            repo.orders.bind_if_open(order_id, self.lab, None)
        with matching_uow(self.session_factory) as repo:
            self.assertFalse(repo.orders.bind_if_open(order_id, self.other_lab, None))

    def test_draft_cannot_be_bound_or_touched(self):
        order_id = self.create(MarketplaceStatus.DRAFT)
        with matching_uow(self.session_factory) as repo:
            self.assertFalse(repo.orders.bind_if_open(order_id, self.lab, None))
            self.assertFalse(repo.orders.touch_if_open(order_id))
            self.assertTrue(repo.orders.open_draft(order_id))
            self.assertFalse(repo.orders.open_draft(order_id))
            self.assertTrue(repo.orders.touch_if_open(order_id))

        with matching_uow(self.session_factory) as repo:
            self.assertEqual(repo.orders.get_by_id(order_id).version, 2)

    def test_missing_order_binds_nothing(self):
        with matching_uow(self.session_factory) as repo:
            self.assertFalse(repo.orders.bind_if_open(uuid.uuid4(), self.lab, None))

    def test_list_open_orders_excludes_refused(self):
        refused_on = self.create()
        open_order = self.create()
        self.create(MarketplaceStatus.DRAFT)
        self.create(category="Emax")

        with matching_uow(self.session_factory) as repo:
            repo.claims.create_claim(refused_on, self.lab, "staff-1", status=ClaimStatus.REFUSED.value)

        with matching_uow(self.session_factory) as repo:
            for_lab = {o.id for o in repo.orders.list_open_orders("Zirconia", exclude_refused_for=self.lab)}
            for_other = {o.id for o in repo.orders.list_open_orders("Zirconia", exclude_refused_for=self.other_lab)}
            everything = repo.orders.list_open_orders()

        self.assertEqual(for_lab, {open_order})
        self.assertEqual(for_other, {refused_on, open_order})
        self.assertEqual(len(everything), 3)

    def test_advance_status_is_conditional(self):
        order_id = self.create()
        with matching_uow(self.session_factory) as repo:
            # Not bound yet
            self.assertFalse(repo.orders.advance_status_if(order_id, "Pending", "InProgress"))
            repo.orders.bind_if_open(order_id, self.lab, None)
            self.assertTrue(repo.orders.advance_status_if(order_id, "Pending", "InProgress"))
            self.assertFalse(repo.orders.advance_status_if(order_id, "Pending", "InProgress"))


@pytest.mark.db
class TestClaimRepository(unittest.TestCase):

    def setUp(self):
        self.session_factory = make_session_factory()
        self.labs = [seed_provider(self.session_factory, f"Lab {n}") for n in range(3)]
        with matching_uow(self.session_factory) as repo:
            order = repo.orders.create_order(
                requester_id="doc-1", category="Zirconia", urgency="Normal",
                matching_mode="trust_ranked", marketplace_status="open", open_for_bids=True
            )
            self.order_id = order.id
            self.claims = [
                repo.claims.create_claim(self.order_id, lab, f"staff-{n}").id
                for n, lab in enumerate(self.labs)
            ]

    def test_refuse_pending_siblings_returns_changed_claims(self):
        with matching_uow(self.session_factory) as repo:
            self.assertTrue(repo.claims.accept_if_pending(self.claims[0]))
            refused = repo.claims.refuse_pending_siblings(self.order_id, self.claims[0])
            again = repo.claims.refuse_pending_siblings(self.order_id, self.claims[0])

        self.assertEqual(
            sorted(refused, key=str),
            sorted([(self.claims[1], self.labs[1]), (self.claims[2], self.labs[2])], key=str)
        )
        self.assertEqual(again, [])

        with matching_uow(self.session_factory) as repo:
            statuses = {c.id: c.status for c in repo.claims.list_for_order(self.order_id)}
        self.assertEqual(statuses[self.claims[0]], "accepted")
        self.assertEqual(statuses[self.claims[1]], "refused")
        self.assertEqual(statuses[self.claims[2]], "refused")

    def test_delete_pending_only_while_order_open(self):
        with matching_uow(self.session_factory) as repo:
            self.assertTrue(repo.claims.delete_pending_if_order_open(self.claims[0]))
            repo.orders.bind_if_open(self.order_id, self.labs[1], None)
            self.assertFalse(repo.claims.delete_pending_if_order_open(self.claims[2]))

        with matching_uow(self.session_factory) as repo:
            remaining = [c.id for c in repo.claims.list_for_order(self.order_id)]
        self.assertNotIn(self.claims[0], remaining)
        self.assertIn(self.claims[2], remaining)

    def test_revision_round_trip_on_pending_claim(self):
        with matching_uow(self.session_factory) as repo:
            # Nothing to revise until a revision was requested
            self.assertFalse(repo.claims.revise_if_requested(self.claims[0], Decimal("90.00")))
            self.assertTrue(repo.claims.request_revision_if_pending(self.claims[0], "Too high"))
            self.assertFalse(repo.claims.request_revision_if_pending(self.claims[0], "Again"))
            self.assertTrue(repo.claims.revise_if_requested(self.claims[0], Decimal("90.00")))
            # A revised bid may be sent back once more
            self.assertTrue(repo.claims.request_revision_if_pending(self.claims[0], "Still high"))

        with matching_uow(self.session_factory) as repo:
            claim = repo.claims.get_by_id(self.claims[0])

        self.assertEqual(claim.bid_status, BidStatus.REVISION_REQUESTED.value)
        self.assertEqual(claim.revision_note, "Still high")
        self.assertEqual(claim.revised_price, Decimal("90.00"))
        self.assertIsNotNone(claim.revised_at)
        self.assertEqual(claim.status, ClaimStatus.PENDING.value)

    def test_refuse_if_pending_can_require_bid_status(self):
        with matching_uow(self.session_factory) as repo:
            self.assertFalse(repo.claims.refuse_if_pending(
                self.claims[0], bid_status=BidStatus.REVISION_REQUESTED.value
            ))
            self.assertTrue(repo.claims.refuse_if_pending(self.claims[0]))
            self.assertFalse(repo.claims.refuse_if_pending(self.claims[0]))
            self.assertFalse(repo.claims.request_revision_if_pending(self.claims[0], "Too late"))

    def test_record_agreed_price(self):
        with matching_uow(self.session_factory) as repo:
            repo.orders.record_agreed_price(self.order_id, Decimal("120.50"))

        with matching_uow(self.session_factory) as repo:
            self.assertEqual(repo.orders.get_by_id(self.order_id).agreed_price, Decimal("120.50"))

    def test_list_stale_pending_skips_assigned_provider(self):
        with matching_uow(self.session_factory) as repo:
            repo.orders.bind_if_open(self.order_id, self.labs[0], None)

        with matching_uow(self.session_factory) as repo:
            stale = {c.id for c in repo.claims.list_stale_pending()}

        self.assertEqual(stale, {self.claims[1], self.claims[2]})


if __name__ == '__main__':
    unittest.main()
