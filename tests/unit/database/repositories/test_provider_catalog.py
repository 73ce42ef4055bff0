import unittest
import uuid
from decimal import Decimal

import pytest

from database.uow import matching_uow
from tests import make_session_factory, seed_provider, seed_preferred


@pytest.mark.db
class TestProviderCatalog(unittest.TestCase):

    def setUp(self):
        self.session_factory = make_session_factory()

    def test_specialized_with_capacity(self):
        ok = seed_provider(self.session_factory, "OK", current_load=4, max_capacity=5)
        seed_provider(self.session_factory, "Full", current_load=5, max_capacity=5)
        seed_provider(self.session_factory, "Elsewhere", categories=("Emax",))

        with matching_uow(self.session_factory) as repo:
            found = repo.providers.list_specialized_with_capacity("Zirconia")

        self.assertEqual([p.id for p in found], [ok])

    def test_batch_lookups_keyed_by_provider(self):
        a = seed_provider(self.session_factory, "A", fixed_price="100")
        b = seed_provider(self.session_factory, "B")

        with matching_uow(self.session_factory) as repo:
            specs = repo.providers.get_specializations_for_category("Zirconia", [a, b])
            pricing = repo.providers.get_pricing_for_category("Zirconia", [a, b])
            empty = repo.providers.get_pricing_for_category("Zirconia", [])

        self.assertEqual(set(specs), {a, b})
        self.assertEqual(set(pricing), {a})
        self.assertEqual(pricing[a].fixed_price, Decimal("100.00"))
        self.assertEqual(empty, {})

    def test_preferred_in_priority_order(self):
        a = seed_provider(self.session_factory, "A")
        b = seed_provider(self.session_factory, "B")
        seed_preferred(self.session_factory, "doc-1", a, 2)
        seed_preferred(self.session_factory, "doc-1", b, 1)
        # Updating the same pair keeps one row
        seed_preferred(self.session_factory, "doc-1", a, 3)

        with matching_uow(self.session_factory) as repo:
            preferred = repo.providers.get_preferred_providers("doc-1")

        self.assertEqual([(p.provider_id, p.priority_order) for p in preferred], [(b, 1), (a, 3)])

    def test_load_counters(self):
        lab = seed_provider(self.session_factory, "Lab", current_load=0)

        with matching_uow(self.session_factory) as repo:
            self.assertEqual(repo.providers.increment_load(lab), 1)
            self.assertEqual(repo.providers.decrement_load(lab), 1)
            # Never goes below zero
            self.assertEqual(repo.providers.decrement_load(lab), 0)

        with matching_uow(self.session_factory) as repo:
            self.assertEqual(repo.providers.get_provider(lab).current_load, 0)

    def test_increment_load_can_respect_capacity(self):
        full = seed_provider(self.session_factory, "Full", current_load=2, max_capacity=2)

        with matching_uow(self.session_factory) as repo:
            self.assertEqual(repo.providers.increment_load(full, enforce_capacity=True), 0)
            self.assertEqual(repo.providers.get_provider(full).current_load, 2)
            # Without the guard an override still goes through
            self.assertEqual(repo.providers.increment_load(full), 1)

        with matching_uow(self.session_factory) as repo:
            self.assertEqual(repo.providers.get_provider(full).current_load, 3)

    def test_record_delivery_creates_metrics(self):
        lab = seed_provider(self.session_factory, "Lab")

        with matching_uow(self.session_factory) as repo:
            repo.providers.record_delivery(lab, on_time=True)
            repo.providers.record_delivery(lab, on_time=False)

        with matching_uow(self.session_factory) as repo:
            metrics = repo.providers.get_metrics(lab)

        self.assertEqual(metrics.completed_orders, 2)
        self.assertEqual(metrics.total_orders, 2)
        self.assertEqual(metrics.on_time_deliveries, 1)

    def test_missing_provider(self):
        with matching_uow(self.session_factory) as repo:
            self.assertIsNone(repo.providers.get_provider(uuid.uuid4()))
            self.assertIsNone(repo.providers.get_metrics(uuid.uuid4()))


if __name__ == '__main__':
    unittest.main()
