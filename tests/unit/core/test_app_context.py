import unittest

import pytest

from core.app_context import AppContext
from core.config_loader import AppConfig, DatabaseConfig
from core.identity import Caller, Role, StaticIdentityProvider
from notification.service import NotificationService
from tests import make_session_factory, seed_provider


@pytest.mark.db
class TestAppContext(unittest.TestCase):

    def test_build_wires_config_into_components(self):
        config = AppConfig(
            database=DatabaseConfig(url="sqlite://"),
            ranking={'default_limit': 3, 'new_provider_min_rank': 4},
            quote={'default_rush_surcharge_percent': 35},
            assignment={'refusal_retry_attempts': 7, 'sweep_batch_size': 20},
        )
        ctx = AppContext.build(config, session_factory=make_session_factory())

        self.assertEqual(ctx.ranking_engine.default_limit, 3)
        self.assertEqual(ctx.ranking_engine.new_provider_min_rank, 4)
        self.assertEqual(ctx.quote_calculator.default_rush_surcharge_percent, 35)
        self.assertEqual(ctx.state_machine.refusals.retry_attempts, 7)
        self.assertEqual(ctx.state_machine.refusals.sweep_batch_size, 20)
        self.assertIsInstance(ctx.notification_service, NotificationService)
        self.assertIs(ctx.facade.notifier, ctx.notification_service)
        self.assertFalse(ctx.notification_service.async_mode)

    def test_notifications_can_be_disabled(self):
        config = AppConfig(database=DatabaseConfig(url="sqlite://"), notifications={'enabled': False})
        ctx = AppContext.build(config, session_factory=make_session_factory())
        self.assertIsNone(ctx.notification_service)
        self.assertIsNone(ctx.facade.notifier)

    def test_facade_runs_end_to_end(self):
        session_factory = make_session_factory()
        provider_id = seed_provider(session_factory, "Lab")
        identity = StaticIdentityProvider([
            Caller("doc-1", Role.REQUESTER),
            Caller("staff-1", Role.PROVIDER_STAFF, provider_id),
        ])
        ctx = AppContext.build(
            AppConfig(database=DatabaseConfig(url="sqlite://")),
            identity=identity,
            session_factory=session_factory
        )

        order = ctx.facade.create_order("doc-1", "Zirconia", "Normal")
        claim = ctx.facade.submit_claim("staff-1", order.id)
        result = ctx.facade.accept_claim("doc-1", claim.id)

        self.assertEqual(result.order.assigned_provider_id, provider_id)


if __name__ == '__main__':
    unittest.main()
