#!/usr/bin/env python3
"""
Integration Test: concurrent binding against a shared database

Several threads race to bind the same order, each through its own session
and connection on a file-backed SQLite database. Exactly one of them may win.

Usage:
    uv run python -m pytest tests/integration/test_concurrent_binding.py -v
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from core.errors import AlreadyBound, CapacityExceeded, OrderNotOpen
from core.identity import Caller, Role, StaticIdentityProvider
from database.models import Claim
from database.uow import matching_uow
from tests import seed_provider, build_facade

WORKERS = 8

pytestmark = pytest.mark.db


def _race(calls):
    """Run the callables at (nearly) the same moment; return (results, errors)."""
    barrier = threading.Barrier(len(calls))

    def run(call):
        barrier.wait()
        try:
            return call(), None
        except Exception as e:
            return None, e

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        outcomes = list(pool.map(run, calls))
    return [r for r, _ in outcomes if r is not None], [e for _, e in outcomes if e is not None]


@pytest.fixture
def marketplace(file_session_factory):
    providers = [
        seed_provider(file_session_factory, f"Lab {i}", trust_score=5.0 + i)
        for i in range(WORKERS)
    ]
    callers = [Caller("doc-1", Role.REQUESTER), Caller("admin", Role.ADMINISTRATOR)]
    callers.extend(
        Caller(f"staff-{i}", Role.PROVIDER_STAFF, provider_id)
        for i, provider_id in enumerate(providers)
    )
    facade = build_facade(file_session_factory, StaticIdentityProvider(callers))
    return file_session_factory, facade, providers


def _assert_single_binding(session_factory, order_id, winner_provider_id):
    with matching_uow(session_factory) as repo:
        order = repo.orders.get_by_id(order_id)
        assert order.marketplace_status == "bound"
        assert order.assigned_provider_id == winner_provider_id

        claims = repo.claims.list_for_order(order_id)
        accepted = [c for c in claims if c.status == "accepted"]
        assert [c.provider_id for c in accepted] == [winner_provider_id]
        assert all(c.status == "refused" for c in claims if c not in accepted)

        loads = {p.id: p.current_load for p in repo.providers.list_active_providers()}
        assert loads[winner_provider_id] == 1
        assert sum(loads.values()) == 1

        history = repo.orders.get_status_history(order_id)
        assert [(h.old_status, h.new_status) for h in history].count(("open", "bound")) == 1


def test_concurrent_accepts_have_one_winner(marketplace):
    session_factory, facade, providers = marketplace
    order = facade.create_order("doc-1", "Zirconia", "Normal")
    claims = [facade.submit_claim(f"staff-{i}", order.id) for i in range(WORKERS)]

    results, errors = _race([
        (lambda claim_id=c.id: facade.accept_claim("doc-1", claim_id)) for c in claims
    ])

    assert len(results) == 1
    assert len(errors) == WORKERS - 1
    assert all(isinstance(e, AlreadyBound) for e in errors)
    assert all(e.provider_id == results[0].order.assigned_provider_id for e in errors)
    _assert_single_binding(session_factory, order.id, results[0].claim.provider_id)


def test_mixed_bind_paths_have_one_winner(marketplace):
    session_factory, facade, providers = marketplace
    order = facade.create_order("doc-1", "Zirconia", "Urgent")
    claim = facade.submit_claim("staff-0", order.id)

    results, errors = _race([
        lambda: facade.accept_claim("doc-1", claim.id),
        lambda: facade.admin_override("admin", order.id, providers[3]),
        lambda: facade.auto_assign("doc-1", order.id),
        lambda: facade.admin_override("admin", order.id, providers[5]),
    ])

    assert len(results) == 1
    assert all(isinstance(e, AlreadyBound) for e in errors)
    _assert_single_binding(session_factory, order.id, results[0].order.assigned_provider_id)


def test_submissions_racing_a_bind_never_stay_pending(marketplace):
    session_factory, facade, providers = marketplace
    order = facade.create_order("doc-1", "Zirconia", "Normal")
    first = facade.submit_claim("staff-0", order.id)

    calls = [lambda: facade.accept_claim("doc-1", first.id)]
    calls.extend(
        (lambda user_id=f"staff-{i}": facade.submit_claim(user_id, order.id))
        for i in range(1, WORKERS)
    )
    results, errors = _race(calls)

    assert all(isinstance(e, OrderNotOpen) for e in errors)
    assert sum(isinstance(r, Claim) for r in results) + len(errors) == WORKERS - 1
    _assert_single_binding(session_factory, order.id, providers[0])

    with matching_uow(session_factory) as repo:
        assert repo.claims.list_pending_for_order(order.id) == []
        assert repo.claims.list_stale_pending(limit=100) == []


def test_accepts_on_different_orders_respect_capacity(file_session_factory):
    solo = seed_provider(file_session_factory, "Solo Lab", max_capacity=1)
    facade = build_facade(file_session_factory, StaticIdentityProvider([
        Caller("doc-1", Role.REQUESTER),
        Caller("staff-solo", Role.PROVIDER_STAFF, solo),
    ]))
    orders = [facade.create_order("doc-1", "Zirconia", "Normal") for _ in range(4)]
    claims = [facade.submit_claim("staff-solo", o.id) for o in orders]

    results, errors = _race([
        (lambda claim_id=c.id: facade.accept_claim("doc-1", claim_id)) for c in claims
    ])

    assert len(results) == 1
    assert all(isinstance(e, CapacityExceeded) for e in errors)
    with matching_uow(file_session_factory) as repo:
        assert repo.providers.get_provider(solo).current_load == 1
        bound = [o.id for o in orders if repo.orders.get_by_id(o.id).marketplace_status == "bound"]
    assert bound == [results[0].order.id]
