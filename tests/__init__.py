#!/usr/bin/env python3
"""
Test suite configuration and utilities.

All tests run against SQLite, in memory for unit tests and in a temporary
file for the concurrency tests, so no external database is needed:

    python -m pytest tests/ -v

    # Skip everything that touches a database
    python -m pytest tests/ -v -m "not db"
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker

from core.assignment import AssignmentStateMachine, RefusalPropagator
from core.identity import IdentityProvider
from core.matching import MatchingFacade
from core.quote import QuoteCalculator
from core.ranking import TrustRankingEngine
from database.database import build_engine, build_session_factory
from database.init_db import init_db
from database.uow import matching_uow

TODAY = date(2026, 3, 2)


def fixed_clock() -> date:
    return TODAY


def make_session_factory(url: str = "sqlite://") -> sessionmaker:
    """Fresh schema on a new engine. ``sqlite://`` gives a shared in-memory DB."""
    if url == "sqlite://":
        engine = build_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool
        )
    else:
        engine = build_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
    init_db(engine)
    return build_session_factory(engine)


def seed_provider(
    session_factory: sessionmaker,
    name: str,
    trust_score: float = 4.0,
    max_capacity: int = 10,
    current_load: int = 0,
    categories: Iterable[str] = ("Zirconia",),
    expertise_level: str = "expert",
    turnaround_days: Optional[int] = None,
    fixed_price: Optional[str] = None,
    min_price: Optional[str] = None,
    max_price: Optional[str] = None,
    includes_rush: bool = False,
    rush_surcharge_percent: Optional[int] = None,
    standard_sla_days: int = 7,
    urgent_sla_days: int = 3,
    is_new: bool = False,
    is_active: bool = True
):
    """Create a provider with a specialization (and pricing) per category; returns its id."""
    with matching_uow(session_factory) as repo:
        provider = repo.providers.add_provider(
            name,
            trust_score=Decimal(str(trust_score)),
            max_capacity=max_capacity,
            current_load=current_load,
            standard_sla_days=standard_sla_days,
            urgent_sla_days=urgent_sla_days,
            is_new=is_new,
            is_active=is_active
        )
        for category in categories:
            repo.providers.add_specialization(provider.id, category, expertise_level, turnaround_days)
            if fixed_price is not None or min_price is not None:
                repo.providers.set_pricing(
                    provider.id,
                    category,
                    fixed_price=Decimal(fixed_price) if fixed_price else None,
                    min_price=Decimal(min_price) if min_price else None,
                    max_price=Decimal(max_price) if max_price else None,
                    includes_rush=includes_rush,
                    rush_surcharge_percent=rush_surcharge_percent
                )
        return provider.id


def seed_preferred(session_factory: sessionmaker, requester_id: str, provider_id, priority_order: int) -> None:
    with matching_uow(session_factory) as repo:
        repo.providers.set_preferred_provider(requester_id, provider_id, priority_order)


def build_state_machine(new_provider_min_rank: Optional[int] = None) -> AssignmentStateMachine:
    quote_calculator = QuoteCalculator(clock=fixed_clock)
    ranking_engine = TrustRankingEngine(quote_calculator, new_provider_min_rank=new_provider_min_rank)
    refusals = RefusalPropagator(retry_attempts=3, retry_wait_seconds=0, retry_max_wait_seconds=0)
    return AssignmentStateMachine(quote_calculator, ranking_engine, refusals)


def build_facade(
    session_factory: sessionmaker,
    identity: IdentityProvider,
    notifier=None
) -> MatchingFacade:
    state_machine = build_state_machine()
    return MatchingFacade(
        session_factory=session_factory,
        identity=identity,
        ranking_engine=state_machine.ranking_engine,
        state_machine=state_machine,
        notifier=notifier
    )
