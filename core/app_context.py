from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from core.config_loader import AppConfig
from core.identity import IdentityProvider, StaticIdentityProvider
from core.quote import QuoteCalculator
from core.ranking import TrustRankingEngine
from core.assignment import AssignmentStateMachine, RefusalPropagator
from core.matching import MatchingFacade
from database.database import build_engine, build_session_factory
from notification.service import NotificationService


@dataclass
class AppContext:
    """Application context container that holds all wired dependencies.

    DB access goes through matching_uow() with ``session_factory`` inside
    each facade call; nothing here holds a session.
    """
    config: AppConfig
    session_factory: sessionmaker
    quote_calculator: QuoteCalculator
    ranking_engine: TrustRankingEngine
    state_machine: AssignmentStateMachine
    facade: MatchingFacade
    notification_service: Optional[NotificationService] = None

    @classmethod
    def build(
        cls,
        config: AppConfig,
        identity: Optional[IdentityProvider] = None,
        session_factory: Optional[sessionmaker] = None
    ) -> "AppContext":
        """Build an AppContext from config.

        Args:
            config: Loaded application configuration
            identity: Identity provider; an empty StaticIdentityProvider if omitted
            session_factory: Overrides the engine built from ``config.database``

        Returns:
            Fully wired AppContext instance
        """
        if session_factory is None:
            engine = build_engine(
                config.database.url,
                pool_pre_ping=config.database.pool_pre_ping,
                echo=config.database.echo
            )
            session_factory = build_session_factory(engine)

        quote_calculator = QuoteCalculator(
            default_rush_surcharge_percent=config.quote.default_rush_surcharge_percent
        )
        ranking_engine = TrustRankingEngine(
            quote_calculator,
            new_provider_min_rank=config.ranking.new_provider_min_rank,
            default_limit=config.ranking.default_limit
        )
        refusals = cls._build_refusal_propagator(config)
        state_machine = AssignmentStateMachine(quote_calculator, ranking_engine, refusals)

        # Notification Service (only if enabled)
        notification_service = None
        if config.notifications and config.notifications.enabled:
            notification_service = cls._build_notification_service(config, session_factory)

        facade = MatchingFacade(
            session_factory=session_factory,
            identity=identity or StaticIdentityProvider(),
            ranking_engine=ranking_engine,
            state_machine=state_machine,
            notifier=notification_service
        )

        return cls(
            config=config,
            session_factory=session_factory,
            quote_calculator=quote_calculator,
            ranking_engine=ranking_engine,
            state_machine=state_machine,
            facade=facade,
            notification_service=notification_service
        )

    @staticmethod
    def _build_refusal_propagator(config: AppConfig) -> RefusalPropagator:
        assignment = config.assignment
        return RefusalPropagator(
            retry_attempts=assignment.refusal_retry_attempts,
            retry_wait_seconds=assignment.refusal_retry_wait_seconds,
            retry_max_wait_seconds=assignment.refusal_retry_max_wait_seconds,
            sweep_batch_size=assignment.sweep_batch_size
        )

    @staticmethod
    def _build_notification_service(
        config: AppConfig,
        session_factory: sessionmaker
    ) -> NotificationService:
        notification_config = config.notifications
        return NotificationService(
            channels=notification_config.channels,
            session_factory=session_factory,
            redis_url=notification_config.redis_url,
            use_async_queue=notification_config.use_async_queue,
            queue_name=notification_config.queue_name,
            webhook_timeout_seconds=notification_config.webhook_timeout_seconds
        )
