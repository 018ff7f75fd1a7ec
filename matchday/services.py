"""
Service construction.

Everything is built once from a Settings instance and handed around by
reference; there are no module-level managers.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from config.settings import Settings, get_settings
from matchday.cache import TieredCache
from matchday.db import init_db, make_engine, make_session_factory
from matchday.dispatch import WebhookDispatcher
from matchday.idempotency import IdempotencyGuard, InMemoryIdempotencyStore, MatchLockRegistry
from matchday.live_match.processor import EventProcessor
from matchday.live_match.repository import InMemoryAggregateStore, InMemoryMatchRepository
from matchday.storage import SqlAggregateStore, SqlIdempotencyStore, SqlMatchRepository

logger = logging.getLogger("matchday.services")


@dataclass
class Services:
    settings: Settings
    processor: EventProcessor
    cache: TieredCache
    dispatcher: Optional[WebhookDispatcher] = None
    engine: Any = None

    @property
    def backend(self) -> str:
        return self.engine.url.get_backend_name() if self.engine is not None else "memory"


def _assemble(settings, repository, idempotency, aggregates, cache=None) -> EventProcessor:
    guard = IdempotencyGuard(
        idempotency,
        MatchLockRegistry(),
        lock_timeout=settings.lock_timeout_seconds,
    )
    return EventProcessor(
        settings,
        repository=repository,
        guard=guard,
        cache=cache or TieredCache(settings),
        aggregates=aggregates,
    )


def build_services(settings: Optional[Settings] = None) -> Services:
    """SQLAlchemy-backed services for the configured database."""
    settings = settings or get_settings()
    engine = make_engine(settings.database_url)
    init_db(engine)
    session_factory = make_session_factory(engine)

    idempotency = SqlIdempotencyStore(
        session_factory,
        reservation_ttl_seconds=settings.reservation_ttl_seconds,
        ttl_seconds=settings.idempotency_ttl_seconds,
    )
    # Fingerprints past their TTL would only be reclaimed one by one on reserve
    idempotency.purge_expired()

    cache = TieredCache(settings)
    processor = _assemble(
        settings,
        repository=SqlMatchRepository(session_factory),
        idempotency=idempotency,
        aggregates=SqlAggregateStore(session_factory),
        cache=cache,
    )
    logger.info(f"Services ready ({engine.url.get_backend_name()})")
    return Services(
        settings=settings,
        processor=processor,
        cache=cache,
        dispatcher=WebhookDispatcher.from_settings(settings),
        engine=engine,
    )


def build_in_memory_services(settings: Optional[Settings] = None) -> Services:
    """Process-local services, for tests and dry runs."""
    settings = settings or get_settings()
    cache = TieredCache(settings)
    processor = _assemble(
        settings,
        repository=InMemoryMatchRepository(),
        idempotency=InMemoryIdempotencyStore(
            reservation_ttl_seconds=settings.reservation_ttl_seconds,
            ttl_seconds=settings.idempotency_ttl_seconds,
        ),
        aggregates=InMemoryAggregateStore(),
        cache=cache,
    )
    return Services(
        settings=settings,
        processor=processor,
        cache=cache,
        dispatcher=WebhookDispatcher.from_settings(settings),
    )
