"""
Process-wide wiring of the game engine.

Built lazily on first use so that importing the app never needs Redis,
Firestore or Gemini credentials.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis

from config import settings
from engine.dispatcher import ActionDispatcher
from engine.lifecycle import SessionLifecycleManager
from engine.phase_timer import PhaseTimer
from engine.round_engine import RoundEngine
from engine.session_locks import SessionLocks
from engine.timer_registry import TimerRegistry
from services.connection_manager import ConnectionManager, manager
from services.firestore_service import get_firestore_service
from services.session_store import SessionStore
from services.stats_service import StatsService
from services.word_provider import WordProvider

logger = logging.getLogger(__name__)


@dataclass
class GameRuntime:
    store: SessionStore
    connections: ConnectionManager
    registry: TimerRegistry
    locks: SessionLocks
    engine: RoundEngine
    stats: StatsService
    timer: PhaseTimer
    lifecycle: SessionLifecycleManager
    dispatcher: ActionDispatcher

    async def shutdown(self) -> None:
        await self.registry.shutdown()
        await self.store.close()


def build_runtime(redis_client, durable, connections: ConnectionManager) -> GameRuntime:
    store = SessionStore(redis_client, durable)
    registry = TimerRegistry()
    locks = SessionLocks()
    engine = RoundEngine(WordProvider())
    stats = StatsService(durable)
    timer = PhaseTimer(store, connections, registry, locks, engine, stats)
    return GameRuntime(
        store=store,
        connections=connections,
        registry=registry,
        locks=locks,
        engine=engine,
        stats=stats,
        timer=timer,
        lifecycle=SessionLifecycleManager(store, registry, locks),
        dispatcher=ActionDispatcher(store, connections, engine, timer, locks, stats),
    )


_runtime: Optional[GameRuntime] = None


def get_game_runtime() -> GameRuntime:
    """Build the runtime on first call; importing the app opens no connections."""
    global _runtime
    if _runtime is None:
        redis_client = redis.from_url(settings.redis_url, decode_responses=True)
        _runtime = build_runtime(redis_client, get_firestore_service(), manager)
        logger.info("Game runtime ready (redis=%s)", settings.redis_url)
    return _runtime


async def shutdown_game_runtime() -> None:
    global _runtime
    if _runtime is not None:
        await _runtime.shutdown()
        _runtime = None
