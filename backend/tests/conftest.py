import asyncio
import random
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from engine.dispatcher import ActionDispatcher
from engine.lifecycle import SessionLifecycleManager, assign_color
from engine.phase_timer import PhaseTimer
from engine.round_engine import RoundEngine
from engine.session_locks import SessionLocks
from engine.timer_registry import TimerRegistry
from engine.visibility import session_view
from models.game import Participant, Session
from services.stats_service import StatsService
from services.word_provider import WordChoice


# ── Test doubles ──────────────────────────────────────────────────────────────

class InMemorySessionStore:
    """Stores deep copies so tests observe only what was persisted."""

    def __init__(self):
        self.sessions: Dict[str, Session] = {}
        self.puts = 0

    async def get(self, code: str) -> Optional[Session]:
        session = self.sessions.get(code)
        return session.model_copy(deep=True) if session else None

    async def exists(self, code: str) -> bool:
        return code in self.sessions

    async def put(self, session: Session) -> None:
        self.puts += 1
        self.sessions[session.code] = session.model_copy(deep=True)

    async def delete(self, code: str) -> None:
        self.sessions.pop(code, None)

    async def close(self) -> None:
        pass


class RecordingBroadcaster:
    def __init__(self):
        self.room: List[Tuple[str, str, Dict[str, Any]]] = []
        self.views: List[Tuple[str, str, Dict[str, Any]]] = []
        self.private: List[Tuple[str, str, str, Dict[str, Any]]] = []

    async def emit_to_session(self, code: str, event: str, payload: Dict[str, Any]) -> None:
        self.room.append((code, event, payload))

    async def emit_session(self, code: str, session: Session) -> None:
        for pid in session.participants:
            self.views.append((code, pid, session_view(session, pid)))

    async def send_to(self, code: str, participant_id: str, event: str, payload: Dict[str, Any]) -> None:
        self.private.append((code, participant_id, event, payload))

    def actions(self, action_type: Optional[str] = None) -> List[Dict[str, Any]]:
        found = [p["action"] for _, event, p in self.room if event == "action"]
        if action_type:
            found = [a for a in found if a.get("type") == action_type]
        return found

    def errors_for(self, participant_id: str) -> List[Dict[str, Any]]:
        return [p for _, pid, event, p in self.private if pid == participant_id and event == "error"]


class ManualClock:
    """Replacement for asyncio.sleep that only wakes when advanced."""

    def __init__(self):
        self.waiters: List[asyncio.Future] = []
        self.delays: List[float] = []

    async def sleep(self, delay: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        self.waiters.append(fut)
        self.delays.append(delay)
        await fut

    async def advance(self, steps: int = 1) -> None:
        for _ in range(steps):
            waiters, self.waiters = self.waiters, []
            for fut in waiters:
                if not fut.done():
                    fut.set_result(None)
            await settle()


class FixedWordProvider:
    def __init__(self, word: str = "mesa", category: str = "objetos"):
        self.choice = WordChoice(word=word, category=category)
        self.calls = 0

    async def get_random_word(self, category=None) -> WordChoice:
        self.calls += 1
        return self.choice


async def settle(rounds: int = 20) -> None:
    """Let every ready task run until it blocks again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_session(code: str = "ABC123", names=("host", "ana", "bob"), **fields) -> Session:
    session = Session(code=code, host_id=names[0], **fields)
    for name in names:
        session.participants[name] = Participant(
            id=name, name=name.title(), color=assign_color(session.participants.values()),
        )
    return session


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def locks():
    return SessionLocks()


@pytest_asyncio.fixture
async def registry():
    registry = TimerRegistry()
    yield registry
    await registry.shutdown()


@pytest.fixture
def words():
    return FixedWordProvider()


@pytest.fixture
def engine(words):
    return RoundEngine(words, rng=random.Random(7))


@pytest.fixture
def durable():
    durable = AsyncMock()
    durable.list_game_results.return_value = []
    return durable


@pytest.fixture
def stats(durable):
    return StatsService(durable)


@pytest.fixture
def timer(store, broadcaster, registry, locks, engine, stats, clock):
    return PhaseTimer(store, broadcaster, registry, locks, engine, stats, tick_interval=1.0, sleep=clock.sleep)


@pytest.fixture
def lifecycle(store, registry, locks):
    return SessionLifecycleManager(store, registry, locks, rng=random.Random(3))


@pytest.fixture
def dispatcher(store, broadcaster, engine, timer, locks, stats):
    return ActionDispatcher(store, broadcaster, engine, timer, locks, stats)

