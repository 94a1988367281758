"""
Phase Timer — the per-session countdown that drives time-based transitions.

Each tick (default 1 s):
  1. Re-read the session from the store (other actions may have changed it)
  2. Session gone, or phase not clues/discussion/voting → stop
  3. Decrement time_left (floor 0), persist, broadcast per recipient
  4. On zero: clues → discussion → voting → results

Timeouts advance the phase whether or not everybody acted; early advancement
on participant action lives in the dispatcher. Ticks for one session run
sequentially in one task and hold the session lock, so they never overlap
each other or an in-flight action.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from config import settings
from engine.broadcast import Broadcaster, emit_action
from engine.round_engine import RoundEngine, VoteOutcome
from engine.session_locks import SessionLocks
from engine.timer_registry import TimerRegistry
from models.game import ACTIVE_PHASES, Phase, Session

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class PhaseTimer:
    def __init__(
        self,
        store,
        broadcaster: Broadcaster,
        registry: TimerRegistry,
        locks: SessionLocks,
        engine: RoundEngine,
        stats=None,
        tick_interval: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.registry = registry
        self.locks = locks
        self.engine = engine
        self.stats = stats
        self.tick_interval = settings.tick_interval_seconds if tick_interval is None else tick_interval
        self.sleep = sleep

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self, code: str) -> asyncio.Task:
        """(Re)start the countdown; any previous timer for `code` is cancelled first."""
        logger.debug("[%s] Timer started", code)
        return self.registry.start(code, lambda: self._run(code))

    def stop(self, code: str) -> None:
        self.registry.stop(code)

    def schedule_vote_resolution(self, code: str, delay: Optional[float] = None) -> asyncio.Task:
        """
        Replace the countdown with a one-shot voting resolution after `delay`.
        Sharing the registry slot means the timeout path and the early path
        can never both resolve the same vote.
        """
        if delay is None:
            delay = settings.vote_resolution_delay_seconds
        return self.registry.start(code, lambda: self._resolve_after_delay(code, delay))

    async def _run(self, code: str) -> None:
        while True:
            await self.sleep(self.tick_interval)
            try:
                keep_running = await self.tick(code)
            except Exception:
                # A broken tick must not kill the countdown; retry next second
                logger.exception("[%s] Timer tick failed", code)
                continue
            if not keep_running or self.registry.get(code) is not asyncio.current_task():
                return

    # ── Tick ──────────────────────────────────────────────────────────────────

    async def tick(self, code: str) -> bool:
        """One countdown step. Returns False when the countdown should end."""
        async with self.locks.for_code(code):
            session = await self.store.get(code)
            if session is not None:
                return await self._count_down(session)

        # Expired or deleted elsewhere; the lock is free again here
        logger.debug("[%s] Session gone — timer torn down", code)
        self.registry.stop(code)
        self.locks.discard(code)
        return False

    async def _count_down(self, session: Session) -> bool:
        code = session.code
        if session.phase not in ACTIVE_PHASES:
            self.registry.stop(code)
            return False

        session.time_left = max(0, session.time_left - 1)
        await self.store.put(session)
        await self.broadcaster.emit_session(code, session)

        if session.time_left > 0:
            return True
        return await self._on_timeout(session)

    async def _on_timeout(self, session: Session) -> bool:
        code = session.code
        if session.phase == Phase.CLUES:
            await self._enter_phase(session, Phase.DISCUSSION, session.discussion_time)
            return True
        if session.phase == Phase.DISCUSSION:
            await self._enter_phase(session, Phase.VOTING, session.voting_time)
            return True

        logger.info("[%s] Voting time is up — resolving", code)
        await self.resolve_voting(session)
        return False

    async def _enter_phase(self, session: Session, phase: Phase, duration: int) -> None:
        previous = session.phase
        session.phase = phase
        session.time_left = duration
        await self.store.put(session)
        await self.broadcaster.emit_session(session.code, session)
        await emit_action(self.broadcaster, session.code, {"type": "phase-changed", "phase": phase.value})
        logger.info("[%s] Phase: %s → %s (%ds, timeout)", session.code, previous.value, phase.value, duration)

    # ── Voting resolution (shared with the dispatcher) ────────────────────────

    async def resolve_voting(self, session: Session) -> VoteOutcome:
        """
        Close the voting phase. Caller must hold the session lock and pass a
        freshly loaded session still in `voting`.
        """
        code = session.code
        self.registry.stop(code)

        outcome = self.engine.process_votes(session)
        session.phase = Phase.RESULTS
        session.winner = outcome.winner

        game_winner = self.engine.check_game_end(session) if outcome.winner else None
        if game_winner:
            session.winner = game_winner

        await self.store.put(session)
        await self.broadcaster.emit_session(code, session)

        if outcome.winner:
            await emit_action(self.broadcaster, code, {
                "type": "round-ended",
                "winner": outcome.winner.value,
                "ejected_participant": outcome.ejected_participant,
                "is_tie": outcome.is_tie,
                "tally": outcome.tally,
                "skip_votes": outcome.skip_votes,
            })
        if game_winner:
            logger.info("[%s] Game over after round %d — winner: %s", code, session.round, game_winner.value)
            await emit_action(self.broadcaster, code, {"type": "game-ended", "winner": game_winner.value})
            if self.stats is not None:
                await self.stats.save_game_result(session)
        return outcome

    async def _resolve_after_delay(self, code: str, delay: float) -> None:
        await self.sleep(delay)
        async with self.locks.for_code(code):
            session = await self.store.get(code)
            if session is None or session.phase != Phase.VOTING:
                return
            await self.resolve_voting(session)
