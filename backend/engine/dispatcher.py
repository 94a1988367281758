"""
Action Dispatcher — validates and applies participant actions.

Flow per action:
  parse (tagged union) → lock session → re-fetch → validate → mutate →
  persist → broadcast state → broadcast the action itself

Validation failures (GameError) go privately to the actor and change nothing.
Unknown action types are relayed to the room untouched.
"""
import logging
from typing import Any, Dict, Optional

from pydantic import TypeAdapter, ValidationError

from config import settings
from engine.broadcast import Broadcaster, emit_action
from engine.errors import ActionRejected, GameError, ParticipantNotFound, SessionNotFound
from engine.phase_timer import PhaseTimer
from engine.round_engine import RoundEngine
from engine.session_locks import SessionLocks
from models.game import (
    ACTION_TYPES, ACTIVE_PHASES, SKIP_VOTE,
    ClueSubmittedAction, GameAction, GameStartedAction, NextRoundAction,
    Participant, Phase, Role, Session, SettingsUpdatedAction,
    VoteCastAction, WordGuessedAction,
)
from utils.word_filter import contains_secret_word

logger = logging.getLogger(__name__)

MAX_CLUE_LENGTH = 100

_action_adapter = TypeAdapter(GameAction)


class ActionDispatcher:
    def __init__(
        self,
        store,
        broadcaster: Broadcaster,
        engine: RoundEngine,
        timer: PhaseTimer,
        locks: SessionLocks,
        stats=None,
        min_participants: Optional[int] = None,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.engine = engine
        self.timer = timer
        self.locks = locks
        self.stats = stats
        self.min_participants = min_participants or settings.min_participants_to_start

    # ── Entry point ───────────────────────────────────────────────────────────

    async def dispatch(self, code: str, actor_id: str, raw_action: Dict[str, Any]) -> None:
        """Apply one action from `actor_id`. Never raises."""
        try:
            await self._dispatch(code, actor_id, raw_action)
        except GameError as e:
            logger.info("[%s] Action from %s rejected: %s (%s)", code, actor_id, e.message, e.code)
            await self.broadcaster.send_to(code, actor_id, "error", e.to_payload())
        except Exception:
            logger.exception("[%s] Action from %s failed", code, actor_id)
            await self.broadcaster.send_to(code, actor_id, "error", {
                "code": "SERVER_ERROR",
                "message": "Something went wrong processing that action",
            })

    async def _dispatch(self, code: str, actor_id: str, raw_action: Dict[str, Any]) -> None:
        if not isinstance(raw_action, dict):
            raise ActionRejected("Action must be an object")

        action_type = raw_action.get("type")
        if action_type not in ACTION_TYPES:
            await emit_action(self.broadcaster, code, {**raw_action, "participant_id": actor_id})
            return

        try:
            action = _action_adapter.validate_python(raw_action)
        except ValidationError as e:
            raise ActionRejected(f"Malformed {action_type} action: {e.error_count()} invalid field(s)") from e

        async with self.locks.for_code(code):
            session = await self.store.get(code)
            if session is None:
                raise SessionNotFound(code)
            actor = session.participants.get(actor_id)
            if actor is None:
                raise ParticipantNotFound(actor_id)

            if isinstance(action, GameStartedAction):
                await self._handle_game_started(session, actor)
            elif isinstance(action, ClueSubmittedAction):
                await self._handle_clue(session, actor, action)
            elif isinstance(action, WordGuessedAction):
                await self._handle_word_guess(session, actor, action)
            elif isinstance(action, VoteCastAction):
                await self._handle_vote(session, actor, action)
            elif isinstance(action, NextRoundAction):
                await self._handle_next_round(session, actor)
            elif isinstance(action, SettingsUpdatedAction):
                await self._handle_settings(session, actor, action)

    # ── Handlers ──────────────────────────────────────────────────────────────

    async def _handle_game_started(self, session: Session, actor: Participant) -> None:
        _require_host(session, actor, "start the game")
        _require_phase(session, Phase.LOBBY)
        if len(session.participants) < self.min_participants:
            raise ActionRejected(
                f"At least {self.min_participants} players are needed to start",
                code="NOT_ENOUGH_PLAYERS",
            )

        await self.engine.start_round(session)
        await self._commit(session, {"type": "game-started", "participant_id": actor.id})
        self.timer.start(session.code)

    async def _handle_clue(self, session: Session, actor: Participant, action: ClueSubmittedAction) -> None:
        _require_phase(session, Phase.CLUES)
        _require_alive(actor)
        if actor.has_given_clue:
            raise ActionRejected("You already gave a clue this round", code="ALREADY_SUBMITTED")

        clue = action.clue.strip()[:MAX_CLUE_LENGTH]
        if not clue:
            raise ActionRejected("Clue cannot be empty", code="EMPTY_CLUE")
        # Never checked for the impostor: the rejection itself would leak the word
        if actor.role != Role.IMPOSTOR and contains_secret_word(clue, session.current_word):
            raise ActionRejected("Your clue cannot contain the secret word", code="CLUE_REVEALS_WORD")

        actor.has_given_clue = True
        actor.clue = clue
        session.clues[actor.id] = clue

        if not self.engine.all_clues_given(session):
            await self._commit(session, {"type": "clue-submitted", "participant_id": actor.id, "clue": clue})
            return

        self.timer.stop(session.code)
        session.phase = Phase.DISCUSSION
        session.time_left = session.discussion_time
        await self._commit(session, {"type": "clue-submitted", "participant_id": actor.id, "clue": clue})
        await emit_action(self.broadcaster, session.code, {"type": "phase-changed", "phase": Phase.DISCUSSION.value})
        self.timer.start(session.code)
        logger.info("[%s] All clues in — discussion (%ds)", session.code, session.discussion_time)

    async def _handle_word_guess(self, session: Session, actor: Participant, action: WordGuessedAction) -> None:
        if session.phase not in ACTIVE_PHASES:
            raise ActionRejected("The word can only be guessed during a round", code="INVALID_PHASE")
        if actor.role != Role.IMPOSTOR or session.impostor_id != actor.id:
            raise ActionRejected("Only the impostor can guess the word", code="NOT_IMPOSTOR")
        if not session.current_word:
            raise ActionRejected("There is no word to guess", code="NO_WORD")

        correct = self.engine.check_word_guess(action.guessed_word, session.current_word)
        attempt = {
            "type": "word-guessed",
            "participant_id": actor.id,
            "guessed_word": action.guessed_word,
            "correct": correct,
        }
        if not correct:
            await emit_action(self.broadcaster, session.code, attempt)
            return

        self.timer.stop(session.code)
        points = self.engine.award_word_guess(session, actor)
        logger.info("[%s] Impostor %s guessed the word (+%d)", session.code, actor.id, points)
        await self._commit(session, attempt)
        await emit_action(self.broadcaster, session.code, {
            "type": "round-ended",
            "winner": session.winner.value,
            "word_guessed": True,
        })

    async def _handle_vote(self, session: Session, actor: Participant, action: VoteCastAction) -> None:
        _require_phase(session, Phase.VOTING)
        _require_alive(actor)
        if actor.has_voted:
            raise ActionRejected("You already voted this round", code="ALREADY_VOTED")
        target = action.voted_for
        if target != SKIP_VOTE and target not in session.participants:
            raise ActionRejected("You can only vote for a player in this game", code="INVALID_TARGET")

        session.votes[actor.id] = target
        actor.has_voted = True
        await self._commit(session, {"type": "vote-cast", "participant_id": actor.id, "voted_for": target})

        if self.engine.all_votes_cast(session):
            logger.info("[%s] All votes in — resolving shortly", session.code)
            self.timer.schedule_vote_resolution(session.code)

    async def _handle_next_round(self, session: Session, actor: Participant) -> None:
        _require_host(session, actor, "start the next round")
        _require_phase(session, Phase.RESULTS)

        game_winner = self.engine.check_game_end(session)
        if game_winner:
            self.timer.stop(session.code)
            session.winner = game_winner
            await self.store.put(session)
            await self.broadcaster.emit_session(session.code, session)
            await emit_action(self.broadcaster, session.code, {"type": "game-ended", "winner": game_winner.value})
            if self.stats is not None:
                await self.stats.save_game_result(session)
            return

        await self.engine.start_round(session)
        await self._commit(session, {"type": "next-round", "participant_id": actor.id, "round": session.round})
        self.timer.start(session.code)

    async def _handle_settings(self, session: Session, actor: Participant, action: SettingsUpdatedAction) -> None:
        _require_host(session, actor, "change the settings")
        if session.phase not in (Phase.LOBBY, Phase.RESULTS):
            raise ActionRejected("Settings can only change between rounds", code="INVALID_PHASE")

        self.engine.apply_settings(session, action)
        # Echo the clamped values, not the request
        await self._commit(session, {
            "type": "settings-updated",
            "participant_id": actor.id,
            "max_rounds": session.max_rounds,
            "clues_time": session.clues_time,
            "discussion_time": session.discussion_time,
            "voting_time": session.voting_time,
            "change_impostor_each_round": session.change_impostor_each_round,
        })

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _commit(self, session: Session, action: Dict[str, Any]) -> None:
        """Persist, then broadcast the new state and the action."""
        await self.store.put(session)
        await self.broadcaster.emit_session(session.code, session)
        await emit_action(self.broadcaster, session.code, action)


def _require_host(session: Session, actor: Participant, what: str) -> None:
    if session.host_id != actor.id:
        raise ActionRejected(f"Only the host can {what}", code="NOT_HOST")


def _require_phase(session: Session, phase: Phase) -> None:
    if session.phase != phase:
        raise ActionRejected(
            f"Not allowed during {session.phase.value} (needs {phase.value})",
            code="INVALID_PHASE",
        )


def _require_alive(actor: Participant) -> None:
    if not actor.alive:
        raise ActionRejected("Eliminated players cannot act", code="NOT_ALIVE")
