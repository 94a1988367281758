"""
Session Lifecycle Manager — create, join, leave and delete game rooms.

Capacity is reported as LifecycleOutcome.FULL and an emptied room as
LifecycleOutcome.DELETED; both are ordinary results, not errors.
"""
import logging
import random
import string
from enum import Enum
from typing import Iterable, Optional, Union

from config import settings
from engine.errors import ActionRejected, GameError, ParticipantNotFound, SessionNotFound
from engine.session_locks import SessionLocks
from engine.timer_registry import TimerRegistry
from models.game import ACTIVE_PHASES, PALETTE, Participant, Phase, PlayerColor, Role, Session

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_ATTEMPTS = 10


class LifecycleOutcome(str, Enum):
    FULL = "full"
    DELETED = "deleted"


def assign_color(existing: Iterable[Participant], rng: Optional[random.Random] = None) -> PlayerColor:
    """First palette color nobody uses; a random one once the palette is exhausted."""
    used = {p.color for p in existing}
    for color in PALETTE:
        if color not in used:
            return color
    return (rng or random).choice(PALETTE)


class SessionLifecycleManager:
    def __init__(
        self,
        store,
        registry: TimerRegistry,
        locks: Optional[SessionLocks] = None,
        rng: Optional[random.Random] = None,
        max_participants: Optional[int] = None,
    ):
        self.store = store
        self.registry = registry
        self.locks = locks or SessionLocks()
        self.rng = rng or random.Random()
        self.max_participants = max_participants or settings.max_participants

    # ── Create ────────────────────────────────────────────────────────────────

    def generate_code(self, length: Optional[int] = None) -> str:
        length = length or settings.code_length
        return "".join(self.rng.choice(CODE_ALPHABET) for _ in range(length))

    async def create_session(self, host_id: str, host_name: str) -> Session:
        for _ in range(CODE_ATTEMPTS):
            code = self.generate_code()
            if not await self.store.exists(code):
                break
        else:
            raise GameError("Could not allocate a free game code", code="CODE_UNAVAILABLE")

        session = Session(
            code=code,
            host_id=host_id,
            max_rounds=settings.default_max_rounds,
            clues_time=settings.default_clues_time,
            discussion_time=settings.default_discussion_time,
            voting_time=settings.default_voting_time,
        )
        session.participants[host_id] = self.new_participant(session, host_id, host_name)
        await self.store.put(session)
        logger.info("[%s] Game created by host %s (%s)", code, host_id, host_name)
        return session

    def new_participant(self, session: Session, participant_id: str, name: str) -> Participant:
        participant = Participant(
            id=participant_id,
            name=name,
            color=assign_color(session.participants.values(), self.rng),
        )
        # Mid-game joiners sit out as players until the next round reassigns roles
        if session.phase == Phase.RESULTS:
            participant.role = Role.PLAYER
        return participant

    # ── Join ──────────────────────────────────────────────────────────────────

    async def join(self, code: str, participant_id: str, name: str) -> Union[Session, LifecycleOutcome]:
        """
        Connect a participant to a room. Reconnecting with a known id is a
        no-op; new participants are refused while a round is being played.
        """
        async with self.locks.for_code(code):
            session = await self._load(code)
            if participant_id in session.participants:
                return session
            if session.phase in ACTIVE_PHASES:
                raise ActionRejected("A round is in progress — wait for the results", code="GAME_IN_PROGRESS")
            return await self._insert(session, self.new_participant(session, participant_id, name))

    async def add_participant(self, code: str, participant: Participant) -> Union[Session, LifecycleOutcome]:
        async with self.locks.for_code(code):
            session = await self._load(code)
            if participant.id in session.participants:
                return session
            return await self._insert(session, participant)

    async def _insert(self, session: Session, participant: Participant) -> Union[Session, LifecycleOutcome]:
        if len(session.participants) >= self.max_participants:
            logger.info("[%s] Join refused for %s — room full", session.code, participant.id)
            return LifecycleOutcome.FULL
        session.participants[participant.id] = participant
        await self.store.put(session)
        logger.info("[%s] %s (%s) joined — %d participants",
                    session.code, participant.id, participant.name, len(session.participants))
        return session

    # ── Leave / delete ────────────────────────────────────────────────────────

    async def remove_participant(self, code: str, participant_id: str) -> Union[Session, LifecycleOutcome]:
        """
        Remove a participant. The host role passes to the earliest-joined
        remaining participant; the last one out deletes the room.
        """
        async with self.locks.for_code(code):
            session = await self._load(code)
            if participant_id not in session.participants:
                raise ParticipantNotFound(participant_id)

            del session.participants[participant_id]

            if not session.participants:
                self.registry.stop(code)
                await self.store.delete(code)
                logger.info("[%s] Last participant left — game deleted", code)
                deleted = True
            else:
                deleted = False
                if session.host_id == participant_id:
                    session.host_id = next(iter(session.participants))
                    logger.info("[%s] Host %s left — host is now %s", code, participant_id, session.host_id)
                if session.impostor_id == participant_id:
                    session.impostor_id = None
                await self.store.put(session)

        if deleted:
            self.locks.discard(code)
            return LifecycleOutcome.DELETED
        return session

    async def delete_session(self, code: str) -> bool:
        """Administrative delete. Returns False when the room did not exist."""
        self.registry.stop(code)
        async with self.locks.for_code(code):
            existed = await self.store.exists(code)
            if existed:
                await self.store.delete(code)
        self.locks.discard(code)
        if existed:
            logger.info("[%s] Game deleted", code)
        return existed

    async def _load(self, code: str) -> Session:
        session = await self.store.get(code)
        if session is None:
            raise SessionNotFound(code)
        return session
