"""
Round Engine — pure deterministic rules, no I/O beyond the word lookup.

Responsibilities:
- Impostor selection (uniform over alive participants)
- Round start (new impostor, new secret word, per-round resets)
- Vote tallying, tie detection and scoring
- Impostor word-guess checking and reward
- End-of-game evaluation by cumulative points
- Host settings clamping

Every method mutates the Session it is given in memory; persisting and
broadcasting are the caller's job.
"""
import logging
import random
import unicodedata
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from engine.errors import NoAliveParticipants
from models.game import (
    Participant, Phase, Role, Session, SettingsUpdatedAction, Winner, SKIP_VOTE,
)

logger = logging.getLogger(__name__)


# ── Scoring table ─────────────────────────────────────────────────────────────

# Impostor ejected: every alive honest participant
PLAYERS_WIN_BASE = 20
PLAYERS_WIN_CLUE_BONUS = 5
PLAYERS_WIN_CORRECT_VOTE_BONUS = 10
PLAYERS_WIN_PARTICIPATION_BONUS = 5

# Innocent ejected: impostor only
IMPOSTOR_EJECT_BASE = 30
IMPOSTOR_UNSUSPECTED_BONUS = 20  # nobody voted for the impostor
IMPOSTOR_EJECT_CLUE_BONUS = 10

# Tie or skip majority: impostor only
IMPOSTOR_TIE_BASE = 25
IMPOSTOR_GENUINE_TIE_BONUS = 15
IMPOSTOR_TIE_CLUE_BONUS = 10

# Correct word guess by the impostor
WORD_GUESS_POINTS = 50
WORD_GUESS_TIME_DIVISOR = 10  # +1 point per 10 seconds left

# Host-adjustable settings: field -> (min, max)
SETTING_BOUNDS: Dict[str, Tuple[int, int]] = {
    "max_rounds": (1, 10),
    "clues_time": (30, 600),
    "discussion_time": (30, 600),
    "voting_time": (10, 300),
}


@dataclass
class VoteOutcome:
    ejected_participant: Optional[str]
    is_tie: bool
    winner: Optional[Winner]
    tally: Dict[str, int] = field(default_factory=dict)
    skip_votes: int = 0
    points_awarded: Dict[str, int] = field(default_factory=dict)


def normalize_word(word: str) -> str:
    """Lowercase, trim and strip diacritics ("Café " -> "cafe")."""
    decomposed = unicodedata.normalize("NFD", word.lower().strip())
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class RoundEngine:
    """
    Game rules for the impostor game.
    `word_provider` must expose `async get_random_word(category=None)`.
    """

    def __init__(self, word_provider, rng: Optional[random.Random] = None):
        self.word_provider = word_provider
        self.rng = rng or random.Random()

    # ── Roles ─────────────────────────────────────────────────────────────────

    def assign_impostor(self, participants: Dict[str, Participant]) -> str:
        """
        Pick the impostor uniformly among alive participants (Fisher–Yates via
        random.shuffle) and set every participant's role accordingly.
        Raises NoAliveParticipants when nobody is alive.
        """
        alive_ids = [pid for pid, p in participants.items() if p.alive]
        if not alive_ids:
            raise NoAliveParticipants()

        self.rng.shuffle(alive_ids)
        impostor_id = alive_ids[0]

        for pid, participant in participants.items():
            participant.role = Role.IMPOSTOR if pid == impostor_id else Role.PLAYER
        return impostor_id

    # ── Round lifecycle ───────────────────────────────────────────────────────

    async def start_round(self, session: Session) -> None:
        """
        Advance to the next round's clue phase.

        The impostor is re-drawn every round regardless of
        `change_impostor_each_round`; the flag is stored but not consulted.
        """
        # Fetch the word before touching the session so an interrupted await
        # never leaves a half-started round behind.
        choice = await self.word_provider.get_random_word()

        session.impostor_id = self.assign_impostor(session.participants)
        session.current_word = choice.word
        session.current_category = choice.category
        session.clues = {}
        session.votes = {}
        session.round += 1
        session.phase = Phase.CLUES
        session.time_left = session.clues_time
        session.winner = None

        for participant in session.alive_participants():
            participant.has_given_clue = False
            participant.clue = None
            participant.has_voted = False

        logger.info(
            "[%s] Round %d/%d started (category=%s, %d alive)",
            session.code, session.round, session.max_rounds,
            session.current_category, len(session.alive_participants()),
        )

    # ── Voting ────────────────────────────────────────────────────────────────

    def process_votes(self, session: Session) -> VoteOutcome:
        """
        Tally votes and award points.

        The skip bucket competes with participants: a participant is ejected
        only with a strictly higher count than every other participant and
        than the skip bucket. Any tie at the top, a skip majority, or no votes
        at all make the impostor the round winner.
        """
        skip_votes = sum(1 for v in session.votes.values() if v == SKIP_VOTE)
        tally = dict(Counter(v for v in session.votes.values() if v != SKIP_VOTE))

        max_votes = max([skip_votes, *tally.values()])
        leaders = [pid for pid, count in tally.items() if count == max_votes] if max_votes > 0 else []
        is_tie = len(leaders) > 1 or (len(leaders) == 1 and skip_votes == max_votes)
        ejected = leaders[0] if len(leaders) == 1 and not is_tie else None

        impostor = session.impostor
        awarded: Dict[str, int] = {}

        if ejected is not None and ejected == session.impostor_id:
            winner = Winner.PLAYERS
            for p in session.alive_participants():
                if p.id == session.impostor_id:
                    continue
                points = PLAYERS_WIN_BASE
                if p.has_given_clue:
                    points += PLAYERS_WIN_CLUE_BONUS
                if session.votes.get(p.id) == session.impostor_id:
                    points += PLAYERS_WIN_CORRECT_VOTE_BONUS
                points += PLAYERS_WIN_PARTICIPATION_BONUS
                p.points += points
                awarded[p.id] = points
        elif ejected is not None:
            winner = Winner.IMPOSTOR
            if impostor:
                points = IMPOSTOR_EJECT_BASE
                votes_against = sum(1 for v in session.votes.values() if v == session.impostor_id)
                if votes_against == 0:
                    points += IMPOSTOR_UNSUSPECTED_BONUS
                if impostor.has_given_clue:
                    points += IMPOSTOR_EJECT_CLUE_BONUS
                impostor.points += points
                awarded[impostor.id] = points
        else:
            winner = Winner.IMPOSTOR
            if impostor:
                points = IMPOSTOR_TIE_BASE
                if is_tie:
                    points += IMPOSTOR_GENUINE_TIE_BONUS
                if impostor.has_given_clue:
                    points += IMPOSTOR_TIE_CLUE_BONUS
                impostor.points += points
                awarded[impostor.id] = points

        logger.info(
            "[%s] Votes: tally=%s skip=%d ejected=%s tie=%s winner=%s",
            session.code, tally, skip_votes, ejected, is_tie, winner.value,
        )
        return VoteOutcome(
            ejected_participant=ejected,
            is_tie=is_tie,
            winner=winner,
            tally=tally,
            skip_votes=skip_votes,
            points_awarded=awarded,
        )

    # ── Word guess ────────────────────────────────────────────────────────────

    @staticmethod
    def check_word_guess(guess: str, actual_word: str) -> bool:
        return normalize_word(guess) == normalize_word(actual_word)

    def award_word_guess(self, session: Session, impostor: Participant) -> int:
        """Close the round in the impostor's favour; returns points awarded."""
        points = WORD_GUESS_POINTS + max(0, session.time_left // WORD_GUESS_TIME_DIVISOR)
        impostor.points += points
        session.winner = Winner.IMPOSTOR
        session.phase = Phase.RESULTS
        return points

    # ── Game end ──────────────────────────────────────────────────────────────

    @staticmethod
    def check_game_end(session: Session) -> Optional[Winner]:
        """
        None until the last round has been played. Then alive `player`-role
        points are summed against the impostor's; the impostor wins ties.
        """
        if session.round < session.max_rounds:
            return None

        players_points = sum(
            p.points for p in session.participants.values()
            if p.role == Role.PLAYER and p.alive
        )
        impostor = session.impostor
        impostor_points = impostor.points if impostor else 0
        return Winner.IMPOSTOR if impostor_points >= players_points else Winner.PLAYERS

    # ── Settings ──────────────────────────────────────────────────────────────

    @staticmethod
    def apply_settings(session: Session, action: SettingsUpdatedAction) -> None:
        """Apply host settings clamped to SETTING_BOUNDS; unset/zero values keep the current one."""
        for name, (low, high) in SETTING_BOUNDS.items():
            requested = getattr(action, name)
            value = requested if requested else getattr(session, name)
            setattr(session, name, clamp(int(value), low, high))
        # Rounds already played cannot be undone
        if session.phase != Phase.LOBBY:
            session.max_rounds = max(session.max_rounds, session.round, 1)
        if action.change_impostor_each_round is not None:
            session.change_impostor_each_round = action.change_impostor_each_round

    # ── Progress checks ───────────────────────────────────────────────────────

    @staticmethod
    def all_clues_given(session: Session) -> bool:
        alive = session.alive_participants()
        return bool(alive) and all(p.has_given_clue for p in alive)

    @staticmethod
    def all_votes_cast(session: Session) -> bool:
        alive = session.alive_participants()
        return bool(alive) and all(p.has_voted for p in alive)
