from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Optional, List, Dict, Literal, Union
from enum import Enum
from datetime import datetime, timezone
import uuid


def _utcnow() -> datetime:
    """Timezone-aware UTC datetime (replaces deprecated datetime.utcnow)."""
    return datetime.now(timezone.utc)


class Phase(str, Enum):
    LOBBY = "lobby"
    CLUES = "clues"
    DISCUSSION = "discussion"
    VOTING = "voting"
    RESULTS = "results"


# Phases with a running countdown
ACTIVE_PHASES = frozenset({Phase.CLUES, Phase.DISCUSSION, Phase.VOTING})


class Role(str, Enum):
    PLAYER = "player"
    IMPOSTOR = "impostor"


class ParticipantStatus(str, Enum):
    ALIVE = "alive"
    ELIMINATED = "eliminated"


class Winner(str, Enum):
    PLAYERS = "players"
    IMPOSTOR = "impostor"


class PlayerColor(str, Enum):
    RED = "red"
    BLUE = "blue"
    GREEN = "green"
    PINK = "pink"
    ORANGE = "orange"
    YELLOW = "yellow"
    PURPLE = "purple"
    CYAN = "cyan"
    WHITE = "white"
    BROWN = "brown"
    LIME = "lime"
    BLACK = "black"


# Palette order is the assignment order for new participants.
PALETTE: List[PlayerColor] = list(PlayerColor)

SKIP_VOTE = "skip"


class Participant(BaseModel):
    id: str
    name: str
    color: PlayerColor
    role: Optional[Role] = None
    status: ParticipantStatus = ParticipantStatus.ALIVE
    has_given_clue: bool = False
    clue: Optional[str] = None
    has_voted: bool = False
    points: int = 0

    @property
    def alive(self) -> bool:
        return self.status == ParticipantStatus.ALIVE


class Session(BaseModel):
    """One game room. Canonical state: never stripped of the secret word."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    code: str
    phase: Phase = Phase.LOBBY
    host_id: str
    # Insertion order is meaningful: host reassignment picks the first entry.
    participants: Dict[str, Participant] = {}
    current_word: Optional[str] = None
    current_category: Optional[str] = None
    impostor_id: Optional[str] = None
    clues: Dict[str, str] = {}                 # participant_id -> clue text
    votes: Dict[str, str] = {}                 # participant_id -> participant_id | "skip"
    round: int = 0
    max_rounds: int = 5
    clues_time: int = 180
    discussion_time: int = 180
    voting_time: int = 60
    time_left: int = 0
    change_impostor_each_round: bool = True   # stored and editable, not consulted by start_round
    winner: Optional[Winner] = None
    created_at: datetime = Field(default_factory=_utcnow)

    def alive_participants(self) -> List[Participant]:
        return [p for p in self.participants.values() if p.alive]

    @property
    def impostor(self) -> Optional[Participant]:
        if self.impostor_id is None:
            return None
        return self.participants.get(self.impostor_id)


class SessionRecord(BaseModel):
    """Durable-store document: the whole session as one opaque JSON blob."""

    model_config = ConfigDict(populate_by_name=True)

    code: str
    serialized_state: str = Field(alias="serializedState")
    updated_at: datetime = Field(default_factory=_utcnow, alias="updatedAt")


# ── Game results / statistics ─────────────────────────────────────────────────

class PointsTotals(BaseModel):
    impostor: int = 0
    players: int = 0


class GameResult(BaseModel):
    game_id: str
    code: str
    winner: Winner
    round: int
    max_rounds: int
    impostor_id: Optional[str] = None
    impostor_name: Optional[str] = None
    player_count: int
    created_at: datetime
    ended_at: datetime
    duration: int  # seconds
    total_points: PointsTotals = Field(default_factory=PointsTotals)
    clues_given: int = 0
    votes_cast: int = 0


class GameStatsQuery(BaseModel):
    winner: Optional[Winner] = None
    min_rounds: Optional[int] = None
    max_rounds: Optional[int] = None
    min_players: Optional[int] = None
    max_players: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    impostor_id: Optional[str] = None
    limit: int = Field(default=100, ge=1, le=10000)
    offset: int = Field(default=0, ge=0)


class ImpostorStats(BaseModel):
    total_games: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    average_points: float = 0.0
    games: List[GameResult] = []


class GeneralStats(BaseModel):
    total_games: int = 0
    impostor_wins: int = 0
    players_wins: int = 0
    average_duration: float = 0.0
    average_players: float = 0.0
    average_rounds: float = 0.0


# ── Participant actions (client → server) ─────────────────────────────────────

class GameStartedAction(BaseModel):
    type: Literal["game-started"] = "game-started"


class ClueSubmittedAction(BaseModel):
    type: Literal["clue-submitted"] = "clue-submitted"
    clue: str


class WordGuessedAction(BaseModel):
    type: Literal["word-guessed"] = "word-guessed"
    guessed_word: str


class VoteCastAction(BaseModel):
    type: Literal["vote-cast"] = "vote-cast"
    voted_for: str  # participant id or "skip"


class NextRoundAction(BaseModel):
    type: Literal["next-round"] = "next-round"


class SettingsUpdatedAction(BaseModel):
    type: Literal["settings-updated"] = "settings-updated"
    max_rounds: Optional[int] = None
    clues_time: Optional[int] = None
    discussion_time: Optional[int] = None
    voting_time: Optional[int] = None
    change_impostor_each_round: Optional[bool] = None


GameAction = Annotated[
    Union[
        GameStartedAction,
        ClueSubmittedAction,
        WordGuessedAction,
        VoteCastAction,
        NextRoundAction,
        SettingsUpdatedAction,
    ],
    Field(discriminator="type"),
]

ACTION_TYPES = frozenset({
    "game-started",
    "clue-submitted",
    "word-guessed",
    "vote-cast",
    "next-round",
    "settings-updated",
})


# ── HTTP request models ───────────────────────────────────────────────────────

class CreateGameRequest(BaseModel):
    host_id: str = Field(min_length=1)
    host_name: str = Field(min_length=1, max_length=40)
