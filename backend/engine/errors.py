"""
Game error taxonomy.

GameError subclasses are the "expected" failures of the engine: they are
reported privately to the acting participant and never mutate or broadcast.
Anything else escaping the dispatcher is treated as SERVER_ERROR.
"""
from typing import Dict, Any


class GameError(Exception):
    code = "GAME_ERROR"

    def __init__(self, message: str, code: str = ""):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_payload(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ActionRejected(GameError):
    """Validation failure: wrong actor, wrong phase, missing prerequisite."""

    code = "INVALID_ACTION"


class SessionNotFound(GameError):
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_code: str):
        super().__init__(f"Game {session_code} not found")
        self.session_code = session_code


class ParticipantNotFound(GameError):
    code = "PARTICIPANT_NOT_FOUND"

    def __init__(self, participant_id: str):
        super().__init__(f"Participant {participant_id} is not in this game")
        self.participant_id = participant_id


class NoAliveParticipants(GameError):
    code = "NO_ALIVE_PARTICIPANTS"

    def __init__(self):
        super().__init__("No alive participants to choose an impostor from")
