from typing import Any, Dict, Protocol

from models.game import Session


class Broadcaster(Protocol):
    """What the engine needs from the real-time transport."""

    async def emit_to_session(self, code: str, event: str, payload: Dict[str, Any]) -> None:
        """Same message to every participant connected to the session."""

    async def emit_session(self, code: str, session: Session) -> None:
        """`game_updated` to every participant, projected per recipient."""

    async def send_to(self, code: str, participant_id: str, event: str, payload: Dict[str, Any]) -> None:
        """Private message to one participant."""


async def emit_action(broadcaster: Broadcaster, code: str, action: Dict[str, Any]) -> None:
    """Announce a game event (`{"type": "action", "action": {...}}`) to the whole session."""
    await broadcaster.emit_to_session(code, "action", {"action": action})
