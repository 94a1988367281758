"""
WebSocket connection registry and the engine's broadcast sink.

Server → client messages are flat JSON objects: {"type": <event>, **payload}.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket

from engine.visibility import session_view
from models.game import Session

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Tracks active WebSocket connections per game.
    Safe for asyncio single-threaded event loop (no extra locking needed).
    """

    def __init__(self):
        # {code: {participant_id: WebSocket}}
        self._games: Dict[str, Dict[str, WebSocket]] = {}

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    async def connect(self, code: str, participant_id: str, ws: WebSocket) -> None:
        await ws.accept()
        self.register(code, participant_id, ws)

    def register(self, code: str, participant_id: str, ws: WebSocket) -> None:
        self._games.setdefault(code, {})[participant_id] = ws
        logger.debug("[%s] %s connected (%d total)", code, participant_id, self.count(code))

    def disconnect(self, code: str, participant_id: str, ws: Optional[WebSocket] = None) -> None:
        """Drop a connection. With `ws`, only if it is still the registered one."""
        game_conns = self._games.get(code, {})
        if ws is not None and game_conns.get(participant_id) is not ws:
            return
        game_conns.pop(participant_id, None)
        if not game_conns:
            self._games.pop(code, None)

    def count(self, code: str) -> int:
        return len(self._games.get(code, {}))

    def is_connected(self, code: str, participant_id: str) -> bool:
        return participant_id in self._games.get(code, {})

    # ── Sending ────────────────────────────────────────────────────────────────

    async def _send(self, code: str, participant_id: str, ws: WebSocket, message: Dict[str, Any]) -> None:
        try:
            await ws.send_json(message)
        except Exception as exc:
            logger.warning("[%s] send to %s failed: %s", code, participant_id, exc)
            self.disconnect(code, participant_id, ws)

    async def send_to(self, code: str, participant_id: str, event: str, payload: Dict[str, Any]) -> None:
        """Send a private message to a single participant."""
        ws = self._games.get(code, {}).get(participant_id)
        if ws:
            await self._send(code, participant_id, ws, {"type": event, **payload})

    async def emit_to_session(
        self,
        code: str,
        event: str,
        payload: Dict[str, Any],
        exclude: Optional[str] = None,
    ) -> None:
        """Broadcast the same message to every connected participant."""
        message = {"type": event, **payload}
        for pid, ws in list(self._games.get(code, {}).items()):
            if pid == exclude:
                continue
            await self._send(code, pid, ws, message)

    async def emit_session(self, code: str, session: Session) -> None:
        """`game_updated` to everyone, the secret word hidden from the impostor."""
        for pid, ws in list(self._games.get(code, {}).items()):
            await self._send(code, pid, ws, {"type": "game_updated", "game": session_view(session, pid)})


manager = ConnectionManager()
