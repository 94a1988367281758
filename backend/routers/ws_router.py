"""
WebSocket Hub — real-time game connection.

URL: /ws/{code}?playerId={participant_id}&playerName={display name}

Connection flow:
  1. Accept → join the session through the lifecycle manager
  2. Send private "joined_game" + the participant's view of the game
  3. Broadcast the new state and a "player-joined" action to the room
  4. Message loop (_handle_message dispatcher)
  5. On disconnect: remove the participant, broadcast "player-left"
     (or "game_deleted" when the room emptied)

Client → server message types:
  ping         — keep-alive heartbeat → responds with "pong"
  game_action  — {"type": "game_action", "data": {"type": "<action>", ...}}
"""
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from engine.broadcast import emit_action
from engine.errors import GameError, SessionNotFound
from engine.lifecycle import LifecycleOutcome
from services.game_runtime import GameRuntime, get_game_runtime

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/{code}")
async def websocket_endpoint(
    ws: WebSocket,
    code: str,
    playerId: str = Query(..., description="Participant id chosen by the client"),
    playerName: str = Query("", max_length=40, description="Display name"),
):
    runtime = get_game_runtime()
    manager = runtime.connections
    code = code.upper()

    await ws.accept()

    # ── Join ──────────────────────────────────────────────────────────────────
    try:
        result = await runtime.lifecycle.join(code, playerId, playerName or playerId)
    except SessionNotFound:
        await ws.close(code=4404, reason="Game not found")
        return
    except GameError as e:
        await ws.send_json({"type": "error", **e.to_payload()})
        await ws.close(code=4409, reason=e.message)
        return

    if result is LifecycleOutcome.FULL:
        await ws.send_json({"type": "error", "code": "GAME_FULL", "message": "This game is full"})
        await ws.close(code=4409, reason="Game is full")
        return

    session = result
    manager.register(code, playerId, ws)
    await manager.send_to(code, playerId, "joined_game", {"code": code, "participant_id": playerId})
    await manager.emit_session(code, session)
    await emit_action(manager, code, {"type": "player-joined", "participant_id": playerId})

    # ── Message loop ──────────────────────────────────────────────────────────
    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await manager.send_to(code, playerId, "error", {
                    "message": "Invalid JSON",
                    "code": "PARSE_ERROR",
                })
                continue
            if not isinstance(data, dict):
                await manager.send_to(code, playerId, "error", {
                    "message": "Messages must be JSON objects",
                    "code": "PARSE_ERROR",
                })
                continue

            msg_type = data.get("type", "")
            inner_data = data.get("data") if isinstance(data.get("data"), dict) else {}
            await _handle_message(runtime, code, playerId, msg_type, inner_data)

    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(code, playerId, ws)
        if manager.is_connected(code, playerId):
            logger.info("[%s] Stale socket for %s closed, newer one still live", code, playerId)
        else:
            await _on_leave(runtime, code, playerId)


async def _handle_message(
    runtime: GameRuntime,
    code: str,
    participant_id: str,
    msg_type: str,
    data: Dict[str, Any],
) -> None:
    try:
        await _dispatch_message(runtime, code, participant_id, msg_type, data)
    except WebSocketDisconnect:
        raise
    except Exception:
        logger.exception("[%s] Unhandled error in _handle_message (type=%s)", code, msg_type)
        await runtime.connections.send_to(code, participant_id, "error", {
            "message": "Internal server error",
            "code": "SERVER_ERROR",
        })


async def _dispatch_message(
    runtime: GameRuntime,
    code: str,
    participant_id: str,
    msg_type: str,
    data: Dict[str, Any],
) -> None:
    if msg_type == "ping":
        await runtime.connections.send_to(code, participant_id, "pong", {})

    elif msg_type == "game_action":
        await runtime.dispatcher.dispatch(code, participant_id, data)

    else:
        await runtime.connections.send_to(code, participant_id, "error", {
            "message": f"Unknown message type: {msg_type}",
            "code": "UNKNOWN_MESSAGE",
        })


async def _on_leave(runtime: GameRuntime, code: str, participant_id: str) -> None:
    manager = runtime.connections
    try:
        result = await runtime.lifecycle.remove_participant(code, participant_id)
    except GameError as e:
        # Session already gone or participant removed elsewhere
        logger.debug("[%s] Leave for %s ignored: %s", code, participant_id, e.message)
        return
    except Exception:
        logger.exception("[%s] Error removing %s on disconnect", code, participant_id)
        return

    if result is LifecycleOutcome.DELETED:
        await manager.emit_to_session(code, "game_deleted", {"code": code})
        return

    await manager.emit_session(code, result)
    await emit_action(manager, code, {"type": "player-left", "participant_id": participant_id})
