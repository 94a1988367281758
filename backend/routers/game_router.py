"""
Game HTTP endpoints.

Routes:
  POST   /api/games                        — Create game, host becomes first participant
  GET    /api/games/{code}                 — Public game state (secret word hidden)
  DELETE /api/games/{code}                 — Administrative delete
  GET    /api/stats/general                — Totals and averages over all finished games
  GET    /api/stats/impostor-wins          — Games the impostor won, newest first
  GET    /api/stats/players-wins           — Games the players won, newest first
  GET    /api/stats/impostor/{impostor_id} — Record of one participant as impostor
  POST   /api/stats/query                  — Filtered, paginated game history

Live play (joining, actions, timers) happens over the WebSocket hub.
"""
import logging
from typing import List

from fastapi import APIRouter, HTTPException, Query

from engine.errors import GameError
from engine.visibility import session_view
from models.game import CreateGameRequest, GameResult, GameStatsQuery, GeneralStats, ImpostorStats
from services.game_runtime import get_game_runtime

logger = logging.getLogger(__name__)

router = APIRouter(tags=["games"])


@router.post("/games", status_code=201)
async def create_game(body: CreateGameRequest):
    """Create a new game with the caller as host and sole participant."""
    runtime = get_game_runtime()
    try:
        session = await runtime.lifecycle.create_session(body.host_id, body.host_name)
    except GameError as e:
        raise HTTPException(status_code=503, detail=e.message)
    return {"code": session.code, "game": session_view(session, body.host_id)}


@router.get("/games/{code}")
async def get_game(code: str):
    """Anonymous view: word and category are never included."""
    session = await get_game_runtime().store.get(code.upper())
    if not session:
        raise HTTPException(status_code=404, detail="Game not found")
    return session_view(session)


@router.delete("/games/{code}", status_code=204)
async def delete_game(code: str):
    if not await get_game_runtime().lifecycle.delete_session(code.upper()):
        raise HTTPException(status_code=404, detail="Game not found")


# ── Statistics ────────────────────────────────────────────────────────────────

@router.get("/stats/general", response_model=GeneralStats)
async def general_stats():
    return await get_game_runtime().stats.general_stats()


@router.get("/stats/impostor-wins", response_model=List[GameResult])
async def impostor_wins(limit: int = Query(100, ge=1, le=10000)):
    return await get_game_runtime().stats.impostor_wins(limit)


@router.get("/stats/players-wins", response_model=List[GameResult])
async def players_wins(limit: int = Query(100, ge=1, le=10000)):
    return await get_game_runtime().stats.players_wins(limit)


@router.get("/stats/impostor/{impostor_id}", response_model=ImpostorStats)
async def impostor_stats(impostor_id: str):
    return await get_game_runtime().stats.impostor_stats(impostor_id)


@router.post("/stats/query", response_model=List[GameResult])
async def query_games(body: GameStatsQuery):
    return await get_game_runtime().stats.query_games(body)
