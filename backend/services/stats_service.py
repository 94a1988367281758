"""
Game history and statistics.

One GameResult per finished game, keyed by game id (re-sending overwrites).
Queries pull equality-filtered results from Firestore and apply range
filters, ordering and pagination here.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from models.game import (
    GameResult, GameStatsQuery, GeneralStats, ImpostorStats,
    PointsTotals, Phase, Role, Session, Winner,
)

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class StatsService:
    def __init__(self, durable):
        self.durable = durable

    # ── Writing ───────────────────────────────────────────────────────────────

    @staticmethod
    def build_game_result(session: Session, ended_at: Optional[datetime] = None) -> GameResult:
        ended_at = ended_at or datetime.now(timezone.utc)
        impostor = session.impostor
        players_points = sum(p.points for p in session.participants.values() if p.role == Role.PLAYER)
        return GameResult(
            game_id=session.id,
            code=session.code,
            winner=session.winner,
            round=session.round,
            max_rounds=session.max_rounds,
            impostor_id=session.impostor_id,
            impostor_name=impostor.name if impostor else None,
            player_count=len(session.participants),
            created_at=session.created_at,
            ended_at=ended_at,
            duration=max(0, int((_as_utc(ended_at) - _as_utc(session.created_at)).total_seconds())),
            total_points=PointsTotals(
                impostor=impostor.points if impostor else 0,
                players=players_points,
            ),
            clues_given=len(session.clues),
            votes_cast=len(session.votes),
        )

    async def save_game_result(self, session: Session) -> Optional[GameResult]:
        """Record a finished game. Only sessions in results with a winner count."""
        if session.winner is None or session.phase != Phase.RESULTS:
            return None
        result = self.build_game_result(session)
        try:
            await self.durable.upsert_game_result(result)
        except Exception:
            logger.warning("[%s] Could not save game result", session.code, exc_info=True)
            return None
        logger.info("[%s] Game result saved (winner=%s)", session.code, result.winner.value)
        return result

    # ── Queries ───────────────────────────────────────────────────────────────

    async def query_games(self, query: Optional[GameStatsQuery] = None) -> List[GameResult]:
        query = query or GameStatsQuery()
        equals = {}
        if query.winner:
            equals["winner"] = query.winner.value
        if query.impostor_id:
            equals["impostor_id"] = query.impostor_id

        try:
            results = await self.durable.list_game_results(equals=equals)
        except Exception:
            logger.warning("Game history query failed", exc_info=True)
            return []

        def keep(r: GameResult) -> bool:
            if query.min_rounds is not None and r.round < query.min_rounds:
                return False
            if query.max_rounds is not None and r.round > query.max_rounds:
                return False
            if query.min_players is not None and r.player_count < query.min_players:
                return False
            if query.max_players is not None and r.player_count > query.max_players:
                return False
            if query.start_date is not None and _as_utc(r.created_at) < _as_utc(query.start_date):
                return False
            if query.end_date is not None and _as_utc(r.created_at) > _as_utc(query.end_date):
                return False
            return True

        filtered = sorted((r for r in results if keep(r)), key=lambda r: _as_utc(r.ended_at), reverse=True)
        return filtered[query.offset:query.offset + query.limit]

    async def impostor_wins(self, limit: int = 100) -> List[GameResult]:
        return await self.query_games(GameStatsQuery(winner=Winner.IMPOSTOR, limit=limit))

    async def players_wins(self, limit: int = 100) -> List[GameResult]:
        return await self.query_games(GameStatsQuery(winner=Winner.PLAYERS, limit=limit))

    async def impostor_stats(self, impostor_id: str) -> ImpostorStats:
        games = await self.query_games(GameStatsQuery(impostor_id=impostor_id, limit=1000))
        if not games:
            return ImpostorStats()
        wins = sum(1 for g in games if g.winner == Winner.IMPOSTOR)
        return ImpostorStats(
            total_games=len(games),
            wins=wins,
            losses=len(games) - wins,
            win_rate=wins / len(games) * 100,
            average_points=sum(g.total_points.impostor for g in games) / len(games),
            games=games,
        )

    async def general_stats(self) -> GeneralStats:
        games = await self.query_games(GameStatsQuery(limit=10000))
        if not games:
            return GeneralStats()
        total = len(games)
        impostor_wins = sum(1 for g in games if g.winner == Winner.IMPOSTOR)
        return GeneralStats(
            total_games=total,
            impostor_wins=impostor_wins,
            players_wins=total - impostor_wins,
            average_duration=sum(g.duration for g in games) / total,
            average_players=sum(g.player_count for g in games) / total,
            average_rounds=sum(g.round for g in games) / total,
        )
