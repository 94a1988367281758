import asyncio
import os
from typing import Optional, List, Dict, Any

from models.game import SessionRecord, GameResult
from config import settings


class FirestoreService:
    """
    Durable store: session snapshots and historical game results.

    The sync client runs in the default executor so that session saves
    never block the event loop.
    """

    def __init__(self, client=None):
        self._client = client

    @property
    def db(self):
        # Built on first use: missing credentials surface as a failed durable
        # call, which callers already tolerate, not as a startup crash.
        if self._client is None:
            if settings.firestore_emulator_host:
                os.environ["FIRESTORE_EMULATOR_HOST"] = settings.firestore_emulator_host
            from google.cloud import firestore
            self._client = firestore.Client(project=settings.google_cloud_project or None)
        return self._client

    def _run(self, fn):
        """Run a sync Firestore call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, fn)

    # ── Collection helpers ────────────────────────────────────────────────────

    def _session_ref(self, code: str):
        return self.db.collection(settings.sessions_collection).document(code)

    def _results_ref(self):
        return self.db.collection(settings.results_collection)

    # ── Session snapshots ─────────────────────────────────────────────────────

    async def get_session_record(self, code: str) -> Optional[SessionRecord]:
        doc = await self._run(lambda: self._session_ref(code).get())
        if doc.exists:
            return SessionRecord.model_validate(doc.to_dict())
        return None

    async def put_session_record(self, record: SessionRecord) -> None:
        data = record.model_dump(by_alias=True)
        await self._run(lambda: self._session_ref(record.code).set(data))

    async def delete_session_record(self, code: str) -> None:
        await self._run(lambda: self._session_ref(code).delete())

    # ── Game results (write-once per game, upsert on re-send) ────────────────

    async def upsert_game_result(self, result: GameResult) -> None:
        data = result.model_dump(mode="json")
        # Keep timestamps native so Firestore can order by them
        data["created_at"] = result.created_at
        data["ended_at"] = result.ended_at
        await self._run(lambda: self._results_ref().document(result.game_id).set(data))

    async def list_game_results(self, equals: Optional[Dict[str, Any]] = None) -> List[GameResult]:
        """
        All results matching the equality filters, newest first.
        Range filters are applied by the caller to avoid composite indexes.
        """
        from google.cloud.firestore_v1.base_query import FieldFilter

        query = self._results_ref()
        for field_name, value in (equals or {}).items():
            query = query.where(filter=FieldFilter(field_name, "==", value))
        docs = await self._run(lambda: list(query.stream()))
        results = [GameResult.model_validate(d.to_dict()) for d in docs]
        results.sort(key=lambda r: r.ended_at, reverse=True)
        return results


_firestore_service: Optional["FirestoreService"] = None


def get_firestore_service() -> "FirestoreService":
    """Lazy singleton: no Firestore client exists until the first durable call."""
    global _firestore_service
    if _firestore_service is None:
        _firestore_service = FirestoreService()
    return _firestore_service
