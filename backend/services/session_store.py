"""
Session Store — Redis in front, Firestore behind.

Redis holds the live copy (TTL refreshed on every write) and is written in the
mutation path; a Redis failure on write fails the mutation. Firestore is
mirrored best-effort: its failures are logged and swallowed so the session
keeps running from Redis. Reads fall back to Firestore on a Redis miss or
error and re-populate Redis on a hit.
"""
import logging
from typing import Optional

from pydantic import ValidationError

from config import settings
from models.game import Session, SessionRecord

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, redis, durable, ttl_seconds: Optional[int] = None, key_prefix: Optional[str] = None):
        self.redis = redis
        self.durable = durable
        self.ttl_seconds = ttl_seconds or settings.session_ttl_seconds
        self.key_prefix = key_prefix or settings.session_key_prefix

    def _key(self, code: str) -> str:
        return f"{self.key_prefix}{code}"

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get(self, code: str) -> Optional[Session]:
        try:
            raw = await self.redis.get(self._key(code))
        except Exception:
            logger.warning("[%s] Redis read failed — trying durable store", code, exc_info=True)
            raw = None

        if raw:
            try:
                return Session.model_validate_json(raw)
            except ValidationError:
                logger.error("[%s] Corrupt session in Redis — trying durable store", code)

        session = await self._get_durable(code)
        if session is not None:
            await self._put_ephemeral(session, swallow=True)
        return session

    async def exists(self, code: str) -> bool:
        return await self.get(code) is not None

    async def _get_durable(self, code: str) -> Optional[Session]:
        try:
            record = await self.durable.get_session_record(code)
        except Exception:
            logger.warning("[%s] Durable read failed", code, exc_info=True)
            return None
        if record is None:
            return None
        try:
            return Session.model_validate_json(record.serialized_state)
        except ValidationError:
            logger.error("[%s] Corrupt session record in durable store", code)
            return None

    # ── Writes ────────────────────────────────────────────────────────────────

    async def put(self, session: Session) -> None:
        await self._put_ephemeral(session)
        await self._put_durable(session)

    async def _put_ephemeral(self, session: Session, swallow: bool = False) -> None:
        try:
            await self.redis.set(self._key(session.code), session.model_dump_json(), ex=self.ttl_seconds)
        except Exception:
            if not swallow:
                raise
            logger.warning("[%s] Redis re-populate failed", session.code, exc_info=True)

    async def _put_durable(self, session: Session) -> None:
        record = SessionRecord(
            code=session.code,
            serialized_state=session.model_dump_json(),
        )
        try:
            await self.durable.put_session_record(record)
        except Exception:
            logger.warning("[%s] Durable write failed — continuing from Redis", session.code, exc_info=True)

    async def delete(self, code: str) -> None:
        await self.redis.delete(self._key(code))
        try:
            await self.durable.delete_session_record(code)
        except Exception:
            logger.warning("[%s] Durable delete failed", code, exc_info=True)

    async def close(self) -> None:
        close = getattr(self.redis, "aclose", None) or getattr(self.redis, "close", None)
        if close is not None:
            await close()
