import asyncio
from typing import Dict


class SessionLocks:
    """
    One asyncio.Lock per session code.

    Held across re-fetch → mutate → persist → broadcast by both the action
    dispatcher and the phase timer, so writers for one session in this
    process never interleave. Not a cross-process lock.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def __contains__(self, code: str) -> bool:
        return code in self._locks

    def for_code(self, code: str) -> asyncio.Lock:
        lock = self._locks.get(code)
        if lock is None:
            lock = self._locks[code] = asyncio.Lock()
        return lock

    def discard(self, code: str) -> None:
        lock = self._locks.get(code)
        if lock is not None and not lock.locked():
            self._locks.pop(code, None)
