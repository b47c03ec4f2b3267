from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from uuid import uuid4

logger = logging.getLogger(__name__)


class TokenStore:
    """In-memory bearer tokens with an expiry per token.

    Expiry is enforced on every lookup; :meth:`sweep` only reclaims memory.
    Tokens do not survive a restart.
    """

    def __init__(self, ttl_hours: float = 24.0, *, clock: Callable[[], float] = time.time) -> None:
        self.ttl_s = ttl_hours * 3600.0
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens: dict[str, float] = {}

    def issue(self) -> str:
        token = uuid4().hex
        with self._lock:
            self._tokens[token] = self._clock() + self.ttl_s
        return token

    def is_valid(self, token: str | None) -> bool:
        if not token:
            return False
        with self._lock:
            expires_at = self._tokens.get(token)
            if expires_at is None:
                return False
            if self._clock() > expires_at:
                del self._tokens[token]
                return False
            return True

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [token for token, expires_at in self._tokens.items() if now > expires_at]
            for token in expired:
                del self._tokens[token]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


class TokenSweeper:
    def __init__(self, store: TokenStore, interval_s: float = 3600.0) -> None:
        self.store = store
        self.interval_s = interval_s
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()

    def tick(self) -> None:
        removed = self.store.sweep()
        if removed:
            logger.debug("expired admin tokens removed: %d", removed)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def _run(self) -> None:
        interval_s = max(1.0, self.interval_s)
        while not self._stop.wait(interval_s):
            self.tick()
