"""Load-time merge and save-time dual write between local and shared state.

Load: local cache first, then the shared document when a remote is
configured. The remote copy wins whenever it can be fetched and is written
back into the local cache.

Save: the local cache is always written first. The shared document is only
written when the admin session is authenticated, and a failed push never
rolls back the local copy. Remote writes are last-write-wins.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import replace
from enum import Enum

from .errors import HttpError, NotAuthenticated, Unauthorized, Unreachable
from .local_store import LocalStore
from .models import Dataset
from .remote import RemoteStoreClient
from .session import SessionManager
from .state import AppState, Connectivity

logger = logging.getLogger(__name__)

SESSION_EXPIRED_NOTICE = "Admin session expired. Please login again."
SYNC_FAILED_NOTICE = "Saved locally, but failed to sync to server."
UNREACHABLE_NOTICE = "Saved locally, but server is unreachable."


class LoadOutcome(str, Enum):
    REMOTE_SKIPPED = "remote_skipped"
    REMOTE_LOADED = "remote_loaded"
    REMOTE_FAILED = "remote_failed"


class SaveOutcome(str, Enum):
    LOCAL_ONLY = "local_only"
    SYNCED = "synced"
    SYNC_FAILED = "sync_failed"
    SESSION_EXPIRED = "session_expired"


Mutation = Callable[[Dataset], Dataset]


class ReconciliationEngine:
    def __init__(
        self,
        state: AppState,
        local: LocalStore,
        session: SessionManager,
        remote: RemoteStoreClient | None = None,
    ) -> None:
        self.state = state
        self.local = local
        self.session = session
        self.remote = remote
        self._lock = threading.Lock()

    def load(self) -> LoadOutcome:
        with self._lock:
            dataset = self.local.load()
            if self.remote is None:
                outcome = LoadOutcome.REMOTE_SKIPPED
                connectivity = Connectivity.UNKNOWN
            else:
                try:
                    dataset = self.remote.fetch_shared(fallback=dataset)
                except (Unreachable, HttpError) as exc:
                    logger.warning("shared state fetch failed; using local copy: %s", exc)
                    outcome = LoadOutcome.REMOTE_FAILED
                    connectivity = Connectivity.OFFLINE
                else:
                    outcome = LoadOutcome.REMOTE_LOADED
                    connectivity = Connectivity.ONLINE
                    self.local.save(dataset)
                    self.state.last_sync = dataset.updated_at
            # Publish only once the cycle is complete.
            self.state.dataset = dataset
            self.state.connectivity = connectivity
            self.state.commit("load")
            return outcome

    def save(self) -> SaveOutcome:
        with self._lock:
            return self._save_locked()

    def _save_locked(self) -> SaveOutcome:
        dataset = self.state.dataset
        self.local.save(dataset)
        if self.remote is None or not self.session.authenticated or not self.session.token:
            self.state.commit("save")
            return SaveOutcome.LOCAL_ONLY

        try:
            updated_at = self.remote.push_shared(dataset, self.session.token)
        except Unauthorized:
            self.session.on_unauthorized()
            notice = self.state.notify("warn", SESSION_EXPIRED_NOTICE)
            self.state.commit("session_expired", notice)
            return SaveOutcome.SESSION_EXPIRED
        except HttpError as exc:
            logger.warning("shared state push failed: %s", exc)
            self.state.connectivity = Connectivity.OFFLINE
            notice = self.state.notify("warn", SYNC_FAILED_NOTICE)
            self.state.commit("sync_failed", notice)
            return SaveOutcome.SYNC_FAILED
        except Unreachable as exc:
            logger.warning("shared state push failed: %s", exc)
            self.state.connectivity = Connectivity.OFFLINE
            notice = self.state.notify("warn", UNREACHABLE_NOTICE)
            self.state.commit("sync_failed", notice)
            return SaveOutcome.SYNC_FAILED

        self.state.connectivity = Connectivity.ONLINE
        self.state.last_sync = updated_at
        if updated_at:
            self.state.dataset = replace(dataset, updated_at=updated_at)
        self.state.commit("synced")
        return SaveOutcome.SYNCED

    def apply(self, mutation: Mutation, *, require_admin: bool = True) -> SaveOutcome:
        """Apply ``mutation`` and persist the result as one unit of work.

        Validation errors raised by the mutation propagate before anything
        is published or written.
        """
        with self._lock:
            if require_admin and not self.session.authenticated:
                raise NotAuthenticated("Admin login required.")
            self.state.dataset = mutation(self.state.dataset)
            return self._save_locked()
