from __future__ import annotations

from dataclasses import dataclass

from .config import ShrinkRulesConfig
from .local_store import LocalStore
from .reconcile import LoadOutcome, ReconciliationEngine
from .remote import RemoteStoreClient
from .session import SessionManager
from .state import AppState


@dataclass
class Client:
    state: AppState
    local: LocalStore
    session: SessionManager
    engine: ReconciliationEngine
    remote: RemoteStoreClient | None = None

    def close(self) -> None:
        self.local.close()


def open_client(config: ShrinkRulesConfig) -> Client:
    """Wire the client components together without touching the network."""
    local = LocalStore(config.local_db)
    remote = (
        RemoteStoreClient(config.remote_url, timeout_s=config.request_timeout_s)
        if config.remote_url
        else None
    )
    session = SessionManager(local, remote, offline_password=config.admin_password)
    state = AppState()
    engine = ReconciliationEngine(state, local, session, remote)
    return Client(state=state, local=local, session=session, engine=engine, remote=remote)


def boot(client: Client) -> LoadOutcome:
    client.session.restore()
    return client.engine.load()
