from __future__ import annotations

from pathlib import Path

import pytest

from shrinkrules.errors import HttpError, InvalidCredential, Unreachable
from shrinkrules.local_store import LocalStore
from shrinkrules.models import LoginResult
from shrinkrules.session import SessionManager


class _Remote:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.passwords: list[str] = []

    def login(self, password: str) -> LoginResult:
        self.passwords.append(password)
        if self.error is not None:
            raise self.error
        return LoginResult(token="tok-1", expires_in_hours=12)


@pytest.fixture
def local(tmp_path: Path):
    store = LocalStore(tmp_path / "local.sqlite")
    yield store
    store.close()


def test_restore_trusts_stored_token_without_network(local: LocalStore) -> None:
    local.save_token("persisted")
    remote = _Remote()
    session = SessionManager(local, remote)  # type: ignore[arg-type]

    assert session.restore() == "persisted"
    assert session.authenticated is True
    assert session.token == "persisted"
    assert remote.passwords == []


def test_offline_restore_discards_leftover_token(local: LocalStore) -> None:
    local.save_token("from-old-server")
    session = SessionManager(local, None, offline_password="admin123")

    assert session.restore() is None
    assert session.authenticated is False
    assert local.load_token() is None


def test_restore_without_token_stays_logged_out(local: LocalStore) -> None:
    session = SessionManager(local, _Remote())  # type: ignore[arg-type]

    assert session.restore() is None
    assert session.authenticated is False


def test_login_persists_token(local: LocalStore) -> None:
    remote = _Remote()
    session = SessionManager(local, remote)  # type: ignore[arg-type]

    assert session.login("  secret ") is True
    assert remote.passwords == ["secret"]
    assert session.authenticated is True
    assert session.expires_in_hours == 12
    assert local.load_token() == "tok-1"


def test_login_rejected_returns_false(local: LocalStore) -> None:
    remote = _Remote(InvalidCredential("Invalid password"))
    session = SessionManager(local, remote)  # type: ignore[arg-type]

    assert session.login("wrong") is False
    assert session.authenticated is False
    assert local.load_token() is None


def test_login_server_error_returns_false(local: LocalStore) -> None:
    session = SessionManager(local, _Remote(HttpError(500)))  # type: ignore[arg-type]

    assert session.login("secret") is False
    assert session.authenticated is False
    assert local.load_token() is None


def test_login_unreachable_propagates(local: LocalStore) -> None:
    session = SessionManager(local, _Remote(Unreachable("down")))  # type: ignore[arg-type]

    with pytest.raises(Unreachable):
        session.login("secret")
    assert session.authenticated is False


def test_blank_password_is_rejected_without_calling_remote(local: LocalStore) -> None:
    remote = _Remote()
    session = SessionManager(local, remote)  # type: ignore[arg-type]

    assert session.login("   ") is False
    assert remote.passwords == []


def test_offline_login_uses_configured_password(local: LocalStore) -> None:
    session = SessionManager(local, None, offline_password="admin123")

    assert session.login("nope") is False
    assert session.login("admin123") is True
    assert session.authenticated is True
    assert session.token is None
    assert local.load_token() is None


def test_logout_and_unauthorized_clear_everything(local: LocalStore) -> None:
    session = SessionManager(local, _Remote())  # type: ignore[arg-type]
    session.login("secret")

    session.on_unauthorized()

    assert session.authenticated is False
    assert session.token is None
    assert local.load_token() is None

    session.login("secret")
    session.logout()
    assert session.authenticated is False
    assert local.load_token() is None
