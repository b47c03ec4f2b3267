from __future__ import annotations

import hmac
import logging

from .errors import HttpError, InvalidCredential
from .local_store import LocalStore
from .remote import RemoteStoreClient

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns the admin credential lifecycle.

    A token found in the local store at startup is trusted without a
    round-trip; the first rejected write clears it again (see
    :meth:`on_unauthorized`).

    Without a remote, login is checked against the locally configured
    password and the session has no token, so nothing is ever pushed.
    """

    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStoreClient | None = None,
        *,
        offline_password: str | None = None,
    ) -> None:
        self.local = local
        self.remote = remote
        self.offline_password = offline_password
        self.token: str | None = None
        self.authenticated = False
        self.expires_in_hours: float | None = None

    def restore(self) -> str | None:
        token = self.local.load_token()
        if token and self.remote is None:
            # Left over from a remote configuration; offline sessions never hold a token.
            self.local.clear_token()
            return None
        if token:
            self.token = token
            self.authenticated = True
            logger.debug("restored admin session from local store")
        return token

    def login(self, password: str) -> bool:
        """Exchange ``password`` for a session.

        Returns ``False`` when the password is rejected or the server answers
        with an error status. ``Unreachable`` propagates so the caller can tell
        a wrong password from a dead server.
        """
        password = (password or "").strip()
        if not password:
            return False
        if self.remote is None:
            expected = (self.offline_password or "").encode("utf-8")
            if expected and hmac.compare_digest(password.encode("utf-8"), expected):
                self.token = None
                self.authenticated = True
                return True
            return False
        try:
            result = self.remote.login(password)
        except InvalidCredential:
            logger.info("admin login rejected")
            return False
        except HttpError as exc:
            logger.warning("admin login failed: %s", exc)
            return False
        self.token = result.token
        self.expires_in_hours = result.expires_in_hours
        self.authenticated = True
        self.local.save_token(result.token)
        return True

    def logout(self) -> None:
        self._clear()

    def on_unauthorized(self) -> None:
        logger.warning("admin token rejected by server; clearing session")
        self._clear()

    def _clear(self) -> None:
        self.token = None
        self.authenticated = False
        self.expires_in_hours = None
        self.local.clear_token()
