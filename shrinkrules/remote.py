from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

from . import http_client
from .errors import HttpError, InvalidCredential, Unauthorized
from .models import Dataset, LoginResult

STATE_PATH = "/api/state"
LOGIN_PATH = "/api/login"


def _error_detail(payload: dict[str, Any] | None) -> str | None:
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, str):
        return error
    return None


class RemoteStoreClient:
    """Client for the single shared document on the server."""

    def __init__(self, base_url: str, *, timeout_s: float = 5.0) -> None:
        resolved = http_client.build_base_url(base_url)
        if not resolved:
            raise ValueError("remote url is empty")
        if not urlparse(resolved).hostname:
            raise ValueError(f"remote url has no host: {base_url!r}")
        self.base_url = resolved
        self.timeout_s = timeout_s

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def fetch_shared(self, *, fallback: Dataset | None = None) -> Dataset:
        """Fetch the shared document.

        Fields the server sends in an unexpected shape keep their value from
        ``fallback`` instead of being blanked.
        """
        status, payload = http_client.request_json(
            "GET", self._url(STATE_PATH), timeout_s=self.timeout_s
        )
        if status != 200 or payload is None:
            raise HttpError(status, _error_detail(payload))
        return Dataset.from_dict(payload, fallback=fallback)

    def login(self, password: str) -> LoginResult:
        status, payload = http_client.request_json(
            "POST",
            self._url(LOGIN_PATH),
            body={"password": password},
            timeout_s=self.timeout_s,
        )
        if status in {400, 401}:
            raise InvalidCredential(_error_detail(payload) or "invalid password")
        if status != 200 or payload is None:
            raise HttpError(status, _error_detail(payload))
        token = payload.get("token")
        if not isinstance(token, str) or not token:
            raise HttpError(status, "login response missing token")
        expires = payload.get("expiresInHours")
        try:
            expires_in_hours = float(expires) if expires is not None else 24.0
        except (TypeError, ValueError):
            expires_in_hours = 24.0
        return LoginResult(token=token, expires_in_hours=expires_in_hours)

    def push_shared(self, dataset: Dataset, token: str) -> str | None:
        """Replace the shared document; returns the server's ``updatedAt``."""
        status, payload = http_client.request_json(
            "PUT",
            self._url(STATE_PATH),
            body=dataset.content_dict(),
            bearer_token=token,
            timeout_s=self.timeout_s,
        )
        if status == 401:
            raise Unauthorized(_error_detail(payload))
        if status != 200 or payload is None or not payload.get("ok"):
            raise HttpError(status, _error_detail(payload))
        updated_at = payload.get("updatedAt")
        return str(updated_at) if updated_at else None
