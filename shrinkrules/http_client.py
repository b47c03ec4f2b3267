from __future__ import annotations

import json
from http.client import HTTPConnection, HTTPException, HTTPSConnection
from typing import Any
from urllib.parse import urlparse

from .errors import Unreachable


def build_base_url(address: str) -> str:
    trimmed = address.strip().rstrip("/")
    if not trimmed:
        return ""
    parsed = urlparse(trimmed)
    if parsed.scheme:
        return trimmed
    return f"http://{trimmed}"


def _decode_payload(raw: bytes) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        snippet = raw[:240].decode("utf-8", errors="replace").strip()
        return {"error": f"non_json_response: {snippet}" if snippet else "non_json_response"}
    if isinstance(payload, dict):
        return payload
    return {"error": f"unexpected_json_type: {type(payload).__name__}"}


def request_json(
    method: str,
    url: str,
    *,
    body: dict[str, Any] | None = None,
    bearer_token: str | None = None,
    timeout_s: float = 5.0,
) -> tuple[int, dict[str, Any] | None]:
    """Perform one JSON request and return ``(status, payload)``.

    Any failure to reach the server, including timeouts and a dropped
    connection mid-response, raises :class:`Unreachable`. HTTP error
    statuses are returned to the caller untouched.
    """
    parsed = urlparse(url)
    if not parsed.hostname:
        raise ValueError("missing hostname")
    if parsed.scheme == "https":
        conn = HTTPSConnection(parsed.hostname, parsed.port or 443, timeout=timeout_s)
    else:
        conn = HTTPConnection(parsed.hostname, parsed.port or 80, timeout=timeout_s)
    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"
    body_bytes = None
    headers = {"Accept": "application/json", "Cache-Control": "no-store"}
    if body is not None:
        body_bytes = json.dumps(body, ensure_ascii=False).encode("utf-8")
        headers["Content-Type"] = "application/json"
        headers["Content-Length"] = str(len(body_bytes))
    if bearer_token:
        headers["Authorization"] = f"Bearer {bearer_token}"
    try:
        conn.request(method, path, body=body_bytes, headers=headers)
        resp = conn.getresponse()
        status = int(resp.status)
        raw = resp.read()
    except (OSError, HTTPException) as exc:
        raise Unreachable(f"{method} {url}: {exc}") from exc
    finally:
        conn.close()
    return status, _decode_payload(raw)
