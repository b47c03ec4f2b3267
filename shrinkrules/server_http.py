from __future__ import annotations

import json
from http.server import BaseHTTPRequestHandler
from typing import Any

from .errors import MalformedBody, PayloadTooLarge

MIME_TYPES = {
    ".html": "text/html; charset=utf-8",
    ".css": "text/css; charset=utf-8",
    ".js": "application/javascript; charset=utf-8",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".svg": "image/svg+xml; charset=utf-8",
    ".json": "application/json; charset=utf-8",
    ".txt": "text/plain; charset=utf-8",
}

DISCARD_LIMIT_BYTES = 16 * 1024 * 1024


def send_json_response(
    handler: BaseHTTPRequestHandler,
    payload: dict,
    status: int = 200,
) -> None:
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json; charset=utf-8")
    handler.send_header("Content-Length", str(len(body)))
    handler.send_header("Cache-Control", "no-store")
    handler.end_headers()
    handler.wfile.write(body)


def send_text_response(handler: BaseHTTPRequestHandler, text: str, status: int) -> None:
    body = text.encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "text/plain; charset=utf-8")
    handler.send_header("Content-Length", str(len(body)))
    handler.send_header("Cache-Control", "no-store")
    handler.end_headers()
    handler.wfile.write(body)


def send_bytes_response(
    handler: BaseHTTPRequestHandler,
    body: bytes,
    *,
    content_type: str,
    status: int = 200,
) -> None:
    handler.send_response(status)
    handler.send_header("Content-Type", content_type)
    handler.send_header("Cache-Control", "no-cache")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def _content_length(handler: BaseHTTPRequestHandler) -> int:
    try:
        return max(0, int(handler.headers.get("Content-Length", "0") or 0))
    except ValueError as exc:
        raise MalformedBody("Invalid Content-Length") from exc


def discard_body(handler: BaseHTTPRequestHandler, *, limit: int = DISCARD_LIMIT_BYTES) -> None:
    """Consume an unread request body so the response is not lost to a reset."""
    try:
        remaining = _content_length(handler)
    except MalformedBody:
        return
    if remaining > limit:
        handler.close_connection = True
        return
    while remaining > 0:
        chunk = handler.rfile.read(min(remaining, 65536))
        if not chunk:
            break
        remaining -= len(chunk)


def read_json_body(handler: BaseHTTPRequestHandler, *, max_bytes: int) -> dict[str, Any]:
    """Read and decode the request body.

    An empty body decodes to ``{}``. Raises :class:`PayloadTooLarge` or
    :class:`MalformedBody`; both map to a 400 response.
    """
    length = _content_length(handler)
    if length > max_bytes:
        discard_body(handler)
        raise PayloadTooLarge("Payload too large")
    raw = handler.rfile.read(length) if length > 0 else b""
    if not raw:
        return {}
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedBody("Invalid JSON") from exc
    if not isinstance(payload, dict):
        raise MalformedBody("Invalid JSON")
    return payload


def bearer_token(handler: BaseHTTPRequestHandler) -> str | None:
    auth = handler.headers.get("Authorization") or ""
    if not auth.startswith("Bearer "):
        return None
    return auth[len("Bearer ") :].strip() or None
