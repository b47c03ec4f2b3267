from __future__ import annotations

import contextlib
import hmac
import logging
import os
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import unquote, urlparse

from .config import ShrinkRulesConfig
from .document import SharedDocument
from .errors import MalformedBody, PayloadTooLarge
from .server_http import (
    MIME_TYPES,
    bearer_token,
    discard_body,
    read_json_body,
    send_bytes_response,
    send_json_response,
    send_text_response,
)
from .tokens import TokenStore, TokenSweeper

logger = logging.getLogger(__name__)


def _resolve_static(public_dir: Path, url_path: str) -> Path | None:
    """Map a URL path into ``public_dir``; ``None`` means it escapes the root."""
    relative = unquote(url_path).lstrip("/") or "index.html"
    root = public_dir.resolve()
    candidate = (root / relative).resolve()
    if candidate != root and root not in candidate.parents:
        return None
    return candidate


def build_state_handler(
    document: SharedDocument,
    tokens: TokenStore,
    *,
    admin_password: str,
    token_ttl_hours: float,
    max_body_bytes: int = 2_000_000,
    public_dir: Path | None = None,
):
    class StateHandler(BaseHTTPRequestHandler):
        def log_message(self, format: str, *args: object) -> None:  # noqa: A003
            if os.environ.get("SHRINK_RULES_SERVER_LOGS") == "1":
                super().log_message(format, *args)

        def _send_json(self, payload: dict, status: int = 200) -> None:
            send_json_response(self, payload, status=status)

        def _send_static(self, url_path: str) -> None:
            if public_dir is None:
                send_text_response(self, "Not found", 404)
                return
            target = _resolve_static(public_dir, url_path)
            if target is None:
                send_text_response(self, "Forbidden", 403)
                return
            if not target.is_file():
                # Single-page app fallback.
                target = public_dir / "index.html"
                if not target.is_file():
                    send_text_response(self, "Not found", 404)
                    return
            content_type = MIME_TYPES.get(target.suffix.lower(), "application/octet-stream")
            send_bytes_response(self, target.read_bytes(), content_type=content_type)

        def _login(self) -> None:
            try:
                body = read_json_body(self, max_bytes=max_body_bytes)
            except (PayloadTooLarge, MalformedBody) as exc:
                self._send_json({"error": str(exc)}, status=400)
                return
            password = str(body.get("password") or "").strip()
            if not password:
                self._send_json({"error": "Password required"}, status=400)
                return
            if not hmac.compare_digest(password.encode("utf-8"), admin_password.encode("utf-8")):
                logger.info("admin login rejected from %s", self.client_address[0])
                self._send_json({"error": "Invalid password"}, status=401)
                return
            token = tokens.issue()
            self._send_json({"token": token, "expiresInHours": token_ttl_hours})

        def _put_state(self) -> None:
            if not tokens.is_valid(bearer_token(self)):
                discard_body(self)
                self._send_json({"error": "Unauthorized"}, status=401)
                return
            try:
                body = read_json_body(self, max_bytes=max_body_bytes)
            except (PayloadTooLarge, MalformedBody) as exc:
                self._send_json({"error": str(exc)}, status=400)
                return
            stored = document.replace(body)
            logger.info("shared state replaced (%d rules)", len(stored.rules))
            self._send_json({"ok": True, "updatedAt": stored.updated_at})

        def _dispatch(self, method: str) -> None:
            path = urlparse(self.path).path or "/"
            try:
                if path == "/api/state" and method == "GET":
                    self._send_json(dict(document.read().to_dict()))
                    return
                if path == "/api/login" and method == "POST":
                    self._login()
                    return
                if path == "/api/state" and method == "PUT":
                    self._put_state()
                    return
                if method == "GET":
                    self._send_static(path)
                    return
                discard_body(self)
                send_text_response(self, "Not found", 404)
            except Exception as exc:
                logger.exception("request failed: %s %s", method, path, exc_info=exc)
                with contextlib.suppress(OSError):
                    send_text_response(self, "Server error", 500)

        def do_GET(self) -> None:  # noqa: N802
            self._dispatch("GET")

        def do_POST(self) -> None:  # noqa: N802
            self._dispatch("POST")

        def do_PUT(self) -> None:  # noqa: N802
            self._dispatch("PUT")

    return StateHandler


def lan_addresses() -> list[str]:
    addresses: list[str] = []
    with contextlib.suppress(OSError):
        for info in socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET):
            address = str(info[4][0])
            if not address.startswith("127.") and address not in addresses:
                addresses.append(address)
    return addresses


def create_server(
    config: ShrinkRulesConfig,
) -> tuple[ThreadingHTTPServer, TokenSweeper]:
    document = SharedDocument(config.data_file)
    tokens = TokenStore(config.token_ttl_hours)
    handler = build_state_handler(
        document,
        tokens,
        admin_password=config.admin_password,
        token_ttl_hours=config.token_ttl_hours,
        max_body_bytes=config.max_body_bytes,
        public_dir=Path(config.public_dir).expanduser() if config.public_dir else None,
    )
    server = ThreadingHTTPServer((config.host, config.port), handler)
    sweeper = TokenSweeper(tokens, interval_s=config.token_sweep_interval_s)
    return server, sweeper


def serve(config: ShrinkRulesConfig, *, background: bool = False) -> ThreadingHTTPServer:
    server, sweeper = create_server(config)
    sweeper.start()
    logger.info("shared data file: %s", Path(config.data_file).expanduser())
    if background:
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        return server
    try:
        server.serve_forever()
    finally:
        sweeper.stop()
        server.server_close()
    return server
