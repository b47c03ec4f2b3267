from __future__ import annotations

import io
import json

import pytest

from shrinkrules.errors import MalformedBody, PayloadTooLarge
from shrinkrules.server_http import (
    bearer_token,
    read_json_body,
    send_json_response,
    send_text_response,
)


class DummyHandler:
    def __init__(self, body: bytes = b"", headers: dict[str, str] | None = None) -> None:
        self.headers = headers or {}
        self.rfile = io.BytesIO(body)
        self.wfile = io.BytesIO()
        self.status: int | None = None
        self.response_headers: list[tuple[str, str]] = []
        self.headers_ended = False

    def send_response(self, status: int) -> None:
        self.status = status

    def send_header(self, key: str, value: str) -> None:
        self.response_headers.append((key, value))

    def end_headers(self) -> None:
        self.headers_ended = True


def _header_value(handler: DummyHandler, name: str) -> str | None:
    for key, value in handler.response_headers:
        if key == name:
            return value
    return None


def test_send_json_response_is_not_cacheable() -> None:
    handler = DummyHandler()
    payload = {"ok": True, "updatedAt": "2026-10-19T00:00:00Z"}
    expected_body = json.dumps(payload, ensure_ascii=False).encode("utf-8")

    send_json_response(handler, payload, status=201)

    assert handler.status == 201
    assert _header_value(handler, "Content-Type") == "application/json; charset=utf-8"
    assert _header_value(handler, "Content-Length") == str(len(expected_body))
    assert _header_value(handler, "Cache-Control") == "no-store"
    assert handler.headers_ended is True
    assert handler.wfile.getvalue() == expected_body


def test_send_text_response() -> None:
    handler = DummyHandler()

    send_text_response(handler, "Forbidden", 403)

    assert handler.status == 403
    assert _header_value(handler, "Content-Type") == "text/plain; charset=utf-8"
    assert handler.wfile.getvalue() == b"Forbidden"


def test_read_json_body() -> None:
    payload = {"password": "admin123"}
    body = json.dumps(payload).encode("utf-8")
    handler = DummyHandler(body=body, headers={"Content-Length": str(len(body))})

    assert read_json_body(handler, max_bytes=1000) == payload


def test_read_json_body_empty_is_empty_dict() -> None:
    handler = DummyHandler(body=b"", headers={"Content-Length": "0"})

    assert read_json_body(handler, max_bytes=1000) == {}


def test_read_json_body_rejects_invalid_json_and_non_objects() -> None:
    handler_invalid = DummyHandler(body=b"not-json", headers={"Content-Length": "8"})
    with pytest.raises(MalformedBody, match="Invalid JSON"):
        read_json_body(handler_invalid, max_bytes=1000)

    body_list = json.dumps([1, 2]).encode("utf-8")
    handler_list = DummyHandler(body=body_list, headers={"Content-Length": str(len(body_list))})
    with pytest.raises(MalformedBody):
        read_json_body(handler_list, max_bytes=1000)


def test_read_json_body_rejects_oversized_payload() -> None:
    body = b'{"rules": []}'
    handler = DummyHandler(body=body, headers={"Content-Length": str(len(body))})

    with pytest.raises(PayloadTooLarge, match="Payload too large"):
        read_json_body(handler, max_bytes=4)


def test_bearer_token() -> None:
    assert bearer_token(DummyHandler(headers={"Authorization": "Bearer abc"})) == "abc"
    assert bearer_token(DummyHandler(headers={"Authorization": "Basic abc"})) is None
    assert bearer_token(DummyHandler(headers={"Authorization": "Bearer "})) is None
    assert bearer_token(DummyHandler(headers={})) is None
