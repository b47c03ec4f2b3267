from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest
from typer.testing import CliRunner

from shrinkrules.cli import app
from shrinkrules.document import SharedDocument
from shrinkrules.local_store import LocalStore
from shrinkrules.server import build_state_handler
from shrinkrules.tokens import TokenStore

runner = CliRunner()


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("add-rules", "replace-rules", "edit-rule", "add-codes", "export", "serve"):
        assert command in result.stdout


def test_show_empty_store() -> None:
    result = runner.invoke(app, ["show"])
    assert result.exit_code == 0
    assert "No rules available" in result.stdout


def test_mutation_requires_admin_password() -> None:
    result = runner.invoke(app, ["add-rules", "Lock the cage"])
    assert result.exit_code == 1
    assert "Admin login required" in result.stdout


def test_wrong_offline_password_is_rejected() -> None:
    result = runner.invoke(app, ["add-rules", "Lock the cage", "--password", "nope"])
    assert result.exit_code == 1
    assert "Incorrect password." in result.stdout


def test_offline_rule_editing_flow() -> None:
    result = runner.invoke(
        app, ["add-rules", "1. Lock the cage\n2. Count the till", "--password", "admin123"]
    )
    assert result.exit_code == 0
    assert "Added 2 rule(s)." in result.stdout

    result = runner.invoke(app, ["add-rules", "Lock the cage", "--password", "admin123"])
    assert result.exit_code == 1
    assert "All provided rules already exist." in result.stdout

    result = runner.invoke(
        app, ["edit-rule", "2", "Count the till twice", "--password", "admin123"]
    )
    assert result.exit_code == 0
    assert "Updated rule #2." in result.stdout

    result = runner.invoke(app, ["show", "--search", "till"])
    assert result.exit_code == 0
    assert "Count the till twice" in result.stdout
    assert "Lock the cage" not in result.stdout

    result = runner.invoke(app, ["delete-rule", "9", "--password", "admin123"])
    assert result.exit_code == 1
    assert "does not exist" in result.stdout


def test_replace_rules_requires_confirmation() -> None:
    runner.invoke(app, ["add-rules", "Old rule", "--password", "admin123"])

    result = runner.invoke(
        app, ["replace-rules", "New rule", "--password", "admin123"], input="n\n"
    )
    assert result.exit_code == 1
    assert "Cancelled." in result.stdout

    result = runner.invoke(app, ["replace-rules", "New rule", "--yes", "--password", "admin123"])
    assert result.exit_code == 0
    assert "Replaced all rules." in result.stdout

    shown = runner.invoke(app, ["show"])
    assert "New rule" in shown.stdout
    assert "Old rule" not in shown.stdout


def test_codes_add_show_delete() -> None:
    text = "1. Theft\nEmployees taking stock\n2. Damage"
    result = runner.invoke(app, ["add-codes", "reason", text, "--password", "admin123"])
    assert result.exit_code == 0
    assert "Codes saved." in result.stdout

    shown = runner.invoke(app, ["show", "--codes", "reason"])
    assert "Theft" in shown.stdout
    assert "Employees taking stock" in shown.stdout

    result = runner.invoke(app, ["delete-code", "reason", "1", "--password", "admin123"])
    assert result.exit_code == 0
    shown = runner.invoke(app, ["show", "--codes", "reason"])
    assert "Theft" not in shown.stdout
    assert "Damage" in shown.stdout


def test_export_then_import(tmp_path: Path) -> None:
    runner.invoke(app, ["add-rules", "Keep receipts", "--password", "admin123"])
    backup = tmp_path / "backup.json"

    result = runner.invoke(app, ["export", "--output", str(backup)])
    assert result.exit_code == 0
    assert json.loads(backup.read_text())["rules"] == ["Keep receipts"]

    backup.write_text(json.dumps({"rules": ["Imported rule"], "reasonCodes": [], "lossCodes": []}))
    result = runner.invoke(app, ["import", str(backup), "--password", "admin123"])
    assert result.exit_code == 0
    assert "Import complete." in result.stdout

    shown = runner.invoke(app, ["show"])
    assert "Imported rule" in shown.stdout
    assert "Keep receipts" not in shown.stdout


def test_import_invalid_file(tmp_path: Path) -> None:
    backup = tmp_path / "bad.json"
    backup.write_text("{nope")

    result = runner.invoke(app, ["import", str(backup), "--password", "admin123"])

    assert result.exit_code == 1
    assert "invalid JSON file" in result.stdout


def test_config_show_masks_password() -> None:
    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code == 0
    assert "***" in result.stdout
    assert "admin123" not in result.stdout


@pytest.fixture
def live_server(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    document = SharedDocument(tmp_path / "server" / "state.json")
    handler = build_state_handler(
        document, TokenStore(), admin_password="s3cret", token_ttl_hours=24
    )
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    monkeypatch.setenv("SHRINK_RULES_REMOTE_URL", f"127.0.0.1:{server.server_address[1]}")
    try:
        yield document
    finally:
        server.shutdown()
        server.server_close()


def test_login_then_sync_against_server(live_server: SharedDocument) -> None:
    result = runner.invoke(app, ["login", "--password", "s3cret"])
    assert result.exit_code == 0
    assert "Admin access enabled." in result.stdout

    result = runner.invoke(app, ["add-rules", "Check bags at exit"])
    assert result.exit_code == 0
    assert "Added 1 rule(s)." in result.stdout
    assert live_server.read().rules == ("Check bags at exit",)

    status = runner.invoke(app, ["status"])
    assert "Connectivity: online" in status.stdout
    assert "Admin session: yes" in status.stdout

    result = runner.invoke(app, ["logout"])
    assert "Logged out." in result.stdout
    result = runner.invoke(app, ["add-rules", "Another rule"])
    assert result.exit_code == 1


def test_expired_session_is_reported(live_server: SharedDocument, tmp_path: Path) -> None:
    store = LocalStore(tmp_path / "local.sqlite")
    store.save_token("stale-token")
    store.close()

    result = runner.invoke(app, ["add-rules", "Offline rule"])

    assert result.exit_code == 2
    assert "Admin session expired" in result.stdout
    assert live_server.read().rules == ()


def test_declined_replace_exits_before_login() -> None:
    result = runner.invoke(app, ["replace-rules", "New rule"], input="n\n")

    assert result.exit_code == 1
    assert "Cancelled." in result.stdout
    assert "Admin login required" not in result.stdout


class _FailingHandler(BaseHTTPRequestHandler):
    def log_message(self, format: str, *args: object) -> None:  # noqa: A003
        return

    def _fail(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        if length:
            self.rfile.read(length)
        body = b'{"error": "Server error"}'
        self.send_response(500)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:  # noqa: N802
        self._fail()

    def do_POST(self) -> None:  # noqa: N802
        self._fail()


def test_server_errors_on_login_do_not_crash(monkeypatch: pytest.MonkeyPatch) -> None:
    server = ThreadingHTTPServer(("127.0.0.1", 0), _FailingHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    monkeypatch.setenv("SHRINK_RULES_REMOTE_URL", f"127.0.0.1:{server.server_address[1]}")
    try:
        result = runner.invoke(app, ["login", "--password", "x"])
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "Incorrect password." in result.stdout

        result = runner.invoke(app, ["add-rules", "A", "--password", "x"])
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "Server unreachable" in result.stdout
    finally:
        server.shutdown()
        server.server_close()


def test_remote_url_without_host_is_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SHRINK_RULES_REMOTE_URL", "http://")

    result = runner.invoke(app, ["show"])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "Invalid configuration" in result.stdout


def test_config_set_writes_and_unsets_keys(tmp_path: Path) -> None:
    config_path = tmp_path / "config" / "config.json"

    result = runner.invoke(app, ["config", "set", "remote_url", "10.0.0.5:3000"])
    assert result.exit_code == 0
    result = runner.invoke(app, ["config", "set", "port", "8080"])
    assert result.exit_code == 0
    assert json.loads(config_path.read_text()) == {"remote_url": "10.0.0.5:3000", "port": 8080}

    result = runner.invoke(app, ["config", "set", "remote_url", ""])
    assert result.exit_code == 0
    assert json.loads(config_path.read_text()) == {"port": 8080}


def test_config_set_rejects_bad_values() -> None:
    result = runner.invoke(app, ["config", "set", "port", "abc"])
    assert result.exit_code == 1
    assert "port must be int" in result.stdout

    result = runner.invoke(app, ["config", "set", "nope", "1"])
    assert result.exit_code == 1
    assert "unknown config key" in result.stdout
