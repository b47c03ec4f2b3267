from __future__ import annotations

import datetime as dt
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from . import db
from .errors import StorageCorrupt
from .models import Dataset, coerce_codes, coerce_rules

logger = logging.getLogger(__name__)

RULES_KEY = "shrink-prevention-rules"
REASON_CODES_KEY = "reason-codes"
LOSS_CODES_KEY = "loss-codes"
AUTH_TOKEN_KEY = "shrink-prevention-admin-token"

FIELD_KEYS = {
    "rules": RULES_KEY,
    "reasonCodes": REASON_CODES_KEY,
    "lossCodes": LOSS_CODES_KEY,
}


class LocalStore:
    """Device-scoped cache of the shared dataset plus the admin token.

    Every entry is read and written on its own, so a corrupt rules value
    never blanks the code lists and vice versa.
    """

    def __init__(self, db_path: Path | str | None = None) -> None:
        self.db_path = Path(db_path or db.DEFAULT_DB_PATH).expanduser()
        self.conn = db.connect(self.db_path, check_same_thread=False)
        db.initialize_schema(self.conn)

    def close(self) -> None:
        self.conn.close()

    def _get(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def _set(self, key: str, value: str) -> None:
        now = dt.datetime.now(dt.UTC).isoformat()
        self.conn.execute(
            """
            INSERT INTO kv(key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, value, now),
        )
        self.conn.commit()

    def _delete(self, key: str) -> None:
        self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        self.conn.commit()

    def _read_list(self, key: str) -> list[Any] | None:
        try:
            raw = self._get(key)
        except sqlite3.Error as exc:
            raise StorageCorrupt(f"{key}: unreadable") from exc
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageCorrupt(f"{key}: invalid json") from exc
        if not isinstance(value, list):
            raise StorageCorrupt(f"{key}: expected a list")
        return value

    def _read_list_or_empty(self, key: str) -> list[Any]:
        try:
            return self._read_list(key) or []
        except StorageCorrupt as exc:
            logger.warning("local store entry corrupt, using empty: %s", exc)
            return []

    def load(self) -> Dataset:
        rules = coerce_rules(self._read_list_or_empty(RULES_KEY))
        reason = coerce_codes(self._read_list_or_empty(REASON_CODES_KEY))
        loss = coerce_codes(self._read_list_or_empty(LOSS_CODES_KEY))
        return Dataset(
            rules=rules or (),
            reason_codes=reason or (),
            loss_codes=loss or (),
        )

    def save_field(self, field: str, value: list[Any]) -> None:
        key = FIELD_KEYS.get(field)
        if key is None:
            raise KeyError(field)
        try:
            self._set(key, json.dumps(value, ensure_ascii=False))
        except sqlite3.Error as exc:
            logger.warning("local store write failed for %s", key, exc_info=exc)

    def save(self, dataset: Dataset) -> None:
        content = dataset.content_dict()
        for field in FIELD_KEYS:
            self.save_field(field, content[field])

    def load_token(self) -> str | None:
        try:
            raw = self._get(AUTH_TOKEN_KEY)
        except sqlite3.Error as exc:
            logger.warning("local store token read failed", exc_info=exc)
            return None
        return raw or None

    def save_token(self, token: str) -> None:
        self._set(AUTH_TOKEN_KEY, token)

    def clear_token(self) -> None:
        self._delete(AUTH_TOKEN_KEY)
