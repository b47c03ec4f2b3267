from __future__ import annotations

import datetime as dt
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from .models import Dataset

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return dt.datetime.now(dt.UTC).isoformat().replace("+00:00", "Z")


class SharedDocument:
    """The server's single shared dataset, stored as one JSON file.

    Writes go through a temp file and ``os.replace`` so readers never see a
    partial document. There is no version check: the last accepted write wins.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _ensure(self) -> None:
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._write({**Dataset().content_dict(), "updatedAt": _now_iso()})

    def _write(self, payload: dict[str, Any]) -> None:
        fd, tmp_name = tempfile.mkstemp(
            prefix="state.tmp.", suffix=".json", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def read(self) -> Dataset:
        with self._lock:
            self._ensure()
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("shared document unreadable; serving empty state", exc_info=exc)
                return Dataset()
        if not isinstance(data, dict):
            return Dataset()
        return Dataset.from_dict(data)

    def replace(self, body: dict[str, Any]) -> Dataset:
        """Replace the whole document with ``body``; returns what was stored."""
        incoming = Dataset.from_dict(body)
        stored = Dataset(
            rules=incoming.rules,
            reason_codes=incoming.reason_codes,
            loss_codes=incoming.loss_codes,
            updated_at=_now_iso(),
        )
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._write(dict(stored.to_dict()))
        return stored
