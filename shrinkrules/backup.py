from __future__ import annotations

import datetime as dt
import json
from pathlib import Path
from typing import Any

from .errors import ValidationError
from .models import Dataset

BACKUP_FILENAME = "shrink-prevention-backup.json"


def export_document(dataset: Dataset, *, now: dt.datetime | None = None) -> dict[str, Any]:
    exported_at = (now or dt.datetime.now(dt.UTC)).isoformat()
    return {"exportedAt": exported_at, **dataset.content_dict()}


def import_document(payload: object) -> Dataset:
    """Build a replacement dataset from a backup document.

    Import is a full replace: each field missing or malformed in the
    document becomes empty rather than keeping the current value.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Import failed: backup must be a JSON object.")
    return Dataset.from_dict(payload)


def write_backup(dataset: Dataset, path: Path) -> Path:
    path = path.expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(export_document(dataset), ensure_ascii=False, indent=2) + "\n")
    return path


def read_backup(path: Path) -> Dataset:
    try:
        raw = path.expanduser().read_text()
    except OSError as exc:
        raise ValidationError(f"Import failed: {exc}") from exc
    try:
        payload = json.loads(raw or "{}")
    except json.JSONDecodeError as exc:
        raise ValidationError("Import failed: invalid JSON file.") from exc
    return import_document(payload)
