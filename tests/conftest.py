from __future__ import annotations

from pathlib import Path

import pytest

from shrinkrules.config import CONFIG_ENV_OVERRIDES, LEGACY_ENV_OVERRIDES


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for env_var in [*CONFIG_ENV_OVERRIDES.values(), *LEGACY_ENV_OVERRIDES.values()]:
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.delenv("SHRINK_RULES_PASSWORD", raising=False)
    monkeypatch.setenv("SHRINK_RULES_CONFIG", str(tmp_path / "config" / "config.json"))
    monkeypatch.setenv("SHRINK_RULES_LOCAL_DB", str(tmp_path / "local.sqlite"))
