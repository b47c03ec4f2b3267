from __future__ import annotations

import json
import os
import warnings
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/shrink-rules/config.json").expanduser()
DEFAULT_LOCAL_DB = "~/.shrink-rules/local.sqlite"
DEFAULT_DATA_FILE = "~/.shrink-rules/data/state.json"

CONFIG_ENV_OVERRIDES = {
    "host": "SHRINK_RULES_HOST",
    "port": "SHRINK_RULES_PORT",
    "admin_password": "SHRINK_RULES_ADMIN_PASSWORD",
    "token_ttl_hours": "SHRINK_RULES_TOKEN_TTL_HOURS",
    "data_file": "SHRINK_RULES_DATA_FILE",
    "public_dir": "SHRINK_RULES_PUBLIC_DIR",
    "max_body_bytes": "SHRINK_RULES_MAX_BODY_BYTES",
    "remote_url": "SHRINK_RULES_REMOTE_URL",
    "local_db": "SHRINK_RULES_LOCAL_DB",
    "request_timeout_s": "SHRINK_RULES_REQUEST_TIMEOUT_S",
    "token_sweep_interval_s": "SHRINK_RULES_TOKEN_SWEEP_INTERVAL_S",
}

# Unprefixed names honoured for compatibility with existing deployments.
LEGACY_ENV_OVERRIDES = {
    "port": "PORT",
    "admin_password": "ADMIN_PASSWORD",
    "token_ttl_hours": "TOKEN_TTL_HOURS",
    "data_file": "DATA_FILE",
}

_INT_KEYS = {"port", "max_body_bytes", "token_sweep_interval_s"}
_FLOAT_KEYS = {"token_ttl_hours", "request_timeout_s"}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("SHRINK_RULES_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in LEGACY_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class ShrinkRulesConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    admin_password: str = "admin123"
    token_ttl_hours: float = 24.0
    data_file: str = DEFAULT_DATA_FILE
    public_dir: str | None = None
    max_body_bytes: int = 2_000_000
    token_sweep_interval_s: int = 3600

    # Client side. With no remote_url the client runs offline-only.
    remote_url: str | None = None
    local_db: str = DEFAULT_LOCAL_DB
    request_timeout_s: float = 5.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["admin_password"] = "***"
        return data


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid number for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    if parsed <= 0:
        warnings.warn(f"Invalid number for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    return parsed


def _coerce_optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def load_config(path: Path | None = None) -> ShrinkRulesConfig:
    cfg = ShrinkRulesConfig()
    try:
        data = read_config_file(path)
    except ValueError as exc:
        warnings.warn(f"Ignoring config file: {exc}", RuntimeWarning, stacklevel=2)
        data = {}
    cfg = _apply_dict(cfg, data)
    cfg = _apply_dict(cfg, get_env_overrides())
    return cfg


def _apply_dict(cfg: ShrinkRulesConfig, data: dict[str, Any]) -> ShrinkRulesConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key in _FLOAT_KEYS:
            setattr(cfg, key, _parse_float(value, getattr(cfg, key), key=key))
            continue
        if key in {"remote_url", "public_dir"}:
            setattr(cfg, key, _coerce_optional_str(value))
            continue
        setattr(cfg, key, str(value))
    return cfg


def coerce_config_value(key: str, raw: str) -> object | None:
    """Validate one ``config set`` value. Empty means unset; invalid raises ``ValueError``."""
    if key not in ShrinkRulesConfig.__dataclass_fields__:
        raise ValueError(f"unknown config key: {key}")
    if not raw.strip():
        return None
    if key in _INT_KEYS:
        try:
            value = int(raw)
        except ValueError as exc:
            raise ValueError(f"{key} must be int") from exc
        if value <= 0:
            raise ValueError(f"{key} must be positive")
        return value
    if key in _FLOAT_KEYS:
        try:
            number = float(raw)
        except ValueError as exc:
            raise ValueError(f"{key} must be a number") from exc
        if number <= 0:
            raise ValueError(f"{key} must be positive")
        return number
    return raw.strip()
