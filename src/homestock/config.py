"""Application configuration helpers."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

ENV_FILE_CANDIDATES = (Path(".env"), Path(".env.local"))


class Settings(BaseModel):
    """Global application settings loaded from environment variables or .env files."""

    database_path: Path = Field(
        default=Path("./data/homestock.db"),
        description="SQLite database location.",
    )
    sqlite_busy_timeout: float = Field(
        default=15.0,
        description="Seconds a transaction waits for the SQLite write lock.",
    )
    api_token: Optional[str] = Field(
        default=None,
        description="Bearer token required for authenticated endpoints.",
    )
    log_level: str = Field(default="INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        default="plain",
        description="Logging format (plain/json).",
    )
    log_requests: bool = Field(
        default=True,
        description="Emit request access logs when true.",
    )
    default_unit: str = Field(
        default="piece",
        description="Unit given to inventory items created from entries without one.",
    )
    processing_timeout_seconds: float = Field(
        default=300.0,
        description="Age after which an in-flight reconciliation guard may be reclaimed.",
    )
    reconcile_sweep_enabled: bool = Field(
        default=False,
        description="Run the periodic reconciliation sweep inside the API process when true.",
    )
    reconcile_sweep_interval: float = Field(
        default=60.0,
        description="Seconds between reconciliation sweep iterations.",
    )
    reconcile_sweep_batch_size: int = Field(
        default=50,
        description="Maximum number of entries reconciled per sweep iteration.",
    )
    invite_code_ttl_days: int = Field(
        default=30,
        description="Days before a household invite code expires.",
    )
    expiring_soon_days: int = Field(
        default=7,
        description="Window used by the expiring-soon inventory query.",
    )

    model_config = ConfigDict(frozen=True)


def _coerce_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_env_file(path: Path) -> dict[str, str]:
    payload: dict[str, str] = {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            for raw_line in handle:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, raw_value = line.split("=", 1)
                payload[key.strip()] = raw_value.strip()
    except FileNotFoundError:
        return {}
    return payload


def _load_env_file_values() -> dict[str, str]:
    values: dict[str, str] = {}
    for candidate in ENV_FILE_CANDIDATES:
        values.update(_parse_env_file(candidate))
    return values


def _load_from_env() -> dict[str, object]:
    """Load optional overrides from env vars (with .env fallbacks)."""

    file_values = _load_env_file_values()

    def _env(key: str) -> Optional[str]:
        return os.environ.get(key) or file_values.get(key)

    payload: dict[str, object] = {}
    if (db_path := _env("HOMESTOCK_DATABASE_PATH")):
        payload["database_path"] = Path(db_path)
    if (busy_timeout := _env("HOMESTOCK_SQLITE_BUSY_TIMEOUT")):
        try:
            payload["sqlite_busy_timeout"] = float(busy_timeout)
        except ValueError:
            pass
    if (api_token := _env("HOMESTOCK_API_TOKEN")):
        payload["api_token"] = api_token
    if (log_level := _env("HOMESTOCK_LOG_LEVEL")):
        payload["log_level"] = log_level
    if (log_format := _env("HOMESTOCK_LOG_FORMAT")):
        payload["log_format"] = log_format
    if (log_requests := _env("HOMESTOCK_LOG_REQUESTS")):
        payload["log_requests"] = _coerce_bool(log_requests)
    if (default_unit := _env("HOMESTOCK_DEFAULT_UNIT")):
        payload["default_unit"] = default_unit
    if (processing_timeout := _env("HOMESTOCK_PROCESSING_TIMEOUT")):
        try:
            payload["processing_timeout_seconds"] = float(processing_timeout)
        except ValueError:
            pass
    if (sweep_enabled := _env("HOMESTOCK_SWEEP_ENABLED")):
        payload["reconcile_sweep_enabled"] = _coerce_bool(sweep_enabled)
    if (sweep_interval := _env("HOMESTOCK_SWEEP_INTERVAL")):
        try:
            payload["reconcile_sweep_interval"] = float(sweep_interval)
        except ValueError:
            pass
    if (sweep_batch := _env("HOMESTOCK_SWEEP_BATCH_SIZE")):
        try:
            payload["reconcile_sweep_batch_size"] = int(sweep_batch)
        except ValueError:
            pass
    if (invite_ttl := _env("HOMESTOCK_INVITE_TTL_DAYS")):
        try:
            payload["invite_code_ttl_days"] = int(invite_ttl)
        except ValueError:
            pass
    if (expiring_days := _env("HOMESTOCK_EXPIRING_SOON_DAYS")):
        try:
            payload["expiring_soon_days"] = int(expiring_days)
        except ValueError:
            pass
    return payload


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings(**_load_from_env())
