"""Configuration loader with ENV:VAR_NAME resolution."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""


def _resolve(value: Any) -> Any:
    """Recursively resolve ENV:VAR_NAME references."""
    if isinstance(value, str) and value.startswith("ENV:"):
        var = value[4:]
        resolved = os.environ.get(var)
        if resolved is None:
            logger.debug("Environment variable %s not set (value stays None)", var)
        return resolved
    if isinstance(value, dict):
        return {k: _resolve(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve(v) for v in value]
    return value


@dataclass
class EngineConfig:
    expired_window_days: int = 30
    countdown_refresh_seconds: int = 1
    idle_refresh_seconds: int = 60


@dataclass
class StorageConfig:
    reports_dir: str = "reports"
    sample_data_dir: str = "sample_data"


@dataclass
class RuntimeConfig:
    timezone: str = "Europe/Istanbul"
    log_level: str = "INFO"


@dataclass
class AppConfig:
    store_id: str | None = None
    marketplaces: list[str] = field(default_factory=lambda: ["trendyol"])
    engine: EngineConfig = field(default_factory=EngineConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)

    @property
    def default_marketplace(self) -> str:
        return self.marketplaces[0] if self.marketplaces else "trendyol"


def load_config(path: str | Path) -> AppConfig:
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must contain a mapping at the top level: {path}")

    raw = _resolve(raw)

    cfg = AppConfig()
    cfg.store_id = raw.get("store_id")
    marketplaces = [str(m).strip().lower() for m in (raw.get("marketplaces") or []) if str(m).strip()]
    if marketplaces:
        cfg.marketplaces = marketplaces

    eng = raw.get("engine") or {}
    try:
        cfg.engine = EngineConfig(
            expired_window_days=int(eng.get("expired_window_days", 30)),
            countdown_refresh_seconds=int(eng.get("countdown_refresh_seconds", 1)),
            idle_refresh_seconds=int(eng.get("idle_refresh_seconds", 60)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid engine settings in {path}: {exc}") from exc

    if cfg.engine.countdown_refresh_seconds <= 0 or cfg.engine.idle_refresh_seconds <= 0:
        raise ConfigError("Refresh intervals must be positive seconds.")

    sto = raw.get("storage") or {}
    cfg.storage = StorageConfig(
        reports_dir=sto.get("reports_dir", "reports"),
        sample_data_dir=sto.get("sample_data_dir", "sample_data"),
    )

    rt = raw.get("runtime") or {}
    cfg.runtime = RuntimeConfig(
        timezone=rt.get("timezone") or "Europe/Istanbul",
        log_level=rt.get("log_level") or "INFO",
    )

    logging.basicConfig(level=getattr(logging, cfg.runtime.log_level.upper(), logging.INFO))
    return cfg
