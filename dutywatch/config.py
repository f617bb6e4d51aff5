"""Configuration for the dutywatch tracker."""

from dataclasses import dataclass, fields, replace
from pathlib import Path

import yaml

from .beacon import DEFAULT_BEACON_URL
from .chain.constants import MAINNET_GENESIS_TIME, SECONDS_PER_SLOT, SLOTS_PER_EPOCH
from .metrics import DEFAULT_METRICS_PORT


@dataclass
class Config:
    """Tracker configuration."""

    beacon_url: str = DEFAULT_BEACON_URL
    data_dir: str = "./data"
    log_level: str = "INFO"
    metrics_port: int = DEFAULT_METRICS_PORT
    genesis_time: int = MAINNET_GENESIS_TIME
    seconds_per_slot: int = SECONDS_PER_SLOT
    slots_per_epoch: int = SLOTS_PER_EPOCH
    telegram_token: str = ""
    telegram_chat_id: str = ""
    push_url: str = ""
    auto_refresh: bool = True
    refresh_interval: float = 30.0
    scheduler_interval: float = 10.0
    countdown_interval: float = 1.0
    request_timeout: float = 10.0

    @property
    def metrics_enabled(self) -> bool:
        return self.metrics_port > 0

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load config from a yaml file. Keys may use dashes or underscores."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return cls().merged({k.replace("-", "_"): v for k, v in data.items()})

    def merged(self, overrides: dict) -> "Config":
        """Return a copy with ``overrides`` applied; unknown keys are rejected."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)
