"""
Navigator configuration.

A single ``NavigatorConfig`` object is built once (defaults, optionally
overlaid by ``.svcnav/config.yaml`` and environment variables) and passed
explicitly to the aggregator, the detail fetcher and the session.
"""

import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .core.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(".svcnav/config.yaml")

ENV_URL = "SVCNAV_PROMETHEUS_URL"
ENV_TOKEN = "SVCNAV_PROMETHEUS_TOKEN"

_DURATION = re.compile(r"^(\d+)([smhd])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str) -> int:
    """Convert a Prometheus-style duration (``30s``, ``5m``, ``1h``) to seconds."""
    match = _DURATION.match(value.strip())
    if not match:
        raise ConfigError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit]


class BackendConfig(BaseModel):
    """Metrics backend endpoint. Headers are passed through untouched."""
    url: str = "http://localhost:9090/api/v1/query"
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = 10.0


class TimeWindow(BaseModel):
    """Named set of range windows for rate, error and quantile queries."""
    label: str
    rps: str
    err: str
    p95: str

    @model_validator(mode="after")
    def _check_durations(self) -> "TimeWindow":
        for value in (self.rps, self.err, self.p95):
            if not _DURATION.match(value.strip()):
                raise ValueError(f"invalid duration {value!r} in window {self.label!r}")
        return self

    @property
    def rps_seconds(self) -> int:
        return parse_duration(self.rps)


class MetricNames(BaseModel):
    """
    Metric names queried from the backend.

    With ``windowed_counts`` the call counters are wrapped in ``increase()``
    over the window, and rates are divided by the window length instead of
    ``NavigatorConfig.window_seconds``.
    """
    counter: str = "xsp_proxy_request_duration_miliseconds_count"
    bucket: str = "xsp_proxy_request_duration_miliseconds_bucket"
    environment_label: str = "systemName"
    windowed_counts: bool = False


class StatusThresholds(BaseModel):
    """Error-rate thresholds (exclusive) for node status."""
    critical: float = 0.10
    degraded: float = 0.02

    @model_validator(mode="after")
    def _check_order(self) -> "StatusThresholds":
        if not 0.0 <= self.degraded <= self.critical <= 1.0:
            raise ValueError("thresholds must satisfy 0 <= degraded <= critical <= 1")
        return self


class StrokeConfig(BaseModel):
    """Connector stroke geometry."""
    min_width: float = 1.5
    max_width: float = 6.0
    arrow_size: float = 6.0


def _default_windows() -> List[TimeWindow]:
    return [
        TimeWindow(label="1m", rps="1m", err="1m", p95="5m"),
        TimeWindow(label="5m", rps="5m", err="5m", p95="10m"),
        TimeWindow(label="15m", rps="15m", err="15m", p95="15m"),
    ]


class NavigatorConfig(BaseModel):
    """Top-level configuration."""
    backend: BackendConfig = Field(default_factory=BackendConfig)
    environments: List[str] = Field(default_factory=lambda: ["prod", "qa", "qa2"])
    default_environment: str = "prod"
    windows: List[TimeWindow] = Field(default_factory=_default_windows)
    default_window: str = "5m"
    metric: MetricNames = Field(default_factory=MetricNames)
    ok_statuses: List[str] = Field(default_factory=lambda: ["200", "204"])
    thresholds: StatusThresholds = Field(default_factory=StatusThresholds)
    window_seconds: float = 60.0
    quantile: float = 0.95
    max_columns: int = 6
    lowercase_source_labels: bool = False
    stroke: StrokeConfig = Field(default_factory=StrokeConfig)

    @model_validator(mode="after")
    def _check_defaults(self) -> "NavigatorConfig":
        if not self.environments:
            raise ValueError("at least one environment is required")
        if self.default_environment not in self.environments:
            raise ValueError(f"default_environment {self.default_environment!r} is not a known environment")
        if self.default_window not in {w.label for w in self.windows}:
            raise ValueError(f"default_window {self.default_window!r} is not a known window")
        if not self.ok_statuses:
            raise ValueError("ok_statuses must not be empty")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if not 0.0 < self.quantile < 1.0:
            raise ValueError("quantile must be between 0 and 1")
        if self.max_columns < 1:
            raise ValueError("max_columns must be at least 1")
        return self

    def environment(self, name: Optional[str] = None) -> str:
        """Validate an environment name, defaulting to ``default_environment``."""
        env = name or self.default_environment
        if env not in self.environments:
            raise ConfigError(f"Unknown environment: {env} (known: {', '.join(self.environments)})")
        return env

    def window(self, label: Optional[str] = None) -> TimeWindow:
        """Look up a time window by label, defaulting to ``default_window``."""
        wanted = label or self.default_window
        for window in self.windows:
            if window.label == wanted:
                return window
        known = ", ".join(w.label for w in self.windows)
        raise ConfigError(f"Unknown time window: {wanted} (known: {known})")


def load_config(path: Optional[Path] = None) -> NavigatorConfig:
    """
    Load configuration from YAML and apply environment overrides.

    A missing file yields defaults. Invalid YAML or values raise ConfigError.
    """
    config_path = path or DEFAULT_CONFIG_PATH
    data = {}
    if config_path.exists():
        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{config_path} must contain a mapping at the top level")
        logger.debug("Loaded configuration from %s", config_path)
    elif path is not None:
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        config = NavigatorConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    return apply_env_overrides(config)


def apply_env_overrides(config: NavigatorConfig) -> NavigatorConfig:
    """Override the backend URL and bearer token from the environment."""
    url = os.getenv(ENV_URL, "")
    token = os.getenv(ENV_TOKEN, "")
    if not url and not token:
        return config

    backend = config.backend.model_copy(deep=True)
    if url:
        backend.url = url
    if token:
        backend.headers["Authorization"] = f"Bearer {token}"
    return config.model_copy(update={"backend": backend})
