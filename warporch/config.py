"""
Operator settings for warporch.

Loads and validates config.yaml from the warporch home directory.
These are node-level knobs (retry budget, timeouts, logging); the warp-route
configuration itself arrives with each job and is handled by warporch.codec.
"""

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from warporch.errors import SettingsError


def get_warporch_home() -> Path:
    """Return the settings directory ($WARPORCH_HOME or ~/.config/warporch)."""
    home = os.environ.get("WARPORCH_HOME")
    if home:
        return Path(home)
    return Path("~/.config/warporch").expanduser()


@dataclass(frozen=True)
class WarporchConfig:
    """
    Operator settings.

    Attributes:
        max_attempts: Attempts per step before it is marked failed
        backoff_seconds: Delay before the first retry
        backoff_multiplier: Growth factor applied to each subsequent delay
        max_backoff_seconds: Upper bound on a single delay
        step_timeout_s: Per-attempt timeout for a step
        confirmation_timeout_s: Passed to gateways when awaiting receipts
        report_max_attempts: Delivery attempts for a JobResult
        report_backoff_seconds: Initial delay between delivery attempts
        log_level: DEBUG, INFO, WARNING or ERROR
        log_format: "structured" (JSON) or "pretty" (rich console)
        log_file: Optional path for a file handler
    """
    max_attempts: int = 3
    backoff_seconds: float = 2.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 60.0
    step_timeout_s: float = 300.0
    confirmation_timeout_s: float = 120.0
    report_max_attempts: int = 5
    report_backoff_seconds: float = 1.0
    log_level: str = "INFO"
    log_format: str = "structured"
    log_file: Optional[str] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise SettingsError("max_attempts must be >= 1")
        if self.report_max_attempts < 1:
            raise SettingsError("report_max_attempts must be >= 1")
        for name in ("backoff_seconds", "max_backoff_seconds", "report_backoff_seconds"):
            if getattr(self, name) < 0:
                raise SettingsError(f"{name} must be >= 0")
        if self.backoff_multiplier < 1:
            raise SettingsError("backoff_multiplier must be >= 1")
        if self.step_timeout_s <= 0 or self.confirmation_timeout_s <= 0:
            raise SettingsError("timeouts must be positive")
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise SettingsError(f"Invalid log_level: {self.log_level}")
        if self.log_format not in ("structured", "pretty"):
            raise SettingsError(f"Invalid log_format: {self.log_format}")

    def backoff_delay(self, attempt: int) -> float:
        """Delay to wait after a failed attempt (1-indexed)."""
        delay = self.backoff_seconds * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_backoff_seconds)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WarporchConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise SettingsError(f"Unknown settings: {unknown}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_config(config_path: Optional[Path] = None) -> WarporchConfig:
    """
    Load operator settings from YAML.

    Args:
        config_path: Path to config file. Defaults to $WARPORCH_HOME/config.yaml

    Returns:
        WarporchConfig instance

    Raises:
        FileNotFoundError: If the config file does not exist
        SettingsError: If the file is not valid YAML or has invalid values
    """
    if config_path is None:
        config_path = get_warporch_home() / "config.yaml"

    if not config_path.exists():
        raise FileNotFoundError(f"warporch config.yaml not found at {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise SettingsError(f"Invalid YAML syntax: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise SettingsError("config.yaml must contain a mapping")

    return WarporchConfig.from_dict(data)
