"""
Thermoprofile Configuration Settings

Profile generation tunables and the static thermostat directory.
User-facing settings are loaded from config.yaml (development) or
/data/options.json (add-on deployment).
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields

import yaml

from .exceptions import ConfigurationError
from .models import Stage, SystemType

logger = logging.getLogger(__name__)

OPTIONS_PATH = "/data/options.json"


def _camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def _default_minimum_sample_duration() -> dict[Stage, int]:
    # Resist needs 30 minutes; a token change already discards the last 30
    # minutes of a run, so anything shorter would never survive.
    return {
        Stage.HEAT_1: 300,
        Stage.HEAT_2: 300,
        Stage.AUXILIARY_HEAT_1: 300,
        Stage.AUXILIARY_HEAT_2: 300,
        Stage.COOL_1: 300,
        Stage.COOL_2: 300,
        Stage.RESIST: 1800,
    }


@dataclass
class ProfileSettings:
    """Tunables for profile generation. All durations are in seconds."""

    minimum_sample_duration: dict[Stage, int] = field(default_factory=_default_minimum_sample_duration)
    minimum_on_for: int = 300  # Equipment on this long before a sample starts
    minimum_off_for: int = 300  # Everything off this long before a resist sample starts
    smoothing: float = 1  # Outdoor temperature bucket width (°)
    required_samples: int = 2  # Samples needed per outdoor temperature bucket
    required_points: int = 5  # Buckets needed before a stage has a profile
    max_lookback: int = 1800
    max_lookahead: int = 1800
    ignore_solar_heating: bool = True  # Only sample while the sun is down
    close_on_run_end: bool = True  # A heat/cool stage going idle ends its sample
    memory_budget_mb: float = 16.0
    per_thermostat_day_cost_mb: float = 0.6
    degree_day_baseline: float = 65.0
    profile_cache_seconds: int = 604800  # 7 days

    def __post_init__(self):
        durations = _default_minimum_sample_duration()
        for key, value in self.minimum_sample_duration.items():
            durations[Stage(key)] = int(value)
        self.minimum_sample_duration = durations
        self.validate()

    def validate(self) -> None:
        """Raise ConfigurationError if any value cannot be used."""
        if self.smoothing <= 0:
            raise ConfigurationError(f"smoothing must be positive, got {self.smoothing}")
        if self.memory_budget_mb <= 0 or self.per_thermostat_day_cost_mb <= 0:
            raise ConfigurationError("Memory budget and per-thermostat day cost must be positive")
        for name in ("minimum_on_for", "minimum_off_for", "max_lookback", "max_lookahead",
                     "required_samples", "required_points"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")
        for stage, seconds in self.minimum_sample_duration.items():
            if seconds < 0:
                raise ConfigurationError(f"minimum_sample_duration for {stage.value} must not be negative")

    @classmethod
    def from_dict(cls, data: dict | None) -> "ProfileSettings":
        """Create from dictionary, ignoring unknown keys."""
        converted = {_camel_to_snake(k): v for k, v in (data or {}).items()}
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(converted) - known)
        if unknown:
            logger.warning(f"Ignoring unknown profile settings: {unknown}")
        return cls(**{k: v for k, v in converted.items() if k in known})


@dataclass
class ThermostatSettings:
    """A thermostat known to the generator."""

    id: int
    group_id: int
    system_type: SystemType = field(default_factory=SystemType)
    time_zone: str = "America/New_York"  # Local time decides the solar filter and degree days
    name: str = ""
    inactive: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "ThermostatSettings":
        """Create from dictionary."""
        converted = {_camel_to_snake(k): v for k, v in data.items()}

        # Accept the vendor shape {"system_type": {"detected": {...}}}
        system_type = converted.get("system_type") or {}
        if "detected" in system_type:
            system_type = system_type["detected"]
        converted["system_type"] = SystemType.from_dict(system_type)

        # Handle legacy thermostat_id/thermostat_group_id keys
        if "thermostat_id" in converted:
            converted["id"] = converted.pop("thermostat_id")
        if "thermostat_group_id" in converted:
            converted["group_id"] = converted.pop("thermostat_group_id")

        converted["id"] = int(converted["id"])
        converted["group_id"] = int(converted["group_id"])
        converted["inactive"] = bool(converted.get("inactive", False))
        return cls(**converted)


def load_config(config_path: str | None = None) -> tuple[ProfileSettings, dict[int, ThermostatSettings]]:
    """Load profile settings and the thermostat directory.

    Reads /data/options.json when present, otherwise the `options` section of
    a YAML config file.

    Args:
        config_path: Path to config.yaml (ignored when options.json exists)

    Returns:
        Tuple of (ProfileSettings, {thermostat_id: ThermostatSettings})

    Raises:
        ConfigurationError: If no configuration can be found or it is malformed
    """
    if os.path.exists(OPTIONS_PATH):
        with open(OPTIONS_PATH) as f:
            options = json.load(f)
        logger.debug(f"Loaded options from {OPTIONS_PATH}")
    elif config_path and os.path.exists(config_path):
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
        options = config.get("options", {})
        logger.debug(f"Loaded options from {config_path}")
    else:
        raise ConfigurationError(f"No configuration found (looked for {OPTIONS_PATH} and {config_path})")

    try:
        settings = ProfileSettings.from_dict(options.get("profile", {}))
        thermostats = [ThermostatSettings.from_dict(t) for t in options.get("thermostats", [])]
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    logger.info(f"Loaded {len(thermostats)} thermostat(s) from configuration")
    return settings, {t.id: t for t in thermostats}
