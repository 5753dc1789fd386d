"""
Thermoprofile Data Models

Runtime records as they come out of the telemetry store, their stage-oriented
normalized form, and the samples and profile built from them.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class Stage(str, Enum):
    """An addressable HVAC output, or the passive "resist" (all off) condition."""

    HEAT_1 = "heat_1"
    HEAT_2 = "heat_2"
    AUXILIARY_HEAT_1 = "auxiliary_heat_1"
    AUXILIARY_HEAT_2 = "auxiliary_heat_2"
    COOL_1 = "cool_1"
    COOL_2 = "cool_2"
    RESIST = "resist"


# Every stage that appears in the profile output, in output order
PROFILE_STAGES = (
    Stage.HEAT_1,
    Stage.HEAT_2,
    Stage.AUXILIARY_HEAT_1,
    Stage.AUXILIARY_HEAT_2,
    Stage.COOL_1,
    Stage.COOL_2,
    Stage.RESIST,
)

# Stages that can anchor a sample. Auxiliary stages never do.
SAMPLED_STAGES = (
    Stage.HEAT_1,
    Stage.HEAT_2,
    Stage.COOL_1,
    Stage.COOL_2,
    Stage.RESIST,
)

# Stages with equipment runtime that gets totalled
RUNTIME_STAGES = (
    Stage.HEAT_1,
    Stage.HEAT_2,
    Stage.AUXILIARY_HEAT_1,
    Stage.AUXILIARY_HEAT_2,
    Stage.COOL_1,
    Stage.COOL_2,
)

# Heat equipment types where heat comes from the compressor
COMPRESSOR_HEAT_TYPES = ("compressor", "geothermal")


@dataclass(frozen=True)
class SystemType:
    """Detected equipment types for a thermostat."""

    heat: str = "none"
    cool: str = "none"

    @property
    def compressor_heat(self) -> bool:
        """True when heat_1/heat_2 are driven by the compressor."""
        return self.heat in COMPRESSOR_HEAT_TYPES

    @classmethod
    def from_dict(cls, data: dict | None) -> "SystemType":
        """Create from a {heat, cool} dictionary (missing keys mean "none")."""
        data = data or {}
        return cls(heat=data.get("heat") or "none", cool=data.get("cool") or "none")


@dataclass(frozen=True)
class RuntimeRecord:
    """One 5-minute runtime row for one thermostat, as stored.

    Temperatures and setpoints are in tenths of a degree. Output columns hold
    the seconds (0-300) the output was active during the interval.
    """

    timestamp: datetime
    thermostat_id: int
    indoor_temperature: Optional[int] = None
    outdoor_temperature: Optional[int] = None
    compressor_1: int = 0
    compressor_2: int = 0
    compressor_mode: Optional[str] = None  # "heat", "cool", "off"
    auxiliary_heat_1: int = 0
    auxiliary_heat_2: int = 0
    system_mode: Optional[str] = None  # "off", "heat", "cool", "auto"
    setpoint_heat: Optional[int] = None
    setpoint_cool: Optional[int] = None
    event_token: Optional[str] = None
    climate_token: Optional[str] = None


@dataclass(frozen=True)
class NormalizedRecord:
    """A runtime record reshaped into stage columns.

    Outdoor temperature is in whole (smoothed) degrees; indoor temperature
    stays in tenths.
    """

    timestamp: datetime
    thermostat_id: int
    indoor_temperature: Optional[int]
    outdoor_temperature: Optional[float]
    heat_1: int
    heat_2: int
    auxiliary_heat_1: int
    auxiliary_heat_2: int
    cool_1: int
    cool_2: int
    any_output_active: bool
    system_mode: Optional[str]
    setpoint_heat: Optional[int]
    setpoint_cool: Optional[int]
    event_token: Optional[str]
    climate_token: Optional[str]

    def runtime(self, stage: Stage) -> int:
        """Seconds of runtime for an output stage."""
        if stage is Stage.HEAT_1:
            return self.heat_1
        if stage is Stage.HEAT_2:
            return self.heat_2
        if stage is Stage.AUXILIARY_HEAT_1:
            return self.auxiliary_heat_1
        if stage is Stage.AUXILIARY_HEAT_2:
            return self.auxiliary_heat_2
        if stage is Stage.COOL_1:
            return self.cool_1
        if stage is Stage.COOL_2:
            return self.cool_2
        raise ValueError(f"Stage {stage.value} has no runtime column")

    @property
    def has_temperatures(self) -> bool:
        return self.indoor_temperature is not None and self.outdoor_temperature is not None

    def tokens_differ(self, other: "NormalizedRecord") -> bool:
        """True when the schedule (event) or sensor set (climate) changed."""
        return (
            self.event_token != other.event_token
            or self.climate_token != other.climate_token
        )


@dataclass(frozen=True)
class Sample:
    """A closed run: indoor temperature change over a span of one stage."""

    stage: Stage
    outdoor_temperature: float
    delta_indoor: int  # tenths of a degree
    duration_seconds: int
    delta_per_hour: float  # tenths of a degree per hour
    started_at: datetime
    ended_at: datetime


@dataclass
class ThermalProfile:
    """Generated thermal-response profile for a thermostat."""

    temperature: dict[str, Any] = field(default_factory=dict)
    setpoint: dict[str, Optional[float]] = field(default_factory=dict)
    degree_days: dict[str, Optional[int]] = field(default_factory=dict)
    runtime: dict[str, int] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Plain dictionary in the public output shape."""
        return asdict(self)
