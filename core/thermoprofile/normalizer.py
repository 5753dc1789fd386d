"""
Runtime Normalizer

Reshapes raw runtime rows so heat, cool and auxiliary columns mean the same
thing for every kind of equipment, instead of repeating that logic
throughout the segmentation code.
"""

from datetime import datetime
from functools import lru_cache
from zoneinfo import ZoneInfo

from .models import NormalizedRecord, RuntimeRecord, SystemType
from .rounding import as_bucket, round_half_away

# Local hours strictly between these are treated as daylight
SOLAR_HOURS_AFTER = 6
SOLAR_HOURS_BEFORE = 22


@lru_cache(maxsize=64)
def _zone(time_zone: str) -> ZoneInfo:
    return ZoneInfo(time_zone)


def local_time(timestamp: datetime, time_zone: str) -> datetime:
    """Convert a timestamp to the thermostat's local time."""
    return timestamp.astimezone(_zone(time_zone))


def is_solar_hour(timestamp: datetime, time_zone: str) -> bool:
    """True when the sun may be heating the house (local hour in (6, 22))."""
    hour = local_time(timestamp, time_zone).hour
    return SOLAR_HOURS_AFTER < hour < SOLAR_HOURS_BEFORE


def smooth_outdoor_temperature(tenths: int | None, smoothing: float = 1) -> float | int | None:
    """Round tenths of a degree to whole degrees, then to the smoothing width."""
    if tenths is None:
        return None
    degrees = round_half_away(tenths / 10)
    return as_bucket(round_half_away(degrees / smoothing) * smoothing)


def normalize_record(
    record: RuntimeRecord,
    system_type: SystemType,
    smoothing: float = 1
) -> NormalizedRecord:
    """Reshape a raw runtime row into stage columns.

    Heat pumps (compressor/geothermal heat) report heat through the
    compressor, so heat_1/heat_2 come from compressor runtime while the
    compressor is heating and auxiliary heat stays auxiliary. Everything else
    reports its primary heat on the auxiliary outputs, which become
    heat_1/heat_2. Cooling always comes from the compressor.

    Args:
        record: Raw runtime row
        system_type: Detected equipment of the row's thermostat
        smoothing: Outdoor temperature bucket width in degrees

    Returns:
        NormalizedRecord with whole-degree, smoothed outdoor temperature
    """
    if system_type.compressor_heat:
        if record.compressor_mode == "heat":
            heat_1, heat_2 = record.compressor_1, record.compressor_2
        else:
            heat_1, heat_2 = 0, 0
        auxiliary_heat_1 = record.auxiliary_heat_1
        auxiliary_heat_2 = record.auxiliary_heat_2
    else:
        heat_1, heat_2 = record.auxiliary_heat_1, record.auxiliary_heat_2
        auxiliary_heat_1, auxiliary_heat_2 = 0, 0

    if record.compressor_mode == "cool":
        cool_1, cool_2 = record.compressor_1, record.compressor_2
    else:
        cool_1, cool_2 = 0, 0

    any_output_active = (
        record.compressor_1 != 0
        or record.compressor_2 != 0
        or record.auxiliary_heat_1 != 0
        or record.auxiliary_heat_2 != 0
    )

    return NormalizedRecord(
        timestamp=record.timestamp,
        thermostat_id=record.thermostat_id,
        indoor_temperature=record.indoor_temperature,
        outdoor_temperature=smooth_outdoor_temperature(record.outdoor_temperature, smoothing),
        heat_1=heat_1,
        heat_2=heat_2,
        auxiliary_heat_1=auxiliary_heat_1,
        auxiliary_heat_2=auxiliary_heat_2,
        cool_1=cool_1,
        cool_2=cool_2,
        any_output_active=any_output_active,
        system_mode=record.system_mode,
        setpoint_heat=record.setpoint_heat,
        setpoint_cool=record.setpoint_cool,
        event_token=record.event_token,
        climate_token=record.climate_token,
    )
