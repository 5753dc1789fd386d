"""
Synthetic runtime data for tests.

All timestamps are UTC night hours and test thermostats use the UTC time
zone, so the solar-heating filter never removes them unless a test wants it
to.
"""

from datetime import datetime, timedelta, timezone

from thermoprofile.models import RuntimeRecord, SystemType
from thermoprofile.settings import ThermostatSettings

BASE_TIME = datetime(2024, 1, 15, 0, 0, tzinfo=timezone.utc)
FIVE_MINUTES = timedelta(minutes=5)


def at(minutes: int, day: int = 0) -> datetime:
    """Timestamp `minutes` after midnight on BASE_TIME + `day` days."""
    return BASE_TIME + timedelta(days=day, minutes=minutes)


def make_record(
    timestamp,
    thermostat_id=1,
    indoor=700,
    outdoor=300,
    compressor_1=0,
    compressor_2=0,
    compressor_mode="off",
    auxiliary_heat_1=0,
    auxiliary_heat_2=0,
    system_mode="heat",
    setpoint_heat=690,
    setpoint_cool=760,
    event_token="0",
    climate_token="home",
):
    return RuntimeRecord(
        timestamp=timestamp,
        thermostat_id=thermostat_id,
        indoor_temperature=indoor,
        outdoor_temperature=outdoor,
        compressor_1=compressor_1,
        compressor_2=compressor_2,
        compressor_mode=compressor_mode,
        auxiliary_heat_1=auxiliary_heat_1,
        auxiliary_heat_2=auxiliary_heat_2,
        system_mode=system_mode,
        setpoint_heat=setpoint_heat,
        setpoint_cool=setpoint_cool,
        event_token=event_token,
        climate_token=climate_token,
    )


def make_thermostat(thermostat_id=1, group_id=1, heat="gas", cool="compressor", inactive=False):
    return ThermostatSettings(
        id=thermostat_id,
        group_id=group_id,
        system_type=SystemType(heat=heat, cool=cool),
        time_zone="UTC",
        inactive=inactive,
    )


class FakeRuntimeSource:
    """In-memory telemetry source that remembers every fetch window."""

    def __init__(self, records=()):
        self.records = sorted(records, key=lambda r: (r.timestamp, r.thermostat_id))
        self.calls = []

    def fetch(self, thermostat_ids, start_time, stop_time):
        self.calls.append((frozenset(thermostat_ids), start_time, stop_time))
        return [
            r for r in self.records
            if r.thermostat_id in thermostat_ids and start_time <= r.timestamp < stop_time
        ]


# Indoor temperature (tenths) over a 40-minute heat run, 00:05 to 00:40
HEAT_RUN_INDOOR = [700, 703, 706, 709, 712, 715, 718, 720]


def heat_run_night(day=0, outdoor=300, thermostat_id=1, idle_until=90, resist_outdoor_change_at=None):
    """One night: idle at 00:00, gas heat 00:05-00:40, idle after.

    Indoor rises 2° over the run and then drifts down 1° over the next hour.
    With `resist_outdoor_change_at` the outdoor temperature rises five degrees
    at that minute, which closes the idle (resist) sample.
    """
    records = [make_record(at(0, day), thermostat_id, indoor=700, outdoor=outdoor)]

    for i, indoor in enumerate(HEAT_RUN_INDOOR):
        records.append(
            make_record(at(5 + 5 * i, day), thermostat_id, indoor=indoor, outdoor=outdoor, auxiliary_heat_1=300)
        )

    for minute in range(45, idle_until + 1, 5):
        indoor = 720 - (minute - 45) // 7
        current_outdoor = outdoor
        if resist_outdoor_change_at is not None and minute >= resist_outdoor_change_at:
            current_outdoor = outdoor + 50
        records.append(make_record(at(minute, day), thermostat_id, indoor=indoor, outdoor=current_outdoor))

    return records


def heat_cycle_nights(nights=10, thermostat_id=1):
    """Nightly heat runs cycling through five outdoor temperatures (20°-24°)."""
    records = []
    for day in range(nights):
        outdoor = (20 + day % 5) * 10
        records.extend(
            heat_run_night(
                day=day,
                outdoor=outdoor,
                thermostat_id=thermostat_id,
                idle_until=150,
                resist_outdoor_change_at=120,
            )
        )
    return records
