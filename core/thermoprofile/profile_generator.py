"""
Profile Generator

Builds a thermostat's thermal-response profile from a year of runtime:
per-stage indoor temperature change per hour by outdoor temperature, with a
linear trendline, plus mean setpoints, degree-days and runtime totals.

Values in the runtime store are sampled at the start of each 5-minute
interval and are not averages.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import numpy as np

from .aggregator import aggregate_samples
from .chunk_loader import ChunkLoader, floor_to_tick
from .degree_days import DegreeDayAccumulator
from .exceptions import ValidationError
from .models import PROFILE_STAGES, RUNTIME_STAGES, ThermalProfile
from .profile_cache import ProfileCache
from .rounding import round_to_int
from .segmentation import SegmentationState
from .settings import ProfileSettings, ThermostatSettings
from .trendline import fit_linear_trendline

logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    """Get current time as timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def one_year_before(timestamp: datetime) -> datetime:
    """Same wall-clock time a year earlier (Feb 29 maps to Feb 28)."""
    try:
        return timestamp.replace(year=timestamp.year - 1)
    except ValueError:
        return timestamp.replace(year=timestamp.year - 1, day=28)


class ProfileGenerator:
    """
    Generates thermal-response profiles.

    The source must provide `fetch(thermostat_ids, start_time, stop_time)`
    returning RuntimeRecord rows; see ChunkLoader.
    """

    def __init__(
        self,
        source,
        thermostats: dict[int, ThermostatSettings],
        settings: ProfileSettings | None = None,
        cache: ProfileCache | None = None,
        clock: Callable[[], datetime] = now_utc,
        prefetch: bool = False
    ):
        """Initialize generator.

        Args:
            source: Runtime telemetry source
            thermostats: Every known thermostat, by id
            settings: Default profile settings
            cache: Optional cache of generated profiles
            clock: Returns the current time
            prefetch: Load the next chunk while scanning the current one
        """
        self.source = source
        self.thermostats = thermostats
        self.settings = settings or ProfileSettings()
        self.cache = cache
        self.clock = clock
        self.prefetch = prefetch

    def get_thermostat(self, thermostat_id: int) -> ThermostatSettings:
        """Look up an active thermostat.

        Raises:
            ValidationError: If the thermostat is unknown or inactive
        """
        thermostat = self.thermostats.get(thermostat_id)
        if thermostat is None or thermostat.inactive:
            raise ValidationError("Invalid thermostat_id.")
        return thermostat

    def get_group(self, thermostat_id: int) -> dict[int, ThermostatSettings]:
        """Active thermostats sharing the thermostat's location."""
        thermostat = self.get_thermostat(thermostat_id)
        return {
            t.id: t for t in self.thermostats.values()
            if t.group_id == thermostat.group_id and not t.inactive
        }

    def generate(
        self,
        thermostat_id: int,
        begin: Optional[datetime] = None,
        end: Optional[datetime] = None,
        settings: Optional[ProfileSettings] = None,
        use_cache: bool = True
    ) -> dict:
        """Generate the profile for a thermostat.

        Args:
            thermostat_id: Thermostat to profile
            begin: First tick (default: one year before end)
            end: Last tick (default: now)
            settings: Overrides the generator's settings for this call
            use_cache: Serve and store the default one-year profile in the cache

        Returns:
            Profile dictionary (temperature, setpoint, degree_days, runtime, metadata)

        Raises:
            ValidationError: If the thermostat is unknown or inactive
            ConfigurationError: If the group does not fit the memory budget
        """
        thermostat = self.get_thermostat(thermostat_id)
        group = self.get_group(thermostat_id)
        settings = settings or self.settings
        now = self.clock()

        # Only the default window with default settings is cacheable
        cacheable = use_cache and self.cache is not None and begin is None and end is None and settings is self.settings
        if cacheable:
            cached = self.cache.get(thermostat_id, now)
            if cached is not None:
                logger.info(f"Thermostat {thermostat_id}: serving cached profile")
                return cached

        end = floor_to_tick(end or now)
        begin = floor_to_tick(begin or one_year_before(end))

        loader = ChunkLoader(
            self.source,
            group,
            thermostat_id,
            begin,
            end,
            settings=settings,
            prefetch=self.prefetch,
        )
        logger.info(
            f"Thermostat {thermostat_id}: generating profile for {begin:%Y-%m-%d} to {end:%Y-%m-%d} "
            f"({len(group)} thermostat(s) in group, {loader.chunk_days} day chunks)"
        )

        state = SegmentationState(target_id=thermostat_id, group_size=len(group), settings=settings)
        degree_days = DegreeDayAccumulator(settings.degree_day_baseline, thermostat.time_zone)
        runtime_seconds = {stage: 0 for stage in RUNTIME_STAGES}
        first_timestamp = None

        for tick in loader.ticks():
            observation = tick.observation
            if observation is not None:
                if first_timestamp is None:
                    first_timestamp = observation.raw.timestamp
                degree_days.add(tick.timestamp, observation.raw.outdoor_temperature)
                for stage in RUNTIME_STAGES:
                    runtime_seconds[stage] += observation.normalized.runtime(stage)

            state.step(tick)

        profile = self.assemble(state, degree_days, runtime_seconds, first_timestamp, now, settings)

        logger.info(
            f"Thermostat {thermostat_id}: {len(state.samples)} samples over {loader.chunks_loaded} chunk(s); "
            f"resolved stages: {[k for k, v in profile['temperature'].items() if v is not None]}"
        )

        if cacheable:
            self.cache.put(thermostat_id, profile, now)
        return profile

    def generate_all(self, thermostat_ids, max_workers: int = 4) -> dict[int, dict]:
        """Generate profiles for several thermostats in parallel.

        Each thermostat gets its own scan state. The source is shared, so its
        fetch() must be safe to call from several threads at once;
        InfluxRuntimeSource keeps one HTTP session per thread.
        """
        thermostat_ids = list(thermostat_ids)
        for thermostat_id in thermostat_ids:
            self.get_thermostat(thermostat_id)

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            profiles = executor.map(self.generate, thermostat_ids)
            return dict(zip(thermostat_ids, profiles))

    def assemble(
        self,
        state: SegmentationState,
        degree_days: DegreeDayAccumulator,
        runtime_seconds: dict,
        first_timestamp: Optional[datetime],
        now: datetime,
        settings: ProfileSettings
    ) -> dict:
        """Combine samples, setpoints, degree-days and runtime into a profile."""
        profile = ThermalProfile(
            temperature={stage.value: None for stage in PROFILE_STAGES},
            setpoint={"heat": None, "cool": None},
            runtime={
                stage.value: round_to_int(runtime_seconds[stage] / 3600)
                for stage in RUNTIME_STAGES
            },
            metadata={
                "generated_at": now.isoformat(),
                "duration": None,
                "temperature": {stage.value: {"deltas": {}} for stage in PROFILE_STAGES},
                "setpoint": {},
            },
        )

        if first_timestamp is not None:
            profile.metadata["duration"] = round_to_int((now - first_timestamp) / timedelta(days=1))

        for stage, aggregate in aggregate_samples(state.samples, settings).items():
            profile.metadata["temperature"][stage.value]["deltas"] = {
                outdoor_temperature: {"samples": count}
                for outdoor_temperature, count in aggregate.samples.items()
            }
            if aggregate.resolved:
                profile.temperature[stage.value] = {
                    "deltas": aggregate.deltas,
                    "linear_trendline": fit_linear_trendline(aggregate.deltas),
                }

        for setpoint_type in ("heat", "cool"):
            values = state.setpoints[setpoint_type]
            if values:
                profile.setpoint[setpoint_type] = round_to_int(float(np.mean(values))) / 10
                profile.metadata["setpoint"][setpoint_type] = {"samples": len(values)}

        heat, cool = degree_days.totals()
        profile.degree_days = {"heat": heat, "cool": cool}

        return profile.to_dict()
