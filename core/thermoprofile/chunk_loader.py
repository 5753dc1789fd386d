"""
Chunk Loader

Loads a year of 5-minute runtime rows for a thermostat group without holding
the whole year in memory. Rows are fetched in day-sized chunks whose size is
chosen from a memory budget, each padded with a lookback and lookahead window
so samples ending near a chunk edge can still see the rows they need.

The rest of the pipeline only sees a lazy sequence of ticks.
"""

import logging
import math
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional

from .exceptions import ConfigurationError
from .models import NormalizedRecord, RuntimeRecord
from .normalizer import is_solar_hour, normalize_record
from .settings import ProfileSettings, ThermostatSettings

logger = logging.getLogger(__name__)

TICK_SECONDS = 300
FIVE_MINUTES = timedelta(seconds=TICK_SECONDS)
SECONDS_PER_DAY = 86400


def floor_to_tick(timestamp: datetime) -> datetime:
    """Round a timestamp down to the 5-minute grid."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    epoch = int(timestamp.timestamp())
    return datetime.fromtimestamp(epoch - epoch % TICK_SECONDS, tz=timezone.utc)


def compute_chunk_days(
    thermostat_count: int,
    memory_budget_mb: float = 16.0,
    per_thermostat_day_cost_mb: float = 0.6
) -> int:
    """Largest number of whole days of rows for the group that fits the budget.

    Raises:
        ConfigurationError: If not even one day fits
    """
    if thermostat_count < 1:
        raise ConfigurationError("At least one thermostat is required")

    days = math.floor(memory_budget_mb / (per_thermostat_day_cost_mb * thermostat_count))
    if days == 0:
        raise ConfigurationError("Too many thermostats; cannot generate temperature profile.")
    return days


@dataclass(frozen=True)
class Observation:
    """A raw row of the profiled thermostat and its normalized form."""

    raw: RuntimeRecord
    normalized: NormalizedRecord


@dataclass
class RuntimeChunk:
    """Rows for one chunk window.

    `working` holds the normalized rows segmentation may use (night-only when
    solar heating is ignored), indexed by timestamp then thermostat id, and
    covers the lookback/lookahead padding. `observed` holds the profiled
    thermostat's rows inside the nominal window, before the night filter.
    """

    begin: datetime  # nominal, inclusive
    end: datetime  # nominal, exclusive
    working: dict[datetime, dict[int, NormalizedRecord]] = field(default_factory=dict)
    observed: dict[datetime, Observation] = field(default_factory=dict)

    def record_at(self, thermostat_id: int, timestamp: datetime) -> Optional[NormalizedRecord]:
        return self.working.get(timestamp, {}).get(thermostat_id)


@dataclass(frozen=True)
class Tick:
    """One 5-minute step of the scan."""

    timestamp: datetime
    records: dict[int, NormalizedRecord]  # working rows of the group at this timestamp
    observation: Optional[Observation]
    chunk: RuntimeChunk

    def record_at(self, thermostat_id: int, timestamp: datetime) -> Optional[NormalizedRecord]:
        """Working row of a thermostat at another timestamp in this chunk's window."""
        return self.chunk.record_at(thermostat_id, timestamp)


class ChunkLoader:
    """
    Pull-based tick sequence over chunked runtime queries.

    The source must provide `fetch(thermostat_ids, start_time, stop_time)`
    returning RuntimeRecord rows in [start_time, stop_time) ordered by
    timestamp. At most two chunks are held: the one being scanned and, when
    prefetching, the next one.
    """

    def __init__(
        self,
        source,
        thermostats: dict[int, ThermostatSettings],
        target_id: int,
        begin: datetime,
        end: datetime,
        settings: ProfileSettings | None = None,
        prefetch: bool = False
    ):
        """Initialize loader.

        Args:
            source: Telemetry source with a fetch() method
            thermostats: Settings for every thermostat in the group
            target_id: Thermostat being profiled
            begin: First tick (floored to 5 minutes)
            end: Last tick, inclusive (floored to 5 minutes)
            settings: Profile settings
            prefetch: Fetch the next chunk in the background while scanning

        Raises:
            ConfigurationError: If the group does not fit the memory budget
        """
        self.source = source
        self.thermostats = thermostats
        self.thermostat_ids = set(thermostats)
        self.target_id = target_id
        self.settings = settings or ProfileSettings()
        self.begin = floor_to_tick(begin)
        self.end = floor_to_tick(end)
        self.prefetch = prefetch

        self.chunk_days = compute_chunk_days(
            len(self.thermostat_ids),
            self.settings.memory_budget_mb,
            self.settings.per_thermostat_day_cost_mb,
        )
        self.chunk_size = timedelta(seconds=self.chunk_days * SECONDS_PER_DAY)
        self.max_lookback = timedelta(seconds=self.settings.max_lookback)
        self.max_lookahead = timedelta(seconds=self.settings.max_lookahead)
        self.chunks_loaded = 0

    def ticks(self) -> Iterator[Tick]:
        """Yield one tick per 5 minutes from begin to end inclusive."""
        executor = ThreadPoolExecutor(max_workers=1) if self.prefetch else None
        pending: Future | None = None
        chunk: RuntimeChunk | None = None
        prefetch_due = False
        cursor = self.begin

        try:
            while cursor <= self.end:
                # Get a new chunk of data
                if chunk is None or cursor >= chunk.end:
                    if pending is not None:
                        chunk = pending.result()
                        pending = None
                    else:
                        chunk = self.load_chunk(cursor)
                    prefetch_due = executor is not None and chunk.end <= self.end

                yield Tick(
                    timestamp=cursor,
                    records=chunk.working.get(cursor, {}),
                    observation=chunk.observed.get(cursor),
                    chunk=chunk,
                )
                cursor += FIVE_MINUTES

                # Ticks of the previous chunk are released once the consumer
                # asks for the second tick of this one
                if prefetch_due:
                    pending = executor.submit(self.load_chunk, chunk.end)
                    prefetch_due = False
        finally:
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)

    def load_chunk(self, cursor: datetime) -> RuntimeChunk:
        """Fetch and index the chunk whose nominal window starts at cursor."""
        chunk = RuntimeChunk(begin=cursor, end=cursor + self.chunk_size)
        rows = self.source.fetch(
            self.thermostat_ids,
            cursor - self.max_lookback,
            chunk.end + self.max_lookahead,
        )

        target = self.thermostats[self.target_id]
        for row in rows:
            thermostat = self.thermostats.get(row.thermostat_id)
            if thermostat is None:
                continue

            normalized = normalize_record(row, thermostat.system_type, self.settings.smoothing)

            if (
                row.thermostat_id == self.target_id
                and chunk.begin <= row.timestamp < chunk.end
                and row.timestamp <= self.end
            ):
                chunk.observed[row.timestamp] = Observation(raw=row, normalized=normalized)

            if self.settings.ignore_solar_heating and is_solar_hour(row.timestamp, target.time_zone):
                continue

            chunk.working.setdefault(row.timestamp, {})[row.thermostat_id] = normalized

        self.chunks_loaded += 1
        logger.info(
            f"Loaded chunk {chunk.begin:%Y-%m-%d} to {chunk.end:%Y-%m-%d}: "
            f"{len(rows)} rows, {len(chunk.working)} working timestamps"
        )
        return chunk
