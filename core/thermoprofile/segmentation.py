"""
Sample Segmentation

Scans one thermostat's normalized runtime in time order and cuts it into
samples: spans where a single stage ran (or everything was off) at a steady
outdoor temperature with no schedule or sensor change, together with how
much the indoor temperature moved over the span.

Per tick:
1. Work out whether the whole group is off (all_off) or everything but the
   profiled thermostat is off (most_off).
2. Track how long each stage has been on, and how long everything has been off.
3. Anchor a stage once it has run long enough.
4. Close at most one stage whose conditions changed, in fixed priority order,
   and emit its sample.
5. Drop anchors whose runs have lapsed.

One SegmentationState is used per profiled thermostat and is never shared.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from .chunk_loader import TICK_SECONDS, Tick
from .models import NormalizedRecord, Sample, Stage
from .settings import ProfileSettings

logger = logging.getLogger(__name__)

# Tie-break when several stages hit a boundary on the same tick
BOUNDARY_PRIORITY = (
    Stage.HEAT_1,
    Stage.HEAT_2,
    Stage.COOL_1,
    Stage.COOL_2,
    Stage.RESIST,
)

ON_STAGES = (Stage.HEAT_1, Stage.HEAT_2, Stage.COOL_1, Stage.COOL_2)
HEAT_STAGES = (Stage.HEAT_1, Stage.HEAT_2)
COOL_STAGES = (Stage.COOL_1, Stage.COOL_2)


def _empty_anchors() -> dict[Stage, Optional[NormalizedRecord]]:
    return {stage: None for stage in BOUNDARY_PRIORITY}


def _empty_on_for() -> dict[Stage, int]:
    return {stage: 0 for stage in ON_STAGES}


@dataclass
class OffState:
    """Group-wide off flags for a tick."""

    all_off: bool
    most_off: bool


def detect_off(records: dict[int, NormalizedRecord], target_id: int, group_size: int) -> OffState:
    """Work out all_off/most_off for the group's rows at one timestamp.

    A thermostat counts as possibly running when any output is active or
    either temperature is missing. Missing rows for any thermostat mean
    neither flag can be true.
    """
    if len(records) < group_size:
        return OffState(all_off=False, most_off=False)

    all_off = True
    most_off = True
    for thermostat_id, record in records.items():
        if record.any_output_active or not record.has_temperatures:
            all_off = False
            if thermostat_id != target_id:
                most_off = False

    return OffState(all_off=all_off, most_off=most_off)


@dataclass
class SegmentationState:
    """Mutable scan state for one profiled thermostat."""

    target_id: int
    group_size: int
    settings: ProfileSettings = field(default_factory=ProfileSettings)
    anchors: dict[Stage, Optional[NormalizedRecord]] = field(default_factory=_empty_anchors)
    on_for: dict[Stage, int] = field(default_factory=_empty_on_for)
    off_for: int = 0
    previous: Optional[NormalizedRecord] = None
    samples: list[Sample] = field(default_factory=list)
    setpoints: dict[str, list[int]] = field(default_factory=lambda: {"heat": [], "cool": []})

    def step(self, tick: Tick) -> Optional[Sample]:
        """Advance one tick. Returns the sample emitted this tick, if any."""
        current = tick.records.get(self.target_id)
        if current is None:
            # No usable row for the profiled thermostat; nothing moves
            return None

        self._record_setpoint(current)

        off = detect_off(tick.records, self.target_id, self.group_size)
        self._track_runs(current, off)
        self._arm_anchors(current, off)

        sample = None
        stage = self.detect_boundary(current, off)
        if stage is not None:
            sample = self._close(stage, current, tick)
            # Whatever happened, a new run may start here
            self.anchors[stage] = current

        self.previous = current
        self._invalidate_anchors(current)
        return sample

    def _record_setpoint(self, current: NormalizedRecord) -> None:
        if current.system_mode == "heat" and current.setpoint_heat is not None:
            self.setpoints["heat"].append(current.setpoint_heat)
        elif current.system_mode == "cool" and current.setpoint_cool is not None:
            self.setpoints["cool"].append(current.setpoint_cool)

    def _track_runs(self, current: NormalizedRecord, off: OffState) -> None:
        # Rows describe the 5 minutes ending at their timestamp
        if off.all_off:
            self.off_for += TICK_SECONDS
        else:
            self.off_for = 0

        for stage in ON_STAGES:
            runtime = current.runtime(stage)
            if runtime > 0:
                self.on_for[stage] += runtime
            else:
                self.on_for[stage] = 0

    def _arm_anchors(self, current: NormalizedRecord, off: OffState) -> None:
        settings = self.settings

        # Resist starts once the temperatures had a chance to settle
        if (
            off.all_off
            and self.off_for >= settings.minimum_off_for
            and self.anchors[Stage.RESIST] is None
        ):
            self.anchors[Stage.RESIST] = current

        # Heat stages do not require the other heat stage to be idle.
        # TODO: confirm with the data owners whether concurrent heat_1/heat_2
        # runtime should suppress sampling of the lower stage.
        no_auxiliary = current.auxiliary_heat_1 == 0 and current.auxiliary_heat_2 == 0
        for stage in HEAT_STAGES:
            if (
                off.most_off
                and self.on_for[stage] >= settings.minimum_on_for
                and no_auxiliary
                and self.anchors[stage] is None
            ):
                self.anchors[stage] = current

        if (
            off.most_off
            and self.on_for[Stage.COOL_1] >= settings.minimum_on_for
            and current.cool_2 == 0
            and self.anchors[Stage.COOL_1] is None
        ):
            self.anchors[Stage.COOL_1] = current

        if (
            off.most_off
            and self.on_for[Stage.COOL_2] >= settings.minimum_on_for
            and self.anchors[Stage.COOL_2] is None
        ):
            self.anchors[Stage.COOL_2] = current

    def boundary_reached(self, stage: Stage, current: NormalizedRecord, off: OffState) -> bool:
        """True when the open run for `stage` has to end at this tick.

        A run ends when the outdoor temperature moves, the schedule or sensor
        set changes, or the stage's gate lapses. For resist the gate lapses
        when anything starts. For heat/cool it lapses when another thermostat
        in the group starts.

        close_on_run_end (default True) extends that rule. A heat/cool stage
        whose own output went idle this tick also ends its run. Under the base
        rule, a run that simply stops has its anchor invalidated and emits no
        sample. Set it to False to get the base rule.
        """
        anchor = self.anchors[stage]
        if anchor is None or self.previous is None:
            return False

        if stage is Stage.RESIST:
            gate = off.all_off
        else:
            gate = off.most_off
            if self.settings.close_on_run_end and current.runtime(stage) == 0:
                gate = False

        return (
            current.outdoor_temperature != anchor.outdoor_temperature
            or current.tokens_differ(anchor)
            or not gate
        )

    def detect_boundary(self, current: NormalizedRecord, off: OffState) -> Optional[Stage]:
        """First stage in priority order whose run ends at this tick."""
        for stage in BOUNDARY_PRIORITY:
            if self.boundary_reached(stage, current, off):
                return stage
        return None

    def end_offset(self, anchor: NormalizedRecord, current: NormalizedRecord, tick: Tick) -> int:
        """Seconds before now where the closing sample should end.

        Normally the previous tick. A schedule/sensor change since the anchor
        throws away the last 30 minutes, since sensors were changing during
        that time. Otherwise a change coming up within the lookahead window
        pulls the end back by the same margin, because the thermostat's
        sensor averages already drift toward it.
        """
        max_lookahead = self.settings.max_lookahead
        if current.tokens_differ(anchor):
            return self.settings.max_lookback

        lookahead = TICK_SECONDS
        while lookahead <= max_lookahead:
            future = tick.record_at(self.target_id, tick.timestamp + timedelta(seconds=lookahead))
            if future is not None and future.tokens_differ(current):
                return max_lookahead - lookahead
            lookahead += TICK_SECONDS

        return TICK_SECONDS

    def _close(self, stage: Stage, current: NormalizedRecord, tick: Tick) -> Optional[Sample]:
        anchor = self.anchors[stage]
        offset = self.end_offset(anchor, current, tick)
        end_time = tick.timestamp - timedelta(seconds=offset)

        # Missing rows at the end point drop the sample, no further lookback
        end = tick.record_at(self.target_id, end_time)
        if end is None or end_time <= anchor.timestamp:
            logger.debug(f"{stage.value}: no end row at {end_time.isoformat()}, sample dropped")
            return None
        if end.indoor_temperature is None or anchor.indoor_temperature is None:
            return None

        duration = int((end.timestamp - anchor.timestamp).total_seconds())
        if duration <= 0:
            return None

        delta = end.indoor_temperature - anchor.indoor_temperature
        sample = Sample(
            stage=stage,
            outdoor_temperature=anchor.outdoor_temperature,
            delta_indoor=delta,
            duration_seconds=duration,
            delta_per_hour=delta / duration * 3600,
            started_at=anchor.timestamp,
            ended_at=end.timestamp,
        )
        self.samples.append(sample)
        return sample

    def _invalidate_anchors(self, current: NormalizedRecord) -> None:
        # A boundary moves the anchor to the current row, which may not be a
        # valid start; clear anything whose run has lapsed.
        auxiliary_running = current.auxiliary_heat_1 > 0 or current.auxiliary_heat_2 > 0
        for stage in HEAT_STAGES:
            if self.on_for[stage] == 0 or not current.has_temperatures or auxiliary_running:
                self.anchors[stage] = None

        for stage in COOL_STAGES:
            if self.on_for[stage] == 0 or not current.has_temperatures:
                self.anchors[stage] = None

        if self.off_for == 0:
            self.anchors[Stage.RESIST] = None


def segment(ticks, target_id: int, group_size: int, settings: ProfileSettings | None = None) -> SegmentationState:
    """Run a fresh SegmentationState over a tick sequence."""
    state = SegmentationState(target_id=target_id, group_size=group_size, settings=settings or ProfileSettings())
    for tick in ticks:
        state.step(tick)
    return state
