"""
Sample Aggregation

Buckets samples by stage and outdoor temperature and reduces each bucket to
its median rate. Sparse buckets and stages with too few buckets are dropped,
which trims the extremes where only a handful of samples exist.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field

import numpy as np

from .models import PROFILE_STAGES, Sample, Stage
from .rounding import round_half_away
from .settings import ProfileSettings

logger = logging.getLogger(__name__)


@dataclass
class StageAggregate:
    """Retained buckets for one stage."""

    stage: Stage
    deltas: dict = field(default_factory=dict)  # outdoor temperature -> rate (°/hour)
    samples: dict = field(default_factory=dict)  # outdoor temperature -> sample count
    resolved: bool = False  # Enough buckets to publish a profile


def accepted_samples(samples: list[Sample], settings: ProfileSettings) -> list[Sample]:
    """Samples long enough for their stage."""
    return [
        sample for sample in samples
        if sample.duration_seconds >= settings.minimum_sample_duration[sample.stage]
    ]


def bucket_rate(deltas_per_hour: list[float]) -> float | None:
    """Median rate of a bucket, converted from tenths to degrees per hour."""
    if not deltas_per_hour:
        return None
    return round_half_away(float(np.median(deltas_per_hour)) / 10, 2)


def aggregate_samples(
    samples: list[Sample],
    settings: ProfileSettings | None = None
) -> dict[Stage, StageAggregate]:
    """Reduce samples to per-stage outdoor temperature buckets.

    Args:
        samples: Samples from segmentation
        settings: Profile settings (minimum durations, required counts)

    Returns:
        {stage: StageAggregate} for every profile stage. Buckets appear only
        with at least `required_samples` samples; `resolved` is set only with
        at least `required_points` buckets, which are then sorted by outdoor
        temperature.
    """
    settings = settings or ProfileSettings()

    raw: dict[Stage, dict] = defaultdict(lambda: defaultdict(list))
    for sample in accepted_samples(samples, settings):
        raw[sample.stage][sample.outdoor_temperature].append(sample.delta_per_hour)

    aggregates = {stage: StageAggregate(stage=stage) for stage in PROFILE_STAGES}
    for stage, buckets in raw.items():
        aggregate = aggregates[stage]
        for outdoor_temperature in sorted(buckets):
            deltas_per_hour = buckets[outdoor_temperature]
            if len(deltas_per_hour) < settings.required_samples:
                continue
            aggregate.deltas[outdoor_temperature] = bucket_rate(deltas_per_hour)
            aggregate.samples[outdoor_temperature] = len(deltas_per_hour)

        aggregate.resolved = len(aggregate.deltas) >= settings.required_points
        if not aggregate.resolved:
            logger.debug(
                f"{stage.value}: {len(aggregate.deltas)} bucket(s), "
                f"{settings.required_points} required; no profile"
            )

    return aggregates
