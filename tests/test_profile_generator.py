"""End-to-end tests for profile generation over synthetic runtime."""

from datetime import timedelta

import pytest

from thermoprofile.exceptions import ConfigurationError, ValidationError
from thermoprofile.profile_cache import ProfileCache
from thermoprofile.profile_generator import ProfileGenerator, one_year_before
from thermoprofile.settings import ProfileSettings

from helpers import FakeRuntimeSource, at, heat_cycle_nights, make_thermostat

BEGIN = at(0, 0)
END = at(150, 9)
NOW = END + timedelta(hours=1)
BUCKETS = [20, 21, 22, 23, 24]


def fixed_clock():
    return NOW


@pytest.fixture
def source():
    return FakeRuntimeSource(heat_cycle_nights(nights=10))


@pytest.fixture
def thermostats():
    return {1: make_thermostat(1)}


@pytest.fixture
def generator(source, thermostats):
    return ProfileGenerator(source, thermostats, clock=fixed_clock)


@pytest.fixture
def profile(generator):
    return generator.generate(1, begin=BEGIN, end=END)


def test_unknown_thermostat_fails_before_fetching(generator, source):
    with pytest.raises(ValidationError, match="Invalid thermostat_id."):
        generator.generate(99)

    assert source.calls == []


def test_inactive_thermostat_is_invalid(source):
    generator = ProfileGenerator(source, {1: make_thermostat(1, inactive=True)}, clock=fixed_clock)

    with pytest.raises(ValidationError):
        generator.generate(1, begin=BEGIN, end=END)


def test_oversized_group_fails_before_fetching(source):
    thermostats = {i: make_thermostat(i) for i in range(1, 31)}
    generator = ProfileGenerator(source, thermostats, clock=fixed_clock)

    with pytest.raises(ConfigurationError, match="Too many thermostats"):
        generator.generate(1, begin=BEGIN, end=END)

    assert source.calls == []


def test_output_shape(profile):
    assert set(profile) == {"temperature", "setpoint", "degree_days", "runtime", "metadata"}
    assert list(profile["temperature"]) == [
        "heat_1", "heat_2", "auxiliary_heat_1", "auxiliary_heat_2", "cool_1", "cool_2", "resist"
    ]
    assert list(profile["runtime"]) == [
        "heat_1", "heat_2", "auxiliary_heat_1", "auxiliary_heat_2", "cool_1", "cool_2"
    ]
    assert set(profile["setpoint"]) == {"heat", "cool"}
    assert set(profile["degree_days"]) == {"heat", "cool"}


def test_heat_stage_profile(profile):
    heat = profile["temperature"]["heat_1"]

    assert heat["deltas"] == {t: 3.43 for t in BUCKETS}
    assert heat["linear_trendline"] == {"slope": 0.0, "intercept": 3.43}
    assert profile["metadata"]["temperature"]["heat_1"]["deltas"] == {t: {"samples": 2} for t in BUCKETS}


def test_resist_profile(profile):
    resist = profile["temperature"]["resist"]

    assert resist["deltas"] == {t: -0.86 for t in BUCKETS}
    assert resist["linear_trendline"] == {"slope": 0.0, "intercept": -0.86}


def test_unsampled_stages_are_null(profile):
    for stage in ("heat_2", "auxiliary_heat_1", "auxiliary_heat_2", "cool_1", "cool_2"):
        assert profile["temperature"][stage] is None
        assert profile["metadata"]["temperature"][stage]["deltas"] == {}


def test_runtime_hours(profile):
    # 40 minutes of heat a night for ten nights
    assert profile["runtime"] == {
        "heat_1": 7,
        "heat_2": 0,
        "auxiliary_heat_1": 0,
        "auxiliary_heat_2": 0,
        "cool_1": 0,
        "cool_2": 0,
    }


def test_setpoints(profile):
    assert profile["setpoint"] == {"heat": 69.0, "cool": None}
    assert profile["metadata"]["setpoint"] == {"heat": {"samples": 310}}


def test_degree_days(profile):
    # Nine completed days well below 65°; the last day is still in progress
    assert profile["degree_days"] == {"heat": None, "cool": 379}


def test_metadata(profile):
    assert profile["metadata"]["generated_at"] == NOW.isoformat()
    assert profile["metadata"]["duration"] == 9


def test_no_data_gives_empty_profile(thermostats):
    generator = ProfileGenerator(FakeRuntimeSource(), thermostats, clock=fixed_clock)

    profile = generator.generate(1, begin=BEGIN, end=END)

    assert all(value is None for value in profile["temperature"].values())
    assert profile["setpoint"] == {"heat": None, "cool": None}
    assert profile["degree_days"] == {"heat": None, "cool": None}
    assert profile["metadata"]["duration"] is None


def test_generation_is_idempotent(generator):
    assert generator.generate(1, begin=BEGIN, end=END) == generator.generate(1, begin=BEGIN, end=END)


def test_chunk_size_does_not_change_profile(source, thermostats, profile):
    # 16 MB / 8 MB per day -> 2 day chunks
    settings = ProfileSettings(per_thermostat_day_cost_mb=8)
    generator = ProfileGenerator(source, thermostats, settings=settings, clock=fixed_clock)

    chunked = generator.generate(1, begin=BEGIN, end=END)

    assert len(source.calls) > 2
    assert chunked == profile


def test_prefetch_does_not_change_profile(source, thermostats, profile):
    settings = ProfileSettings(per_thermostat_day_cost_mb=8)
    generator = ProfileGenerator(source, thermostats, settings=settings, clock=fixed_clock, prefetch=True)

    assert generator.generate(1, begin=BEGIN, end=END) == profile


def test_inactive_group_member_is_ignored(source, profile):
    thermostats = {1: make_thermostat(1), 2: make_thermostat(2, inactive=True)}
    generator = ProfileGenerator(source, thermostats, clock=fixed_clock)

    assert generator.generate(1, begin=BEGIN, end=END) == profile


def test_default_profile_is_cached(source, thermostats):
    generator = ProfileGenerator(source, thermostats, cache=ProfileCache(), clock=fixed_clock)

    first = generator.generate(1)
    fetches = len(source.calls)
    second = generator.generate(1)

    assert len(source.calls) == fetches
    assert second == first
    assert first["temperature"]["heat_1"]["deltas"] == {t: 3.43 for t in BUCKETS}

    generator.generate(1, use_cache=False)
    assert len(source.calls) == 2 * fetches


def test_custom_window_is_not_cached(source, thermostats):
    cache = ProfileCache()
    generator = ProfileGenerator(source, thermostats, cache=cache, clock=fixed_clock)

    generator.generate(1, begin=BEGIN, end=END)

    assert cache.get(1, NOW) is None


def test_generate_all():
    records = heat_cycle_nights(nights=10, thermostat_id=1) + heat_cycle_nights(nights=10, thermostat_id=2)
    thermostats = {1: make_thermostat(1, group_id=1), 2: make_thermostat(2, group_id=2)}
    generator = ProfileGenerator(FakeRuntimeSource(records), thermostats, clock=fixed_clock)

    profiles = generator.generate_all([1, 2], max_workers=2)

    assert set(profiles) == {1, 2}
    assert profiles[1] == generator.generate(1)
    assert profiles[2]["temperature"]["heat_1"]["deltas"] == {t: 3.43 for t in BUCKETS}


def test_generate_all_validates_first(generator, source):
    with pytest.raises(ValidationError):
        generator.generate_all([1, 99])

    assert source.calls == []


def test_one_year_before_handles_leap_day():
    leap_day = at(0).replace(year=2024, month=2, day=29)
    assert one_year_before(leap_day) == leap_day.replace(year=2023, day=28)
    assert one_year_before(END) == END.replace(year=2023)
