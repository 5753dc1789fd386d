"""Tests for stage normalization, outdoor smoothing and the solar filter."""

from datetime import datetime, timezone

import pytest

from thermoprofile.models import Stage, SystemType
from thermoprofile.normalizer import is_solar_hour, normalize_record, smooth_outdoor_temperature

from helpers import BASE_TIME, make_record

GAS_FURNACE = SystemType(heat="gas", cool="compressor")
HEAT_PUMP = SystemType(heat="compressor", cool="compressor")


def test_heat_pump_heats_through_compressor():
    record = make_record(
        BASE_TIME, compressor_1=300, compressor_2=120, compressor_mode="heat", auxiliary_heat_1=60
    )

    normalized = normalize_record(record, HEAT_PUMP)

    assert normalized.runtime(Stage.HEAT_1) == 300
    assert normalized.runtime(Stage.HEAT_2) == 120
    assert normalized.runtime(Stage.AUXILIARY_HEAT_1) == 60
    assert normalized.runtime(Stage.COOL_1) == 0
    assert normalized.any_output_active


def test_furnace_heats_through_auxiliary_outputs():
    record = make_record(BASE_TIME, auxiliary_heat_1=300, auxiliary_heat_2=150)

    normalized = normalize_record(record, GAS_FURNACE)

    assert normalized.heat_1 == 300
    assert normalized.heat_2 == 150
    assert normalized.auxiliary_heat_1 == 0
    assert normalized.auxiliary_heat_2 == 0


def test_cooling_always_comes_from_compressor():
    record = make_record(BASE_TIME, compressor_1=300, compressor_2=300, compressor_mode="cool")

    for system_type in (GAS_FURNACE, HEAT_PUMP):
        normalized = normalize_record(record, system_type)
        assert normalized.cool_1 == 300
        assert normalized.cool_2 == 300
        assert normalized.heat_1 == 0


def test_idle_row_has_no_active_output():
    normalized = normalize_record(make_record(BASE_TIME), GAS_FURNACE)

    assert not normalized.any_output_active
    assert normalized.has_temperatures


def test_resist_has_no_runtime_column():
    normalized = normalize_record(make_record(BASE_TIME), GAS_FURNACE)

    with pytest.raises(ValueError):
        normalized.runtime(Stage.RESIST)


@pytest.mark.parametrize(
    "tenths,expected",
    [
        (325, 33),
        (-325, -33),
        (324, 32),
        (0, 0),
        (-4, 0),
    ],
)
def test_outdoor_rounds_half_away_from_zero(tenths, expected):
    assert smooth_outdoor_temperature(tenths) == expected


def test_outdoor_smoothing_buckets():
    assert smooth_outdoor_temperature(237, smoothing=5) == 25
    assert smooth_outdoor_temperature(212, smoothing=5) == 20
    assert smooth_outdoor_temperature(None, smoothing=5) is None


def test_whole_degree_buckets_are_ints():
    value = smooth_outdoor_temperature(300)
    assert value == 30
    assert isinstance(value, int)


def test_normalized_outdoor_is_smoothed_but_indoor_stays_in_tenths():
    normalized = normalize_record(make_record(BASE_TIME, indoor=712, outdoor=237), GAS_FURNACE, smoothing=5)

    assert normalized.indoor_temperature == 712
    assert normalized.outdoor_temperature == 25


def test_missing_temperatures():
    normalized = normalize_record(make_record(BASE_TIME, indoor=None), GAS_FURNACE)

    assert not normalized.has_temperatures


@pytest.mark.parametrize(
    "hour_utc,expected",
    [
        (3, False),  # 22:00 EST
        (11, False),  # 06:00 EST
        (12, True),  # 07:00 EST
        (17, True),  # 12:00 EST
        (2, True),  # 21:00 EST
    ],
)
def test_solar_hours_use_local_time(hour_utc, expected):
    timestamp = datetime(2024, 1, 15, hour_utc, 0, tzinfo=timezone.utc)
    assert is_solar_hour(timestamp, "America/New_York") is expected


def test_tokens_differ():
    first = normalize_record(make_record(BASE_TIME), GAS_FURNACE)
    same = normalize_record(make_record(BASE_TIME, indoor=650), GAS_FURNACE)
    away = normalize_record(make_record(BASE_TIME, climate_token="away"), GAS_FURNACE)
    event = normalize_record(make_record(BASE_TIME, event_token="hold"), GAS_FURNACE)

    assert not first.tokens_differ(same)
    assert first.tokens_differ(away)
    assert first.tokens_differ(event)
