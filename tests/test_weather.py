from datetime import datetime, timedelta

from plant_sim.utils import UTC
from plant_sim.weather import WeatherSeries


def _entry(time: str, temperature: float = 20.0, humidity: float = 60.0, **extra):
    return {"time": time, "temperatureC": temperature, "humidity": humidity, **extra}


def test_entry_for_exact_hour():
    series = WeatherSeries.from_records(
        [_entry("2026-05-01T11:00", 18.0), _entry("2026-05-01T12:00", 21.0)]
    )
    entry = series.entry_for(datetime(2026, 5, 1, 12, 40, tzinfo=UTC))
    assert entry.temperature == 21.0


def test_entry_for_falls_back_to_nearest():
    series = WeatherSeries.from_records([_entry("2026-05-01T08:00", 10.0), _entry("2026-05-01T20:00", 30.0)])
    assert series.entry_for(datetime(2026, 5, 1, 9, 0, tzinfo=UTC)).temperature == 10.0
    assert series.entry_for(datetime(2026, 5, 2, 3, 0, tzinfo=UTC)).temperature == 30.0


def test_empty_series():
    series = WeatherSeries.from_records([])
    assert not series
    assert series.entry_for(datetime(2026, 5, 1, tzinfo=UTC)) is None
    assert list(series.segments(datetime(2026, 5, 1, tzinfo=UTC), datetime(2026, 5, 2, tzinfo=UTC))) == []


def test_timezone_from_last_update_offset():
    series = WeatherSeries.from_records(
        [_entry("2026-05-01T09:00", 1.0), _entry("2026-05-01T12:00", 2.0)],
        last_weather_update="2026-05-01T08:00:00+03:00",
    )
    # 09:30 UTC is 12:30 local time
    assert series.entry_for(datetime(2026, 5, 1, 9, 30, tzinfo=UTC)).temperature == 2.0


def test_invalid_entries_are_skipped():
    series = WeatherSeries.from_records(
        [
            _entry("2026-05-01T10:00"),
            _entry("2026-05-01T11:00", humidity=150),
            {"time": "not a time", "temperatureC": 1, "humidity": 1},
        ]
    )
    assert len(series) == 1


def test_mapping_records_and_light():
    series = WeatherSeries.from_records(
        {"2026-05-01 10:00": {"temperatureC": 20, "humidity": 55, "directRadiationWm2": 300, "diffuseRadiationWm2": 100}}
    )
    entry = next(iter(series))
    assert entry.light == 400
    sample = entry.to_sample()
    assert sample.light == 400
    assert sample.humidity == 55


def test_segments_split_at_hour_boundaries():
    series = WeatherSeries.from_records(
        [_entry("2026-05-01T10:00", 10.0), _entry("2026-05-01T11:00", 11.0), _entry("2026-05-01T12:00", 12.0)]
    )
    start = datetime(2026, 5, 1, 10, 30, tzinfo=UTC)
    end = datetime(2026, 5, 1, 12, 15, tzinfo=UTC)
    segments = list(series.segments(start, end))
    assert [s[0] for s in segments] == [
        datetime(2026, 5, 1, 11, tzinfo=UTC),
        datetime(2026, 5, 1, 12, tzinfo=UTC),
        end,
    ]
    assert [s[1].temperature for s in segments] == [10.0, 11.0, 12.0]


def test_records_roundtrip_keys():
    series = WeatherSeries.from_records([_entry("2026-05-01T10:00", precipitationMm=1.5, weatherCode=61)])
    records = series.to_records()
    assert records[0]["precipitationMm"] == 1.5
    assert records[0]["weatherCode"] == 61
    assert WeatherSeries.from_records(records).entry_for(
        datetime(2026, 5, 1, 10, tzinfo=UTC) + timedelta(minutes=5)
    ).precipitation == 1.5
