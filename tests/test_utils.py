import json
import logging
from datetime import datetime

import pytest

from plant_sim import utils
from plant_sim.utils import (
    UTC,
    clamp,
    deep_update,
    format_timestamp,
    inverse_lerp,
    lerp,
    load_data,
    load_dataset,
    normalize_key,
    parse_timestamp,
    to_float,
    warn_once,
)


def test_normalize_key_variants():
    assert normalize_key("ElephantEar") == normalize_key("elephant_ear") == normalize_key("Elephant Ear")
    assert normalize_key("Green-House") == "greenhouse"


def test_numeric_helpers():
    assert clamp(120, 0, 100) == 100
    assert clamp(-3, 0, 100) == 0
    assert lerp(1.0, 0.5, 0.5) == pytest.approx(0.75)
    assert lerp(1.0, 0.5, 4.0) == pytest.approx(0.5)
    assert inverse_lerp(40, 80, 60) == pytest.approx(0.5)
    assert inverse_lerp(40, 80, 100) == 1.0
    assert inverse_lerp(10, 10, 50) == 0.0
    assert to_float("3.5") == 3.5
    assert to_float("nan", 1.0) == 1.0
    assert to_float(None, 2.0) == 2.0


def test_parse_timestamp_forms():
    aware = parse_timestamp("2026-01-01T10:00:00Z")
    assert aware == datetime(2026, 1, 1, 10, tzinfo=UTC)
    naive = parse_timestamp("2026-01-01T10:00:00")
    assert naive.tzinfo is not None
    assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=UTC)
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp("") is None


def test_format_timestamp_is_utc():
    stamp = parse_timestamp("2026-01-01T12:00:00+02:00")
    assert format_timestamp(stamp) == "2026-01-01T10:00:00+00:00"
    assert format_timestamp(None) is None


def test_deep_update_merges_nested():
    base = {"a": {"b": 1, "c": 2}, "d": 1}
    deep_update(base, {"a": {"c": 3}, "e": 4})
    assert base == {"a": {"b": 1, "c": 3}, "d": 1, "e": 4}


def test_load_data_yaml(tmp_path):
    path = tmp_path / "sample.yaml"
    path.write_text("foo: 1\nbar: [1, 2]\n")
    assert load_data(path) == {"foo": 1, "bar": [1, 2]}


def test_load_data_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(ValueError):
        load_data(path)


def test_dataset_env_override_and_overlay(tmp_path, monkeypatch):
    data_dir = tmp_path / "data"
    (data_dir / "species").mkdir(parents=True)
    (data_dir / "species" / "sample.json").write_text(json.dumps({"Fern": {"optimalMoisture": 60}}))
    overlay = tmp_path / "overlay"
    (overlay / "species").mkdir(parents=True)
    (overlay / "species" / "sample.json").write_text(json.dumps({"Fern": {"moistureRange": 10}}))

    monkeypatch.setenv(utils.DATA_ENV, str(data_dir))
    monkeypatch.setenv(utils.OVERLAY_ENV, str(overlay))
    utils.clear_dataset_cache()

    result = load_dataset("species/sample.json")
    assert result == {"Fern": {"optimalMoisture": 60, "moistureRange": 10}}
    assert load_dataset.cache_info().currsize == 1


def test_extra_data_dirs_are_merged(tmp_path, monkeypatch):
    extra = tmp_path / "extra"
    (extra / "fertilizers").mkdir(parents=True)
    (extra / "fertilizers" / "fertilizer_types.json").write_text(
        json.dumps({"BloomBoost": {"category": "Balanced"}})
    )
    monkeypatch.setenv(utils.EXTRA_ENV, str(extra))
    utils.clear_dataset_cache()

    data = load_dataset("fertilizers/fertilizer_types.json")
    assert "BloomBoost" in data
    assert "AllPurpose" in data


def test_warn_once_logs_a_single_time(caplog):
    logger = logging.getLogger("plant_sim.test")
    with caplog.at_level(logging.WARNING):
        warn_once(logger, "code-a", "first")
        warn_once(logger, "code-a", "second")
        warn_once(logger, "code-b", "third")
    messages = [r.getMessage() for r in caplog.records]
    assert messages == ["code-a: first", "code-b: third"]
