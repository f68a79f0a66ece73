"""Command line entry point for the plant simulation engine.

Usage::

    python -m plant_sim simulate --species Monstera --location House --hours 48
    python -m plant_sim run-pass --db plants.sqlite
    python -m plant_sim validate-data
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
from datetime import timedelta
from typing import Sequence

from .config import SimulationConfig, load_config
from .environment import EnvironmentSample, FacilityState
from .errors import PlantSimError
from .plant_actions import apply_fertilizer, create_plant, plant_status
from .reference_data import ReferenceCache
from .scheduler import CatchUpScheduler
from .simulation import PlantSimulator, StepResult
from .store import PlantStore
from .utils import utcnow
from .validators import validate_bundled_datasets

_LOGGER = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Return parsed command line arguments."""
    parser = argparse.ArgumentParser(prog="plant_sim", description="Virtual plant simulation engine")
    parser.add_argument("--config", help="Path to a YAML configuration file", default=None)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sim = sub.add_parser("simulate", help="Simulate one plant under a constant environment")
    sim.add_argument("--species", required=True)
    sim.add_argument("--location", default="Ground", help="Ground, House or GreenHouse")
    sim.add_argument("--hours", type=float, default=24.0, help="Simulated duration")
    sim.add_argument(
        "--step-seconds",
        type=float,
        default=3600.0,
        help="Interval between simulation steps",
    )
    sim.add_argument("--temperature", type=float, default=22.0, help="Ambient temperature in C")
    sim.add_argument("--humidity", type=float, default=60.0, help="Ambient relative humidity in percent")
    sim.add_argument("--light", type=float, default=400.0, help="Ambient radiation in W/m^2")
    sim.add_argument("--precipitation", type=float, default=0.0, help="Precipitation in mm")
    sim.add_argument("--fertilizer", help="Fertilizer to apply before the run")
    sim.add_argument("--seed", type=int, help="Random seed for disease onset")

    run = sub.add_parser("run-pass", help="Run one catch-up pass against an SQLite store")
    run.add_argument("--db", required=True, help="Path to the SQLite database")
    run.add_argument(
        "--seed-reference",
        action="store_true",
        help="Copy bundled species and fertilizers into the store first",
    )

    sub.add_parser("validate-data", help="Validate the bundled reference datasets")
    return parser.parse_args(argv)


def _reference_cache(config: SimulationConfig, source=None) -> ReferenceCache:
    return ReferenceCache(
        source,
        ttl=timedelta(seconds=config.cache_ttl_seconds),
        default_max_scale=config.default_max_scale,
    )


def _simulate(args: argparse.Namespace, config: SimulationConfig) -> int:
    cache = _reference_cache(config)
    rng = random.Random(args.seed) if args.seed is not None else None
    simulator = PlantSimulator(cache, config, rng=rng)
    sample = EnvironmentSample(
        temperature=args.temperature,
        humidity=args.humidity,
        light=args.light,
        precipitation=args.precipitation,
    )

    record = create_plant("cli", args.species, args.location, cache=cache, humidity=args.humidity)
    now = utcnow()
    total = simulator.step(record, sample, now, FacilityState())
    if args.fertilizer:
        apply_fertilizer(record, args.fertilizer, cache, config)

    remaining = max(0.0, args.hours * 3600.0)
    step = max(1.0, args.step_seconds)
    while remaining > 0:
        delta = min(step, remaining)
        now += timedelta(seconds=delta)
        total.merge(simulator.step(record, sample, now, FacilityState()))
        remaining -= delta

    output = {
        "record": record.to_dict(),
        "status": plant_status(record, cache, sample, config=config),
        "result": _result_dict(total),
    }
    print(json.dumps(output, indent=2, default=str))
    return 0


def _result_dict(result: StepResult) -> dict:
    data = result.as_dict()
    data.pop("skipped", None)
    return data


def _run_pass(args: argparse.Namespace, config: SimulationConfig) -> int:
    store = PlantStore(args.db)
    try:
        if args.seed_reference:
            count = store.seed_reference_data()
            _LOGGER.info("Seeded %d reference records", count)
        scheduler = CatchUpScheduler(store, _reference_cache(config, store), config)
        try:
            summary = asyncio.run(scheduler.run_once())
        finally:
            scheduler.shutdown()
    finally:
        store.close()
    print(json.dumps(summary.as_dict(), indent=2))
    return 1 if summary.errors else 0


def _validate_data() -> int:
    problems = validate_bundled_datasets()
    if not problems:
        print("All bundled datasets are valid.")
        return 0
    for name, issues in sorted(problems.items()):
        for issue in issues:
            print(f"{name}: {issue}")
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_config(args.config)
        if args.command == "simulate":
            return _simulate(args, config)
        if args.command == "run-pass":
            return _run_pass(args, config)
        return _validate_data()
    except PlantSimError as err:
        _LOGGER.error("%s", err)
        return 2


if __name__ == "__main__":  # pragma: no cover - manual execution
    raise SystemExit(main())
