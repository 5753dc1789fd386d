"""
Thermoprofile Runner

Generates a thermostat's thermal-response profile from runtime stored in
InfluxDB and prints it as JSON.

    python backend/app.py 12345 --config config.yaml --output profile.json
"""

import argparse
import json
import os
import sys
from datetime import datetime, timezone

import log_config  # noqa: F401
from loguru import logger

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "core"))

from thermoprofile.exceptions import ThermoprofileError
from thermoprofile.influxdb_helper import InfluxRuntimeSource
from thermoprofile.profile_generator import ProfileGenerator
from thermoprofile.settings import load_config

DEFAULT_CONFIG = os.path.join(os.path.dirname(__file__), "..", "config.yaml")


def _parse_time(value: str) -> datetime:
    timestamp = datetime.fromisoformat(value)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a thermostat thermal-response profile.")
    parser.add_argument("thermostat_ids", type=int, nargs="+", help="Thermostat(s) to profile")
    parser.add_argument("--config", default=DEFAULT_CONFIG, help="Path to config.yaml")
    parser.add_argument("--begin", type=_parse_time, help="Start of the window (ISO 8601, default: a year ago)")
    parser.add_argument("--end", type=_parse_time, help="End of the window (ISO 8601, default: now)")
    parser.add_argument("--output", help="Write JSON here instead of stdout")
    parser.add_argument("--prefetch", action="store_true", help="Load the next chunk while scanning")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logger.info("Thermoprofile starting")

    try:
        settings, thermostats = load_config(args.config)
        generator = ProfileGenerator(
            InfluxRuntimeSource(),
            thermostats,
            settings=settings,
            prefetch=args.prefetch,
        )

        profiles = {}
        for thermostat_id in args.thermostat_ids:
            profiles[thermostat_id] = generator.generate(
                thermostat_id,
                begin=args.begin,
                end=args.end,
                use_cache=False,
            )
    except ThermoprofileError as e:
        logger.error(f"Profile generation failed: {e}")
        return 1

    result = profiles[args.thermostat_ids[0]] if len(profiles) == 1 else profiles
    output = json.dumps(result, indent=2, default=str)
    if args.output:
        with open(args.output, "w") as f:
            f.write(output)
        logger.info(f"Wrote profile to {args.output}")
    else:
        print(output)

    return 0


if __name__ == "__main__":
    sys.exit(main())
