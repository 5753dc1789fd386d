"""Provides an InfluxDB-backed source of thermostat runtime records.

Runtime rows are stored in the `runtime_thermostat` measurement, tagged by
thermostat_id, with one field per column. Queries pivot the fields back into
one row per (thermostat, timestamp).
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone

import requests
from dotenv import load_dotenv

from .exceptions import TelemetryError
from .models import RuntimeRecord

_LOGGER = logging.getLogger(__name__)

MEASUREMENT = "runtime_thermostat"

_INT_FIELDS = (
    "indoor_temperature",
    "outdoor_temperature",
    "compressor_1",
    "compressor_2",
    "auxiliary_heat_1",
    "auxiliary_heat_2",
    "setpoint_heat",
    "setpoint_cool",
)
_STRING_FIELDS = (
    "compressor_mode",
    "system_mode",
    "event_token",
    "climate_token",
)
# Output columns default to 0 when absent; everything else defaults to None
_OUTPUT_FIELDS = ("compressor_1", "compressor_2", "auxiliary_heat_1", "auxiliary_heat_2")


OPTIONS_PATH = "/data/options.json"
DEFAULT_BUCKET = "thermoprofile/autogen"

# Connection setting -> environment variable used when options.json lacks it
_ENV_KEYS = {
    "url": "THERMOPROFILE_DB_URL",
    "username": "THERMOPROFILE_DB_USER_NAME",
    "password": "THERMOPROFILE_DB_PASSWORD",
    "bucket": "THERMOPROFILE_DB_BUCKET",
}


def _config_complete(config: dict) -> bool:
    return all(config.get(key) for key in ("url", "username", "password"))


def get_influxdb_config() -> dict:
    """Connection settings from the add-on's options.json, else the environment.

    The environment is read after loading a .env file, if one exists.
    Incomplete settings are logged and returned as they are; fetching with
    them raises TelemetryError.
    """
    config = {"url": "", "username": "", "password": "", "bucket": DEFAULT_BUCKET}

    if os.path.exists(OPTIONS_PATH):
        try:
            with open(OPTIONS_PATH) as f:
                influxdb = json.load(f).get("influxdb", {})
        except (OSError, ValueError) as e:
            _LOGGER.warning(f"Failed to load {OPTIONS_PATH}: {e}")
        else:
            config.update({key: influxdb[key] for key in _ENV_KEYS if influxdb.get(key)})
            _LOGGER.debug(f"Loaded InfluxDB settings from {OPTIONS_PATH}")

    if not _config_complete(config):
        load_dotenv()
        for key, variable in _ENV_KEYS.items():
            value = os.getenv(variable)
            if value:
                config[key] = value
        _LOGGER.debug("Loaded InfluxDB settings from the environment")

    if not _config_complete(config):
        _LOGGER.error("InfluxDB configuration is incomplete.")

    return config


def build_runtime_query(bucket: str, thermostat_ids, start_time: datetime, stop_time: datetime) -> str:
    """Build a Flux query for runtime rows in [start_time, stop_time)."""
    start_str = start_time.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    end_str = stop_time.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    thermostat_filter = " or ".join(
        [f'r["thermostat_id"] == "{thermostat_id}"' for thermostat_id in sorted(thermostat_ids)]
    )

    return f"""from(bucket: "{bucket}")
                    |> range(start: {start_str}, stop: {end_str})
                    |> filter(fn: (r) => r["_measurement"] == "{MEASUREMENT}")
                    |> filter(fn: (r) => {thermostat_filter})
                    |> pivot(rowKey: ["_time", "thermostat_id"], columnKey: ["_field"], valueColumn: "_value")
                    |> group()
                    |> sort(columns: ["_time", "thermostat_id"])
                    """


def _parse_int(value: str) -> int | None:
    value = value.strip()
    if value == "":
        return None
    return int(round(float(value)))


def parse_runtime_response(response_text: str) -> list[RuntimeRecord]:
    """Parse a pivoted InfluxDB CSV response into runtime records.

    Args:
        response_text: Annotated CSV response from InfluxDB

    Returns:
        List of RuntimeRecord sorted by (timestamp, thermostat_id)
    """
    records = []
    header = None

    for line in response_text.strip().split("\n"):
        line = line.rstrip("\r")
        # Skip annotation rows and blank separators between tables
        if not line or line.startswith("#"):
            continue

        parts = line.split(",")
        if "_time" in parts:
            header = {name.strip(): index for index, name in enumerate(parts)}
            continue
        if header is None:
            continue

        try:
            row = {name: parts[index] for name, index in header.items() if index < len(parts)}
            timestamp = datetime.fromisoformat(row["_time"].strip().replace("Z", "+00:00"))

            values = {}
            for name in _INT_FIELDS:
                parsed = _parse_int(row.get(name, ""))
                if parsed is None and name in _OUTPUT_FIELDS:
                    parsed = 0
                values[name] = parsed
            for name in _STRING_FIELDS:
                raw = row.get(name, "").strip()
                values[name] = raw or None

            records.append(
                RuntimeRecord(
                    timestamp=timestamp,
                    thermostat_id=int(row["thermostat_id"]),
                    **values,
                )
            )
        except (KeyError, IndexError, ValueError, TypeError) as e:
            _LOGGER.debug(f"Failed to parse line: {line}, error: {e}")
            continue

    records.sort(key=lambda r: (r.timestamp, r.thermostat_id))
    _LOGGER.debug(f"Parsed {len(records)} runtime records from InfluxDB response")
    return records


class InfluxRuntimeSource:
    """Runtime telemetry source backed by InfluxDB."""

    def __init__(self, config: dict | None = None, timeout: int = 60):
        """Initialize source.

        Args:
            config: {url, username, password, bucket}; loaded with
                get_influxdb_config() when omitted
            timeout: HTTP timeout in seconds
        """
        self.config = config or get_influxdb_config()
        self.timeout = timeout
        # requests.Session is not thread-safe; one per thread
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        """HTTP session of the calling thread, created on first use."""
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update(
                {
                    "Content-type": "application/vnd.flux",
                    "Accept": "application/csv",
                }
            )
            self._local.session = session
        return session

    @session.setter
    def session(self, session) -> None:
        self._local.session = session

    def fetch(self, thermostat_ids, start_time: datetime, stop_time: datetime) -> list[RuntimeRecord]:
        """Fetch runtime rows for thermostats in [start_time, stop_time).

        Raises:
            TelemetryError: If InfluxDB is misconfigured, unreachable or errors
        """
        url = self.config.get("url", "")
        username = self.config.get("username", "")
        password = self.config.get("password", "")

        # Validate required configuration
        if not url or not username or not password:
            raise TelemetryError("Incomplete InfluxDB configuration")

        flux_query = build_runtime_query(
            self.config.get("bucket", DEFAULT_BUCKET), thermostat_ids, start_time, stop_time
        )

        try:
            response = self.session.post(
                url=url,
                auth=(username, password),
                data=flux_query,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TelemetryError(f"Error connecting to InfluxDB: {e!s}") from e

        if response.status_code == 204:
            _LOGGER.warning(f"No runtime data for thermostats {sorted(thermostat_ids)}")
            return []

        if response.status_code != 200:
            raise TelemetryError(f"InfluxDB error: {response.status_code}")

        records = parse_runtime_response(response.text)
        _LOGGER.info(
            f"Fetched {len(records)} runtime records for {len(thermostat_ids)} thermostat(s) "
            f"({start_time.strftime('%Y-%m-%d %H:%M')} to {stop_time.strftime('%Y-%m-%d %H:%M')})"
        )
        return records
