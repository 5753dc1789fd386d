"""Thermoprofile thermal-response profile package."""

# Define public API
__all__ = [
    "ProfileSettings",
    "ThermostatSettings",
    "load_config",
    "RuntimeRecord",
    "Stage",
    "SystemType",
    "ProfileGenerator",
    "ProfileCache",
    "InfluxRuntimeSource",
]

# Import settings
from .settings import ProfileSettings, ThermostatSettings, load_config

# Import models
from .models import RuntimeRecord, Stage, SystemType

# Import generator
from .profile_cache import ProfileCache
from .profile_generator import ProfileGenerator

# Import telemetry source
from .influxdb_helper import InfluxRuntimeSource
