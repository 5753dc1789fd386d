"""
Thermoprofile Custom Exceptions

Simple exception hierarchy for error handling.
"""


class ThermoprofileError(Exception):
    """Base exception for Thermoprofile."""

    pass


class ConfigurationError(ThermoprofileError):
    """Configuration is invalid or cannot be satisfied."""

    pass


class ValidationError(ThermoprofileError):
    """Request refers to an unknown or inaccessible thermostat."""

    pass


class TelemetryError(ThermoprofileError):
    """Runtime telemetry could not be retrieved."""

    pass
