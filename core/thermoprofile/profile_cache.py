"""
Profile Cache

Generating a profile scans a year of runtime, so results are kept in memory
and reused for a week.
"""

import threading
from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


@dataclass
class CachedProfile:
    """A generated profile and when it was stored."""

    thermostat_id: int
    stored_at: datetime
    profile: dict


class ProfileCache:
    """Thread-safe in-memory cache of generated profiles."""

    def __init__(self, max_age_seconds: int = 604800):
        """Initialize profile cache.

        Args:
            max_age_seconds: How long a profile stays valid (default 7 days)
        """
        self.max_age = timedelta(seconds=max_age_seconds)
        self.entries: dict[int, CachedProfile] = {}
        self.lock = threading.Lock()

    def get(self, thermostat_id: int, now: datetime | None = None) -> dict | None:
        """Get a cached profile, or None if missing or expired."""
        now = now or datetime.now(timezone.utc)
        with self.lock:
            entry = self.entries.get(thermostat_id)
            if entry is None:
                return None
            if now - entry.stored_at >= self.max_age:
                del self.entries[thermostat_id]
                return None
            return deepcopy(entry.profile)

    def put(self, thermostat_id: int, profile: dict, now: datetime | None = None) -> None:
        """Store a profile."""
        entry = CachedProfile(
            thermostat_id=thermostat_id,
            stored_at=now or datetime.now(timezone.utc),
            profile=deepcopy(profile)
        )
        with self.lock:
            self.entries[thermostat_id] = entry
            self._cleanup_old_data(entry.stored_at)

    def invalidate(self, thermostat_id: int | None = None) -> None:
        """Drop one thermostat's profile (or all profiles)."""
        with self.lock:
            if thermostat_id is None:
                self.entries.clear()
            else:
                self.entries.pop(thermostat_id, None)

    def _cleanup_old_data(self, now: datetime):
        """Remove profiles older than max_age."""
        expired = [
            thermostat_id for thermostat_id, entry in self.entries.items()
            if now - entry.stored_at >= self.max_age
        ]
        for thermostat_id in expired:
            del self.entries[thermostat_id]
