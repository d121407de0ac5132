"""Key/value settings persisted as JSON."""
from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Any

from sqlmodel import Session, select

from ..models import SettingRecord

EXCLUDED_PLEX_LIBRARIES = "excludedPlexLibraries"
TMDB_API_KEY = "tmdbApiKey"


class SettingsStore:
    """Thread-safe upsert-only store over the settings table."""

    def __init__(self, engine) -> None:
        self._engine = engine
        self._lock = Lock()

    def all(self) -> dict[str, Any]:
        with Session(self._engine) as session:
            records = session.exec(select(SettingRecord).order_by(SettingRecord.key))
            return {record.key: record.value for record in records}

    def get(self, key: str, default: Any = None) -> Any:
        with Session(self._engine) as session:
            record = session.get(SettingRecord, key)
            return record.value if record is not None else default

    def set(self, key: str, value: Any) -> Any:
        """Insert or replace the value stored under ``key``."""

        with self._lock, Session(self._engine) as session:
            record = session.get(SettingRecord, key)
            if record is None:
                record = SettingRecord(key=key, value=value)
            else:
                record.value = value
                record.updated_at = datetime.utcnow()
            session.add(record)
            session.commit()
            return value

    def excluded_plex_libraries(self) -> list[str]:
        value = self.get(EXCLUDED_PLEX_LIBRARIES, [])
        return [str(item) for item in value] if isinstance(value, list) else []

    def tmdb_api_key(self) -> str | None:
        value = self.get(TMDB_API_KEY, "")
        return value or None
