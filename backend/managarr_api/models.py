"""Database models for the Managarr API."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Column, JSON
from sqlmodel import Field, SQLModel


class InstanceRecord(SQLModel, table=True):
    """Connection details for one upstream Sonarr, Radarr or Plex server."""

    __tablename__ = "managarr_instances"

    id: str = Field(primary_key=True, index=True)
    name: str
    type: str = Field(index=True)
    url: str
    api_key: str
    is_enabled: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class SettingRecord(SQLModel, table=True):
    """Arbitrary JSON value addressed by a unique key."""

    __tablename__ = "managarr_settings"

    key: str = Field(primary_key=True, index=True)
    value: Any = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
