"""Database helpers for the Managarr API."""
from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from . import models  # noqa: F401  registers the tables on SQLModel.metadata
from .settings import ManagarrSettings
from .utils.paths import ensure_sqlite_path


def create_engine_from_settings(settings: ManagarrSettings) -> Engine:
    """Create a SQLModel engine using Managarr settings."""

    database_url = settings.resolved_database_url()
    ensure_sqlite_path(database_url)
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, echo=settings.database_echo, connect_args=connect_args)


def init_database(engine: Engine) -> None:
    """Create any missing tables."""

    SQLModel.metadata.create_all(engine)
