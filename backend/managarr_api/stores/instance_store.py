"""Database-backed registry of upstream instances."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Iterable
from uuid import uuid4

from sqlmodel import Session, select

from ..models import InstanceRecord
from ..schemas import InstanceCreate, InstanceModel, InstanceUpdate


class InstanceTypeChangeError(ValueError):
    """Raised when an update tries to change the kind of an existing instance."""


@dataclass(slots=True, frozen=True)
class InstanceConnection:
    """Everything needed to talk to an upstream server, credential included.

    Only services see this type; routers return ``InstanceModel``.
    """

    id: str
    name: str
    type: str
    url: str
    api_key: str
    is_enabled: bool

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")


class InstanceStore:
    """Thread-safe CRUD interface for instance records."""

    def __init__(self, engine) -> None:
        self._engine = engine
        self._lock = Lock()

    def list(self, *, instance_type: str | None = None) -> list[InstanceModel]:
        """Return instances ordered by type then name, optionally filtered by type."""

        statement = select(InstanceRecord)
        if instance_type:
            statement = statement.where(InstanceRecord.type == instance_type)
        statement = statement.order_by(InstanceRecord.type, InstanceRecord.name)
        with Session(self._engine) as session:
            records: Iterable[InstanceRecord] = session.exec(statement)
            return [_to_model(record) for record in records]

    def get(self, instance_id: str) -> InstanceModel | None:
        with Session(self._engine) as session:
            record = session.get(InstanceRecord, instance_id)
            return _to_model(record) if record else None

    def get_connection(self, instance_id: str) -> InstanceConnection | None:
        """Return the connection details, including the credential, for one instance."""

        with Session(self._engine) as session:
            record = session.get(InstanceRecord, instance_id)
            return _to_connection(record) if record else None

    def list_connections(
        self,
        *,
        instance_type: str | None = None,
        enabled_only: bool = True,
    ) -> list[InstanceConnection]:
        """Return connection details for report fan-out, enabled instances only by default."""

        statement = select(InstanceRecord)
        if instance_type:
            statement = statement.where(InstanceRecord.type == instance_type)
        if enabled_only:
            statement = statement.where(InstanceRecord.is_enabled == True)  # noqa: E712
        statement = statement.order_by(InstanceRecord.type, InstanceRecord.name)
        with Session(self._engine) as session:
            return [_to_connection(record) for record in session.exec(statement)]

    def create(self, payload: InstanceCreate) -> InstanceModel:
        record = InstanceRecord(
            id=uuid4().hex,
            name=payload.name,
            type=payload.type,
            url=payload.url,
            api_key=payload.api_key,
            is_enabled=payload.is_enabled,
        )
        with self._lock, Session(self._engine) as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_model(record)

    def update(self, instance_id: str, update: InstanceUpdate) -> InstanceModel | None:
        """Apply a partial update, returning ``None`` when the instance does not exist."""

        changes = update.model_dump(exclude_unset=True, exclude_none=True)
        with self._lock, Session(self._engine) as session:
            record = session.get(InstanceRecord, instance_id)
            if record is None:
                return None
            new_type = changes.pop("type", None)
            if new_type is not None and new_type != record.type:
                raise InstanceTypeChangeError("Instance type cannot be changed")
            for key, value in changes.items():
                setattr(record, key, value)
            record.updated_at = datetime.utcnow()
            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_model(record)

    def delete(self, instance_id: str) -> bool:
        """Delete an instance, returning whether it existed."""

        with self._lock, Session(self._engine) as session:
            record = session.get(InstanceRecord, instance_id)
            if record is None:
                return False
            session.delete(record)
            session.commit()
            return True


def _to_model(record: InstanceRecord) -> InstanceModel:
    return InstanceModel(
        id=record.id,
        name=record.name,
        type=record.type,
        url=record.url,
        is_enabled=record.is_enabled,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _to_connection(record: InstanceRecord) -> InstanceConnection:
    return InstanceConnection(
        id=record.id,
        name=record.name,
        type=record.type,
        url=record.url,
        api_key=record.api_key,
        is_enabled=record.is_enabled,
    )
