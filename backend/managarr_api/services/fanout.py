"""Concurrent per-instance fan-out with explicit failure collection."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Awaitable, Callable, Generic, Iterable, TypeVar

from ..schemas import FailedInstanceModel
from ..stores.instance_store import InstanceConnection

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class InstanceFailure:
    instance: InstanceConnection
    error: str


@dataclass
class FanoutResult(Generic[T]):
    """Per-instance results in instance order, plus the instances that failed."""

    results: list[tuple[InstanceConnection, T]] = field(default_factory=list)
    failures: list[InstanceFailure] = field(default_factory=list)

    def failed_instances(self) -> list[FailedInstanceModel]:
        return [
            FailedInstanceModel(id=failure.instance.id, name=failure.instance.name, error=failure.error)
            for failure in self.failures
        ]

    def merge(self, other: FanoutResult[T]) -> FanoutResult[T]:
        return FanoutResult(
            results=[*self.results, *other.results],
            failures=[*self.failures, *other.failures],
        )


async def fan_out(
    instances: Iterable[InstanceConnection],
    fetch: Callable[[InstanceConnection], Awaitable[T]],
    *,
    limit: int = 4,
    label: str = "data",
) -> FanoutResult[T]:
    """Run ``fetch`` for every instance with at most ``limit`` calls in flight.

    An instance whose fetch raises is logged and reported in ``failures``;
    the remaining instances still contribute.
    """

    targets = list(instances)
    semaphore = asyncio.Semaphore(max(limit, 1))

    async def _guarded(instance: InstanceConnection) -> tuple[InstanceConnection, T | None, str | None]:
        async with semaphore:
            try:
                return instance, await fetch(instance), None
            except Exception as exc:  # noqa: BLE001 - one instance must not sink the report
                logger.warning("Error fetching %s from %s: %s", label, instance.name, exc)
                return instance, None, str(exc) or exc.__class__.__name__

    outcome: FanoutResult[T] = FanoutResult()
    for instance, value, error in await asyncio.gather(*(_guarded(target) for target in targets)):
        if error is not None:
            outcome.failures.append(InstanceFailure(instance=instance, error=error))
        else:
            outcome.results.append((instance, value))  # type: ignore[arg-type]
    return outcome
