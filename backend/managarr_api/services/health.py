"""Per-instance health built on the connection tester."""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable

from ..schemas import HealthSnapshot, InstanceHealth
from ..stores.instance_store import InstanceConnection
from .connection_test import ConnectionTester


class HealthService:
    """Check instances and keep the latest background snapshot."""

    def __init__(
        self,
        tester: ConnectionTester,
        list_instances: Callable[[], list[InstanceConnection]],
        get_instance: Callable[[str], InstanceConnection | None],
        *,
        concurrency: int = 4,
    ) -> None:
        self._tester = tester
        self._list_instances = list_instances
        self._get_instance = get_instance
        self._semaphore_size = max(concurrency, 1)
        self.snapshot = HealthSnapshot()

    async def check(self, instance: InstanceConnection) -> InstanceHealth:
        """Contact one instance; disabled instances are reported without a request."""

        if not instance.is_enabled:
            return InstanceHealth(
                id=instance.id,
                name=instance.name,
                type=instance.type,
                is_enabled=False,
                status="disabled",
                message="Instance is disabled",
                checked_at=datetime.utcnow(),
            )
        result = await self._tester.test(instance.type, instance.url, instance.api_key)
        return InstanceHealth(
            id=instance.id,
            name=instance.name,
            type=instance.type,
            is_enabled=True,
            status="online" if result.success else "offline",
            version=result.version,
            message=result.message,
            checked_at=datetime.utcnow(),
        )

    async def check_one(self, instance_id: str) -> InstanceHealth | None:
        instance = self._get_instance(instance_id)
        return await self.check(instance) if instance else None

    async def check_all(self) -> list[InstanceHealth]:
        semaphore = asyncio.Semaphore(self._semaphore_size)

        async def _guarded(instance: InstanceConnection) -> InstanceHealth:
            async with semaphore:
                return await self.check(instance)

        return list(await asyncio.gather(*(_guarded(i) for i in self._list_instances())))

    def record(self, results: list[InstanceHealth]) -> None:
        self.snapshot = HealthSnapshot(refreshed_at=datetime.utcnow(), instances=results)
