"""Bulk mutations applied to selected series or movies of one instance."""
from __future__ import annotations

import asyncio
import logging
from pathlib import PurePosixPath
from typing import Any

from ..schemas import BulkActionRequest, BulkActionResult, MoveTarget
from .upstream import UpstreamError, UpstreamProxy

logger = logging.getLogger(__name__)

RESOURCES = {"sonarr": "series", "radarr": "movie"}


class BulkActionError(RuntimeError):
    """Raised when any item of a bulk action fails."""

    def __init__(self, action: str, message: str) -> None:
        super().__init__(f"Bulk {action} failed: {message}")
        self.action = action


def media_folder_name(path: str) -> str:
    """Return the last component of an upstream media path."""

    return PurePosixPath(path.replace("\\", "/").rstrip("/")).name


def join_destination(destination: str, folder: str) -> str:
    return f"{destination.rstrip('/')}/{folder}"


class BulkActionService:
    """Run one action over a set of items; the first failure aborts the request.

    Already-issued sibling calls are not rolled back.
    """

    def __init__(self, proxy: UpstreamProxy) -> None:
        self._proxy = proxy

    async def run(self, kind: str, instance_id: str, request: BulkActionRequest) -> BulkActionResult:
        instance = self._proxy.resolve(instance_id, kind)
        resource = RESOURCES[kind]

        async def _get(item_id: int) -> dict[str, Any]:
            item = await self._proxy.fetch_json(instance, f"/{resource}/{item_id}")
            if not isinstance(item, dict):
                raise UpstreamError(f"{resource} {item_id} returned no body")
            return item

        async def _update(item_id: int, changes: dict[str, Any]) -> None:
            item = await _get(item_id)
            item.update(changes)
            await self._proxy.fetch_json(instance, f"/{resource}/{item_id}", method="PUT", json=item)

        async def _delete(item_id: int) -> None:
            await self._proxy.fetch_json(
                instance,
                f"/{resource}/{item_id}",
                method="DELETE",
                params={"deleteFiles": "true" if request.delete_files else "false"},
            )

        async def _move(target: MoveTarget | int) -> None:
            if isinstance(target, MoveTarget):
                item_id, new_path = target.id, target.new_path
                item = await _get(item_id)
            else:
                item_id = target
                item = await _get(item_id)
                new_path = join_destination(
                    request.destination or "", media_folder_name(item.get("path") or "")
                )
            logger.info("Moving %s %s on %s to %s", resource, item_id, instance.name, new_path)
            item["path"] = new_path
            await self._proxy.fetch_json(
                instance,
                f"/{resource}/{item_id}",
                method="PUT",
                params={"moveFiles": "true"},
                json=item,
            )

        try:
            if request.action in {"monitor", "unmonitor"}:
                for item_id in request.ids:
                    await _update(item_id, {"monitored": request.action == "monitor"})
                processed = len(request.ids)
            elif request.action == "set_quality_profile":
                for item_id in request.ids:
                    await _update(item_id, {"qualityProfileId": request.quality_profile_id})
                processed = len(request.ids)
            elif request.action == "delete":
                await asyncio.gather(*(_delete(item_id) for item_id in request.ids))
                processed = len(request.ids)
            else:
                targets: list[MoveTarget | int] = list(request.moves or request.ids)
                await asyncio.gather(*(_move(target) for target in targets))
                processed = len(targets)
        except UpstreamError as exc:
            logger.warning("Bulk %s on %s failed: %s", request.action, instance.name, exc.message)
            raise BulkActionError(request.action, exc.message) from exc

        return BulkActionResult(action=request.action, instance_id=instance.id, processed=processed)
