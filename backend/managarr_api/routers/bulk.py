"""Bulk mutation endpoints."""
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_bulk
from ..schemas import BulkActionRequest, BulkActionResult
from ..services.bulk import BulkActionError, BulkActionService
from ..services.upstream import UpstreamError

router = APIRouter(prefix="/bulk", tags=["bulk"])


@router.post("/{kind}/{instance_id}", response_model=BulkActionResult)
async def run_bulk_action(
    kind: Literal["sonarr", "radarr"],
    instance_id: str,
    request: BulkActionRequest,
    bulk: BulkActionService = Depends(get_bulk),
) -> BulkActionResult:
    """Apply one action to every selected item; the first failure fails the request."""

    try:
        return await bulk.run(kind, instance_id, request)
    except BulkActionError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except UpstreamError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
