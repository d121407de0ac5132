"""Instance registry endpoints."""
from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_instance_store, get_tester
from ..schemas import (
    ConnectionTestRequest,
    ConnectionTestResult,
    InstanceCreate,
    InstanceModel,
    InstanceUpdate,
    MessageResponse,
)
from ..services.connection_test import ConnectionTester
from ..stores.instance_store import InstanceStore, InstanceTypeChangeError

router = APIRouter(prefix="/instances", tags=["instances"])

INSTANCE_TYPES = ("sonarr", "radarr", "plex")


@router.get("", response_model=list[InstanceModel])
def list_instances(store: InstanceStore = Depends(get_instance_store)) -> list[InstanceModel]:
    """Return every instance ordered by type then name."""

    return store.list()


@router.get("/type/{instance_type}", response_model=list[InstanceModel])
def list_instances_by_type(
    instance_type: str,
    store: InstanceStore = Depends(get_instance_store),
) -> list[InstanceModel]:
    if instance_type not in INSTANCE_TYPES:
        raise HTTPException(status_code=400, detail="Invalid instance type")
    return store.list(instance_type=instance_type)


@router.post("/test", response_model=ConnectionTestResult)
async def test_candidate(
    request: ConnectionTestRequest,
    tester: ConnectionTester = Depends(get_tester),
) -> ConnectionTestResult:
    """Check connection details before they are saved."""

    return await tester.test(request.type, request.url, request.api_key)


@router.get("/{instance_id}", response_model=InstanceModel)
def get_instance(instance_id: str, store: InstanceStore = Depends(get_instance_store)) -> InstanceModel:
    instance = store.get(instance_id)
    if instance is None:
        raise HTTPException(status_code=404, detail="Instance not found")
    return instance


@router.post("", response_model=InstanceModel, status_code=201)
def create_instance(
    payload: InstanceCreate,
    store: InstanceStore = Depends(get_instance_store),
) -> InstanceModel:
    """Register a new instance; the stored credential is never echoed back."""

    return store.create(payload)


@router.put("/{instance_id}", response_model=InstanceModel)
def update_instance(
    instance_id: str,
    update: InstanceUpdate,
    store: InstanceStore = Depends(get_instance_store),
) -> InstanceModel:
    try:
        instance = store.update(instance_id, update)
    except InstanceTypeChangeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if instance is None:
        raise HTTPException(status_code=404, detail="Instance not found")
    return instance


@router.delete("/{instance_id}", response_model=MessageResponse)
def delete_instance(
    instance_id: str,
    store: InstanceStore = Depends(get_instance_store),
) -> MessageResponse:
    if not store.delete(instance_id):
        raise HTTPException(status_code=404, detail="Instance not found")
    return MessageResponse(message="Instance deleted")


@router.post("/{instance_id}/test", response_model=ConnectionTestResult)
async def test_instance(
    instance_id: str,
    store: InstanceStore = Depends(get_instance_store),
    tester: ConnectionTester = Depends(get_tester),
) -> ConnectionTestResult:
    """Test the stored connection details of an existing instance."""

    instance = store.get_connection(instance_id)
    if instance is None:
        raise HTTPException(status_code=404, detail="Instance not found")
    return await tester.test(instance.type, instance.url, instance.api_key)
