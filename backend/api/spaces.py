"""
Spaces API - top-level workspace containers.

Deleting a space removes every vault and log inside it.
"""

from fastapi import APIRouter, Depends

from .auth import require_owner
from .deps import Services, get_services
from .schemas import SpaceCreate, SpaceUpdate

router = APIRouter(prefix="/spaces", tags=["spaces"])


@router.get("")
async def list_spaces(
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    return await services.run_store(services.store.list_spaces(owner_id))


@router.post("", status_code=201)
async def create_space(
    body: SpaceCreate,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    return await services.run_store(services.store.create_space(owner_id, body.name))


@router.get("/{space_id}")
async def get_space(
    space_id: str,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    return await services.run_store(services.store.get_space(owner_id, space_id))


@router.put("/{space_id}")
async def update_space(
    space_id: str,
    body: SpaceUpdate,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    return await services.run_store(
        services.store.update_space(owner_id, space_id, body.name)
    )


@router.delete("/{space_id}")
async def delete_space(
    space_id: str,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    result = await services.run_store(
        services.cascade.delete_space(owner_id, space_id), cascade=True
    )
    return {
        "message": "Space and all its contents deleted",
        "vaultsDeleted": result["vaults_deleted"],
        "logsDeleted": result["logs_deleted"],
    }
