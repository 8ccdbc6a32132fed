"""
Vaults API - nestable folders inside a space.
"""

from fastapi import APIRouter, Depends, Query

from errors import InvalidInput

from .auth import require_owner
from .deps import Services, filter_id, get_services
from .schemas import VaultCreate, VaultUpdate

router = APIRouter(prefix="/vaults", tags=["vaults"])


@router.get("")
async def list_vaults(
    space_id: str = Query(..., alias="spaceId"),
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    space_id = filter_id(space_id, "spaceId")
    if space_id is None:
        raise InvalidInput("spaceId is required")
    return await services.run_store(services.store.list_vaults(owner_id, space_id=space_id))


@router.post("", status_code=201)
async def create_vault(
    body: VaultCreate,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    return await services.run_store(
        services.store.create_vault(owner_id, body.space_id, body.name, body.parent_id)
    )


@router.get("/{vault_id}")
async def get_vault(
    vault_id: str,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    return await services.run_store(services.store.get_vault(owner_id, vault_id))


@router.put("/{vault_id}")
async def update_vault(
    vault_id: str,
    body: VaultUpdate,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    # Descendant repathing, when enabled, runs as a cascade.
    return await services.run_store(
        services.cascade.rename_vault(owner_id, vault_id, body.name),
        cascade=services.cascade.repath_descendants,
    )


@router.delete("/{vault_id}")
async def delete_vault(
    vault_id: str,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    result = await services.run_store(
        services.cascade.delete_vault(owner_id, vault_id), cascade=True
    )
    return {
        "message": "Vault and all its contents deleted",
        "vaultsDeleted": result["descendant_vaults_deleted"] + 1,
        "logsDeleted": result["logs_deleted"],
    }
