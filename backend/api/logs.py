"""
Logs API - code files stored inside a vault.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from .auth import require_owner
from .deps import Services, filter_id, get_services
from .schemas import LogCreate, LogUpdate

router = APIRouter(prefix="/logs", tags=["logs"])


@router.get("")
async def list_logs(
    space_id: Optional[str] = Query(default=None, alias="spaceId"),
    vault_id: Optional[str] = Query(default=None, alias="vaultId"),
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    return await services.run_store(
        services.store.list_logs(
            owner_id,
            space_id=filter_id(space_id, "spaceId"),
            vault_id=filter_id(vault_id, "vaultId"),
        )
    )


@router.post("", status_code=201)
async def create_log(
    body: LogCreate,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    return await services.run_store(
        services.store.create_log(
            owner_id,
            body.space_id,
            body.vault_id,
            body.name,
            content=body.code,
            language=body.language,
        )
    )


@router.get("/{log_id}")
async def get_log(
    log_id: str,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    return await services.run_store(services.store.get_log(owner_id, log_id))


@router.put("/{log_id}")
async def update_log(
    log_id: str,
    body: LogUpdate,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    return await services.run_store(
        services.store.update_log(
            owner_id,
            log_id,
            name=body.name,
            content=body.code,
            language=body.language,
        )
    )


@router.delete("/{log_id}")
async def delete_log(
    log_id: str,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    await services.run_store(services.store.delete_log(owner_id, log_id))
    return {"message": "Log deleted"}
