from fastapi import APIRouter, Depends, Query

from errors import InvalidInput

from .auth import require_owner
from .deps import Services, filter_id, get_services

router = APIRouter(tags=["tree"])


@router.get("/tree")
async def get_tree(
    space_id: str = Query(..., alias="spaceId"),
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    """Nested vault/log forest of one space; an unknown space yields []."""
    space_id = filter_id(space_id, "spaceId")
    if space_id is None:
        raise InvalidInput("spaceId is required")
    nodes = await services.run_store(services.tree_builder.build_tree(owner_id, space_id))
    return [node.to_dict() for node in nodes]
