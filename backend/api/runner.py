from fastapi import APIRouter, Depends

from .auth import require_owner
from .deps import Services, get_services
from .schemas import RunRequest

router = APIRouter(tags=["run"])


@router.post("/run")
async def run_code(
    body: RunRequest,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    return await services.piston.execute(body.language, body.code)
