from fastapi import APIRouter, Depends

from .auth import require_owner
from .deps import Services, get_services
from .schemas import GenerateRequest

router = APIRouter(tags=["generate"])


@router.post("/generate")
async def generate_code(
    body: GenerateRequest,
    owner_id: str = Depends(require_owner),
    services: Services = Depends(get_services),
):
    code, provider = await services.ai.generate(
        body.prompt, language=body.language, filename=body.filename
    )
    return {"code": code, "provider": provider}
