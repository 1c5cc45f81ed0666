# ─────────────────────────────────────────────────────────────────────────────
# POST /api/openai/responses — caption / answer endpoint (THIN)
# ─────────────────────────────────────────────────────────────────────────────


from fastapi import APIRouter, Depends, Request

from captioner.dependencies import get_caption_service
from captioner.rate_limit import bind_route_limit, client_identity, limiter, route_limit
from captioner.schemas import CaptionResponse, ErrorResponse
from captioner.services.captioning import CaptionService

router = APIRouter()


@router.post(
    "/api/openai/responses",
    response_model=CaptionResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    dependencies=[Depends(bind_route_limit)],
)
@limiter.limit(route_limit)
async def create_response(
    request: Request,
    service: CaptionService = Depends(get_caption_service),
) -> CaptionResponse:
    """Caption an image (or answer a short text question).

    The body is read raw so a malformed payload answers 400
    "Invalid input format" instead of FastAPI's 422. The per-identity quota
    is checked before the body is even parsed. Logic is in CaptionService;
    this endpoint is just wiring.
    """
    identity = client_identity(request)
    return await service.caption(identity, await request.body())
