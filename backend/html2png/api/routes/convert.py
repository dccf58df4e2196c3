from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Response
from fastapi.concurrency import run_in_threadpool

from html2png.core.deps import CurrentPrincipal, HistoryDep, RendererDep
from html2png.core.rate_limit import EndpointClass, RateLimitResult, rate_limit
from html2png.schemas.conversion import ConvertRequest

logger = structlog.get_logger()

router = APIRouter(tags=["convert"])

PNG_DISPOSITION = 'attachment; filename="screenshot.png"'


@router.post(
    "/convert",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}}},
)
async def convert(
    # Declared first so the quota is spent before credentials are checked.
    quota: Annotated[RateLimitResult, Depends(rate_limit(EndpointClass.convert))],
    payload: ConvertRequest,
    principal: CurrentPrincipal,
    renderer: RendererDep,
    history: HistoryDep,
):
    request = payload.to_render_request()
    png = await renderer.render(request)

    # History is best-effort; the image goes back even if the write fails.
    await run_in_threadpool(
        history.save,
        principal.id,
        request.html,
        request.width,
        request.height,
        request.dpr,
        request.full_page,
        len(png),
    )
    logger.info("convert.completed", user_id=principal.id, byte_size=len(png))
    return Response(
        content=png,
        media_type="image/png",
        headers={**quota.headers(), "Content-Disposition": PNG_DISPOSITION},
    )
