from fastapi import APIRouter, Depends, Query

from html2png.core.deps import CurrentPrincipal, HistoryDep
from html2png.core.errors import NotFoundError
from html2png.core.rate_limit import EndpointClass, rate_limit
from html2png.schemas.conversion import ConversionItem, ConversionListResponse
from html2png.services.history import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT

router = APIRouter(prefix="/conversions", tags=["conversions"], dependencies=[Depends(rate_limit(EndpointClass.api))])


@router.get("", response_model=ConversionListResponse)
def list_conversions(
    principal: CurrentPrincipal,
    history: HistoryDep,
    limit: int = Query(DEFAULT_LIST_LIMIT),
    offset: int = Query(0),
):
    limit = min(max(limit, 1), MAX_LIST_LIMIT)
    offset = max(offset, 0)
    views, total = history.list_records(principal.id, limit=limit, offset=offset)
    return ConversionListResponse(
        conversions=[ConversionItem.model_validate(v) for v in views],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{conversion_id}", response_model=ConversionItem)
def get_conversion(conversion_id: int, principal: CurrentPrincipal, history: HistoryDep):
    view = history.get(principal.id, conversion_id)
    if view is None:
        raise NotFoundError("Conversion not found")
    return view


@router.delete("/{conversion_id}")
def delete_conversion(conversion_id: int, principal: CurrentPrincipal, history: HistoryDep):
    if not history.delete(principal.id, conversion_id):
        raise NotFoundError("Conversion not found")
    return {"success": True}
