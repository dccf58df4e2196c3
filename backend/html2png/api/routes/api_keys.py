from fastapi import APIRouter, Depends, status

from html2png.core.deps import CurrentPrincipal, VerifierDep
from html2png.core.errors import NotFoundError
from html2png.core.rate_limit import EndpointClass, rate_limit
from html2png.schemas.api_key import ApiKeyCreateRequest, ApiKeyCreateResponse, ApiKeyListItem

router = APIRouter(prefix="/keys", tags=["api-keys"], dependencies=[Depends(rate_limit(EndpointClass.api))])


@router.get("", response_model=list[ApiKeyListItem])
def list_keys(principal: CurrentPrincipal, verifier: VerifierDep):
    return verifier.list_api_keys(principal.id)


@router.post("", response_model=ApiKeyCreateResponse, status_code=status.HTTP_201_CREATED)
def create_key(payload: ApiKeyCreateRequest, principal: CurrentPrincipal, verifier: VerifierDep):
    issued = verifier.issue_api_key(principal.id, payload.name)
    return ApiKeyCreateResponse(
        id=issued.id,
        key_prefix=issued.display_prefix,
        name=issued.name,
        created_at=issued.created_at,
        api_key=issued.raw_key,
    )


@router.delete("/{key_id}")
def delete_key(key_id: int, principal: CurrentPrincipal, verifier: VerifierDep):
    if not verifier.deactivate_api_key(principal.id, key_id):
        raise NotFoundError("API key not found")
    return {"success": True}
