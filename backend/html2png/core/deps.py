import threading
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from html2png.core.config import get_settings
from html2png.core.database import SessionLocal, get_db
from html2png.core.errors import InvalidCredentialError
from html2png.services.credentials import CredentialVerifier, Principal
from html2png.services.crypto import EnvelopeCodec, codec_from_settings
from html2png.services.history import ConversionHistory
from html2png.services.renderer import HtmlRenderer
from html2png.services.revocation import RevocationStore, revocation_store_from_settings


_revocation_store: RevocationStore | None = None
_revocation_lock = threading.Lock()


def get_revocation_store() -> RevocationStore:
    """The one revocation store for this process, built on first use.

    Creation is locked: a second store would silently miss revocations
    recorded in the first.
    """
    global _revocation_store
    if _revocation_store is None:
        with _revocation_lock:
            if _revocation_store is None:
                _revocation_store = revocation_store_from_settings(get_settings(), SessionLocal)
    return _revocation_store


def reset_revocation_store() -> None:
    global _revocation_store
    with _revocation_lock:
        _revocation_store = None


@lru_cache
def get_codec() -> EnvelopeCodec:
    return codec_from_settings()


def get_credential_verifier(db: Session = Depends(get_db)) -> CredentialVerifier:
    return CredentialVerifier(db, get_revocation_store())


def get_conversion_history(db: Session = Depends(get_db)) -> ConversionHistory:
    return ConversionHistory(db, get_codec())


def get_renderer(request: Request) -> HtmlRenderer:
    # Built once by the app lifespan; see html2png.main.
    return request.app.state.renderer


def session_tokens(request: Request) -> list[str]:
    """Distinct bearer tokens carried by the request (header and cookie)."""
    tokens = []
    authorization = request.headers.get("authorization") or ""
    if authorization.startswith("Bearer "):
        tokens.append(authorization[len("Bearer "):])
    cookie = request.cookies.get(get_settings().SESSION_COOKIE_NAME)
    if cookie and cookie not in tokens:
        tokens.append(cookie)
    return tokens


def get_optional_principal(
    request: Request,
    verifier: CredentialVerifier = Depends(get_credential_verifier),
    x_api_key: str | None = Header(default=None, alias="x-api-key"),
    authorization: str | None = Header(default=None),
) -> Principal | None:
    return verifier.resolve_principal(
        api_key=x_api_key,
        authorization=authorization,
        cookie_token=request.cookies.get(get_settings().SESSION_COOKIE_NAME),
    )


def get_current_principal(principal: Principal | None = Depends(get_optional_principal)) -> Principal:
    if principal is None:
        raise InvalidCredentialError()
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
VerifierDep = Annotated[CredentialVerifier, Depends(get_credential_verifier)]
HistoryDep = Annotated[ConversionHistory, Depends(get_conversion_history)]
RendererDep = Annotated[HtmlRenderer, Depends(get_renderer)]
