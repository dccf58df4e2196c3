import structlog
from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from html2png.core.config import get_settings
from html2png.core.database import get_db
from html2png.core.deps import CurrentPrincipal, VerifierDep, session_tokens
from html2png.core.errors import ConflictError, ForbiddenError, InvalidCredentialError, NotFoundError, ValidationError
from html2png.core.rate_limit import EndpointClass, rate_limit
from html2png.core.security import validate_password_strength
from html2png.schemas.auth import ChangePasswordRequest, LoginRequest, MeResponse, TokenResponse, UserCreate, UserResponse
from html2png.services import accounts
from html2png.services.credentials import Principal
from html2png.services.registration import is_registration_enabled

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        httponly=True,
        secure=settings.COOKIE_SECURE or settings.is_production,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        path="/",
    )


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit(EndpointClass.auth))],
)
def register(payload: UserCreate, response: Response, verifier: VerifierDep, db: Session = Depends(get_db)):
    if not is_registration_enabled(db):
        raise ForbiddenError("Registration is currently disabled")

    if not validate_password_strength(payload.password):
        raise ValidationError("Password must be at least 8 characters")

    if accounts.get_user_by_email(db, payload.email):
        raise ConflictError("Email already exists")

    try:
        user = accounts.create_user(db, payload.email, payload.password)
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email.
        db.rollback()
        raise ConflictError("Email already exists")

    logger.info("auth.registered", user_id=user.id)
    token = verifier.issue_token(Principal.from_user(user))
    _set_session_cookie(response, token)
    return TokenResponse(user=UserResponse.model_validate(user), access_token=token)


@router.post("/login", response_model=TokenResponse, dependencies=[Depends(rate_limit(EndpointClass.auth))])
def login(payload: LoginRequest, response: Response, verifier: VerifierDep, db: Session = Depends(get_db)):
    user = accounts.authenticate_user(db, payload.email, payload.password)
    if not user:
        raise InvalidCredentialError("Invalid email or password")

    logger.info("auth.login", user_id=user.id)
    token = verifier.issue_token(Principal.from_user(user))
    _set_session_cookie(response, token)
    return TokenResponse(user=UserResponse.model_validate(user), access_token=token)


@router.post("/logout", dependencies=[Depends(rate_limit(EndpointClass.api))])
def logout(request: Request, response: Response, verifier: VerifierDep):
    for token in session_tokens(request):
        verifier.revoke_token(token)
    response.delete_cookie(get_settings().SESSION_COOKIE_NAME, path="/")
    return {"success": True}


@router.get("/me", response_model=MeResponse, dependencies=[Depends(rate_limit(EndpointClass.api))])
def me(principal: CurrentPrincipal, db: Session = Depends(get_db)):
    user = accounts.get_user(db, principal.id)
    if not user:
        raise NotFoundError("User not found")
    return user


@router.post("/change-password", dependencies=[Depends(rate_limit(EndpointClass.auth))])
def change_password(payload: ChangePasswordRequest, principal: CurrentPrincipal, db: Session = Depends(get_db)):
    if not validate_password_strength(payload.new_password):
        raise ValidationError("New password must be at least 8 characters")

    user = accounts.get_user(db, principal.id)
    if not user:
        raise NotFoundError("User not found")

    if not accounts.change_password(db, user, payload.current_password, payload.new_password):
        raise ValidationError("Current password is incorrect")

    logger.info("auth.password_changed", user_id=user.id)
    return {"success": True}
