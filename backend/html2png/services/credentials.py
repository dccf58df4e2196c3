"""Credential verification for bearer tokens and API keys.

Every failed check returns ``None``: a malformed, expired, revoked or
wrongly signed credential looks the same to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from jose import JWTError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from html2png.core.config import get_settings
from html2png.core.security import (
    api_key_display_prefix,
    api_key_hash,
    create_access_token,
    decode_token,
    generate_api_key,
    token_fingerprint,
)
from html2png.models.api_key import ApiKey
from html2png.models.user import User
from html2png.services.revocation import RevocationStore

logger = structlog.get_logger()

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Principal:
    id: int
    email: str
    is_admin: bool = False

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(id=user.id, email=user.email, is_admin=bool(user.is_admin))


@dataclass(frozen=True)
class IssuedApiKey:
    id: int
    raw_key: str
    display_prefix: str
    name: str | None
    created_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CredentialVerifier:
    def __init__(self, db: Session, revocations: RevocationStore):
        self.db = db
        self.revocations = revocations
        self.settings = get_settings()

    # ---- bearer tokens ----

    def issue_token(self, principal: Principal) -> str:
        return create_access_token(principal.id, principal.email, principal.is_admin)

    def verify_token(self, token: str) -> Principal | None:
        if not token:
            return None
        try:
            claims = decode_token(token)
            principal = Principal(
                id=int(claims["id"]),
                email=str(claims["email"]),
                is_admin=bool(claims.get("isAdmin", False)),
            )
        except (JWTError, KeyError, TypeError, ValueError):
            return None

        if self.revocations.contains(token_fingerprint(token)):
            logger.debug("auth.token.revoked", user_id=principal.id)
            return None
        return principal

    def revoke_token(self, token: str) -> None:
        try:
            claims = decode_token(token, verify_exp=False)
            expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc).replace(tzinfo=None)
        except (JWTError, KeyError, TypeError, ValueError):
            # Not one of ours; it can never verify, so there is nothing to revoke.
            return

        if expires_at <= _utcnow():
            return
        self.revocations.add(token_fingerprint(token), expires_at)
        logger.info("auth.token.revoked_on_logout", user_id=claims.get("id"))

    # ---- API keys ----

    def issue_api_key(self, owner_user_id: int, name: str | None = None) -> IssuedApiKey:
        raw_key = generate_api_key(self.settings.API_KEY_PREFIX)
        row = ApiKey(
            user_id=owner_user_id,
            key_hash=api_key_hash(raw_key, self.settings.SECRET_KEY),
            key_prefix=api_key_display_prefix(raw_key),
            name=(name or None),
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        logger.info("api_key.created", user_id=owner_user_id, key_id=row.id, key_prefix=row.key_prefix)
        return IssuedApiKey(
            id=row.id,
            raw_key=raw_key,
            display_prefix=row.key_prefix,
            name=row.name,
            created_at=row.created_at,
        )

    def verify_api_key(self, raw_key: str) -> Principal | None:
        if not raw_key or not raw_key.startswith(self.settings.API_KEY_PREFIX):
            return None

        key_hash = api_key_hash(raw_key, self.settings.SECRET_KEY)
        row = self.db.execute(
            select(ApiKey.id, User.id, User.email, User.is_admin)
            .join(User, User.id == ApiKey.user_id)
            .where(ApiKey.key_hash == key_hash, ApiKey.is_active.is_(True))
        ).first()
        if row is None:
            return None

        key_id, user_id, email, is_admin = row
        self._touch_api_key(key_id)
        return Principal(id=user_id, email=email, is_admin=bool(is_admin))

    def _touch_api_key(self, key_id: int) -> None:
        # Usage tracking must never fail authentication.
        try:
            self.db.execute(update(ApiKey).where(ApiKey.id == key_id).values(last_used_at=_utcnow()))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("api_key.touch_failed", key_id=key_id, error=str(e))

    def list_api_keys(self, owner_user_id: int) -> list[ApiKey]:
        return list(
            self.db.scalars(
                select(ApiKey)
                .where(ApiKey.user_id == owner_user_id, ApiKey.is_active.is_(True))
                .order_by(ApiKey.created_at.desc(), ApiKey.id.desc())
            )
        )

    def deactivate_api_key(self, owner_user_id: int, key_id: int) -> bool:
        result = self.db.execute(
            update(ApiKey)
            .where(ApiKey.id == key_id, ApiKey.user_id == owner_user_id, ApiKey.is_active.is_(True))
            .values(is_active=False)
        )
        self.db.commit()
        deactivated = (result.rowcount or 0) > 0
        if deactivated:
            logger.info("api_key.deactivated", user_id=owner_user_id, key_id=key_id)
        return deactivated

    # ---- request resolution ----

    def resolve_principal(
        self,
        api_key: str | None = None,
        authorization: str | None = None,
        cookie_token: str | None = None,
    ) -> Principal | None:
        """First present credential wins: API key, then bearer header, then cookie."""
        if api_key:
            return self.verify_api_key(api_key)
        if authorization and authorization.startswith(BEARER_PREFIX):
            return self.verify_token(authorization[len(BEARER_PREFIX):])
        if cookie_token:
            return self.verify_token(cookie_token)
        return None
