import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from html2png.core.config import get_settings

# Argon2 is memory-hard; the digest embeds its own salt and cost parameters.
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8
API_KEY_RANDOM_BYTES = 32
API_KEY_DISPLAY_CHARS = 8


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    # passlib raises on digests it cannot identify; a bad digest is just a failed check.
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


def validate_password_strength(password: str) -> bool:
    return len(password or "") >= MIN_PASSWORD_LENGTH


def create_access_token(user_id: int, email: str, is_admin: bool, expires_delta: timedelta | None = None) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS))
    payload = {
        "sub": str(user_id),
        "id": user_id,
        "email": email,
        "isAdmin": is_admin,
        "iat": now,
        "exp": expire,
        "jti": secrets.token_urlsafe(16),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, verify_exp: bool = True) -> dict:
    settings = get_settings()
    return jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[settings.JWT_ALGORITHM],
        options={"verify_exp": verify_exp},
    )


def token_fingerprint(token: str) -> str:
    # Revocation records hold this digest, never the token itself.
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_api_key(prefix: str) -> str:
    # Prefix lets incoming credentials be routed by format; the rest is random.
    return f"{prefix}{secrets.token_hex(API_KEY_RANDOM_BYTES)}"


def api_key_hash(api_key: str, secret: str) -> str:
    # Stable HMAC hash for API keys; store only this.
    return hmac.new(secret.encode("utf-8"), api_key.encode("utf-8"), hashlib.sha256).hexdigest()


def api_key_display_prefix(api_key: str) -> str:
    return api_key[:API_KEY_DISPLAY_CHARS] + "..."
