from html2png.models.user import User
from html2png.models.api_key import ApiKey
from html2png.models.conversion import Conversion
from html2png.models.revoked_token import RevokedToken
from html2png.models.setting import Setting

__all__ = [
    "User",
    "ApiKey",
    "Conversion",
    "RevokedToken",
    "Setting",
]
