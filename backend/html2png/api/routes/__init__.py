from html2png.api.routes import api_keys, auth, conversions, convert

__all__ = [
    "auth",
    "api_keys",
    "convert",
    "conversions",
]
