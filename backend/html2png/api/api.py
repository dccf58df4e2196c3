from fastapi import APIRouter

from html2png.api.routes import api_keys, auth, conversions, convert

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(api_keys.router)
api_router.include_router(convert.router)
api_router.include_router(conversions.router)
