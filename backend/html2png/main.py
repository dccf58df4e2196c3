from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from html2png import models  # noqa: F401
from html2png.api.api import api_router
from html2png.bootstrap import ensure_admin
from html2png.core.config import get_settings
from html2png.core.database import Base, SessionLocal, engine
from html2png.core.deps import get_codec, get_revocation_store
from html2png.core.errors import AppError, RateLimitedError, RenderError
from html2png.core.logger import configure_logging
from html2png.core.middleware import RequestIDMiddleware, SecurityHeadersMiddleware
from html2png.services.renderer import BrowserManager, HtmlRenderer

settings = get_settings()
configure_logging()
logger = structlog.get_logger()


def _playwright_version() -> str | None:
    try:
        return version("playwright")
    except PackageNotFoundError:
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("html2png.startup", environment=settings.ENVIRONMENT)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        ensure_admin(db)
    finally:
        db.close()

    get_revocation_store()

    if not get_codec().enabled:
        logger.warning("encryption.disabled", msg="ENCRYPTION_KEY not set; conversion bodies are stored as plaintext")

    # The browser itself starts on the first render.
    browsers = BrowserManager(settings.BROWSER_ARGS)
    app.state.browsers = browsers
    app.state.renderer = HtmlRenderer.from_settings(browsers, settings)

    yield

    logger.info("html2png.shutdown")
    await browsers.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    lifespan=lifespan,
    docs_url="/docs" if settings.ENABLE_API_DOCS else None,
    redoc_url="/redoc" if settings.ENABLE_API_DOCS else None,
    openapi_url="/openapi.json" if settings.ENABLE_API_DOCS else None,
)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    # The session cookie is an accepted credential.
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "x-request-id", "x-api-key"],
    expose_headers=[
        "Content-Disposition",
        "x-request-id",
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
        "Retry-After",
    ],
)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


@app.exception_handler(RateLimitedError)
async def rate_limited_handler(request: Request, exc: RateLimitedError):
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(_request_id(request)),
        headers=exc.result.headers(),
    )


@app.exception_handler(RenderError)
async def render_error_handler(request: Request, exc: RenderError):
    logger.error("convert.failed", stage=exc.stage, error=exc.detail)
    body = exc.to_dict(_request_id(request))
    if settings.is_development and exc.detail:
        body["error"]["details"] = {"stage": exc.stage, "message": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(_request_id(request)))


@app.get("/health")
def health(request: Request):
    browsers = getattr(request.app.state, "browsers", None)
    playwright_version = _playwright_version()
    return {
        "status": "ok",
        "playwright": {"available": playwright_version is not None, "version": playwright_version},
        "browser_running": bool(browsers and browsers.running),
    }


app.include_router(api_router, prefix=settings.API_V1_STR)
