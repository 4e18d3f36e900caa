from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.auth import router as auth_router
from app.core.config import settings
from app.core.database import init_db
from app.core.logging import setup_logging
from app.services.rate_limit import LoginThrottle
from app.services.throttle_store import StoreUnavailableError, build_throttle_store

logger = structlog.get_logger(__name__)

app = FastAPI(title="Login Service")


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(
    request: Request, exc: StoreUnavailableError
) -> JSONResponse:
    logger.error("throttle_store_unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})


origins = [origin.strip() for origin in settings.ADMIN_UI_ORIGINS.split(",") if origin]
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
async def on_startup() -> None:
    setup_logging()
    if settings.APP_ENV.lower() != "development" and settings.JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in non-development environments")
    await init_db()
    app.state.throttle_store = build_throttle_store(settings)
    app.state.login_throttle = LoginThrottle(
        app.state.throttle_store,
        settings.LOGIN_THROTTLE_MAX_REQUESTS,
        settings.LOGIN_THROTTLE_WINDOW_SEC,
        key_prefix=settings.LOGIN_THROTTLE_KEY_PREFIX,
        atomic_increment=settings.LOGIN_THROTTLE_ATOMIC_INCREMENT,
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    store = getattr(app.state, "throttle_store", None)
    close = getattr(store, "close", None)
    if close:
        await close()


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


app.include_router(auth_router)
