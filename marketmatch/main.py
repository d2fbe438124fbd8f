import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from marketmatch.core.async_tasks import drain_background_tasks
from marketmatch.database import init_db
from marketmatch.models import *  # noqa: F403

APP_VERSION = "0.1.0"
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: create tables
    await init_db()
    from marketmatch.config import settings
    from marketmatch.database import async_session

    # Expire listings past their expiry and mirror the change onto their matches
    async def _expiry_loop() -> None:
        await asyncio.sleep(30)  # Wait 30s before first run
        while True:
            try:
                from marketmatch.services.match_sync_service import expire_stale_listings

                async with async_session() as db:
                    await expire_stale_listings(db)
            except Exception:
                logger.exception("Background task error")
            await asyncio.sleep(settings.expiry_sweep_interval_seconds)

    expiry_task = asyncio.create_task(_expiry_loop())

    # Repair match mirrors that missed a status sync
    async def _reconcile_loop() -> None:
        await asyncio.sleep(120)
        while True:
            try:
                from marketmatch.services.match_sync_service import reconcile_match_statuses

                async with async_session() as db:
                    await reconcile_match_statuses(db)
            except Exception:
                logger.exception("Background task error")
            await asyncio.sleep(settings.match_reconcile_interval_seconds)

    reconcile_task = asyncio.create_task(_reconcile_loop())

    yield

    # Shutdown: cancel loops, let in-flight matching finish, dispose connection pool
    expiry_task.cancel()
    reconcile_task.cancel()
    await drain_background_tasks(timeout_seconds=5.0)

    from marketmatch.database import dispose_engine

    await dispose_engine()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def create_app() -> FastAPI:
    from marketmatch.config import settings

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="MarketMatch",
        description="Match new marketplace listings against buyers' standing preferences",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    # CORS configurable via CORS_ORIGINS env var
    allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers
    app.add_middleware(SecurityHeadersMiddleware)

    # Register REST routers
    from marketmatch.api import API_PREFIX, API_ROUTERS

    for router in API_ROUTERS:
        app.include_router(router, prefix=API_PREFIX)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"name": "marketmatch", "version": APP_VERSION, "docs": "/docs"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from marketmatch.config import settings

    uvicorn.run(
        "marketmatch.main:app",
        host=settings.marketplace_host,
        port=settings.marketplace_port,
        log_level=settings.log_level.lower(),
    )
