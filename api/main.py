"""
Replivity Cache Service

FastAPI application hosting the cache management router. The cache
runtime is created once per process and kept on ``app.state``.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from replivity import __version__
from replivity.cache.exceptions import CacheNotInitializedError
from replivity.cache.runtime import CacheRuntime
from replivity.database.session import get_db_context
from replivity.utils.config import Settings, get_settings

from api.cache import router as cache_router


logger = logging.getLogger(__name__)


async def _warm_common(runtime: CacheRuntime, settings: Settings):
    try:
        with get_db_context() as db:
            report = await runtime.warmer(db, settings.CACHE_WARMUP_CONCURRENCY).warmup_common()
        logger.info(f"Startup warmup: {report.succeeded} succeeded, {report.failed} failed")
    except Exception as e:
        # Don't fail startup - a cold cache still serves requests
        logger.error(f"Startup cache warmup failed: {e}")


def create_app(
    runtime: Optional[CacheRuntime] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the application around a cache runtime."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app_instance: FastAPI) -> AsyncIterator[None]:
        cache_runtime = runtime or CacheRuntime.create()
        await cache_runtime.start(require_remote=cache_runtime.config.redis_required)
        app_instance.state.cache_runtime = cache_runtime

        if settings.CACHE_WARMUP_ON_STARTUP:
            await _warm_common(cache_runtime, settings)

        yield

        app_instance.state.cache_runtime = None
        await cache_runtime.stop()

    app = FastAPI(
        title="Replivity Cache Service",
        description="Cache health, statistics, invalidation and warmup",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(CacheNotInitializedError)
    async def cache_not_initialized(request: Request, exc: CacheNotInitializedError):
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.get("/")
    async def root():
        """Liveness endpoint."""
        return {"status": "ok", "service": "Replivity Cache", "version": __version__}

    app.include_router(cache_router)
    return app


def configure_logging(level: str = "INFO"):
    # stdout, some hosts treat stderr output as errors
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)


configure_logging(get_settings().LOG_LEVEL)
app = create_app()
