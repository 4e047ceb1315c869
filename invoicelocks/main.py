"""FastAPI application entrypoint for InvoiceLocks."""
from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette import status

from invoicelocks.api import router as api_router
from invoicelocks.core.config import settings
from invoicelocks.core.database import check_database_health
from invoicelocks.core.exceptions import LockContentionError, LockStoreUnavailableError
from invoicelocks.core.logging_config import configure_logging
from invoicelocks.db.migrate import run_migrations
from invoicelocks.schemas import HealthResponse
from invoicelocks.services.lock_sweeper import lock_sweeper
from invoicelocks.services.locks import lock_mutexes
from invoicelocks.utils import collect_mutex_warnings

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Build and configure the FastAPI application instance."""

    configure_logging()

    app = FastAPI(title="InvoiceLocks", version="0.1.0", debug=settings.debug)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    app.include_router(api_router)

    @app.exception_handler(LockStoreUnavailableError)
    async def lock_store_unavailable(request: Request, exc: LockStoreUnavailableError) -> JSONResponse:
        logger.error("Lock store unavailable", extra={"path": request.url.path, "error": str(exc)})
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Lock store unavailable; try again later."},
        )

    @app.exception_handler(LockContentionError)
    async def lock_contention(request: Request, exc: LockContentionError) -> JSONResponse:
        logger.warning("Lock contention", extra={"path": request.url.path, "error": str(exc)})
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Lock is changing hands; try again."},
        )

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        healthy, message = check_database_health()
        warnings = collect_mutex_warnings(
            lock_mutexes(), wait_threshold=settings.lock_wait_warning_seconds
        )
        return HealthResponse(
            status="ok" if healthy and not warnings else "degraded",
            database=message,
            warnings=warnings,
        )

    @app.on_event("startup")
    async def startup() -> None:
        """Apply database migrations and start the lock sweeper."""

        attempts = settings.db_migration_max_retries
        base_delay = settings.db_migration_retry_delay_seconds
        for attempt in range(1, attempts + 1):
            try:
                await asyncio.to_thread(run_migrations)
                break
            except Exception as exc:  # pragma: no cover - exercised in integration tests
                if attempt == attempts:
                    logger.exception(
                        "Database migrations failed after %s attempts", attempts
                    )
                    raise

                delay = base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "Database migration attempt %s/%s failed; retrying in %.1fs",
                    attempt,
                    attempts,
                    delay,
                    exc_info=exc if settings.debug else None,
                )
                await asyncio.sleep(delay)

        await lock_sweeper.start()

    @app.on_event("shutdown")
    async def shutdown() -> None:
        """Stop background services on shutdown."""

        await lock_sweeper.stop()

    logger.info(
        "InvoiceLocks application initialised",
        extra={"env": settings.app_env, "lock_store": settings.lock_store_backend},
    )
    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn."""

    import uvicorn

    uvicorn.run(
        "invoicelocks.main:app",
        host=settings.server_host,
        port=settings.server_port,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    run()
