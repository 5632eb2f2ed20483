"""FastAPI application entrypoint for the tokenward backend.

Sets up the application, middleware, error handling and routes and
provides a lifespan context manager that initializes the database and the
authentication service on startup, runs the periodic expired-token sweep,
and disposes the engine on shutdown.
"""

import asyncio
from contextlib import asynccontextmanager, suppress

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tokenward.api.routes.auth import router as auth_router
from tokenward.config.config import settings
from tokenward.core.errors import AppError
from tokenward.core.logging import logger
from tokenward.db.session import engine, initialize_database
from tokenward.services.auth import AuthenticationService


async def run_token_cleanup(service: AuthenticationService, interval_seconds: float):
    """Sweep expired tokens every ``interval_seconds`` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        await service.cleanup_expired_tokens()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context to run startup and shutdown routines.

    On startup this will attempt to create metadata tables, retrying a few
    times if the DB isn't ready yet.

    Yields:
        None: Control is returned to FastAPI while the app is running.
    """

    logger.info("Starting up")

    max_retries = 5
    for attempt in range(max_retries):
        try:
            await initialize_database()
            break
        except Exception as e:
            # NOTE: transient DB connectivity issues are retried to improve
            # startup robustness when services come up concurrently.
            if attempt < max_retries - 1:
                logger.warning(
                    "Database connection attempt {} failed: {}. Retrying..",
                    attempt + 1,
                    e,
                )
                await asyncio.sleep(2)
            else:
                logger.exception(
                    "Failed to create database tables after {} attempts", max_retries
                )
                raise

    service = AuthenticationService(settings=settings)
    app.state.auth_service = service

    cleanup_task = None
    if settings.TOKEN_CLEANUP_INTERVAL_MINUTES > 0:
        cleanup_task = asyncio.create_task(
            run_token_cleanup(service, settings.TOKEN_CLEANUP_INTERVAL_MINUTES * 60)
        )

    yield

    logger.info("Shutting down")
    if cleanup_task is not None:
        cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cleanup_task
    await engine.dispose()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render domain and infrastructure errors as JSON.

    Context is logged but never returned to the client.
    """
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "{} on {} {}: {} context={}",
        type(exc).__name__,
        request.method,
        request.url.path,
        exc.message,
        exc.context,
    )
    headers = {"Retry-After": "1"} if exc.retryable else None
    if exc.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.get("/")
async def root():
    """Return a simple health check / landing response."""

    return JSONResponse({"message": "tokenward backend"})


app.include_router(auth_router)


if __name__ == "__main__":
    uvicorn.run("tokenward.main:app", host="0.0.0.0", port=8000, reload=True)
