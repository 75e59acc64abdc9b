# recordshop/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from recordshop.core import logging_config  # noqa: F401 - configures logging on import
from recordshop.core.config import get_settings
from recordshop.core.exceptions import BaseServiceError, CriticalInvariantError
from recordshop.routes import cart, checkout, health, inventory, webhooks
from recordshop.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await start_scheduler()
    try:
        yield  # This is where the app runs
    finally:
        await stop_scheduler()


app = FastAPI(
    title="Record Shop",
    lifespan=lifespan,
    debug=get_settings().DEBUG,
)


@app.exception_handler(BaseServiceError)
async def service_error_handler(request: Request, exc: BaseServiceError):
    if isinstance(exc, CriticalInvariantError):
        logger.error(f"Critical error on {request.method} {request.url.path}: {exc.message}")
    elif exc.http_status >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content={"detail": exc.message or type(exc).__name__})


app.include_router(health.router)
app.include_router(cart.router)
app.include_router(checkout.router)
app.include_router(webhooks.router)
app.include_router(inventory.router)
