"""
FastAPI application serving the suggestion lifecycle API.

The database pool is opened in the lifespan handler; the generation job runs
in a separate worker process (``catchup-worker``).
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from catchup.config import settings
from catchup.db.pool import db_pool
from catchup.features.suggestions.api.router import router as suggestions_router
from catchup.infrastructure.observability.logging import get_logger, log_request, setup_logging
from catchup.routes import health

setup_logging(log_level=settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Suggestion API starting", environment=settings.environment, debug=settings.debug)
    await db_pool.initialize()

    yield

    logger.info("Suggestion API shutting down")
    await db_pool.close()


app = FastAPI(
    title="Catchup Suggestion Engine",
    description="Catch-up suggestion generation and lifecycle API",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(suggestions_router)


@app.middleware("http")
async def time_requests(request: Request, call_next):
    started = time.time()
    response = await call_next(request)
    log_request(
        request.method,
        request.url.path,
        response.status_code,
        round((time.time() - started) * 1000, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
