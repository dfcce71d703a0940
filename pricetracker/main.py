"""FastAPI application: the HTTP API plus the background daily update."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from pricetracker.api.routes import (
    cities,
    comparisons,
    competitors,
    price_history,
    reference_products,
    stats,
)
from pricetracker.config import settings
from pricetracker.db.models import Base
from pricetracker.db.session import engine
from pricetracker.logging_config import setup_logging
from pricetracker.worker.scheduler import setup_scheduler
from pricetracker.worker.tasks import task_runner

setup_logging()
logger = logging.getLogger(__name__)

ROUTERS = (
    comparisons.router,
    competitors.router,
    reference_products.router,
    price_history.router,
    stats.router,
    cities.router,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.scheduler = None
    if settings.scheduler_enabled:
        app.state.scheduler = setup_scheduler()
        app.state.scheduler.start()

    logger.info("Metal price tracker ready")
    try:
        yield
    finally:
        if app.state.scheduler is not None:
            app.state.scheduler.shutdown(wait=False)
        await task_runner.close()
        await engine.dispose()
        logger.info("Metal price tracker stopped")


app = FastAPI(
    title="Metal Price Tracker",
    description="Competitive pricing for bare-metal server SKUs",
    version="0.1.0",
    lifespan=lifespan,
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/metrics", "/health"],
).instrument(app).expose(app, tags=["monitoring"])

for router in ROUTERS:
    app.include_router(router)


@app.get("/health")
async def health():
    return {"status": "healthy"}


def run() -> None:
    """Serve the API with uvicorn."""
    uvicorn.run(
        "pricetracker.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
