"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from strategy_sync.config import settings
from strategy_sync.database import create_db_and_tables
from strategy_sync.utils.logging import setup_logging
from strategy_sync.api import strategies, trades, system


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()
    from strategy_sync.engine.sync_cycle import init_service
    service = init_service()
    # Populate stats before the first interval fires
    from strategy_sync.engine.sync_cycle import run_sync_cycle
    await run_sync_cycle()
    from strategy_sync.engine.scheduler import start_scheduler, stop_scheduler
    start_scheduler()

    yield

    stop_scheduler()
    await service.shutdown()


app = FastAPI(
    title="Strategy Stats Sync",
    description="Keeps live strategy statistics in sync with the trade history",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(strategies.router)
app.include_router(trades.router)
app.include_router(system.router)
