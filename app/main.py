from contextlib import asynccontextmanager

import anyio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

from app.core.config import get_settings, parse_comma_separated_origins
from app.core.error_handlers import register_exception_handlers
from app.core.telemetry import setup_telemetry
from app.database.database import create_db_and_tables, engine
from app.routers import (
    actor,
    claim,
    donation,
    feedback,
    message,
    notification,
    pickup_event,
    volunteer_task,
)
from app.services import expiry as expiry_service
from app.utils.logger import logger, setup_logging


def run_scheduled_sweep() -> expiry_service.SweepSummary:
    """Run one expiry sweep on a dedicated session."""
    with Session(engine) as session:
        return expiry_service.run_expiry_sweep(session)


async def expiry_sweep_loop(interval_seconds: int) -> None:
    """
    Periodically expire donations and claims whose deadline has passed.

    The sweep runs in a worker thread so the blocking database calls never
    stall the event loop. A failed sweep is logged and retried on the next tick.
    """
    while True:
        await anyio.sleep(interval_seconds)
        try:
            await anyio.to_thread.run_sync(run_scheduled_sweep)
        except Exception:
            logger.exception("Scheduled expiry sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Perform application startup tasks before the FastAPI app begins serving requests.

    Runs logging setup, creates the database and tables, initializes telemetry and,
    unless disabled with a zero interval, starts the background expiry sweep. The
    sweep is cancelled when the application shuts down.
    """
    setup_logging()
    create_db_and_tables()
    setup_telemetry(app)

    interval = get_settings().EXPIRY_SWEEP_INTERVAL_SECONDS
    async with anyio.create_task_group() as task_group:
        if interval > 0:
            task_group.start_soon(expiry_sweep_loop, interval)
            logger.info(f"Expiry sweep scheduled every {interval}s")
        yield
        task_group.cancel_scope.cancel()


app = FastAPI(
    title="Food Rescue API",
    description="Workflow API coordinating donors, NGOs and volunteers to rescue surplus food",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        str(origin)
        for origin in parse_comma_separated_origins(get_settings().BACKEND_CORS_ORIGINS)
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/health", include_in_schema=False)
def health_check():
    """
    Provide the application's liveness state for health checks.

    Returns:
        dict: A mapping with key "status" and value "ok" indicating the service is healthy.
    """
    return {"status": "ok"}


app.include_router(actor.router)
app.include_router(donation.router)
app.include_router(claim.router)
app.include_router(volunteer_task.router)
app.include_router(pickup_event.router)
app.include_router(feedback.router)
app.include_router(message.router)
app.include_router(notification.router)
