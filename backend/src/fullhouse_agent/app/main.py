"""FastAPI application entry point for the WhatsApp agent service."""

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fullhouse_agent.app.config import get_settings
from fullhouse_agent.infra.database import async_session, init_db
from fullhouse_agent.services import summary_worker
from fullhouse_agent.services.follow_up_processor import process_due

logger = logging.getLogger(__name__)


async def follow_up_loop():
    """Fire due follow-ups every ``follow_up_poll_seconds``."""
    interval = get_settings().follow_up_poll_seconds
    while True:
        try:
            async with async_session() as db:
                results = await process_due(db)
                if results["sent"]:
                    logger.info("Follow-up loop: sent %d follow-ups", results["sent"])
        except Exception as e:
            logger.error("Follow-up loop error: %s", e)
        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database, start the follow-up loop.

    On shutdown the loop is cancelled and pending summary jobs are awaited.
    """
    await init_db()
    task = asyncio.create_task(follow_up_loop())
    yield
    task.cancel()
    await summary_worker.drain()


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Fullhouse WhatsApp Agent API",
    lifespan=lifespan,
    debug=settings.debug,
)

_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from fullhouse_agent.app.routes.webhook import router as webhook_router
from fullhouse_agent.app.routes.follow_ups import router as follow_ups_router

app.include_router(webhook_router)
app.include_router(follow_ups_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "fullhouse-agent"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "fullhouse_agent.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
