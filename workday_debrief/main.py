"""
Workday Debrief API - local end-of-day summary service

Single FastAPI application with route groups:
- /api/summaries: Generate, regenerate, send and browse summaries
- /api/settings, /api/delivery-configs: Settings and delivery channels
- /api/integrations: Google OAuth and source connection tests

The daily scheduler runs inside the app process while it is up.

Run: uvicorn workday_debrief.main:app --port 8000
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from workday_debrief import __version__, config

logging.basicConfig(
    level=config.get_log_level(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from workday_debrief.jobs.daily_scheduler import run_daily_scheduler
from workday_debrief.routes import integrations, settings, summaries
from workday_debrief.services.debrief import get_debrief_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    stop = asyncio.Event()
    task = None
    if os.getenv("DEBRIEF_DISABLE_SCHEDULER", "").lower() not in ("1", "true", "yes"):
        task = asyncio.create_task(run_daily_scheduler(get_debrief_service(), stop))
        logger.info("[MAIN] Daily scheduler started")

    yield

    stop.set()
    if task is not None:
        try:
            await asyncio.wait_for(task, timeout=5)
        except asyncio.TimeoutError:
            task.cancel()
            logger.warning("[MAIN] Scheduler did not stop in time, cancelled")


app = FastAPI(
    title="Workday Debrief API",
    description="Local end-of-day work summaries",
    version=__version__,
    lifespan=lifespan,
)

# CORS - the desktop/web UI runs on localhost
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


# Mount routers
app.include_router(summaries.router, prefix="/api", tags=["summaries"])
app.include_router(settings.router, prefix="/api", tags=["settings"])
app.include_router(integrations.router, prefix="/api", tags=["integrations"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=int(os.getenv("PORT", "8000")))
