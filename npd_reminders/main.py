from contextlib import asynccontextmanager
import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from npd_reminders.core.config import settings
from npd_reminders.db.base import Base
from npd_reminders.db.session import engine, SessionLocal
from npd_reminders.reminders.config import settings as reminder_settings
from npd_reminders.reminders.service import create_app
from npd_reminders.reminders.sweep import SweepWorker

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"Starting up {settings.PROJECT_NAME} ({settings.ENVIRONMENT.value})...")

    if engine.url.get_backend_name() == "sqlite":
        # Local development database; PostgreSQL is migrated with alembic
        Base.metadata.create_all(bind=engine)
        logger.info("SQLite tables ensured")

    worker = None
    if reminder_settings.INPROCESS_SWEEP:
        worker = SweepWorker(SessionLocal, app.state.dispatcher)
        worker.start()
    else:
        logger.info("⏸️  [Startup] In-process sweep disabled; expecting Celery beat to trigger reminders.process_reminders")

    yield

    if worker is not None:
        await worker.stop()
    logger.info("Shutdown complete")


app = create_app(lifespan=lifespan, version=settings.VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


if __name__ == "__main__":
    uvicorn.run("npd_reminders.main:app", host="0.0.0.0", port=8000)
