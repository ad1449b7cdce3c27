import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tripbank.config import settings
from tripbank.errors import TripBankError

# ─── Logging setup (file + console) ───
_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
_LOG_DIR.mkdir(exist_ok=True)

_log_level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)

logging.basicConfig(
    level=_log_level,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        RotatingFileHandler(
            _LOG_DIR / "tripbank.log",
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        ),
    ],
)

# Quiet noisy libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("apscheduler").setLevel(logging.WARNING)

from tripbank.routers import auth, files, live, media, moments, public, sharing, storage, trips  # noqa: E402
from tripbank.services.realtime import trip_events  # noqa: E402

logger = logging.getLogger(__name__)


async def _reconcile_storage():
    from tripbank.database import async_session_factory
    from tripbank.services.storage_service import storage_service
    async with async_session_factory() as db:
        count = await storage_service.reconcile_all(db)
        logger.info(f"Storage reconcile: {count} users checked")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: launch background scheduler
    scheduler = None
    if settings.scheduler_enabled:
        try:
            scheduler = AsyncIOScheduler()
            scheduler.add_job(
                _reconcile_storage,
                IntervalTrigger(hours=settings.storage_reconcile_interval_hours),
                id="storage_reconcile",
            )
            scheduler.start()
            logger.info("Background scheduler started")
        except Exception as e:
            logger.error(f"Scheduler failed to start: {e}")
            scheduler = None

    yield

    # Shutdown
    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
    await trip_events.close()


app = FastAPI(
    title="TripBank",
    description="Travel journaling backend: trips, moment canvas and sharing",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TripBankError)
async def tripbank_error_handler(request: Request, exc: TripBankError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, **exc.extra()})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(trips.router, prefix="/api/trips", tags=["trips"])
app.include_router(live.router, prefix="/api", tags=["live"])
app.include_router(moments.router, prefix="/api", tags=["moments"])
app.include_router(media.router, prefix="/api", tags=["media"])
app.include_router(sharing.router, prefix="/api", tags=["sharing"])
app.include_router(storage.router, prefix="/api/storage", tags=["storage"])
app.include_router(files.router, prefix="/api/files", tags=["files"])
app.include_router(public.router, prefix="/api/public", tags=["public"])


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "tripbank"}
