"""DailyReel API: capture, compress and keep a daily video journal in Google Drive"""
import logging
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from dailyreel.api import drive, folders, uploads, videos
from dailyreel.api.errors import dailyreel_exception_handler
from dailyreel.core.config import settings
from dailyreel.core.errors import DailyReelError
from dailyreel.core.logging import setup_logging
from dailyreel.core.otel import (
    initialize_otel, instrument_fastapi, instrument_httpx, instrument_sqlalchemy, setup_otel_logging
)
from dailyreel.db.session import engine, init_db
from dailyreel.services.compression import CompressionEngine

setup_logging()
logger = logging.getLogger(__name__)
api_access_logger = logging.getLogger("api_access")

DEV_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:8000",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:8000",
)


def cors_origins():
    origins = [settings.FRONTEND_URL]
    if settings.ENVIRONMENT == "development":
        origins.extend(DEV_ORIGINS)
    return origins


def start_telemetry() -> None:
    if not initialize_otel():
        logger.info("No OTLP endpoint set, tracing disabled")
        return
    if setup_otel_logging():
        logger.info(f"Exporting traces, metrics and logs to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
    else:
        logger.warning("Exporting traces and metrics, but OTLP log export could not be set up")


@asynccontextmanager
async def lifespan(app: FastAPI):
    start_telemetry()

    try:
        init_db()
    except Exception as e:
        logger.error(f"Could not create database tables: {e}")
        raise
    instrument_sqlalchemy(engine)

    # One connection pool for every Drive call
    app.state.http_client = httpx.AsyncClient(timeout=settings.DRIVE_REQUEST_TIMEOUT)
    # ffmpeg is located on first compression, not here
    app.state.compression_engine = CompressionEngine()
    logger.info(f"DailyReel backend started ({settings.ENVIRONMENT})")

    yield

    await app.state.http_client.aclose()
    logger.info("DailyReel backend stopped")


app = FastAPI(
    title="DailyReel Backend",
    description="Daily video journal stored in Google Drive",
    version="1.0.0",
    lifespan=lifespan
)

instrument_fastapi(app)
instrument_httpx()

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(DailyReelError, dailyreel_exception_handler)


@app.middleware("http")
async def access_log_middleware(request: Request, call_next):
    """One access log line per request: method, path, status, duration"""
    started = time.monotonic()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        api_access_logger.info(
            f"{request.method} {request.url.path} {status_code} {(time.monotonic() - started) * 1000:.0f}ms",
            extra={"user_id": request.headers.get("X-User-Id"), "status_code": status_code}
        )


for router in (folders.router, videos.router, uploads.router, drive.router, drive.sync_router):
    app.include_router(router)


@app.get("/metrics")
def metrics_endpoint():
    """Prometheus scrape target"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
def health_check():
    return {"status": "healthy"}
