from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import logging
import sys

from energy_monitor.routers import devices
from energy_monitor.routers import esp32
from energy_monitor.routers import health
from energy_monitor.routers import ota
from energy_monitor.routers import realtime
from energy_monitor.routers import reset
from energy_monitor.routers import stats as api_stats
from energy_monitor.services import MQTTIngestConsumer
from energy_monitor.core.config import settings
from energy_monitor.dependencies import get_session, ingest_relay, liveness_monitor, publisher
from energy_monitor.errors import EnergyMonitorError, TransportError


# Configure logging first
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("uvicorn")

# Global service instances
mqtt_consumer = MQTTIngestConsumer(ingest_relay, config=settings, session_factory=get_session)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting realtime publisher...")
    await publisher.start()

    logger.info("Starting liveness monitor...")
    await liveness_monitor.start()

    logger.info("Starting MQTT ingest consumer...")
    await mqtt_consumer.start()

    yield

    # Shutdown
    logger.info("Stopping MQTT ingest consumer...")
    await mqtt_consumer.stop()

    logger.info("Stopping liveness monitor...")
    await liveness_monitor.stop()

    logger.info("Stopping realtime publisher...")
    await publisher.stop()


app = FastAPI(
    title="Energy Monitor API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
    allow_headers=["*"],
)


def _error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message, **extra})


@app.exception_handler(EnergyMonitorError)
async def energy_monitor_error_handler(request: Request, exc: EnergyMonitorError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return _error_response(400, "Invalid request", details=details)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return _error_response(TransportError.status_code, TransportError.default_message)


app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(api_stats.router, prefix="/api/stats", tags=["Stats"])
app.include_router(devices.router, prefix="/api", tags=["Devices"])
app.include_router(reset.router, prefix="/api/reset", tags=["Reset"])
app.include_router(ota.router, prefix="/api", tags=["OTA"])
app.include_router(esp32.router, prefix="/api/esp32", tags=["ESP32"])
app.include_router(realtime.router, prefix="/ws", tags=["Realtime"])
