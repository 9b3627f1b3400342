"""FastAPI REST and WebSocket interface for the scale reader.

Single-process, single-scale lifecycle. One ScaleReaderService and one
PalletStore are built by create_app() and kept on app.state; handlers reach
them through the request, never through module globals.

Error mapping:
- CaptureConflict → 409
- SerialIOError (incl. PortNotFound, ScaleNotConnected) → 503
- ValueError → 400
"""

import asyncio
import logging
import os
import queue
import random
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from pallet_store import PalletStore
from scale_reader import ScaleReaderService, SerialSettings
from scale_reader.errors import CaptureConflict, SerialIOError

# =============================================================================
# Environment Configuration
# =============================================================================

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
SCALE_ENABLED = os.getenv("SCALE_ENABLED", "false").lower() in ("1", "true", "yes")
SCALE_PORT = os.getenv("SCALE_PORT", "/dev/ttyUSB0")
SCALE_BAUD = int(os.getenv("SCALE_BAUD", "9600"))
SCALE_DATA_BITS = int(os.getenv("SCALE_DATA_BITS", "8"))
SCALE_PARITY = os.getenv("SCALE_PARITY", "N")
SCALE_STOP_BITS = float(os.getenv("SCALE_STOP_BITS", "1"))
SCALE_WEIGHT_MULTIPLIER = float(os.getenv("SCALE_WEIGHT_MULTIPLIER", "2.0"))
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

# Configure logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
if LOG_FILE:
    _file_handler = RotatingFileHandler(LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3)
    _file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    logging.getLogger().addHandler(_file_handler)
logger = logging.getLogger(__name__)

# =============================================================================
# Request/Response Models
# =============================================================================


class StatusResponse(BaseModel):
    """Response for GET /scale/status."""
    connected: bool
    enabled: bool
    running: bool
    port_name: Optional[str]
    current_weight: Optional[float]
    lock_state: str


class WeightResponse(BaseModel):
    """Response for GET /scale/current."""
    weight: float
    timestamp: str
    simulated: bool


class ReadingResponse(BaseModel):
    """Response for POST /scale/capture."""
    id: Optional[int]
    weight: float
    timestamp: str
    pallet_id: Optional[str]


class RawCaptureResponse(BaseModel):
    """Response for POST /scale/raw."""
    requested: int
    lines: List[str]


class SpeedTestResponse(BaseModel):
    """Response for POST /scale/speed-test."""
    samples_requested: int
    lines_received: int
    duration_s: float
    lines_per_second: float
    mean_interval_ms: float
    min_interval_ms: float
    max_interval_ms: float
    median_interval_ms: float


class DetectResponse(BaseModel):
    """Response for POST /scale/detect."""
    port_name: Optional[str]


# =============================================================================
# Helpers
# =============================================================================


def _simulated_weight() -> float:
    """Stand-in weight served while no scale is connected."""
    return round(45.0 + random.uniform(-0.75, 0.75), 2)


def _live_weight(request: Request) -> Optional[float]:
    service: ScaleReaderService = request.app.state.scale_service
    if request.app.state.scale_enabled and service.is_connected():
        return service.current_weight
    return None


def build_service_from_env(store: PalletStore) -> ScaleReaderService:
    serial_settings = SerialSettings(
        port=SCALE_PORT,
        baudrate=SCALE_BAUD,
        bytesize=SCALE_DATA_BITS,
        parity=SCALE_PARITY,
        stopbits=SCALE_STOP_BITS,
    )
    return ScaleReaderService(
        store,
        serial_settings=serial_settings,
        weight_multiplier=SCALE_WEIGHT_MULTIPLIER,
    )


# =============================================================================
# App Factory
# =============================================================================


def create_app(
    service: Optional[ScaleReaderService] = None,
    store: Optional[PalletStore] = None,
    scale_enabled: bool = SCALE_ENABLED,
) -> FastAPI:
    """Build the API around an explicitly owned service and store.

    Args:
        service: Scale reader. Built from environment settings if None.
        store: Pallet store. A fresh in-memory store if None.
        scale_enabled: Start the reader on startup and serve live weights.
    """
    store = store if store is not None else PalletStore()
    service = service if service is not None else build_service_from_env(store)

    app = FastAPI(
        title="Scale Reader API",
        description="Live weight, capture and diagnostics for a serial platform scale",
        version="0.1.0"
    )
    app.state.scale_service = service
    app.state.pallet_store = store
    app.state.scale_enabled = scale_enabled

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------------------------------
    # Exception Handlers
    # -------------------------------------------------------------------------

    @app.exception_handler(CaptureConflict)
    async def capture_conflict_handler(request, exc: CaptureConflict):
        """Map CaptureConflict to 409 Conflict."""
        logger.warning(f"CaptureConflict: {exc}")
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(SerialIOError)
    async def serial_io_error_handler(request, exc: SerialIOError):
        """Map SerialIOError to 503 Service Unavailable."""
        logger.error(f"SerialIOError: {exc}")
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(request, exc: ValueError):
        """Map ValueError to 400 Bad Request."""
        logger.error(f"ValueError: {exc}")
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    # -------------------------------------------------------------------------
    # Read-Only Endpoints
    # -------------------------------------------------------------------------

    @app.get("/scale/status", response_model=StatusResponse)
    async def get_status(request: Request):
        """Connection state and live weight."""
        status = request.app.state.scale_service.status()
        return StatusResponse(
            connected=status.connected,
            enabled=request.app.state.scale_enabled,
            running=status.running,
            port_name=status.port_name,
            current_weight=status.current_weight,
            lock_state=status.lock_state.value,
        )

    @app.get("/scale/current", response_model=WeightResponse)
    async def get_current(request: Request):
        """Live weight, or a simulated one while the scale is disabled or offline."""
        weight = _live_weight(request)
        return WeightResponse(
            weight=weight if weight is not None else _simulated_weight(),
            timestamp=datetime.now(timezone.utc).isoformat(),
            simulated=weight is None,
        )

    @app.get("/scale/ports", response_model=List[str])
    def get_ports(request: Request):
        return request.app.state.scale_service.list_ports()

    # -------------------------------------------------------------------------
    # Actions (blocking, run in the threadpool)
    # -------------------------------------------------------------------------

    @app.post("/scale/capture", response_model=ReadingResponse)
    def capture(request: Request):
        """Commit the current weight as a reading."""
        service: ScaleReaderService = request.app.state.scale_service
        weight = _live_weight(request)
        reading = service.capture_reading(weight if weight is not None else _simulated_weight())
        return ReadingResponse(
            id=reading.id,
            weight=reading.weight,
            timestamp=reading.timestamp.isoformat(),
            pallet_id=reading.pallet_id,
        )

    @app.post("/scale/raw", response_model=RawCaptureResponse)
    def capture_raw(
        request: Request,
        count: int = Query(10, ge=1, le=500),
        timeout_seconds: float = Query(5.0, gt=0, le=60),
    ):
        """Return the next raw lines off the wire; 409 if a capture is running."""
        lines = request.app.state.scale_service.capture_raw_lines(count, timeout_seconds)
        return RawCaptureResponse(requested=count, lines=lines)

    @app.post("/scale/speed-test", response_model=SpeedTestResponse)
    def speed_test(
        request: Request,
        samples: int = Query(20, ge=1, le=1000),
        timeout_seconds: float = Query(10.0, gt=0, le=120),
    ):
        """Line arrival timing statistics; 409 if a capture is running."""
        result = request.app.state.scale_service.run_speed_test(samples, timeout_seconds)
        return SpeedTestResponse(
            samples_requested=result.samples_requested,
            lines_received=result.lines_received,
            duration_s=result.duration_s,
            lines_per_second=result.lines_per_second,
            mean_interval_ms=result.mean_interval_ms,
            min_interval_ms=result.min_interval_ms,
            max_interval_ms=result.max_interval_ms,
            median_interval_ms=result.median_interval_ms,
        )

    @app.post("/scale/detect", response_model=DetectResponse)
    def detect(request: Request):
        """Scan serial ports for the scale and remember the one found."""
        return DetectResponse(port_name=request.app.state.scale_service.detect_port())

    # -------------------------------------------------------------------------
    # WebSocket Streaming
    # -------------------------------------------------------------------------

    @app.websocket("/scale/stream")
    async def weight_stream(websocket: WebSocket):
        """Push {"weight", "timestamp"} whenever the live weight changes."""
        service: ScaleReaderService = websocket.app.state.scale_service

        await websocket.accept()
        logger.info(f"WebSocket client connected: {websocket.client}")
        events = service.gauge.subscribe()

        try:
            current = service.gauge.sample()
            if current is not None:
                await websocket.send_json({"weight": current.weight, "timestamp": current.ts.isoformat()})

            while True:
                try:
                    event = events.get_nowait()
                except queue.Empty:
                    # Idle wait doubles as disconnect detection
                    try:
                        await asyncio.wait_for(websocket.receive_text(), timeout=0.1)
                    except asyncio.TimeoutError:
                        pass
                    continue
                await websocket.send_json({"weight": event.weight, "timestamp": event.ts.isoformat()})

        except WebSocketDisconnect:
            logger.info(f"WebSocket client disconnected: {websocket.client}")
        finally:
            service.gauge.unsubscribe(events)

    @app.get("/health")
    async def health():
        return {"service": "Scale Reader API", "version": "0.1.0", "status": "online"}

    # -------------------------------------------------------------------------
    # Startup/Shutdown Events
    # -------------------------------------------------------------------------

    @app.on_event("startup")
    async def startup_event():
        logger.info("=" * 60)
        logger.info("Scale Reader API started")
        logger.info(f"Scale enabled: {app.state.scale_enabled}")
        logger.info(f"Default serial port: {SCALE_PORT} @ {SCALE_BAUD}")
        logger.info(f"Log level: {LOG_LEVEL}")
        logger.info("=" * 60)

        if app.state.scale_enabled:
            # Startup never fails on a missing scale; the reader keeps retrying
            await asyncio.to_thread(app.state.scale_service.start)

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down Scale Reader API...")
        await asyncio.to_thread(app.state.scale_service.stop)
        logger.info("Shutdown complete")

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)
