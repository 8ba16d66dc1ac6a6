"""
DartCam API - Automatic dart scoring from a single camera feed

A video relay streams encoded frames from the camera; the operator calibrates
once by clicking four points on the double ring. After that every throw is
detected when the board settles, scored, and forwarded to the scoring ledger.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dartcam.api.routes import API_VERSION, init_session, router, shutdown_session
from dartcam.config import BOARD_ID, LEDGER_URL
from dartcam.core.ledger import LedgerNotifier

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Configuration
API_TITLE = "DartCam API"
API_DESCRIPTION = """
Automatic dart scoring from a single perspective camera.

## Flow
1. Video relay connects to `WS /v1/stream` and sends `{"type": "camera-init"}`, then binary frames
2. Operator calls `POST /v1/calibration/begin` and submits the 4 clicks (top, right, bottom, left double edge)
3. Frames are warped to a 500x500 head-on board view
4. When the board settles after motion, the new dart is isolated, scored and forwarded to the ledger

## Endpoints

### Video
- `WS /v1/stream` - Frame stream from the relay
- `POST /v1/frames` - Push a single encoded frame
- `GET /v1/frame` - Current operator view (JPEG)

### Calibration
- `POST /v1/calibration/begin`, `POST /v1/calibration/points`, `POST /v1/calibration/cancel`
- `GET /v1/calibration`, `DELETE /v1/calibration`

### Status
- `GET /v1/status` - Session state
- `GET /health` - Service health check
"""


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    ledger = LedgerNotifier(LEDGER_URL, board_id=BOARD_ID) if LEDGER_URL else None
    session = init_session(ledger=ledger)
    logger.info(
        f"DartCam API starting (calibrated={session.calibration.record is not None}, "
        f"ledger={'on' if ledger else 'off'})"
    )
    yield
    await shutdown_session()
    logger.info("DartCam API shutting down")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS - allow all for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


@app.get("/")
async def root():
    """API info and links."""
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health",
        "status": "/v1/status",
        "stream": "/v1/stream",
    }
