"""
DartCam API Routes

The video relay pushes encoded frames over a WebSocket (or one at a time via
POST); the operator calibrates and watches the board through the HTTP
endpoints. All requests share one DetectionSession.
"""
import asyncio
import json
import logging
from typing import Callable, Optional, Set

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import Response

from dartcam.api.schemas import (
    CalibrationPointRequest,
    CalibrationPointResponse,
    CalibrationRecordModel,
    CalibrationState,
    DetectionResultModel,
    FrameAccepted,
    HealthResponse,
    MessageResponse,
    ScoreRequest,
    SessionStatus,
)
from dartcam.config import DetectionConfig
from dartcam.core.calibration import CalibrationFailed
from dartcam.core.ledger import LedgerNotifier
from dartcam.core.overlay import encode_jpeg
from dartcam.core.scoring import DetectionResult, scoring_system
from dartcam.core.session import DetectionSession
from dartcam.core.storage import CalibrationStore

logger = logging.getLogger("dartcam.routes")

API_VERSION = "1.0.0"

router = APIRouter()

# Shared session, created at startup
_session: Optional[DetectionSession] = None
_ledger: Optional[LedgerNotifier] = None
_pending_notifications: Set[asyncio.Task] = set()


def schedule_on_loop(callback: Callable[[], None]) -> None:
    """Run the processing pass on the next event loop tick."""
    asyncio.get_running_loop().call_soon(callback)


def _forward_to_ledger(result: DetectionResult) -> None:
    if _ledger is None:
        return
    task = asyncio.get_running_loop().create_task(_ledger.notify([result]))
    _pending_notifications.add(task)
    task.add_done_callback(_pending_notifications.discard)


def init_session(
    store: Optional[CalibrationStore] = None,
    config: Optional[DetectionConfig] = None,
    ledger: Optional[LedgerNotifier] = None,
) -> DetectionSession:
    """Create the shared session and restore any persisted calibration."""
    global _session, _ledger
    _session = DetectionSession(
        store=store or CalibrationStore.from_env(),
        config=config or DetectionConfig.from_env(),
        scheduler=schedule_on_loop,
    )
    _ledger = ledger
    _session.add_listener(_forward_to_ledger)
    _session.start()
    return _session


async def shutdown_session() -> None:
    global _session, _ledger
    if _session is not None:
        _session.disconnect()
    if _ledger is not None:
        if _pending_notifications:
            await asyncio.gather(*_pending_notifications, return_exceptions=True)
        await _ledger.aclose()
    _session = None
    _ledger = None


def get_session() -> DetectionSession:
    """Get the shared session, creating it if startup has not run."""
    if _session is None:
        return init_session()
    return _session


def _calibration_state(session: DetectionSession) -> CalibrationState:
    return CalibrationState(
        calibrating=session.calibration.collecting,
        calibrated=session.calibration.record is not None,
        points_collected=len(session.calibration.points),
        next_prompt=session.calibration.next_prompt,
    )


# === Health / Status ===

@router.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    session = get_session()
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        calibrated=session.calibration.record is not None,
        connected=session.connected,
        ledger_enabled=_ledger is not None,
    )


@router.get("/v1/status", response_model=SessionStatus)
async def status():
    """Current detection session state."""
    return SessionStatus(**get_session().get_status())


# === Video transport ===

async def _receive_message(websocket: WebSocket) -> dict:
    """Next text or binary message; raises WebSocketDisconnect when the peer goes away."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000))
    return message


def _parse_handshake(message: dict) -> Optional[dict]:
    raw = message.get("text")
    if raw is None and message.get("bytes") is not None:
        try:
            raw = message["bytes"].decode("utf-8")
        except UnicodeDecodeError:
            return None
    if raw is None:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


@router.websocket("/v1/stream")
async def stream(websocket: WebSocket):
    """
    Frame stream from the video relay.

    The first message is the handshake {"type": "camera-init"}, sent as text
    or as a UTF-8 binary message. Every binary message after it is one
    encoded image; text messages are ignored.
    """
    await websocket.accept()
    session = get_session()
    client = websocket.client.host if websocket.client else "unknown"
    streaming = False

    try:
        handshake = _parse_handshake(await _receive_message(websocket))
        if handshake is None:
            logger.warning(f"[STREAM] Invalid handshake from {client}")
            await websocket.close(code=1008, reason="Invalid handshake format")
            return
        if handshake.get("type") != "camera-init":
            logger.warning(f"[STREAM] Unknown client type from {client}")
            await websocket.close(code=1008, reason="Unknown client type")
            return

        session.connect()
        streaming = True
        logger.info(f"[STREAM] Camera stream source connected: {client}")

        while True:
            message = await _receive_message(websocket)
            data = message.get("bytes")
            if data is None:
                logger.debug(f"[STREAM] Ignoring non-binary message from {client}")
                continue
            session.push_frame(data)
    except WebSocketDisconnect:
        logger.info(f"[STREAM] Camera stream source disconnected: {client}")
    finally:
        if streaming:
            session.disconnect()


@router.post("/v1/frames", response_model=FrameAccepted)
async def push_frame(request: Request):
    """Push a single encoded image (request body is the raw JPEG/PNG bytes)."""
    body = await request.body()
    return FrameAccepted(accepted=get_session().push_frame(body))


@router.post("/v1/disconnect", response_model=MessageResponse)
async def disconnect():
    """Mark the transport as gone and drop all held frames."""
    get_session().disconnect()
    return MessageResponse(message="Session reset")


@router.get("/v1/frame")
async def current_frame():
    """Operator view of the current frame as JPEG."""
    image = get_session().render_display()
    if image is None:
        raise HTTPException(status_code=404, detail="No frame received yet")
    return Response(content=encode_jpeg(image), media_type="image/jpeg")


# === Calibration ===

@router.post("/v1/calibration/begin", response_model=CalibrationState)
async def begin_calibration():
    """Start collecting the four calibration clicks."""
    session = get_session()
    session.begin_calibration()
    return _calibration_state(session)


@router.post("/v1/calibration/points", response_model=CalibrationPointResponse)
async def submit_calibration_point(request: CalibrationPointRequest):
    """Submit one calibration click; the fourth click solves the homography."""
    session = get_session()
    display_size = None
    if request.display_width is not None and request.display_height is not None:
        display_size = (request.display_width, request.display_height)

    try:
        submission = session.submit_calibration_point(request.x, request.y, display_size)
    except CalibrationFailed as e:
        raise HTTPException(status_code=422, detail=f"Calibration failed: {e}")
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    state = _calibration_state(session)
    return CalibrationPointResponse(accepted=submission.accepted, **state.model_dump())


@router.post("/v1/calibration/cancel", response_model=CalibrationState)
async def cancel_calibration():
    """Discard in-progress clicks; an existing calibration is kept."""
    session = get_session()
    session.cancel_calibration()
    return _calibration_state(session)


@router.delete("/v1/calibration", response_model=CalibrationState)
async def reset_calibration():
    """Delete the stored calibration."""
    session = get_session()
    session.reset_calibration()
    return _calibration_state(session)


@router.get("/v1/calibration", response_model=CalibrationRecordModel)
async def get_calibration():
    """The active calibration record."""
    record = get_session().calibration.record
    if record is None:
        raise HTTPException(status_code=404, detail="Not calibrated")
    return CalibrationRecordModel(**record.to_dict())


# === Scoring ===

@router.post("/v1/score", response_model=DetectionResultModel)
async def score(request: ScoreRequest):
    """Score a point given in canonical board coordinates."""
    result = scoring_system.score_from_canonical_coords(request.x, request.y)
    return DetectionResultModel(**result.to_dict())
