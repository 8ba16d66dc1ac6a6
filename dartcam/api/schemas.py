"""
Pydantic schemas for the DartCam API
"""
from pydantic import BaseModel, Field, model_validator
from typing import Any, Dict, List, Optional


# === Calibration ===

class CalibrationPointRequest(BaseModel):
    """An operator click on the raw feed"""
    x: float = Field(..., description="Click X, in display pixels if display size is given, else source pixels")
    y: float = Field(..., description="Click Y, in display pixels if display size is given, else source pixels")
    display_width: Optional[float] = Field(None, gt=0, description="Width the frame was displayed at")
    display_height: Optional[float] = Field(None, gt=0, description="Height the frame was displayed at")

    @model_validator(mode="after")
    def check_display_size(self) -> "CalibrationPointRequest":
        if (self.display_width is None) != (self.display_height is None):
            raise ValueError("display_width and display_height must be given together")
        return self


class CalibrationState(BaseModel):
    """Progress of the four-click calibration"""
    calibrating: bool
    calibrated: bool
    points_collected: int
    next_prompt: Optional[str] = Field(None, description="What the operator should click next")


class CalibrationPointResponse(CalibrationState):
    """Result of submitting one calibration click"""
    accepted: bool = Field(..., description="False if the click was ignored (not calibrating or already 4 points)")


class PointModel(BaseModel):
    x: float
    y: float


class DimensionsModel(BaseModel):
    width: int
    height: int


class CalibrationRecordModel(BaseModel):
    """Stored calibration"""
    imagePoints: List[PointModel]
    worldPoints: List[PointModel]
    homographyMatrix: List[float] = Field(..., min_length=9, max_length=9, description="3x3 row-major")
    sourceDimensions: DimensionsModel


# === Scoring ===

class ScoreRequest(BaseModel):
    """A point in canonical board coordinates"""
    x: float
    y: float


class DetectionResultModel(BaseModel):
    """Score for one landed dart"""
    score: int = Field(..., description="Points (segment * multiplier, or 25/50 for bulls)")
    ring: str = Field(..., description="Ring: single, double, triple, inner_bull, outer_bull, miss")
    segment: int = Field(..., description="Segment number 1-20, 25 for bulls, 0 for a miss")
    multiplier: int = Field(..., description="1=single, 2=double, 3=triple")
    confidence: float = Field(1.0, description="Detection confidence 0-1")
    x: float = Field(..., description="Landing point X in canonical px")
    y: float = Field(..., description="Landing point Y in canonical px")


# === Frames / Status ===

class FrameAccepted(BaseModel):
    accepted: bool = Field(..., description="False if the buffer could not be decoded and was dropped")


class SessionStatus(BaseModel):
    """Operator-visible state of the detection session"""
    connected: bool
    calibrating: bool
    points_collected: int
    next_prompt: Optional[str] = None
    calibrated: bool
    needs_calibration: bool
    source_dimensions: Optional[DimensionsModel] = None
    rectification: str
    motion_state: str
    in_cooldown: bool
    has_pre_throw: bool
    last_mean_diff: Optional[float] = None
    frames_received: int
    frames_dropped: int
    frames_processed: int
    detection_attempts: int
    last_error: Optional[str] = None
    last_result: Optional[DetectionResultModel] = None


class HealthResponse(BaseModel):
    """API health status"""
    status: str
    version: str
    calibrated: bool
    connected: bool
    ledger_enabled: bool = Field(False, description="Whether results are forwarded to a scoring ledger")


class MessageResponse(BaseModel):
    message: str
    detail: Optional[Dict[str, Any]] = None
