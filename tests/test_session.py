"""
End-to-end tests for a detection session fed with encoded frames.
"""
import cv2
import numpy as np
import pytest

from dartcam.config import DetectionConfig
from dartcam.core.calibration import CalibrationFailed
from dartcam.core.geometry import Ring
from dartcam.core.motion_detector import MotionState
from dartcam.core.rectification import RectificationError, Rectifier
from dartcam.core.scoring import score_point
from dartcam.core.session import DIMENSIONS_CHANGED_ERROR, DetectionSession
from dartcam.core.storage import CALIBRATION_KEY, CalibrationStore

from imaging import DART, DART_TIP, IDENTITY_CLICKS, FakeClock, board, board_with_dart, encode_png

BACKGROUND_PNG = encode_png(board())
DART_PNG = encode_png(board_with_dart())


def _second_dart():
    image = board_with_dart()
    triangle = np.array([[300, 330], [360, 310], [360, 350]], dtype=np.int32)
    cv2.fillPoly(image, [triangle.reshape(-1, 1, 2)], (DART, DART, DART))
    return image


SECOND_DART_PNG = encode_png(_second_dart())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session(clock):
    return DetectionSession(
        store=CalibrationStore(),
        config=DetectionConfig(motion_threshold=0.5),
        clock=clock,
    )


def calibrate(session):
    session.push_frame(BACKGROUND_PNG)
    session.begin_calibration()
    for click in IDENTITY_CLICKS:
        submission = session.submit_calibration_point(click.x, click.y)
    assert submission.record is not None


def test_throw_is_detected_once_and_scored(session):
    results = []
    session.add_listener(results.append)
    calibrate(session)

    for _ in range(4):
        session.push_frame(BACKGROUND_PNG)
    for _ in range(6):
        session.push_frame(DART_PNG)

    assert len(results) == 1
    result = results[0]
    assert abs(result.point.x - DART_TIP[0]) <= 2
    assert abs(result.point.y - DART_TIP[1]) <= 2
    assert result == score_point(result.point)
    assert result.ring == Ring.SINGLE
    assert result.segment == 12
    assert session.last_result == result
    assert session.stillness.in_cooldown


def test_second_throw_after_cooldown(session, clock):
    results = []
    session.add_listener(results.append)
    calibrate(session)

    for _ in range(3):
        session.push_frame(BACKGROUND_PNG)
    for _ in range(3):
        session.push_frame(DART_PNG)
    clock.advance(2.0)

    for _ in range(3):
        session.push_frame(SECOND_DART_PNG)

    assert len(results) == 2
    assert abs(results[1].point.x - 300) <= 2
    assert abs(results[1].point.y - 330) <= 2
    assert session.stillness.detection_attempts == 2


def test_uncalibrated_frames_are_not_evaluated(session):
    session.push_frame(BACKGROUND_PNG)
    session.push_frame(DART_PNG)

    assert session.frames_processed == 0
    assert session.get_status()["needs_calibration"]
    assert session.get_status()["rectification"] == "uncalibrated"
    assert not session.stillness.previous.occupied


def test_frames_ignored_while_calibrating(session):
    session.push_frame(BACKGROUND_PNG)
    session.begin_calibration()
    session.push_frame(DART_PNG)

    assert session.frames_processed == 0
    assert session.calibration.collecting


def test_dimension_change_forces_recalibration(session):
    calibrate(session)
    session.push_frame(BACKGROUND_PNG)
    assert session.frames_processed == 1

    session.push_frame(encode_png(board(width=640, height=480)))

    assert session.calibration.record is None
    assert session.calibration.store.get(CALIBRATION_KEY) is None
    assert session.last_error == DIMENSIONS_CHANGED_ERROR
    assert not session.stillness.previous.occupied
    status = session.get_status()
    assert status["rectification"] == "dimension_mismatch"
    assert status["needs_calibration"]


def test_undecodable_frame_is_dropped(session):
    calibrate(session)
    assert not session.push_frame(b"not a jpeg")
    assert session.get_status()["frames_dropped"] == 1
    assert session.last_error is None


def test_failed_calibration_reports_error(session):
    session.push_frame(BACKGROUND_PNG)
    session.begin_calibration()
    for x in (10, 20, 30):
        session.submit_calibration_point(x, x)
    with pytest.raises(CalibrationFailed):
        session.submit_calibration_point(40, 40)

    assert session.calibration.record is None
    assert session.calibration.collecting
    assert session.last_error.startswith("Calibration failed")


def test_display_coordinates_need_a_frame(session):
    session.begin_calibration()
    with pytest.raises(ValueError):
        session.submit_calibration_point(10, 10, display_size=(100, 100))


def test_display_coordinates_are_scaled(session):
    session.push_frame(BACKGROUND_PNG)
    session.begin_calibration()
    session.submit_calibration_point(125, 17.5, display_size=(250, 250))
    assert session.calibration.points[0].x == pytest.approx(250)
    assert session.calibration.points[0].y == pytest.approx(35)


def test_listener_errors_do_not_stop_detection(session):
    results = []

    def broken(result):
        raise RuntimeError("listener down")

    session.add_listener(broken)
    session.add_listener(results.append)
    calibrate(session)
    for png in (BACKGROUND_PNG, BACKGROUND_PNG, DART_PNG, DART_PNG):
        session.push_frame(png)

    assert len(results) == 1


def test_disconnect_drops_held_frames(session):
    calibrate(session)
    for png in (BACKGROUND_PNG, BACKGROUND_PNG):
        session.push_frame(png)
    assert session.stillness.pre_throw.occupied

    session.disconnect()

    assert not session.connected
    assert session.ingestor.current is None
    assert not session.stillness.pre_throw.occupied
    assert session.stillness.state == MotionState.MOVING
    assert session.calibration.record is not None


def test_render_display(session):
    assert session.render_display() is None

    session.push_frame(BACKGROUND_PNG)
    assert session.render_display().shape == (500, 500, 3)

    session.begin_calibration()
    session.submit_calibration_point(250, 35)
    assert session.render_display().shape == (500, 500, 3)


def test_persisted_calibration_restored_on_start(tmp_path):
    first = DetectionSession(store=CalibrationStore(tmp_path))
    calibrate(first)

    second = DetectionSession(store=CalibrationStore(tmp_path))
    second.start()
    assert second.calibration.record == first.calibration.record


class FailingOnceRectifier(Rectifier):
    def __init__(self):
        super().__init__()
        self.failures = 1

    def rectify(self, frame, record):
        if self.failures:
            self.failures -= 1
            raise RectificationError("warp failed")
        return super().rectify(frame, record)


def test_processing_error_drops_frame_and_continues(session):
    calibrate(session)
    session.rectifier = FailingOnceRectifier()

    assert session.push_frame(BACKGROUND_PNG)
    assert session.last_error.startswith("Error during image processing")
    assert session.frames_processed == 0

    session.push_frame(BACKGROUND_PNG)
    assert session.frames_processed == 1
