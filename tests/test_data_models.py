"""Tests for data models, configuration and the exception hierarchy."""

import numpy as np
import pytest
import structlog

from pulseid import config
from pulseid.data_models import (
    AccelerationData,
    AuthLevel,
    AuthResult,
    EnrollmentData,
    LiveSample,
    Modality,
    ModalityQuality,
    TouchEvent,
    TouchEventType,
)
from pulseid.exceptions import CardiacSignalError, EnrollmentError, PulseIdError


class TestAuthLevel:

    def test_thresholds(self):
        assert AuthLevel.QUICK.threshold == 0.80
        assert AuthLevel.STANDARD.threshold == 0.90
        assert AuthLevel.HIGH.threshold == 0.95
        assert AuthLevel.FORENSIC.threshold == 0.98

    def test_only_quick_skips_liveness(self):
        assert not AuthLevel.QUICK.requires_liveness
        assert all(level.requires_liveness for level in AuthLevel if level is not AuthLevel.QUICK)


class TestLiveSample:

    def test_empty(self):
        assert LiveSample().available_modalities == frozenset()

    def test_reports_supplied_channels(self):
        sample = LiveSample(
            ppg=np.ones(10),
            touch_events=[TouchEvent(0, 1, 1, 0.5, 0.3, TouchEventType.DOWN)],
        )
        assert sample.available_modalities == {Modality.CARDIAC, Modality.TOUCH}

    def test_empty_sequences_do_not_count(self):
        sample = LiveSample(ppg=np.zeros(0), acceleration=AccelerationData([], [], []), touch_events=[])
        assert sample.available_modalities == frozenset()


class TestSensorModels:

    def test_acceleration_truncates_to_shortest_axis(self):
        accel = AccelerationData([1, 2, 3], [1, 2], [1, 2, 3, 4])
        assert len(accel) == 2
        np.testing.assert_allclose(accel.magnitude(), [np.sqrt(3), np.sqrt(12)])

    def test_acceleration_from_axes_requires_three(self):
        with pytest.raises(ValueError):
            AccelerationData.from_axes([[1, 2], [3, 4]])

    def test_touch_event_from_dict(self):
        event = TouchEvent.from_dict(
            {"timestamp": 10, "x": 5, "y": 6, "pressure": 0.4, "area": 0.2, "type": "move"}
        )
        assert event.type is TouchEventType.MOVE
        assert TouchEvent.from_dict(event.to_dict()) == event

    def test_touch_event_coerces_type_string(self):
        assert TouchEvent(0, 0, 0, 0, 0, "up").type is TouchEventType.UP


class TestEnrollmentData:

    def test_overall_quality_is_mean(self):
        quality = ModalityQuality.from_scores(0.9, 0.6, 0.6)
        assert quality.overall == pytest.approx(0.7)
        assert "voice" not in quality.to_dict()

    def test_rejects_matrix(self):
        with pytest.raises(ValueError):
            EnrollmentData(vector=np.ones((2, 2)), hash="abc", quality=ModalityQuality.from_scores(1, 1, 1))

    def test_serialises_vector_as_base64(self):
        data = EnrollmentData(
            vector=np.array([1.0, -2.5]), hash="abc", quality=ModalityQuality.from_scores(1, 1, 1)
        )
        payload = data.to_dict()
        assert isinstance(payload["vector"], str)
        restored = EnrollmentData.from_dict(payload)
        np.testing.assert_array_equal(restored.vector, data.vector)
        assert restored.dimension == 2

    def test_auth_result_dict(self):
        result = AuthResult(success=True, confidence=0.97, level=AuthLevel.HIGH)
        payload = result.to_dict()
        assert payload["level"] == "high"
        assert payload["reason"] is None


class TestExceptions:

    def test_cardiac_error_carries_code(self):
        error = CardiacSignalError("signal_too_short", "too short", samples=10)
        assert error.code == "signal_too_short"
        assert error.to_dict()["context"] == {"samples": 10, "modality": "cardiac"}
        assert "[Error Code: signal_too_short]" in str(error)

    def test_enrollment_error_is_pulseid_error(self):
        error = EnrollmentError("cardiac_quality", "retry")
        assert isinstance(error, PulseIdError)
        assert error.to_dict()["error_type"] == "EnrollmentError"


class TestConfiguration:

    def test_defaults_validate(self):
        assert config.validate_configuration() is True

    def test_summary_sections(self):
        summary = config.get_config_summary()
        assert summary["identity"]["hash_algorithm"] in config.SUPPORTED_HASH_ALGORITHMS
        assert set(summary) == {"storage", "identity", "logging", "debug_mode"}

    def test_configure_logging(self):
        try:
            config.configure_logging(level="WARNING", structured=False)
            assert structlog.is_configured()
        finally:
            structlog.reset_defaults()
