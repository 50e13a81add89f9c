"""
Tests for the identity manager.

Most tests run against scripted engines (see conftest) so that similarities
are known exactly; the integration class at the bottom drives the real
engines with synthetic captures.
"""

import threading
import time

import numpy as np
import pytest

import pulseid.identity_manager as identity_manager
from pulseid import synthetic
from pulseid.cardiac import CardiacEngine
from pulseid.constants import MODALITY_WEIGHTS
from pulseid.data_models import (
    CANONICAL_ORDER,
    AccelerationData,
    AuthFailureReason,
    AuthLevel,
    IdentityState,
    LiveSample,
    Modality,
    TouchEvent,
    TouchEventType,
)
from pulseid.exceptions import EnrollmentError, ModalityRequirementError, VectorError
from pulseid.identity_manager import (
    IDENTITY_VECTOR_DIM,
    MODALITY_SEGMENTS,
    IdentityManager,
    select_modalities,
)
from pulseid.storage import FileEnrollmentStore, InMemoryEnrollmentStore

ACCEL = AccelerationData([0.0], [0.0], [0.0])
TOUCHES = [TouchEvent(0, 10, 10, 0.5, 0.3, TouchEventType.DOWN)]
PPG = np.ones(300)


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class FakeFeatureCardiacEngine(CardiacEngine):
    """Fixed features and quality, real liveness analysis."""

    def __init__(self, features):
        super().__init__()
        self.features = np.asarray(features, dtype=np.float64)

    def extract_features(self, ppg):
        return self.features.copy()

    def assess_quality(self, features):
        return 1.0


class TestSelectModalities:

    def test_quick_ignores_cardiac(self):
        selected = select_modalities(AuthLevel.QUICK, {Modality.CARDIAC, Modality.TOUCH})
        assert selected == (Modality.TOUCH,)

    def test_canonical_order(self):
        selected = select_modalities(AuthLevel.STANDARD, [Modality.TOUCH, Modality.CARDIAC, Modality.MOVEMENT])
        assert selected == CANONICAL_ORDER

    def test_accepts_names(self):
        assert select_modalities("high", ["touch", "cardiac"]) == (Modality.CARDIAC, Modality.TOUCH)

    def test_cardiac_required_above_quick(self):
        with pytest.raises(ModalityRequirementError) as excinfo:
            select_modalities(AuthLevel.FORENSIC, {Modality.MOVEMENT, Modality.TOUCH})
        assert excinfo.value.reason == "insufficient_modalities"

    def test_nothing_usable(self):
        with pytest.raises(ModalityRequirementError) as excinfo:
            select_modalities(AuthLevel.QUICK, {Modality.CARDIAC})
        assert excinfo.value.reason == "no_biometric_data"


class TestEnrollment:

    def test_not_enrolled_initially(self, scripted_manager):
        assert scripted_manager.state is IdentityState.UNENROLLED
        result = scripted_manager.authenticate(AuthLevel.QUICK, LiveSample(touch_events=TOUCHES))
        assert not result.success
        assert result.reason is AuthFailureReason.NOT_ENROLLED
        assert result.confidence == 0.0

    def test_enrollment_record(self, enrolled_manager, store):
        record = store.get_enrollment()
        assert record.dimension == IDENTITY_VECTOR_DIM == 98
        assert len(record.hash) == 64
        assert record.quality.cardiac == 1.0
        assert enrolled_manager.state is IdentityState.LOCKED

    def test_weighted_segment_layout(self, enrolled_manager, store, feature_vectors):
        vector = store.get_enrollment().vector
        for modality in CANONICAL_ORDER:
            np.testing.assert_allclose(
                vector[MODALITY_SEGMENTS[modality]],
                MODALITY_WEIGHTS[modality.value] * feature_vectors[modality.value],
            )

    def test_enroll_leaves_engine_outputs_untouched(self, enrolled_manager, scripted_engines):
        assert np.all(scripted_engines["cardiac"].features != 0.0)

    @pytest.mark.parametrize("quality, accepted", [(0.59, False), (0.61, True)])
    def test_cardiac_quality_gate(self, scripted_manager, scripted_engines, quality, accepted):
        scripted_engines["cardiac"].quality = quality
        if accepted:
            scripted_manager.enroll(PPG, ACCEL, TOUCHES)
            assert scripted_manager.is_enrolled()
        else:
            with pytest.raises(EnrollmentError) as excinfo:
                scripted_manager.enroll(PPG, ACCEL, TOUCHES)
            assert excinfo.value.code == "cardiac_quality"
            assert not scripted_manager.is_enrolled()

    def test_short_ppg_aborts_enrollment(self, walking, touch_session):
        manager = IdentityManager(store=InMemoryEnrollmentStore())
        with pytest.raises(EnrollmentError) as excinfo:
            manager.enroll(synthetic.live_ppg(duration=3.0), walking, touch_session)
        assert excinfo.value.code == "signal_too_short"
        assert manager.state is IdentityState.UNENROLLED

    def test_re_enrollment_replaces_and_locks(self, enrolled_manager, scripted_engines):
        enrolled_manager.authenticate(AuthLevel.QUICK, LiveSample(touch_events=TOUCHES))
        assert enrolled_manager.state is IdentityState.AUTHENTICATED
        old_cache = enrolled_manager._enrollment

        scripted_engines["touch"].features = scripted_engines["touch"].features * 2
        record = enrolled_manager.enroll(PPG, ACCEL, TOUCHES)

        assert not np.any(old_cache.vector)
        assert enrolled_manager.state is IdentityState.LOCKED
        assert enrolled_manager.store.get_enrollment().hash == record.hash

    def test_delete_identity(self, enrolled_manager, store):
        cache = enrolled_manager._enrollment
        enrolled_manager.delete_identity()

        assert not np.any(cache.vector)
        assert store.get_enrollment() is None
        assert enrolled_manager.state is IdentityState.UNENROLLED
        result = enrolled_manager.authenticate(AuthLevel.QUICK, LiveSample(touch_events=TOUCHES))
        assert result.reason is AuthFailureReason.NOT_ENROLLED

    def test_enrollment_is_reloaded_from_store(self, tmp_path, enrolled_manager):
        path = tmp_path / "enrollment.json"
        enrolled_manager.store = FileEnrollmentStore(path)
        record = enrolled_manager.enroll(PPG, ACCEL, TOUCHES)

        fresh = IdentityManager(store=FileEnrollmentStore(path))
        assert fresh.state is IdentityState.LOCKED
        np.testing.assert_array_equal(fresh.store.get_enrollment().vector, record.vector)


class TestAuthentication:

    def test_quick_with_matching_touch(self, enrolled_manager):
        result = enrolled_manager.authenticate(AuthLevel.QUICK, LiveSample(touch_events=TOUCHES))
        assert result.success
        assert result.confidence == pytest.approx(1.0)
        assert result.reason is None
        assert enrolled_manager.state is IdentityState.AUTHENTICATED
        assert enrolled_manager.get_status().confidence == pytest.approx(1.0)

    def test_quick_never_touches_cardiac(self, enrolled_manager, scripted_engines):
        cardiac = scripted_engines["cardiac"]
        calls_after_enrollment = cardiac.extract_calls
        live = LiveSample(ppg=PPG, acceleration=ACCEL, touch_events=TOUCHES)

        result = enrolled_manager.authenticate(AuthLevel.QUICK, live)

        assert result.success
        assert cardiac.extract_calls == calls_after_enrollment
        assert cardiac.liveness_calls == 0

    def test_standard_requires_cardiac(self, enrolled_manager):
        live = LiveSample(acceleration=ACCEL, touch_events=TOUCHES)
        result = enrolled_manager.authenticate(AuthLevel.STANDARD, live)
        assert not result.success
        assert result.reason is AuthFailureReason.INSUFFICIENT_MODALITIES

    def test_empty_sample(self, enrolled_manager):
        result = enrolled_manager.authenticate(AuthLevel.QUICK, LiveSample())
        assert result.reason is AuthFailureReason.NO_BIOMETRIC_DATA

    def test_all_zero_behaviour_counts_as_no_signal(self, enrolled_manager, scripted_engines):
        scripted_engines["touch"].features = np.zeros_like(scripted_engines["touch"].features)
        result = enrolled_manager.authenticate(AuthLevel.QUICK, LiveSample(touch_events=TOUCHES))
        assert result.reason is AuthFailureReason.NO_BIOMETRIC_DATA

    def test_standard_with_all_modalities(self, enrolled_manager, scripted_engines):
        live = LiveSample(ppg=PPG, acceleration=ACCEL, touch_events=TOUCHES)
        result = enrolled_manager.authenticate(AuthLevel.FORENSIC, live)
        assert result.success
        assert scripted_engines["cardiac"].liveness_calls == 1

    @pytest.mark.parametrize("similarity, success", [(0.89, False), (0.90, True)])
    def test_standard_threshold_boundary(self, monkeypatch, enrolled_manager, similarity, success):
        monkeypatch.setattr(identity_manager, "cosine_similarity", lambda a, b: similarity)
        result = enrolled_manager.authenticate(AuthLevel.STANDARD, LiveSample(ppg=PPG))
        assert result.success is success
        assert result.confidence == similarity
        if not success:
            assert result.reason is AuthFailureReason.BELOW_THRESHOLD
            assert enrolled_manager.state is IdentityState.LOCKED

    def test_failed_liveness(self, enrolled_manager, scripted_engines):
        scripted_engines["cardiac"].liveness = 0.5
        result = enrolled_manager.authenticate(AuthLevel.STANDARD, LiveSample(ppg=PPG))
        assert not result.success
        assert result.reason is AuthFailureReason.LIVENESS_FAILED
        assert result.confidence == pytest.approx(1.0)
        assert enrolled_manager.state is IdentityState.LOCKED

    def test_replayed_waveform_is_rejected(self, replay_ppg, feature_vectors, scripted_engines):
        manager = IdentityManager(
            store=InMemoryEnrollmentStore(),
            cardiac_engine=FakeFeatureCardiacEngine(feature_vectors["cardiac"]),
            movement_engine=scripted_engines["movement"],
            touch_engine=scripted_engines["touch"],
        )
        manager.enroll(PPG, ACCEL, TOUCHES)

        result = manager.authenticate(AuthLevel.HIGH, LiveSample(ppg=replay_ppg))

        assert result.reason is AuthFailureReason.LIVENESS_FAILED
        assert result.confidence == pytest.approx(1.0)

    def test_unusable_live_ppg(self, enrolled_manager):
        enrolled_manager.cardiac = CardiacEngine()
        result = enrolled_manager.authenticate(
            AuthLevel.STANDARD, LiveSample(ppg=synthetic.live_ppg(duration=2.0))
        )
        assert result.reason is AuthFailureReason.SIGNAL_REJECTED
        assert result.confidence == 0.0

    def test_extraction_error_zeroes_earlier_vectors(
        self, monkeypatch, enrolled_manager, scripted_engines
    ):
        cardiac = scripted_engines["cardiac"]
        original_extract = cardiac.extract_features
        extracted = []

        def recording_extract(ppg):
            features = original_extract(ppg)
            extracted.append(features)
            return features

        def broken_extract(events):
            raise KeyError("pressure")

        monkeypatch.setattr(cardiac, "extract_features", recording_extract)
        monkeypatch.setattr(scripted_engines["touch"], "extract_features", broken_extract)

        with pytest.raises(KeyError):
            enrolled_manager.authenticate(
                AuthLevel.STANDARD, LiveSample(ppg=PPG, touch_events=TOUCHES)
            )

        assert len(extracted) == 1
        assert not np.any(extracted[0])

    def test_lock(self, enrolled_manager):
        enrolled_manager.authenticate(AuthLevel.QUICK, LiveSample(touch_events=TOUCHES))
        enrolled_manager.lock()
        status = enrolled_manager.get_status()
        assert not status.authenticated
        assert status.confidence == 0.0
        assert enrolled_manager.state is IdentityState.LOCKED


class TestEvolution:

    def test_single_step(self, enrolled_manager, store):
        before = store.get_enrollment()
        updated = enrolled_manager.evolve_enrollment(np.zeros(IDENTITY_VECTOR_DIM))

        np.testing.assert_allclose(updated.vector, 0.99 * before.vector)
        assert updated.hash != before.hash
        assert store.get_enrollment().hash == updated.hash

    def test_wrong_length(self, enrolled_manager):
        with pytest.raises(VectorError):
            enrolled_manager.evolve_enrollment(np.zeros(10))

    def test_requires_enrollment(self, scripted_manager):
        with pytest.raises(EnrollmentError):
            scripted_manager.evolve_enrollment(np.zeros(IDENTITY_VECTOR_DIM))

    def test_quick_auth_evolves_only_compared_segments(
        self, enrolled_manager, store, scripted_engines, feature_vectors
    ):
        before = store.get_enrollment().vector
        perturbed = feature_vectors["touch"] + np.random.default_rng(3).normal(0, 0.02, 25)
        scripted_engines["touch"].features = perturbed

        result = enrolled_manager.authenticate(AuthLevel.QUICK, LiveSample(touch_events=TOUCHES))
        after = store.get_enrollment().vector

        assert result.success and result.confidence > 0.92
        touch = MODALITY_SEGMENTS[Modality.TOUCH]
        np.testing.assert_array_equal(after[: touch.start], before[: touch.start])
        np.testing.assert_allclose(
            after[touch], 0.99 * before[touch] + 0.01 * MODALITY_WEIGHTS["touch"] * perturbed
        )

    def test_weak_match_does_not_evolve(self, monkeypatch, enrolled_manager, store):
        before = store.get_enrollment().hash
        monkeypatch.setattr(identity_manager, "cosine_similarity", lambda a, b: 0.91)
        result = enrolled_manager.authenticate(AuthLevel.STANDARD, LiveSample(ppg=PPG))
        assert result.success
        assert store.get_enrollment().hash == before


class TestContinuousAuthentication:

    @pytest.fixture
    def session(self, enrolled_manager):
        enrolled_manager.authenticate(AuthLevel.QUICK, LiveSample(touch_events=TOUCHES))
        assert enrolled_manager.state is IdentityState.AUTHENTICATED
        return enrolled_manager

    @staticmethod
    def _buffers(engines, vectors, sign=1.0):
        engines["movement"].buffer_features = sign * vectors["movement"]
        engines["touch"].buffer_features = sign * vectors["touch"]

    def test_skipped_while_locked(self, enrolled_manager, scripted_engines, feature_vectors):
        self._buffers(scripted_engines, feature_vectors)
        assert enrolled_manager.run_continuous_check() is None

    def test_skipped_without_buffered_data(self, session):
        assert session.run_continuous_check() is None
        assert session.state is IdentityState.AUTHENTICATED

    def test_matching_behaviour_keeps_session(self, session, scripted_engines, feature_vectors):
        self._buffers(scripted_engines, feature_vectors)
        updates = []
        confidence = session.run_continuous_check(on_confidence_update=updates.append)
        assert confidence == pytest.approx(1.0, abs=1e-6)
        assert updates == [confidence]
        assert session.state is IdentityState.AUTHENTICATED

    def test_single_buffer_is_enough(self, session, scripted_engines, feature_vectors):
        scripted_engines["touch"].buffer_features = feature_vectors["touch"]
        assert session.run_continuous_check() == pytest.approx(1.0, abs=1e-6)

    def test_different_behaviour_locks(self, session, scripted_engines, feature_vectors):
        self._buffers(scripted_engines, feature_vectors, sign=-1.0)
        locks = []
        confidence = session.run_continuous_check(on_lock=lambda: locks.append(True))
        assert confidence < 0.75
        assert locks == [True]
        assert session.state is IdentityState.LOCKED

    @pytest.mark.parametrize("similarity, locked", [(0.74, True), (0.75, False)])
    def test_continuous_threshold_boundary(
        self, monkeypatch, session, scripted_engines, feature_vectors, similarity, locked
    ):
        self._buffers(scripted_engines, feature_vectors)
        monkeypatch.setattr(identity_manager, "cosine_similarity", lambda a, b: similarity)
        locks = []

        confidence = session.run_continuous_check(on_lock=lambda: locks.append(True))

        assert confidence == similarity
        assert locks == ([True] if locked else [])
        if locked:
            assert session.state is IdentityState.LOCKED
            assert session.get_status().confidence == 0.0
        else:
            assert session.state is IdentityState.AUTHENTICATED
            assert session.get_status().confidence == similarity

    def test_background_worker_reports_and_stops(self, session, scripted_engines, feature_vectors):
        self._buffers(scripted_engines, feature_vectors)
        updates = []
        session.start_continuous_auth(on_lock=lambda: None, on_confidence_update=updates.append)

        assert wait_for(lambda: len(updates) >= 2)
        assert session.get_status().continuous_active

        session.stop_continuous_auth()
        seen = len(updates)
        time.sleep(0.05)
        assert len(updates) == seen
        assert not session.get_status().continuous_active

    def test_restart_keeps_single_worker(self, session):
        session.start_continuous_auth(on_lock=lambda: None)
        session.start_continuous_auth(on_lock=lambda: None)
        workers = [t for t in threading.enumerate() if t.name == "pulseid-continuous-auth"]
        assert len(workers) == 1

    def test_worker_ends_after_lock(self, session, scripted_engines, feature_vectors):
        self._buffers(scripted_engines, feature_vectors, sign=-1.0)
        locked = threading.Event()
        session.start_continuous_auth(on_lock=locked.set)

        assert locked.wait(2.0)
        assert wait_for(lambda: not session.get_status().continuous_active)
        assert session.state is IdentityState.LOCKED

    def test_delete_stops_worker(self, session):
        session.start_continuous_auth(on_lock=lambda: None)
        session.delete_identity()
        assert not session.get_status().continuous_active


class TestIntegration:

    def test_enroll_then_authenticate_with_real_engines(self, live_ppg, walking, touch_session):
        manager = IdentityManager(store=InMemoryEnrollmentStore())
        record = manager.enroll(live_ppg, walking, touch_session)
        assert record.quality.cardiac >= 0.6
        assert record.quality.touch <= 0.8

        live = LiveSample(ppg=live_ppg, acceleration=walking, touch_events=touch_session)
        result = manager.authenticate(AuthLevel.STANDARD, live)

        assert result.success
        assert result.confidence == pytest.approx(1.0)

    def test_replay_fails_with_real_engines(self, live_ppg, replay_ppg, walking, touch_session):
        manager = IdentityManager(store=InMemoryEnrollmentStore())
        manager.enroll(live_ppg, walking, touch_session)

        result = manager.authenticate(AuthLevel.STANDARD, LiveSample(ppg=replay_ppg))

        assert not result.success
        assert result.reason is AuthFailureReason.LIVENESS_FAILED
