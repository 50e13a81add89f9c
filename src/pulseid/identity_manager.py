"""
Identity manager for the PulseID identity engine.

This module orchestrates the enrollment ceremony, leveled authentication,
slow enrollment evolution and background continuous authentication on top
of the three modality engines. It is the only component host applications
are expected to talk to.

The enrollment vector is laid out as weighted modality segments in canonical
order (cardiac, movement, touch). Live vectors built from a subset of
modalities are always compared against the matching enrollment segments, so
partial samples never misalign with the stored record.
"""

import dataclasses
import threading
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Tuple

import numpy as np
import structlog

from . import config
from .cardiac import CardiacEngine
from .constants import (
    CARDIAC_FEATURE_DIM,
    CONTINUOUS_AUTH_THRESHOLD,
    CONTINUOUS_MODALITY_WEIGHT,
    EVOLUTION_CONFIDENCE,
    MIN_CARDIAC_ENROLLMENT_QUALITY,
    MIN_LIVENESS_SCORE,
    MODALITY_WEIGHTS,
    MOVEMENT_FEATURE_DIM,
    TOUCH_FEATURE_DIM,
)
from .data_models import (
    CANONICAL_ORDER,
    AuthFailureReason,
    AuthLevel,
    AuthResult,
    EnrollmentData,
    IdentityState,
    IdentityStatus,
    LiveSample,
    Modality,
    ModalityQuality,
)
from .exceptions import (
    CardiacSignalError,
    EnrollmentError,
    ModalityRequirementError,
    VectorError,
)
from .movement import MovementEngine
from .storage import EnrollmentStore, InMemoryEnrollmentStore
from .touch import TouchEngine
from .utils import hash_vector, timer
from .vector_math import cosine_similarity, weighted_combine, zero_vector

# Initialize structured logger
logger = structlog.get_logger(__name__)

MODALITY_DIMS: Dict[Modality, int] = {
    Modality.CARDIAC: CARDIAC_FEATURE_DIM,
    Modality.MOVEMENT: MOVEMENT_FEATURE_DIM,
    Modality.TOUCH: TOUCH_FEATURE_DIM,
}


def _build_segments() -> Dict[Modality, slice]:
    segments = {}
    offset = 0
    for modality in CANONICAL_ORDER:
        segments[modality] = slice(offset, offset + MODALITY_DIMS[modality])
        offset += MODALITY_DIMS[modality]
    return segments


# Position of each modality inside the enrollment vector
MODALITY_SEGMENTS: Dict[Modality, slice] = _build_segments()

IDENTITY_VECTOR_DIM: int = sum(MODALITY_DIMS.values())

# Modalities each level may combine
LEVEL_MODALITIES: Dict[AuthLevel, FrozenSet[Modality]] = {
    AuthLevel.QUICK: frozenset({Modality.MOVEMENT, Modality.TOUCH}),
    AuthLevel.STANDARD: frozenset(CANONICAL_ORDER),
    AuthLevel.HIGH: frozenset(CANONICAL_ORDER),
    AuthLevel.FORENSIC: frozenset(CANONICAL_ORDER),
}


def select_modalities(
    level: AuthLevel, available: Iterable[Modality]
) -> Tuple[Modality, ...]:
    """
    Decide which supplied modalities an authentication at ``level`` combines.

    Parameters
    ----------
    level : AuthLevel
        Requested strictness.
    available : iterable of Modality
        Modalities present in the live sample.

    Returns
    -------
    tuple of Modality
        Selected modalities in canonical order.

    Raises
    ------
    ModalityRequirementError
        ``no_biometric_data`` when nothing usable was supplied, or
        ``insufficient_modalities`` when a level above quick lacks cardiac
        data.

    Examples
    --------
    >>> select_modalities(AuthLevel.QUICK, {Modality.CARDIAC, Modality.TOUCH})
    (<Modality.TOUCH: 'touch'>,)
    """
    level = AuthLevel(level)
    available = frozenset(Modality(m) for m in available)
    selected = tuple(
        m for m in CANONICAL_ORDER if m in available and m in LEVEL_MODALITIES[level]
    )
    names = sorted(m.value for m in available)

    if not selected:
        raise ModalityRequirementError(
            AuthFailureReason.NO_BIOMETRIC_DATA.value, level.value, names
        )
    if level.requires_liveness and Modality.CARDIAC not in selected:
        raise ModalityRequirementError(
            AuthFailureReason.INSUFFICIENT_MODALITIES.value, level.value, names
        )
    return selected


class IdentityManager:
    """
    Multi-modal enrollment and authentication for a single device owner.

    State machine: unenrolled, then locked after enrollment, authenticated
    after a successful :meth:`authenticate`, and back to locked on
    :meth:`lock`, a continuous-auth failure or re-enrollment.

    Parameters
    ----------
    store : EnrollmentStore, optional
        Persistence for the enrollment record. Defaults to an in-memory store.
    cardiac_engine, movement_engine, touch_engine : optional
        Modality engines; default instances are created when omitted.
    drift_rate : float, optional
        Evolution step size. Defaults to ``config.ENROLLMENT_DRIFT_RATE``.
    continuous_interval : float, optional
        Seconds between continuous checks. Defaults to
        ``config.CONTINUOUS_AUTH_INTERVAL_SECONDS``.
    hash_algorithm : str, optional
        Registration hash. Defaults to ``config.ENROLLMENT_HASH_ALGORITHM``.

    Examples
    --------
    >>> manager = IdentityManager(store=FileEnrollmentStore("enrollment.json"))
    >>> manager.enroll(ppg, acceleration, touch_events)
    >>> result = manager.authenticate(AuthLevel.STANDARD, LiveSample(ppg=live_ppg))
    """

    def __init__(
        self,
        store: Optional[EnrollmentStore] = None,
        cardiac_engine: Optional[CardiacEngine] = None,
        movement_engine: Optional[MovementEngine] = None,
        touch_engine: Optional[TouchEngine] = None,
        drift_rate: Optional[float] = None,
        continuous_interval: Optional[float] = None,
        hash_algorithm: Optional[str] = None,
    ) -> None:
        self.store = store if store is not None else InMemoryEnrollmentStore()
        self.cardiac = cardiac_engine or CardiacEngine()
        self.movement = movement_engine or MovementEngine()
        self.touch = touch_engine or TouchEngine()

        self.drift_rate = (
            config.ENROLLMENT_DRIFT_RATE if drift_rate is None else drift_rate
        )
        self.continuous_interval = (
            config.CONTINUOUS_AUTH_INTERVAL_SECONDS
            if continuous_interval is None
            else continuous_interval
        )
        self.hash_algorithm = hash_algorithm or config.ENROLLMENT_HASH_ALGORITHM

        # Guards the cached enrollment and the auth state
        self._lock = threading.RLock()
        self._enrollment: Optional[EnrollmentData] = None
        self._authenticated = False
        self._confidence = 0.0

        self._worker: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

        logger.info(
            "IdentityManager initialized",
            store=type(self.store).__name__,
            drift_rate=self.drift_rate,
            continuous_interval=self.continuous_interval,
            hash_algorithm=self.hash_algorithm,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> IdentityState:
        with self._lock:
            if not self.is_enrolled():
                return IdentityState.UNENROLLED
            if self._authenticated:
                return IdentityState.AUTHENTICATED
            return IdentityState.LOCKED

    def is_enrolled(self) -> bool:
        """True when an enrollment is cached or present in the store."""
        return self._load_enrollment() is not None

    def get_status(self) -> IdentityStatus:
        with self._lock:
            return IdentityStatus(
                enrolled=self.is_enrolled(),
                authenticated=self._authenticated,
                confidence=self._confidence,
                continuous_active=self._continuous_running(),
            )

    def lock(self) -> None:
        """Drop the authenticated state."""
        with self._lock:
            self._authenticated = False
            self._confidence = 0.0
        logger.info("Session locked")

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    @timer
    def enroll(self, ppg, acceleration, touch_events) -> EnrollmentData:
        """
        Run the enrollment ceremony and persist the new identity vector.

        All three modalities are captured. Any previous enrollment is
        replaced entirely and the session is locked.

        Parameters
        ----------
        ppg : array-like
            Pulse waveform at the cardiac engine's sample rate.
        acceleration : AccelerationData or sequence of three axes
            Device motion at the movement engine's sample rate.
        touch_events : list of TouchEvent
            Touch interactions captured during the ceremony.

        Returns
        -------
        EnrollmentData
            The saved record, including the registration hash.

        Raises
        ------
        EnrollmentError
            When the pulse waveform is unusable (``signal_too_short``,
            ``insufficient_cycles``) or its quality is below 0.6
            (``cardiac_quality``).
        """
        try:
            cardiac_features = self.cardiac.extract_features(ppg)
        except CardiacSignalError as e:
            logger.warning("Enrollment rejected", reason=e.code)
            raise EnrollmentError(e.code, e.message, **e.context) from e

        movement_features = self.movement.extract_features(acceleration)
        touch_features = self.touch.extract_features(touch_events)

        cardiac_quality = self.cardiac.assess_quality(cardiac_features)
        movement_quality = self.movement.assess_quality(movement_features)
        touch_quality = self.touch.assess_quality(touch_features)

        try:
            if cardiac_quality < MIN_CARDIAC_ENROLLMENT_QUALITY:
                logger.warning(
                    "Enrollment rejected",
                    reason="cardiac_quality",
                    cardiac_quality=cardiac_quality,
                )
                raise EnrollmentError(
                    "cardiac_quality",
                    "Cardiac signal quality too low. Cover the camera fully "
                    "with your fingertip and hold still.",
                    cardiac_quality=round(cardiac_quality, 3),
                )

            vector = weighted_combine(
                [
                    (cardiac_features, MODALITY_WEIGHTS[Modality.CARDIAC.value]),
                    (movement_features, MODALITY_WEIGHTS[Modality.MOVEMENT.value]),
                    (touch_features, MODALITY_WEIGHTS[Modality.TOUCH.value]),
                ]
            )
        finally:
            for features in (cardiac_features, movement_features, touch_features):
                zero_vector(features)

        enrollment = EnrollmentData(
            vector=vector,
            hash=hash_vector(vector, self.hash_algorithm),
            quality=ModalityQuality.from_scores(
                cardiac_quality, movement_quality, touch_quality
            ),
        )

        with self._lock:
            self.store.save_enrollment(enrollment)
            if self._enrollment is not None:
                zero_vector(self._enrollment.vector)
            # The cache owns its own copy; the returned record stays with the caller
            self._enrollment = dataclasses.replace(enrollment, vector=vector.copy())
            self._authenticated = False
            self._confidence = 0.0

        logger.info(
            "Enrollment completed",
            dimension=enrollment.dimension,
            cardiac_quality=cardiac_quality,
            movement_quality=movement_quality,
            touch_quality=touch_quality,
            hash_prefix=enrollment.hash[:12],
        )
        return enrollment

    def delete_identity(self) -> None:
        """Erase the cached vector and the stored record, then lock."""
        self.stop_continuous_auth()
        with self._lock:
            if self._enrollment is not None:
                zero_vector(self._enrollment.vector)
                self._enrollment = None
            self.store.delete_enrollment()
            self._authenticated = False
            self._confidence = 0.0
        logger.info("Identity deleted")

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self, level: AuthLevel, live: LiveSample) -> AuthResult:
        """
        Compare a live sample against the enrollment at the given level.

        Authentication failures are returned, never raised. The live vector
        and every copied enrollment segment are zeroed before returning.

        Parameters
        ----------
        level : AuthLevel
            Requested strictness.
        live : LiveSample
            Whatever sensor data is available right now.

        Returns
        -------
        AuthResult
            ``success`` iff the similarity reaches the level's threshold and,
            above quick, the pulse waveform passes the liveness check.
        """
        level = AuthLevel(level)

        if self._load_enrollment() is None:
            return self._fail(level, AuthFailureReason.NOT_ENROLLED)

        try:
            modalities = select_modalities(level, live.available_modalities)
        except ModalityRequirementError as e:
            logger.info("Authentication rejected", level=level.value, reason=e.reason)
            return self._fail(level, AuthFailureReason(e.reason))

        try:
            segments = self._extract_live(modalities, live)
        except CardiacSignalError as e:
            logger.info(
                "Authentication rejected",
                level=level.value,
                reason=AuthFailureReason.SIGNAL_REJECTED.value,
                signal_error=e.code,
            )
            return self._fail(level, AuthFailureReason.SIGNAL_REJECTED)

        if not segments:
            return self._fail(level, AuthFailureReason.NO_BIOMETRIC_DATA)

        compared = tuple(segments)
        live_vector = weighted_combine(
            (features, MODALITY_WEIGHTS[m.value]) for m, features in segments.items()
        )
        for features in segments.values():
            zero_vector(features)

        try:
            confidence = self._compare(compared, live_vector)

            if level.requires_liveness and Modality.CARDIAC in compared:
                liveness = self.cardiac.check_liveness(live.ppg)
                if liveness < MIN_LIVENESS_SCORE:
                    logger.warning(
                        "Liveness check failed",
                        level=level.value,
                        liveness=liveness,
                        confidence=confidence,
                    )
                    with self._lock:
                        self._authenticated = False
                        self._confidence = 0.0
                    return AuthResult(
                        success=False,
                        confidence=confidence,
                        level=level,
                        reason=AuthFailureReason.LIVENESS_FAILED,
                    )

            success = confidence >= level.threshold
            if success and confidence > EVOLUTION_CONFIDENCE:
                self.evolve_enrollment(live_vector, compared)

            with self._lock:
                self._authenticated = success
                self._confidence = confidence
        finally:
            zero_vector(live_vector)

        logger.info(
            "Authentication completed",
            level=level.value,
            success=success,
            confidence=confidence,
            modalities=[m.value for m in compared],
        )
        return AuthResult(
            success=success,
            confidence=confidence,
            level=level,
            reason=None if success else AuthFailureReason.BELOW_THRESHOLD,
        )

    def evolve_enrollment(
        self,
        live_vector: np.ndarray,
        modalities: Tuple[Modality, ...] = CANONICAL_ORDER,
    ) -> EnrollmentData:
        """
        Move the enrollment a small step toward a live vector.

        ``new = (1 - d) * old + d * live`` on the segments covered by
        ``modalities``; the other segments are left untouched. The hash is
        recomputed and the record persisted.

        Parameters
        ----------
        live_vector : np.ndarray
            Weighted live vector laid out as ``modalities`` in canonical order.
        modalities : tuple of Modality
            Segments the live vector covers.

        Returns
        -------
        EnrollmentData
            The updated record.
        """
        live_vector = np.asarray(live_vector, dtype=np.float64)
        modalities = tuple(m for m in CANONICAL_ORDER if m in set(modalities))

        with self._lock:
            enrollment = self._load_enrollment()
            if enrollment is None:
                raise EnrollmentError("not_enrolled", "No enrollment to evolve")

            covered = sum(MODALITY_DIMS[m] for m in modalities)
            if len(live_vector) != covered:
                raise VectorError(covered, len(live_vector), operation="evolve_enrollment")

            evolved = enrollment.vector.copy()
            offset = 0
            for modality in modalities:
                segment = MODALITY_SEGMENTS[modality]
                width = MODALITY_DIMS[modality]
                live_segment = live_vector[offset : offset + width]
                evolved[segment] = (1 - self.drift_rate) * evolved[segment] + (
                    self.drift_rate * live_segment
                )
                offset += width

            updated = dataclasses.replace(
                enrollment,
                vector=evolved,
                hash=hash_vector(evolved, self.hash_algorithm),
            )
            self.store.save_enrollment(updated)
            zero_vector(enrollment.vector)
            self._enrollment = updated

        logger.info(
            "Enrollment evolved",
            drift_rate=self.drift_rate,
            modalities=[m.value for m in modalities],
            hash_prefix=updated.hash[:12],
        )
        return updated

    # ------------------------------------------------------------------
    # Continuous authentication
    # ------------------------------------------------------------------

    def start_continuous_auth(
        self,
        on_lock: Callable[[], None],
        on_confidence_update: Optional[Callable[[float], None]] = None,
    ) -> None:
        """
        Start background monitoring of the movement and touch buffers.

        Any previously started worker is stopped first. Every
        ``continuous_interval`` seconds, while authenticated, the buffered
        behaviour is compared with the enrollment; ``on_confidence_update``
        receives each similarity and a drop below 0.75 locks the session,
        calls ``on_lock`` and ends monitoring.
        """
        self.stop_continuous_auth()

        stop_event = threading.Event()
        worker = threading.Thread(
            target=self._continuous_loop,
            args=(stop_event, on_lock, on_confidence_update),
            name="pulseid-continuous-auth",
            daemon=True,
        )
        with self._lock:
            self._stop_event = stop_event
            self._worker = worker
        worker.start()

        logger.info("Continuous authentication started", interval=self.continuous_interval)

    def stop_continuous_auth(self) -> None:
        """
        Stop background monitoring.

        When called from outside the worker, no callback fires after this
        returns.
        """
        with self._lock:
            worker, stop_event = self._worker, self._stop_event
            self._worker = None
            self._stop_event = None

        if worker is None:
            return

        stop_event.set()
        if worker is not threading.current_thread():
            worker.join()

        logger.info("Continuous authentication stopped")

    def run_continuous_check(
        self,
        on_lock: Optional[Callable[[], None]] = None,
        on_confidence_update: Optional[Callable[[float], None]] = None,
    ) -> Optional[float]:
        """
        Run one continuous-auth cycle synchronously.

        Returns
        -------
        float or None
            The similarity, or None when the session is not authenticated or
            neither buffer holds enough data.
        """
        return self._continuous_cycle(None, on_lock, on_confidence_update)

    def _continuous_loop(self, stop_event, on_lock, on_confidence_update) -> None:
        while not stop_event.wait(self.continuous_interval):
            confidence = self._continuous_cycle(stop_event, on_lock, on_confidence_update)
            if confidence is not None and confidence < CONTINUOUS_AUTH_THRESHOLD:
                break

        with self._lock:
            if self._stop_event is stop_event:
                self._worker = None
                self._stop_event = None
        stop_event.set()

    def _continuous_cycle(self, stop_event, on_lock, on_confidence_update) -> Optional[float]:
        with self._lock:
            if not self._authenticated or self._load_enrollment() is None:
                return None

        recent_movement = self.movement.get_recent_buffer()
        recent_touch = self.touch.get_recent_buffer()

        segments = {}
        if recent_movement is not None:
            segments[Modality.MOVEMENT] = recent_movement
        if recent_touch is not None:
            segments[Modality.TOUCH] = recent_touch
        if not segments:
            return None

        compared = tuple(segments)
        live_vector = weighted_combine(
            (features, CONTINUOUS_MODALITY_WEIGHT) for features in segments.values()
        )
        for features in segments.values():
            zero_vector(features)

        try:
            confidence = self._compare(compared, live_vector)
        finally:
            zero_vector(live_vector)

        locked = confidence < CONTINUOUS_AUTH_THRESHOLD
        with self._lock:
            if stop_event is not None and stop_event.is_set():
                return None
            if locked:
                self._authenticated = False
                self._confidence = 0.0
            else:
                self._confidence = confidence

        logger.debug("Continuous check", confidence=confidence, locked=locked)

        if on_confidence_update is not None:
            on_confidence_update(confidence)
        if locked:
            logger.warning("Continuous authentication lost identity", confidence=confidence)
            if on_lock is not None:
                on_lock()
        return confidence

    def _continuous_running(self) -> bool:
        return (
            self._worker is not None
            and self._stop_event is not None
            and not self._stop_event.is_set()
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_enrollment(self) -> Optional[EnrollmentData]:
        with self._lock:
            if self._enrollment is None:
                self._enrollment = self.store.get_enrollment()
            return self._enrollment

    def _extract_live(
        self, modalities: Tuple[Modality, ...], live: LiveSample
    ) -> Dict[Modality, np.ndarray]:
        """Feature vectors for the selected modalities; all-zero ones mean no signal."""
        segments: Dict[Modality, np.ndarray] = {}
        try:
            for modality in modalities:
                if modality is Modality.CARDIAC:
                    features = self.cardiac.extract_features(live.ppg)
                elif modality is Modality.MOVEMENT:
                    features = self.movement.extract_features(live.acceleration)
                else:
                    features = self.touch.extract_features(live.touch_events)

                if modality is not Modality.CARDIAC and not np.any(features):
                    logger.debug("Modality produced no signal", modality=modality.value)
                    continue
                segments[modality] = features
        except Exception:
            # Vectors already extracted never reach the caller
            for features in segments.values():
                zero_vector(features)
            raise
        return segments

    def _compare(self, modalities: Tuple[Modality, ...], live_vector: np.ndarray) -> float:
        with self._lock:
            enrollment = self._load_enrollment()
            reference = self._reference_segments(enrollment.vector, modalities)
        try:
            return cosine_similarity(reference, live_vector)
        finally:
            zero_vector(reference)

    @staticmethod
    def _reference_segments(
        vector: np.ndarray, modalities: Tuple[Modality, ...]
    ) -> np.ndarray:
        return np.concatenate([vector[MODALITY_SEGMENTS[m]] for m in modalities])

    def _fail(self, level: AuthLevel, reason: AuthFailureReason) -> AuthResult:
        with self._lock:
            self._authenticated = False
            self._confidence = 0.0
        return AuthResult(success=False, confidence=0.0, level=level, reason=reason)
