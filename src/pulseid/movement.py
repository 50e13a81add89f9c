"""
Movement feature extraction from triaxial acceleration.

Extracts a 30-dim signature of how a person walks, holds and handles the
device: gait (12), posture (8) and device interaction (10). The engine also
owns a fixed-capacity ring buffer of recent samples used for continuous
authentication.
"""

import threading
from typing import Optional

import numpy as np
import structlog

from .constants import (
    ACCEL_SAMPLE_RATE,
    EPSILON,
    MIN_MOVEMENT_BUFFER_SECONDS,
    MIN_MOVEMENT_SECONDS,
    MOVEMENT_BUFFER_SECONDS,
    MOVEMENT_FEATURE_DIM,
)
from .data_models import AccelerationData
from .vector_math import band_power, magnitude_spectrum

# Initialize structured logger
logger = structlog.get_logger(__name__)

# Approximate entropy is evaluated over this many leading samples
APPROX_ENTROPY_WINDOW = 200


class MovementEngine:
    """
    Acceleration feature extractor with a rolling sample buffer.

    Parameters
    ----------
    sample_rate : int, default=ACCEL_SAMPLE_RATE
        Accelerometer rate in Hz.
    buffer_seconds : int, default=MOVEMENT_BUFFER_SECONDS
        Capacity of the rolling buffer in seconds of samples.

    Examples
    --------
    >>> engine = MovementEngine()
    >>> features = engine.extract_features(AccelerationData(x, y, z))
    >>> features.shape
    (30,)
    """

    def __init__(
        self,
        sample_rate: int = ACCEL_SAMPLE_RATE,
        buffer_seconds: int = MOVEMENT_BUFFER_SECONDS,
    ) -> None:
        self.sample_rate = sample_rate
        self.buffer_capacity = int(sample_rate * buffer_seconds)
        self._buffer = np.zeros((self.buffer_capacity, 3), dtype=np.float64)
        self._write_index = 0
        self._count = 0
        # Host sensor callbacks feed while the continuous worker reads
        self._buffer_lock = threading.Lock()

        logger.debug(
            "MovementEngine initialized",
            sample_rate=sample_rate,
            buffer_capacity=self.buffer_capacity,
        )

    # ------------------------------------------------------------------
    # Feature extraction
    # ------------------------------------------------------------------

    def extract_features(self, accel) -> np.ndarray:
        """
        Extract the 30-dimensional movement feature vector.

        Parameters
        ----------
        accel : AccelerationData or sequence of three axis sequences
            Samples at ``sample_rate``.

        Returns
        -------
        np.ndarray
            Feature vector laid out as ``MOVEMENT_FEATURE_NAMES``; all zeros
            when fewer than two seconds of samples are supplied.
        """
        if not isinstance(accel, AccelerationData):
            accel = AccelerationData.from_axes(accel)

        features = np.zeros(MOVEMENT_FEATURE_DIM)
        n = len(accel)
        if n < self.sample_rate * MIN_MOVEMENT_SECONDS:
            logger.debug("Not enough movement samples", samples=n)
            return features

        x, y, z = accel.x, accel.y, accel.z
        mag = accel.magnitude()
        rate = self.sample_rate
        spectrum = magnitude_spectrum(mag)
        freq_res = rate / n
        freqs = np.arange(len(spectrum)) * freq_res

        # === Gait (12) ===
        gait_low = int(0.5 / freq_res)
        gait_high = min(int(3.0 / freq_res), len(spectrum) - 1)
        step_bin = gait_low + int(np.argmax(spectrum[gait_low : gait_high + 1]))
        step_frequency = step_bin * freq_res
        step_period = int(round(rate / step_frequency)) if step_frequency > 0 else rate

        features[0] = step_frequency
        features[1] = self._autocorrelation(mag, step_period)
        features[2] = self._autocorrelation(mag, step_period * 2)
        features[3:9] = [np.mean(x), np.std(x), np.mean(y), np.std(y), np.mean(z), np.std(z)]
        features[9] = np.mean(mag)
        features[10] = np.std(mag)
        features[11] = np.sqrt(np.mean(mag**2))

        # === Postural (8) ===
        features[12] = band_power(spectrum, 0.1, 0.5, rate)
        features[13] = band_power(spectrum, 0.5, 2.0, rate)

        gravity = np.array([np.mean(x), np.mean(y), np.mean(z)])
        gravity_norm = float(np.linalg.norm(gravity))
        features[14:17] = np.arccos(np.clip(gravity / (gravity_norm + EPSILON), -1.0, 1.0))
        features[17] = np.sqrt(np.mean(np.diff(mag) ** 2)) * rate
        features[18] = gravity_norm

        samples = np.column_stack([x, y, z])
        direction = gravity / (gravity_norm + EPSILON)
        cos_tilt = samples @ direction / (mag + EPSILON)
        features[19] = np.std(np.arccos(np.clip(cos_tilt, -1.0, 1.0)))

        # === Device interaction (10) ===
        changes = np.abs(np.diff(mag))
        features[20] = np.max(changes)
        features[21] = np.percentile(changes, 95)

        tremor = band_power(spectrum, 5.0, 25.0, rate)
        power = spectrum**2
        total_power = float(np.sum(power))
        features[22] = tremor
        features[23] = tremor / (total_power - power[0] + EPSILON)

        features[24] = float(np.sum(freqs * spectrum)) / (float(np.sum(spectrum)) + EPSILON)
        probabilities = power / (total_power + EPSILON)
        probabilities = probabilities[probabilities > 0]
        features[25] = -float(np.sum(probabilities * np.log2(probabilities)))

        features[26] = self._correlation(x, y)
        features[27] = self._correlation(y, z)
        features[28] = self._correlation(x, z)
        features[29] = self._approximate_entropy(mag)

        return features

    def assess_quality(self, features: np.ndarray) -> float:
        """Score 0 for no captured motion, 0.1 for non-finite features, else 1."""
        score = 1.0
        if float(np.sum(np.abs(features))) < 0.001:
            score = 0.0
        if not np.all(np.isfinite(features)):
            score *= 0.1
        return score

    # ------------------------------------------------------------------
    # Rolling buffer
    # ------------------------------------------------------------------

    def feed_sample(self, x: float, y: float, z: float) -> None:
        """Append one sample, overwriting the oldest once the buffer is full."""
        with self._buffer_lock:
            self._buffer[self._write_index] = (x, y, z)
            self._write_index = (self._write_index + 1) % self.buffer_capacity
            self._count = min(self._count + 1, self.buffer_capacity)

    def feed_samples(self, accel) -> None:
        """Append a batch of samples in order."""
        if not isinstance(accel, AccelerationData):
            accel = AccelerationData.from_axes(accel)
        for sample in zip(accel.x, accel.y, accel.z):
            self.feed_sample(*sample)

    @property
    def buffered_samples(self) -> int:
        return self._count

    def get_recent_buffer(self) -> Optional[np.ndarray]:
        """
        Features of the buffered window, oldest sample first.

        Returns None until at least five seconds of samples are buffered.
        """
        with self._buffer_lock:
            if self._count < self.sample_rate * MIN_MOVEMENT_BUFFER_SECONDS:
                return None
            if self._count < self.buffer_capacity:
                window = self._buffer[: self._count].copy()
            else:
                window = np.roll(self._buffer, -self._write_index, axis=0)

        features = self.extract_features(
            AccelerationData(window[:, 0], window[:, 1], window[:, 2])
        )
        window.fill(0.0)
        return features

    def clear_buffer(self) -> None:
        """Drop (and zero) every buffered sample."""
        with self._buffer_lock:
            self._buffer.fill(0.0)
            self._write_index = 0
            self._count = 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _autocorrelation(signal: np.ndarray, lag: int) -> float:
        n = len(signal)
        if lag <= 0 or lag >= n:
            return 0.0
        centered = signal - np.mean(signal)
        numerator = float(np.dot(centered[: n - lag], centered[lag:]))
        return numerator / (float(np.dot(centered, centered)) + EPSILON)

    @staticmethod
    def _correlation(a: np.ndarray, b: np.ndarray) -> float:
        da = a - np.mean(a)
        db = b - np.mean(b)
        return float(np.dot(da, db)) / (
            float(np.sqrt(np.dot(da, da) * np.dot(db, db))) + EPSILON
        )

    @staticmethod
    def _approximate_entropy(signal: np.ndarray) -> float:
        # Simplified: counts length-2 matches among the leading samples
        n = len(signal)
        r = 0.2 * float(np.std(signal))
        w = min(n - 2, APPROX_ENTROPY_WINDOW)
        head = signal[:w]
        follow = signal[1 : w + 1]
        close = (np.abs(head[:, None] - head[None, :]) < r) & (
            np.abs(follow[:, None] - follow[None, :]) < r
        )
        count = int(np.count_nonzero(np.triu(close, k=1)))
        return float(-np.log((count + 1) / (n * n + 1)))
