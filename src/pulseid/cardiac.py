"""
Cardiac feature extraction from a photoplethysmography (PPG) waveform.

The waveform is the reflected-light intensity of a fingertip pressed on the
camera lens with the flash on. Each cardiac cycle leaves a characteristic
pulse shape; this module turns a few tens of seconds of it into a 43-dim
feature vector, scores its quality, and separately estimates whether the
sample came from a live body.

Pipeline
--------
1. Zero-phase Butterworth band-pass, 0.5-4 Hz (30-240 BPM).
2. Systolic peak detection with a refractory distance set by 200 BPM.
3. Peak-to-peak beat segmentation and an averaged canonical beat.
4. Morphological (15), interval (8), variability (12) and spectral (8)
   feature groups, concatenated in that order.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

import numpy as np
from scipy import signal as sps
import structlog

from .constants import (
    BIOLOGICAL_ENTROPY_RANGE,
    CARDIAC_FEATURE_NAMES,
    EPSILON,
    IDENTICAL_RR_TOLERANCE_S,
    MAX_HEART_RATE,
    MAX_IDENTICAL_RR_FRACTION,
    MIN_CARDIAC_CYCLES,
    MIN_HEART_RATE,
    MIN_LIVENESS_CYCLES,
    MIN_PPG_SECONDS,
    MIN_RSA_RATIO,
    MIN_SDNN_MS,
    MORPHOLOGY_VARIANCE_RANGE,
    NORMAL_HEART_RATE_RANGE,
    PEAK_THRESHOLD_RATIO,
    PPG_BAND_HIGH_HZ,
    PPG_BAND_LOW_HZ,
    PPG_FILTER_ORDER,
    PPG_SAMPLE_RATE,
    RSA_BAND_HZ,
    SYNTHETIC_ENTROPY_LIMIT,
)
from .exceptions import CardiacSignalError
from .vector_math import (
    band_power,
    find_peaks,
    magnitude_spectrum,
    resample,
    sample_entropy,
)

# Initialize structured logger
logger = structlog.get_logger(__name__)

HEART_RATE_INDEX = CARDIAC_FEATURE_NAMES.index("heart_rate")
SDNN_INDEX = CARDIAC_FEATURE_NAMES.index("sdnn")

PPGInput = Union[Sequence[float], Sequence[Sequence[float]], np.ndarray]


@dataclass
class CardiacAnalysis:
    """Intermediate products shared by feature extraction and liveness."""

    filtered: np.ndarray
    peaks: List[int]
    rr_intervals: np.ndarray
    beats: List[np.ndarray] = field(default_factory=list)


@dataclass(frozen=True)
class LivenessMetrics:
    """
    Indicators of a live body measured over one waveform.

    Parameters
    ----------
    rsa_ratio : float
        Share of RR spectral power in the respiratory band.
    rr_entropy : float
        Sample entropy of the RR series.
    morphology_variance : float or None
        Mean squared deviation of unit-scaled beats from their average;
        None when too few beats were segmented.
    identical_rr_fraction : float
        Fraction of successive RR differences below 1 ms.
    """

    rsa_ratio: float
    rr_entropy: float
    morphology_variance: Optional[float]
    identical_rr_fraction: float


def score_liveness(metrics: LivenessMetrics) -> float:
    """
    Combine liveness indicators into a score in [0, 1].

    Each failed indicator multiplies the score by its penalty, so a single
    failure already drops a perfect score below the 0.7 gate.
    """
    score = 1.0

    if metrics.rsa_ratio < MIN_RSA_RATIO:
        score *= 0.5

    low_entropy, high_entropy = BIOLOGICAL_ENTROPY_RANGE
    if metrics.rr_entropy < low_entropy or metrics.rr_entropy > high_entropy:
        score *= 0.5
    if metrics.rr_entropy < SYNTHETIC_ENTROPY_LIMIT:
        score *= 0.3

    if metrics.morphology_variance is not None:
        min_variance, max_variance = MORPHOLOGY_VARIANCE_RANGE
        if metrics.morphology_variance < min_variance:
            score *= 0.4
        if metrics.morphology_variance > max_variance:
            score *= 0.6

    if metrics.identical_rr_fraction > MAX_IDENTICAL_RR_FRACTION:
        score *= 0.3

    return float(np.clip(score, 0.0, 1.0))


class CardiacEngine:
    """
    Pulse-waveform feature extractor, quality assessor and liveness checker.

    The engine is stateless apart from its filter design; one instance can
    serve enrollment and authentication alike.

    Parameters
    ----------
    sample_rate : int, default=PPG_SAMPLE_RATE
        Rate of the incoming waveform in Hz. Must exceed twice the upper
        band edge.

    Examples
    --------
    >>> engine = CardiacEngine()
    >>> features = engine.extract_features(ppg_samples)
    >>> features.shape
    (43,)
    """

    def __init__(self, sample_rate: int = PPG_SAMPLE_RATE) -> None:
        if sample_rate <= 2 * PPG_BAND_HIGH_HZ:
            raise ValueError(
                f"sample_rate must exceed {2 * PPG_BAND_HIGH_HZ} Hz, got {sample_rate}"
            )
        self.sample_rate = sample_rate
        self.min_peak_distance = int(sample_rate * 60 // MAX_HEART_RATE)
        self._sos = sps.butter(
            PPG_FILTER_ORDER,
            [PPG_BAND_LOW_HZ, PPG_BAND_HIGH_HZ],
            btype="bandpass",
            fs=sample_rate,
            output="sos",
        )
        # sosfiltfilt needs more samples than its edge padding
        self._min_filter_length = 3 * (2 * len(self._sos) + 1) + 1

        logger.debug(
            "CardiacEngine initialized",
            sample_rate=sample_rate,
            min_peak_distance=self.min_peak_distance,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def analyze(self, ppg: PPGInput) -> CardiacAnalysis:
        """
        Filter the waveform, detect systolic peaks and segment beats.

        Parameters
        ----------
        ppg : array-like
            The continuous waveform, or a list of channels whose first entry
            is the waveform.

        Returns
        -------
        CardiacAnalysis
            Filtered signal, peak indices, RR intervals (seconds) and beats.
        """
        raw = self._as_signal(ppg)
        # A flat trace has no pulse; filtering it only yields rounding noise
        if len(raw) < self._min_filter_length or np.ptp(raw) == 0:
            return CardiacAnalysis(
                filtered=raw.copy(), peaks=[], rr_intervals=np.zeros(0)
            )

        filtered = self.bandpass_filter(raw)
        peaks = find_peaks(filtered, self.min_peak_distance, PEAK_THRESHOLD_RATIO)
        rr_intervals = np.diff(np.asarray(peaks, dtype=np.float64)) / self.sample_rate
        beats = self._segment_beats(filtered, peaks)

        return CardiacAnalysis(
            filtered=filtered, peaks=peaks, rr_intervals=rr_intervals, beats=beats
        )

    def bandpass_filter(self, raw: np.ndarray) -> np.ndarray:
        """Zero-phase 0.5-4 Hz band-pass; suppresses DC and motion artifact."""
        return sps.sosfiltfilt(self._sos, np.asarray(raw, dtype=np.float64))

    def extract_features(self, ppg: PPGInput) -> np.ndarray:
        """
        Extract the 43-dimensional cardiac feature vector.

        Parameters
        ----------
        ppg : array-like
            At least five seconds of waveform at ``sample_rate``.

        Returns
        -------
        np.ndarray
            Feature vector laid out as ``CARDIAC_FEATURE_NAMES``.

        Raises
        ------
        CardiacSignalError
            ``signal_too_short`` for under five seconds of signal,
            ``insufficient_cycles`` for fewer than five detected beats.
        """
        raw = self._as_signal(ppg)
        min_samples = int(self.sample_rate * MIN_PPG_SECONDS)
        if len(raw) < min_samples:
            raise CardiacSignalError(
                "signal_too_short",
                "PPG signal too short. Need at least 5 seconds.",
                samples=len(raw),
                required_samples=min_samples,
            )

        analysis = self.analyze(raw)
        if len(analysis.peaks) < MIN_CARDIAC_CYCLES:
            raise CardiacSignalError(
                "insufficient_cycles",
                "Too few cardiac cycles detected. Check finger placement.",
                peaks_detected=len(analysis.peaks),
                required_peaks=MIN_CARDIAC_CYCLES,
            )

        features = np.concatenate(
            [
                self._morphological_features(analysis.beats),
                self._interval_features(analysis.rr_intervals),
                self._variability_features(analysis.rr_intervals),
                self._spectral_features(analysis.filtered),
            ]
        )

        logger.debug(
            "Cardiac features extracted",
            beats=len(analysis.beats),
            feature_dim=len(features),
        )
        return features

    def assess_quality(self, features: np.ndarray) -> float:
        """
        Score a cardiac feature vector in [0, 1].

        Enrollment rejects anything below 0.6.
        """
        score = 1.0

        heart_rate = features[HEART_RATE_INDEX]
        low, high = NORMAL_HEART_RATE_RANGE
        if heart_rate < MIN_HEART_RATE or heart_rate > MAX_HEART_RATE:
            score *= 0.3
        elif heart_rate < low or heart_rate > high:
            score *= 0.7

        # Very low variability means a flat or artifact signal
        if features[SDNN_INDEX] < MIN_SDNN_MS:
            score *= 0.4

        if not np.all(np.isfinite(features)):
            score *= 0.1

        return float(np.clip(score, 0.0, 1.0))

    def check_liveness(self, ppg: PPGInput) -> float:
        """
        Estimate whether the waveform came from a live body.

        Real hearts show respiratory sinus arrhythmia, biological levels of
        RR complexity, and slight beat-to-beat shape variation; recordings
        and synthesized signals usually miss at least one of them.

        Returns
        -------
        float
            Liveness score in [0, 1]; authentication above ``quick``
            requires at least 0.7.
        """
        analysis = self.analyze(ppg)
        if len(analysis.peaks) < MIN_LIVENESS_CYCLES:
            logger.info(
                "Liveness check found too few cycles",
                peaks_detected=len(analysis.peaks),
            )
            return 0.0

        metrics = self.liveness_metrics(analysis)
        score = score_liveness(metrics)
        logger.info(
            "Liveness check completed",
            liveness_score=score,
            rsa_ratio=metrics.rsa_ratio,
            rr_entropy=metrics.rr_entropy,
            morphology_variance=metrics.morphology_variance,
            identical_rr_fraction=metrics.identical_rr_fraction,
        )
        return score

    def liveness_metrics(self, analysis: CardiacAnalysis) -> LivenessMetrics:
        """Measure the four liveness indicators of an analysed waveform."""
        rr = analysis.rr_intervals

        # Respiratory modulation of heart rate
        mean_rr = float(np.mean(rr))
        rr_spectrum = magnitude_spectrum(rr - mean_rr)
        respiratory = band_power(rr_spectrum, *RSA_BAND_HZ, 1.0 / mean_rr)
        total_power = float(np.sum(rr_spectrum**2))
        rsa_ratio = respiratory / (total_power + EPSILON)

        # Beat-to-beat morphology, on beats scaled to unit peak
        morphology_variance = None
        if len(analysis.beats) >= MIN_CARDIAC_CYCLES:
            scale = float(np.max(np.abs(analysis.filtered))) + EPSILON
            morphology_variance = self._beat_morphology_variance(
                [beat / scale for beat in analysis.beats]
            )

        successive = np.abs(np.diff(rr))
        identical_fraction = (
            float(np.mean(successive < IDENTICAL_RR_TOLERANCE_S))
            if len(successive)
            else 1.0
        )

        return LivenessMetrics(
            rsa_ratio=rsa_ratio,
            rr_entropy=sample_entropy(rr, 2, 0.2),
            morphology_variance=morphology_variance,
            identical_rr_fraction=identical_fraction,
        )

    # ------------------------------------------------------------------
    # Feature groups
    # ------------------------------------------------------------------

    def _morphological_features(self, beats: List[np.ndarray]) -> np.ndarray:
        features = np.zeros(15)
        if not beats:
            return features

        rate = self.sample_rate
        avg_beat = self._average_beat(beats)
        beat_len = len(avg_beat)
        peak_idx = int(np.argmax(avg_beat))

        features[0] = avg_beat[peak_idx]

        # Diastolic notch: first local minimum after the systolic peak
        notch_idx = peak_idx
        for i in range(peak_idx + 1, beat_len - 1):
            if avg_beat[i] < avg_beat[i - 1] and avg_beat[i] < avg_beat[i + 1]:
                notch_idx = i
                break
        features[1] = avg_beat[notch_idx]

        # Pulse width at half amplitude
        half = avg_beat[peak_idx] * 0.5
        above = np.flatnonzero(avg_beat[:peak_idx] >= half)
        w50_start = int(above[0]) if len(above) else 0
        below = np.flatnonzero(avg_beat[peak_idx:] < half)
        w50_end = peak_idx + int(below[0]) if len(below) else beat_len - 1
        features[2] = (w50_end - w50_start) / rate

        features[3] = peak_idx / rate
        features[4] = (beat_len - peak_idx) / rate

        features[5] = float(np.sum(avg_beat[:notch_idx])) / rate
        features[6] = float(np.sum(avg_beat[notch_idx:])) / rate

        # Second difference at the peak
        if 0 < peak_idx < beat_len - 1:
            features[7] = (
                avg_beat[peak_idx - 1] - 2 * avg_beat[peak_idx] + avg_beat[peak_idx + 1]
            )

        features[8] = features[3] / (features[3] + features[4] + EPSILON)
        features[9] = features[1] / (features[0] + EPSILON)
        features[10] = features[6] / (features[5] + EPSILON)
        features[11] = features[0] / (features[3] + EPSILON)
        features[12] = peak_idx / (beat_len + EPSILON)
        features[13] = (notch_idx - peak_idx) / rate
        features[14] = features[0] / (float(np.mean(avg_beat)) + EPSILON)

        return features

    @staticmethod
    def _interval_features(rr: np.ndarray) -> np.ndarray:
        # A single optical sensor cannot isolate transit time or the
        # pre-ejection period; the sub-intervals are fixed fractions of RR.
        mean_rr = float(np.mean(rr))
        return np.array(
            [
                mean_rr,
                60.0 / mean_rr,
                0.0,
                0.0,
                mean_rr * 0.35,
                mean_rr * 0.40,
                mean_rr * 0.35,
                mean_rr * 0.65,
            ]
        )

    @staticmethod
    def _variability_features(rr: np.ndarray) -> np.ndarray:
        features = np.zeros(12)
        n = len(rr)
        mean_rr = float(np.mean(rr))
        successive = np.diff(rr)

        sdnn = float(np.std(rr))
        features[0] = sdnn * 1000
        features[1] = float(np.sqrt(np.mean(successive**2))) * 1000
        features[2] = float(np.mean(np.abs(successive) > 0.05))

        spectrum = magnitude_spectrum(rr - mean_rr)
        rr_rate = 1.0 / mean_rr
        features[3] = band_power(spectrum, 0.003, 0.04, rr_rate)
        features[4] = band_power(spectrum, 0.04, 0.15, rr_rate)
        features[5] = band_power(spectrum, 0.15, 0.4, rr_rate)
        features[6] = features[4] / (features[5] + EPSILON)

        features[7] = sample_entropy(rr, 2, 0.2)

        # Poincare plot descriptors
        x1 = successive / np.sqrt(2)
        x2 = (rr[1:] + rr[:-1]) / np.sqrt(2)
        features[8] = float(np.sqrt(np.mean(x1**2))) * 1000
        features[9] = float(np.sqrt(np.mean((x2 - mean_rr * np.sqrt(2)) ** 2))) * 1000
        features[10] = features[8] / (features[9] + EPSILON)

        # Approximate triangular index
        features[11] = n / (sdnn * 128 + EPSILON)

        return features

    def _spectral_features(self, filtered: np.ndarray) -> np.ndarray:
        features = np.zeros(8)
        spectrum = magnitude_spectrum(filtered)
        n = len(spectrum)
        freq_res = self.sample_rate / len(filtered)
        freqs = np.arange(n) * freq_res

        fundamental = int(np.argmax(spectrum[1:])) + 1
        max_mag = spectrum[fundamental]
        features[0] = fundamental * freq_res

        for harmonic in range(2, 6):
            index = min(fundamental * harmonic, n - 1)
            features[harmonic - 1] = spectrum[index] / (max_mag + EPSILON)

        total_mag = float(np.sum(spectrum))
        centroid = float(np.sum(freqs * spectrum)) / (total_mag + EPSILON)
        features[5] = centroid
        features[6] = np.sqrt(
            float(np.sum(spectrum * (freqs - centroid) ** 2)) / (total_mag + EPSILON)
        )

        # Frequency below which 85% of the energy lies
        energy = np.cumsum(spectrum**2)
        rolloff = np.flatnonzero(energy >= 0.85 * energy[-1])
        features[7] = rolloff[0] * freq_res if len(rolloff) else 0.0

        return features

    # ------------------------------------------------------------------
    # Beat helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _as_signal(ppg: PPGInput) -> np.ndarray:
        if _is_channel_list(ppg):
            ppg = ppg[0]
        array = np.asarray(ppg, dtype=np.float64)
        if array.ndim == 2:
            array = array[0]
        return array.ravel()

    @staticmethod
    def _segment_beats(filtered: np.ndarray, peaks: List[int]) -> List[np.ndarray]:
        return [
            filtered[start:end]
            for start, end in zip(peaks[:-1], peaks[1:])
            if start < end <= len(filtered)
        ]

    @staticmethod
    def _average_beat(beats: List[np.ndarray]) -> np.ndarray:
        target_len = sorted(len(beat) for beat in beats)[len(beats) // 2]
        return np.mean([resample(beat, target_len) for beat in beats], axis=0)

    def _beat_morphology_variance(self, beats: List[np.ndarray]) -> float:
        average = self._average_beat(beats)
        resampled = np.vstack([resample(beat, len(average)) for beat in beats])
        return float(np.mean((resampled - average) ** 2))


def _is_channel_list(ppg) -> bool:
    """True for a list of channel sequences rather than a flat waveform."""
    if isinstance(ppg, np.ndarray):
        return False
    return len(ppg) > 0 and isinstance(ppg[0], (list, tuple, np.ndarray))
