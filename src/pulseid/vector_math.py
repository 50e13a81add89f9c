"""
Vector and signal primitives shared by every modality engine.

This module provides the comparison operations used by the identity manager
(cosine similarity, weighted concatenation, secure zeroing) together with the
small set of signal helpers the engines build on: sample entropy, peak
picking, a magnitude spectrum and band power.

All functions accept array-likes and operate on ``float64``. None of them
log their inputs: vectors passed here may be live biometric data.
"""

from typing import Iterable, List, Sequence, Tuple

import numpy as np

from .exceptions import VectorError


def _as_vector(values) -> np.ndarray:
    return np.asarray(values, dtype=np.float64).ravel()


def cosine_similarity(a, b) -> float:
    """
    Cosine similarity between two feature vectors.

    Parameters
    ----------
    a, b : array-like
        Vectors of identical length.

    Returns
    -------
    float
        Value in [-1, 1]; 1 means identical direction. Exactly 0.0 when
        either vector has zero magnitude.

    Raises
    ------
    VectorError
        If the vectors differ in length.

    Examples
    --------
    >>> cosine_similarity([1, 0, 0], [0, 1, 0])
    0.0
    """
    a = _as_vector(a)
    b = _as_vector(b)
    if len(a) != len(b):
        raise VectorError(len(a), len(b), operation="cosine_similarity")

    denom = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if denom == 0.0:
        return 0.0

    return float(np.clip(np.dot(a, b) / denom, -1.0, 1.0))


def euclidean_distance(a, b) -> float:
    """Euclidean distance between two vectors of identical length."""
    a = _as_vector(a)
    b = _as_vector(b)
    if len(a) != len(b):
        raise VectorError(len(a), len(b), operation="euclidean_distance")
    return float(np.linalg.norm(a - b))


def weighted_combine(modalities: Iterable[Tuple[Sequence[float], float]]) -> np.ndarray:
    """
    Concatenate modality vectors, scaling each one by its weight.

    The output length is the sum of the input lengths; segments keep the
    order in which they are supplied, so callers must use a consistent
    modality order.

    Parameters
    ----------
    modalities : iterable of (vector, weight)
        Feature vectors with their modality weights.

    Returns
    -------
    np.ndarray
        The combined vector.

    Examples
    --------
    >>> weighted_combine([([1, 2], 0.5), ([3, 4], 0.25)]).tolist()
    [0.5, 1.0, 0.75, 1.0]
    """
    segments = [_as_vector(vector) * weight for vector, weight in modalities]
    if not segments:
        return np.zeros(0, dtype=np.float64)
    return np.concatenate(segments)


def zero_vector(vector: np.ndarray) -> None:
    """
    Overwrite every element of ``vector`` with 0, in place.

    Must be applied to every transient live vector once it has been compared,
    and to the enrollment vector before it is dropped.
    """
    vector.fill(0.0)


def z_score_normalize(vector, mean, std) -> np.ndarray:
    """Normalize ``vector`` against per-feature statistics; zero std counts as 1."""
    vector = _as_vector(vector)
    mean = _as_vector(mean)
    std = _as_vector(std)
    if not len(vector) == len(mean) == len(std):
        raise VectorError(len(vector), len(mean), operation="z_score_normalize")
    safe_std = np.where(std == 0, 1.0, std)
    return (vector - mean) / safe_std


def compute_stats(vectors: Sequence[Sequence[float]]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Per-feature mean and population standard deviation of a vector set.

    Returns
    -------
    tuple of np.ndarray
        ``(mean, std)``.
    """
    if len(vectors) == 0:
        raise ValueError("compute_stats requires at least one vector")
    dims = {len(v) for v in vectors}
    if len(dims) != 1:
        dims_sorted = sorted(dims)
        raise VectorError(dims_sorted[0], dims_sorted[-1], operation="compute_stats")
    matrix = np.vstack([_as_vector(v) for v in vectors])
    return matrix.mean(axis=0), matrix.std(axis=0)


def sample_entropy(signal, m: int = 2, r: float = 0.2) -> float:
    """
    Sample entropy of a signal.

    Counts pairs of length-``m`` templates that match within a tolerance of
    ``r`` times the signal's standard deviation (B) and the subset of those
    that still match when extended to ``m + 1`` samples (A).

    Time is quadratic in the signal length; it is meant for short series
    such as a minute of RR intervals.

    Parameters
    ----------
    signal : array-like
        Input series, e.g. RR intervals.
    m : int, default=2
        Template length.
    r : float, default=0.2
        Tolerance as a fraction of the standard deviation.

    Returns
    -------
    float
        ``-ln(A / B)``; ``inf`` when no template matches exist.
    """
    x = _as_vector(signal)
    n = len(x)
    if n <= m + 1:
        return float("inf")

    tolerance = r * float(np.std(x))
    count = n - m

    # templates[i] = x[i : i + m] for i in range(n - m)
    templates = np.lib.stride_tricks.sliding_window_view(x, m)[:count]

    # One row of pairs at a time keeps memory linear in the signal length
    b = 0
    a = 0
    for i in range(count - 1):
        matches = np.max(np.abs(templates[i + 1 :] - templates[i]), axis=1) <= tolerance
        extended = np.abs(x[i + 1 + m :] - x[i + m]) <= tolerance
        b += int(np.count_nonzero(matches))
        a += int(np.count_nonzero(matches & extended))

    if b == 0 or a == 0:
        return float("inf")
    return float(-np.log(a / b))


def find_peaks(signal, min_distance: int = 10, threshold_ratio: float = 0.5) -> List[int]:
    """
    Indices of strict local maxima above ``threshold_ratio * max(signal)``.

    Accepted peaks are at least ``min_distance`` samples apart; within a
    cluster of closer candidates the earliest one wins.
    """
    x = _as_vector(signal)
    if len(x) < 3:
        return []

    threshold = threshold_ratio * float(np.max(x))
    interior = x[1:-1]
    is_peak = (interior > threshold) & (interior > x[:-2]) & (interior > x[2:])
    candidates = np.flatnonzero(is_peak) + 1

    peaks: List[int] = []
    for index in candidates:
        if not peaks or index - peaks[-1] >= min_distance:
            peaks.append(int(index))
    return peaks


def magnitude_spectrum(signal) -> np.ndarray:
    """
    Normalized DFT magnitude over the first ``n // 2`` bins.

    Bin ``k`` corresponds to ``k * sample_rate / n`` Hz.
    """
    x = _as_vector(signal)
    n = len(x)
    if n == 0:
        return np.zeros(0, dtype=np.float64)
    return np.abs(np.fft.rfft(x))[: n // 2] / n


def band_power(spectrum, low_hz: float, high_hz: float, sample_rate: float) -> float:
    """
    Sum of squared magnitudes for bins inside ``[low_hz, high_hz]``.

    ``spectrum`` is a half spectrum as produced by :func:`magnitude_spectrum`,
    so bin width is ``sample_rate / (2 * len(spectrum))``.
    """
    spectrum = _as_vector(spectrum)
    if len(spectrum) == 0:
        return 0.0
    freqs = np.arange(len(spectrum)) * sample_rate / (2 * len(spectrum))
    in_band = (freqs >= low_hz) & (freqs <= high_hz)
    return float(np.sum(spectrum[in_band] ** 2))


def resample(signal, length: int) -> np.ndarray:
    """Linearly interpolate ``signal`` onto ``length`` evenly spaced points."""
    x = _as_vector(signal)
    if length <= 0:
        return np.zeros(0, dtype=np.float64)
    if len(x) == 1 or length == 1:
        return np.full(length, x[0] if len(x) else 0.0)
    source = np.linspace(0.0, len(x) - 1, num=len(x))
    target = np.linspace(0.0, len(x) - 1, num=length)
    return np.interp(target, source, x)
