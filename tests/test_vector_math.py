"""Tests for the shared vector and signal primitives."""

import numpy as np
import pytest

from pulseid.exceptions import VectorError
from pulseid.vector_math import (
    band_power,
    compute_stats,
    cosine_similarity,
    euclidean_distance,
    find_peaks,
    magnitude_spectrum,
    resample,
    sample_entropy,
    weighted_combine,
    z_score_normalize,
    zero_vector,
)


class TestCosineSimilarity:

    def test_identical_vectors(self):
        a = np.array([0.3, -1.2, 4.0, 2.5])
        assert cosine_similarity(a, a) == pytest.approx(1.0)

    def test_scale_invariant(self):
        a = np.array([1.0, 2.0, 3.0])
        assert cosine_similarity(a, 7.5 * a) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1, 0, 0], [0, 1, 0]) == pytest.approx(0.0)

    def test_opposite(self):
        a = np.array([1.0, -2.0, 0.5])
        assert cosine_similarity(a, -a) == pytest.approx(-1.0)

    def test_zero_magnitude_is_exactly_zero(self):
        assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0
        assert cosine_similarity([1, 2, 3], [0, 0, 0]) == 0.0

    def test_dimension_mismatch_raises(self):
        with pytest.raises(VectorError) as excinfo:
            cosine_similarity([1, 2, 3], [1, 2])
        assert excinfo.value.context["left_dim"] == 3
        assert excinfo.value.context["right_dim"] == 2

    def test_result_is_bounded(self):
        rng = np.random.default_rng(0)
        for _ in range(20):
            a, b = rng.normal(size=(2, 50))
            assert -1.0 <= cosine_similarity(a, b) <= 1.0


class TestWeightedCombine:

    def test_exact_result(self):
        combined = weighted_combine([([1, 2], 0.5), ([3, 4], 0.3)])
        np.testing.assert_allclose(combined, [0.5, 1.0, 0.9, 1.2])

    def test_length_is_sum_of_inputs(self):
        combined = weighted_combine([(np.ones(43), 0.35), (np.ones(30), 0.25), (np.ones(25), 0.25)])
        assert len(combined) == 98

    def test_empty(self):
        assert len(weighted_combine([])) == 0


class TestZeroVector:

    def test_overwrites_in_place(self):
        v = np.array([1.5, -2.0, 3.25])
        zero_vector(v)
        assert np.all(v == 0.0)


class TestDistancesAndStats:

    def test_euclidean_distance(self):
        assert euclidean_distance([0, 0], [3, 4]) == pytest.approx(5.0)

    def test_euclidean_mismatch(self):
        with pytest.raises(VectorError):
            euclidean_distance([0, 0], [1, 2, 3])

    def test_compute_stats(self):
        mean, std = compute_stats([[1, 2], [3, 2]])
        np.testing.assert_allclose(mean, [2, 2])
        np.testing.assert_allclose(std, [1, 0])

    def test_z_score_treats_zero_std_as_one(self):
        result = z_score_normalize([3, 5], [2, 2], [1, 0])
        np.testing.assert_allclose(result, [1, 3])


class TestSampleEntropy:

    def test_constant_signal_is_zero(self):
        assert sample_entropy(np.ones(30)) == pytest.approx(0.0)

    def test_too_short_is_infinite(self):
        assert sample_entropy([1.0, 2.0, 3.0]) == float("inf")

    def test_noise_is_positive_and_finite(self):
        rng = np.random.default_rng(3)
        value = sample_entropy(rng.normal(size=300))
        assert np.isfinite(value)
        assert value > 0.5

    def test_matches_pairwise_definition(self):
        x = np.sin(np.linspace(0, 6 * np.pi, 60)) + 0.3 * np.random.default_rng(5).normal(size=60)
        m, tolerance = 2, 0.2 * np.std(x)
        b = a = 0
        for i in range(len(x) - m):
            for j in range(i + 1, len(x) - m):
                if np.max(np.abs(x[i : i + m] - x[j : j + m])) <= tolerance:
                    b += 1
                    if abs(x[i + m] - x[j + m]) <= tolerance:
                        a += 1
        assert sample_entropy(x) == pytest.approx(-np.log(a / b))

    def test_long_series(self):
        x = np.sin(np.linspace(0, 400 * np.pi, 10000))
        assert np.isfinite(sample_entropy(x))

    def test_regular_signal_below_noise(self):
        rng = np.random.default_rng(3)
        regular = np.sin(np.linspace(0, 20 * np.pi, 300))
        assert sample_entropy(regular) < sample_entropy(rng.normal(size=300))


class TestFindPeaks:

    def test_threshold_is_relative_to_max(self):
        signal = [0, 1, 0, 0, 2, 0]
        assert find_peaks(signal, min_distance=1, threshold_ratio=0.5) == [4]

    def test_keeps_earliest_of_close_cluster(self):
        signal = [0, 3, 0, 2.9, 0, 0, 0, 0]
        assert find_peaks(signal, min_distance=5, threshold_ratio=0.5) == [1]

    def test_plateaus_are_not_peaks(self):
        assert find_peaks([0, 2, 2, 0], min_distance=1, threshold_ratio=0.1) == []

    def test_periodic_signal(self):
        t = np.arange(300)
        signal = np.cos(2 * np.pi * t / 30)
        peaks = find_peaks(signal, min_distance=10, threshold_ratio=0.5)
        # Endpoints never count, so the maximum at t=0 is skipped
        assert peaks[0] == 30
        assert len(peaks) == 9
        assert np.all(np.diff(peaks) == 30)


class TestSpectrum:

    def test_sine_lands_in_its_bin(self):
        n = 64
        signal = np.sin(2 * np.pi * 4 * np.arange(n) / n)
        spectrum = magnitude_spectrum(signal)
        assert len(spectrum) == n // 2
        assert int(np.argmax(spectrum)) == 4
        assert spectrum[4] == pytest.approx(0.5)

    def test_band_power_selects_bins(self):
        spectrum = np.zeros(32)
        spectrum[4] = 0.5
        # 64 Hz sample rate -> 1 Hz bins
        assert band_power(spectrum, 3.0, 5.0, 64.0) == pytest.approx(0.25)
        assert band_power(spectrum, 10.0, 20.0, 64.0) == 0.0


class TestResample:

    def test_linear_interpolation(self):
        np.testing.assert_allclose(resample([0, 1, 2], 5), [0, 0.5, 1, 1.5, 2])

    def test_endpoints_preserved(self):
        out = resample([3.0, 9.0, -1.0, 4.0], 11)
        assert out[0] == 3.0
        assert out[-1] == 4.0
