"""
Constants and protocol parameters for the PulseID identity engine.

This module centralizes the fixed parameters of the matching protocol:
feature dimensions, modality weights, per-level thresholds and the signal
processing constants each engine relies on. Values that a deployment may
tune live in :mod:`pulseid.config` instead.
"""

from typing import Dict, Final, Tuple

# =============================================================================
# Sample Rates
# =============================================================================

# Camera frame rate used for the finger-on-lens pulse waveform (Hz)
PPG_SAMPLE_RATE: Final[int] = 30

# Typical phone accelerometer rate (Hz)
ACCEL_SAMPLE_RATE: Final[int] = 100

# =============================================================================
# Feature Dimensions
# =============================================================================

CARDIAC_FEATURE_NAMES: Final[Tuple[str, ...]] = (
    # Morphological (15)
    "systolic_peak_amplitude",
    "diastolic_notch_depth",
    "pulse_width_50",
    "rise_time",
    "fall_time",
    "systolic_area",
    "diastolic_area",
    "peak_sharpness",
    "waveform_symmetry",
    "augmentation_index",
    "reflection_index",
    "stiffness_index",
    "crest_time",
    "delta_t",
    "pulse_amplitude_ratio",
    # Interval (8)
    "mean_rr",
    "heart_rate",
    "pulse_transit_time",
    "pre_ejection_period",
    "left_ventricular_ejection_time",
    "dicrotic_notch_time",
    "systolic_duration",
    "diastolic_duration",
    # Variability (12)
    "sdnn",
    "rmssd",
    "pnn50",
    "hrv_power_vlf",
    "hrv_power_lf",
    "hrv_power_hf",
    "lf_hf_ratio",
    "sample_entropy",
    "poincare_sd1",
    "poincare_sd2",
    "sd1_sd2_ratio",
    "triangular_index",
    # Spectral (8)
    "dominant_frequency",
    "second_harmonic_ratio",
    "third_harmonic_ratio",
    "fourth_harmonic_ratio",
    "fifth_harmonic_ratio",
    "spectral_centroid",
    "spectral_bandwidth",
    "spectral_rolloff",
)

MOVEMENT_FEATURE_NAMES: Final[Tuple[str, ...]] = (
    # Gait (12)
    "step_frequency",
    "step_regularity",
    "stride_symmetry",
    "x_mean",
    "x_std",
    "y_mean",
    "y_std",
    "z_mean",
    "z_std",
    "magnitude_mean",
    "magnitude_std",
    "magnitude_rms",
    # Postural (8)
    "sway_energy_low",
    "sway_energy_mid",
    "tilt_x",
    "tilt_y",
    "tilt_z",
    "jerk_magnitude",
    "gravity_magnitude",
    "tilt_variability",
    # Device interaction (10)
    "peak_acceleration_change",
    "p95_acceleration_change",
    "micro_tremor_energy",
    "micro_tremor_ratio",
    "spectral_centroid",
    "spectral_entropy",
    "correlation_xy",
    "correlation_yz",
    "correlation_xz",
    "approximate_entropy",
)

TOUCH_FEATURE_NAMES: Final[Tuple[str, ...]] = (
    # Pressure (8)
    "pressure_mean",
    "pressure_std",
    "pressure_max",
    "pressure_min",
    "pressure_rise_rate",
    "pressure_skewness",
    "pressure_kurtosis",
    "contact_area_mean",
    # Timing (10)
    "inter_tap_mean",
    "inter_tap_std",
    "inter_tap_median",
    "hold_duration_mean",
    "hold_duration_std",
    "swipe_velocity_mean",
    "swipe_velocity_std",
    "swipe_acceleration",
    "rhythm_cv",
    "temporal_entropy",
    # Spatial (7)
    "centroid_x",
    "centroid_y",
    "spread_x",
    "spread_y",
    "hold_drift",
    "swipe_path_ratio",
    "horizontal_offset_spread",
)

CARDIAC_FEATURE_DIM: Final[int] = len(CARDIAC_FEATURE_NAMES)  # 43
MOVEMENT_FEATURE_DIM: Final[int] = len(MOVEMENT_FEATURE_NAMES)  # 30
TOUCH_FEATURE_DIM: Final[int] = len(TOUCH_FEATURE_NAMES)  # 25

# =============================================================================
# Modality Weights
# =============================================================================

# Weights applied before concatenation into the identity vector. The voice
# slot is reserved and never populated.
MODALITY_WEIGHTS: Final[Dict[str, float]] = {
    "cardiac": 0.35,
    "movement": 0.25,
    "touch": 0.25,
    "voice": 0.15,
}

# Weights for the movement/touch pair compared during continuous auth
CONTINUOUS_MODALITY_WEIGHT: Final[float] = 0.5

# =============================================================================
# Authentication Thresholds
# =============================================================================

AUTH_THRESHOLDS: Final[Dict[str, float]] = {
    "quick": 0.80,
    "standard": 0.90,
    "high": 0.95,
    "forensic": 0.98,
}

# Looser than any discrete level: catches a different person, not momentary
# variation.
CONTINUOUS_AUTH_THRESHOLD: Final[float] = 0.75

# Successful authentications above this similarity feed enrollment evolution
EVOLUTION_CONFIDENCE: Final[float] = 0.92

# Upper bound accepted for the configurable drift rate
MAX_DRIFT_RATE: Final[float] = 0.05

# =============================================================================
# Quality and Liveness Thresholds
# =============================================================================

MIN_CARDIAC_ENROLLMENT_QUALITY: Final[float] = 0.6

MIN_LIVENESS_SCORE: Final[float] = 0.7

# Touch is supplementary and never scores above this baseline
TOUCH_QUALITY_CAP: Final[float] = 0.8

# =============================================================================
# Cardiac Signal Processing
# =============================================================================

PPG_BAND_LOW_HZ: Final[float] = 0.5
PPG_BAND_HIGH_HZ: Final[float] = 4.0
PPG_FILTER_ORDER: Final[int] = 2

MIN_HEART_RATE: Final[float] = 40.0
MAX_HEART_RATE: Final[float] = 200.0
NORMAL_HEART_RATE_RANGE: Final[Tuple[float, float]] = (50.0, 150.0)

MIN_PPG_SECONDS: Final[float] = 5.0
MIN_CARDIAC_CYCLES: Final[int] = 5
MIN_LIVENESS_CYCLES: Final[int] = 10
PEAK_THRESHOLD_RATIO: Final[float] = 0.4

# Minimum SDNN (ms) before the signal is considered flat
MIN_SDNN_MS: Final[float] = 5.0

RSA_BAND_HZ: Final[Tuple[float, float]] = (0.15, 0.4)
MIN_RSA_RATIO: Final[float] = 0.05
BIOLOGICAL_ENTROPY_RANGE: Final[Tuple[float, float]] = (0.3, 3.0)
SYNTHETIC_ENTROPY_LIMIT: Final[float] = 0.1
MORPHOLOGY_VARIANCE_RANGE: Final[Tuple[float, float]] = (0.001, 0.5)
IDENTICAL_RR_TOLERANCE_S: Final[float] = 0.001
MAX_IDENTICAL_RR_FRACTION: Final[float] = 0.5

# =============================================================================
# Movement and Touch Buffers
# =============================================================================

MOVEMENT_BUFFER_SECONDS: Final[int] = 30
MIN_MOVEMENT_SECONDS: Final[float] = 2.0
MIN_MOVEMENT_BUFFER_SECONDS: Final[float] = 5.0

TOUCH_BUFFER_SIZE: Final[int] = 500
MIN_TOUCH_EVENTS: Final[int] = 5
MIN_TOUCH_BUFFER_EVENTS: Final[int] = 10

# =============================================================================
# Enrollment Record
# =============================================================================

ENROLLMENT_SCHEMA_VERSION: Final[int] = 1

DEFAULT_HASH_ALGORITHM: Final[str] = "sha256"

# Numerical floor used in ratio features
EPSILON: Final[float] = 1e-12
