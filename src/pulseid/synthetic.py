"""
Deterministic synthetic sensor data.

Generators for the three capture channels, used by the test suite and by
``scripts/generate_capture.py`` to produce capture files without hardware.
Every generator takes a ``seed`` and returns the same data for the same
arguments.

The live pulse waveform models respiratory sinus arrhythmia, beat-to-beat
amplitude variation and timing jitter, so it passes the liveness checks; the
replay waveform repeats one beat with an exact integer-sample period, which
is what a looped recording looks like to the cardiac engine.
"""

from typing import List, Optional

import numpy as np

from .constants import ACCEL_SAMPLE_RATE, PPG_SAMPLE_RATE
from .data_models import AccelerationData, TouchEvent, TouchEventType

GRAVITY = 9.81

# Pulse shape: systolic wave and the smaller reflected (dicrotic) wave,
# as (offset from beat onset in s, width in s, relative amplitude)
SYSTOLIC_WAVE = (0.15, 0.08, 1.0)
DICROTIC_WAVE = (0.45, 0.10, 0.2)


def _pulse(t: np.ndarray, onset: float, amplitude: float) -> np.ndarray:
    wave = np.zeros_like(t)
    for offset, width, relative in (SYSTOLIC_WAVE, DICROTIC_WAVE):
        wave += relative * np.exp(-0.5 * ((t - onset - offset) / width) ** 2)
    return amplitude * wave


def live_ppg(
    duration: float = 60.0,
    sample_rate: int = PPG_SAMPLE_RATE,
    heart_rate: float = 72.0,
    respiratory_rate_hz: float = 0.25,
    seed: int = 0,
) -> np.ndarray:
    """
    Pulse waveform of a resting, breathing person.

    Parameters
    ----------
    duration : float, default=60.0
        Length in seconds.
    sample_rate : int, default=PPG_SAMPLE_RATE
        Output rate in Hz.
    heart_rate : float, default=72.0
        Mean heart rate in BPM.
    respiratory_rate_hz : float, default=0.25
        Breathing frequency that modulates the beat intervals.
    seed : int, default=0
        Random seed.

    Returns
    -------
    np.ndarray
        Raw intensity samples including a DC level and slow baseline drift.
    """
    rng = np.random.default_rng(seed)
    n = int(duration * sample_rate)
    t = np.arange(n) / sample_rate
    mean_rr = 60.0 / heart_rate

    signal = np.zeros(n)
    onset = 0.0
    while onset < duration:
        breathing = np.sin(2 * np.pi * respiratory_rate_hz * onset)
        amplitude = (1.0 + 0.1 * breathing) * rng.normal(1.0, 0.05)
        signal += _pulse(t, onset, amplitude)
        rr = mean_rr + 0.05 * breathing + rng.normal(0.0, 0.025)
        onset += max(rr, 0.3)

    baseline = 100.0 + 0.1 * np.sin(2 * np.pi * 0.1 * t)
    return baseline + signal + rng.normal(0.0, 0.01, n)


def replay_ppg(
    duration: float = 60.0,
    sample_rate: int = PPG_SAMPLE_RATE,
    period_samples: int = 25,
) -> np.ndarray:
    """
    A single beat looped with an exact period, as a replayed recording.

    The default period of 25 samples at 30 Hz is 72 BPM.
    """
    n = int(duration * sample_rate)
    t = np.arange(n) / sample_rate
    period = period_samples / sample_rate

    signal = np.zeros(n)
    # Quarter-sample phase keeps each systolic maximum on a single sample
    phase = 0.25 / sample_rate
    for k in range(int(np.ceil(duration / period))):
        signal += _pulse(t, k * period + phase, 1.0)
    return 100.0 + signal


def walking_acceleration(
    duration: float = 10.0,
    sample_rate: int = ACCEL_SAMPLE_RATE,
    step_frequency: float = 1.8,
    seed: int = 0,
) -> AccelerationData:
    """Phone carried in hand while walking: vertical bounce at the step rate."""
    rng = np.random.default_rng(seed)
    n = int(duration * sample_rate)
    t = np.arange(n) / sample_rate
    phase = 2 * np.pi * step_frequency * t

    x = 0.6 * np.sin(phase / 2) + 0.2 * np.sin(phase) + rng.normal(0, 0.05, n)
    y = 1.2 + 0.4 * np.sin(phase + 0.5) + rng.normal(0, 0.05, n)
    z = GRAVITY + 1.5 * np.sin(phase) + 0.3 * np.sin(2 * phase) + rng.normal(0, 0.08, n)
    return AccelerationData(x, y, z)


def holding_acceleration(
    duration: float = 10.0,
    sample_rate: int = ACCEL_SAMPLE_RATE,
    tilt_degrees: float = 35.0,
    tremor_hz: float = 8.0,
    seed: int = 0,
) -> AccelerationData:
    """Phone held still for reading: tilted gravity, slow sway and hand tremor."""
    rng = np.random.default_rng(seed)
    n = int(duration * sample_rate)
    t = np.arange(n) / sample_rate
    tilt = np.radians(tilt_degrees) + 0.02 * np.sin(2 * np.pi * 0.3 * t)
    tremor = 0.03 * np.sin(2 * np.pi * tremor_hz * t)

    x = 0.1 * np.sin(2 * np.pi * 0.2 * t) + tremor + rng.normal(0, 0.01, n)
    y = GRAVITY * np.sin(tilt) + tremor + rng.normal(0, 0.01, n)
    z = GRAVITY * np.cos(tilt) + rng.normal(0, 0.01, n)
    return AccelerationData(x, y, z)


def tap_session(
    taps: int = 20,
    start_ms: float = 0.0,
    seed: int = 0,
    centre: Optional[tuple] = None,
) -> List[TouchEvent]:
    """
    Repeated taps around a target, each a down/move/up triple.

    Parameters
    ----------
    taps : int, default=20
        Number of taps.
    start_ms : float, default=0.0
        Timestamp of the first press.
    seed : int, default=0
        Random seed.
    centre : tuple of float, optional
        Target position in pixels; defaults to (540, 1600).
    """
    rng = np.random.default_rng(seed)
    cx, cy = centre or (540.0, 1600.0)
    events: List[TouchEvent] = []
    t = start_ms

    for _ in range(taps):
        x = cx + rng.normal(0, 12)
        y = cy + rng.normal(0, 15)
        pressure = float(np.clip(rng.normal(0.55, 0.08), 0.05, 1.0))
        area = float(rng.normal(0.3, 0.03))
        hold = float(rng.normal(95, 15))

        events.append(TouchEvent(t, x, y, pressure, area, TouchEventType.DOWN))
        events.append(
            TouchEvent(
                t + hold / 2,
                x + rng.normal(0, 1.5),
                y + rng.normal(0, 1.5),
                pressure * 1.05,
                area,
                TouchEventType.MOVE,
            )
        )
        events.append(TouchEvent(t + hold, x, y, pressure * 0.6, area, TouchEventType.UP))
        t += float(rng.normal(450, 60))

    return events


def swipe_session(
    swipes: int = 8,
    start_ms: float = 0.0,
    points_per_swipe: int = 12,
    seed: int = 0,
) -> List[TouchEvent]:
    """Upward scrolling swipes with a slight curve."""
    rng = np.random.default_rng(seed)
    events: List[TouchEvent] = []
    t = start_ms

    for _ in range(swipes):
        x0 = 540.0 + rng.normal(0, 20)
        y0 = 1700.0 + rng.normal(0, 25)
        length = float(rng.normal(700, 50))
        duration = float(rng.normal(220, 25))
        pressure = float(np.clip(rng.normal(0.45, 0.06), 0.05, 1.0))

        events.append(TouchEvent(t, x0, y0, pressure, 0.28, TouchEventType.DOWN))
        for i in range(1, points_per_swipe + 1):
            f = i / points_per_swipe
            events.append(
                TouchEvent(
                    t + f * duration,
                    x0 + 40.0 * np.sin(np.pi * f),
                    y0 - length * f,
                    pressure * (1.0 - 0.3 * f),
                    0.28,
                    TouchEventType.MOVE,
                )
            )
        events.append(
            TouchEvent(t + duration + 10, x0, y0 - length, 0.1, 0.2, TouchEventType.UP)
        )
        t += duration + float(rng.normal(600, 80))

    return events


def mixed_touch_session(seed: int = 0) -> List[TouchEvent]:
    """Taps followed by swipes, as captured during the enrollment ceremony."""
    taps = tap_session(seed=seed)
    swipes = swipe_session(start_ms=taps[-1].timestamp + 800.0, seed=seed + 1)
    return taps + swipes
