"""
Touch behaviour feature extraction.

Turns a stream of touchscreen events into a 25-dim signature of pressure
habits, tap rhythm and finger placement. Touch is a supplementary modality:
its quality score is capped below the other engines.
"""

import threading
from collections import deque
from typing import Deque, Iterable, List, Optional, Sequence

import numpy as np
import structlog
from scipy import stats

from .constants import (
    MIN_TOUCH_BUFFER_EVENTS,
    MIN_TOUCH_EVENTS,
    TOUCH_BUFFER_SIZE,
    TOUCH_FEATURE_DIM,
    TOUCH_QUALITY_CAP,
)
from .data_models import TouchEvent, TouchEventType

# Initialize structured logger
logger = structlog.get_logger(__name__)


def _shape_moments(values: np.ndarray):
    """Population skewness and excess kurtosis; both 0 for a constant series."""
    if len(values) < 2 or np.std(values) == 0:
        return 0.0, 0.0
    return float(stats.skew(values)), float(stats.kurtosis(values))


def _interval_entropy(intervals: np.ndarray) -> float:
    total = float(np.sum(np.abs(intervals)))
    if total == 0:
        return 0.0
    p = np.abs(intervals) / total
    p = p[p > 0]
    return float(-np.sum(p * np.log2(p)))


def _preceding_down(downs: Sequence[TouchEvent], timestamp: float) -> Optional[TouchEvent]:
    latest = None
    for event in downs:
        if event.timestamp > timestamp:
            break
        latest = event
    return latest


class TouchEngine:
    """
    Touch event feature extractor with a bounded event buffer.

    Parameters
    ----------
    buffer_size : int, default=TOUCH_BUFFER_SIZE
        Maximum number of recent events retained for continuous auth.
    """

    def __init__(self, buffer_size: int = TOUCH_BUFFER_SIZE) -> None:
        self._events: Deque[TouchEvent] = deque(maxlen=buffer_size)
        self._buffer_lock = threading.Lock()

    def extract_features(self, events: Iterable[TouchEvent]) -> np.ndarray:
        """
        Extract the 25-dimensional touch feature vector.

        Parameters
        ----------
        events : iterable of TouchEvent or dict
            Events in chronological order.

        Returns
        -------
        np.ndarray
            Feature vector laid out as ``TOUCH_FEATURE_NAMES``; all zeros when
            fewer than five events are supplied.
        """
        events = [e if isinstance(e, TouchEvent) else TouchEvent.from_dict(e) for e in events]
        features = np.zeros(TOUCH_FEATURE_DIM)
        if len(events) < MIN_TOUCH_EVENTS:
            logger.debug("Not enough touch events", events=len(events))
            return features

        downs = [e for e in events if e.type is TouchEventType.DOWN]
        moves = [e for e in events if e.type is TouchEventType.MOVE]
        ups = [e for e in events if e.type is TouchEventType.UP]

        # === Pressure (8) ===
        pressures = np.array([e.pressure for e in events if e.pressure > 0])
        if len(pressures):
            down_pressures = np.array([e.pressure for e in downs])
            skewness, kurtosis = _shape_moments(pressures)
            features[0] = np.mean(pressures)
            features[1] = np.std(pressures)
            features[2] = np.max(pressures)
            features[3] = np.min(pressures)
            features[4] = np.mean(np.diff(down_pressures)) if len(down_pressures) > 1 else 0.0
            features[5] = skewness
            features[6] = kurtosis
            features[7] = np.mean([e.area for e in events])

        # === Timing (10) ===
        if len(downs) > 1:
            intervals = np.diff([e.timestamp for e in downs])
            features[8] = np.mean(intervals)
            features[9] = np.std(intervals)
            features[10] = np.median(intervals)

            holds = self._hold_durations(downs, ups)
            if holds:
                features[11] = np.mean(holds)
                features[12] = np.std(holds)

            velocities = self._swipe_velocities(moves)
            if len(velocities):
                features[13] = np.mean(velocities)
                features[14] = np.std(velocities)
            if len(velocities) > 1:
                features[15] = np.mean(np.abs(np.diff(velocities)))

            mean_interval = float(np.mean(intervals))
            features[16] = np.std(intervals) / mean_interval if mean_interval > 0 else 0.0
            features[17] = _interval_entropy(intervals)

        # === Spatial (7) ===
        if downs:
            xs = np.array([e.x for e in downs])
            ys = np.array([e.y for e in downs])
            features[18] = np.mean(xs)
            features[19] = np.mean(ys)
            features[20] = np.std(xs)
            features[21] = np.std(ys)

            drifts = []
            for move in moves:
                anchor = _preceding_down(downs, move.timestamp)
                if anchor is not None:
                    drifts.append(np.hypot(move.x - anchor.x, move.y - anchor.y))
            if drifts:
                features[22] = np.mean(drifts)

            if len(moves) > 2:
                path = np.array([(m.x, m.y) for m in moves])
                line_length = float(np.linalg.norm(path[-1] - path[0]))
                path_length = float(np.sum(np.linalg.norm(np.diff(path, axis=0), axis=1)))
                features[23] = path_length / line_length if line_length > 0 else 1.0

            features[24] = np.mean(np.abs(xs - np.median(xs)))

        return features

    def assess_quality(self, features: np.ndarray) -> float:
        """Score 0 for no captured touches, 0.1 for non-finite features, else the cap."""
        if float(np.sum(np.abs(features))) < 0.001:
            return 0.0
        if not np.all(np.isfinite(features)):
            return 0.1
        return TOUCH_QUALITY_CAP

    def feed_event(self, event: TouchEvent) -> None:
        """Append an event; the oldest is dropped once the buffer is full."""
        if not isinstance(event, TouchEvent):
            event = TouchEvent.from_dict(event)
        with self._buffer_lock:
            self._events.append(event)

    @property
    def buffered_events(self) -> int:
        return len(self._events)

    def get_recent_buffer(self) -> Optional[np.ndarray]:
        """Features of the buffered events, or None under ten events."""
        with self._buffer_lock:
            if len(self._events) < MIN_TOUCH_BUFFER_EVENTS:
                return None
            events = list(self._events)
        return self.extract_features(events)

    def clear_buffer(self) -> None:
        with self._buffer_lock:
            self._events.clear()

    @staticmethod
    def _hold_durations(downs: List[TouchEvent], ups: List[TouchEvent]) -> List[float]:
        # Each release is paired with the most recent press before it
        holds = []
        for up in ups:
            anchor = _preceding_down(downs, up.timestamp)
            if anchor is not None:
                holds.append(up.timestamp - anchor.timestamp)
        return holds

    @staticmethod
    def _swipe_velocities(moves: List[TouchEvent]) -> np.ndarray:
        if len(moves) < 2:
            return np.zeros(0)
        t = np.array([m.timestamp for m in moves])
        xy = np.array([(m.x, m.y) for m in moves])
        dt = np.diff(t)
        step = np.linalg.norm(np.diff(xy, axis=0), axis=1)
        valid = dt > 0
        return step[valid] / dt[valid]
