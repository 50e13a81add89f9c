"""
Data models for the PulseID identity engine.

This module defines the value types that cross the engine boundary: sensor
inputs, the persisted enrollment record, and the transient results handed
back to calling code. All models use dataclasses, following the same
validate-in-``__post_init__`` and ``to_dict`` conventions throughout.

Feature vectors are plain 1-D ``numpy.ndarray`` objects of ``float64``; the
:data:`FeatureVector` alias documents intent only.
"""

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence

import numpy as np

from .constants import AUTH_THRESHOLDS, ENROLLMENT_SCHEMA_VERSION

FeatureVector = np.ndarray


class Modality(str, Enum):
    """Sensing channels that contribute a sub-vector to the identity vector."""

    CARDIAC = "cardiac"
    MOVEMENT = "movement"
    TOUCH = "touch"


# Order in which modality segments are laid out in every combined vector
CANONICAL_ORDER = (Modality.CARDIAC, Modality.MOVEMENT, Modality.TOUCH)


class AuthLevel(str, Enum):
    """Strictness levels for discrete authentication."""

    QUICK = "quick"
    STANDARD = "standard"
    HIGH = "high"
    FORENSIC = "forensic"

    @property
    def threshold(self) -> float:
        """Minimum cosine similarity required at this level."""
        return AUTH_THRESHOLDS[self.value]

    @property
    def requires_liveness(self) -> bool:
        """Whether cardiac data and the liveness gate are mandatory."""
        return self is not AuthLevel.QUICK


class AuthFailureReason(str, Enum):
    """Reasons reported in an unsuccessful :class:`AuthResult`."""

    NOT_ENROLLED = "not_enrolled"
    NO_BIOMETRIC_DATA = "no_biometric_data"
    INSUFFICIENT_MODALITIES = "insufficient_modalities"
    SIGNAL_REJECTED = "signal_rejected"
    LIVENESS_FAILED = "liveness_failed"
    BELOW_THRESHOLD = "below_threshold"


class IdentityState(str, Enum):
    """Lifecycle state of the identity manager."""

    UNENROLLED = "unenrolled"
    LOCKED = "locked"
    AUTHENTICATED = "authenticated"


class TouchEventType(str, Enum):
    DOWN = "down"
    MOVE = "move"
    UP = "up"


@dataclass(frozen=True)
class TouchEvent:
    """
    A single touchscreen event.

    Parameters
    ----------
    timestamp : float
        Event time in milliseconds.
    x, y : float
        Screen position in pixels.
    pressure : float
        Normalized contact pressure.
    area : float
        Contact area reported by the digitizer.
    type : TouchEventType
        ``down``, ``move`` or ``up``.
    """

    timestamp: float
    x: float
    y: float
    pressure: float
    area: float
    type: TouchEventType

    def __post_init__(self) -> None:
        if not isinstance(self.type, TouchEventType):
            object.__setattr__(self, "type", TouchEventType(self.type))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TouchEvent":
        return cls(
            timestamp=float(data["timestamp"]),
            x=float(data["x"]),
            y=float(data["y"]),
            pressure=float(data.get("pressure", 0.0)),
            area=float(data.get("area", 0.0)),
            type=TouchEventType(data["type"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "x": self.x,
            "y": self.y,
            "pressure": self.pressure,
            "area": self.area,
            "type": self.type.value,
        }


@dataclass
class AccelerationData:
    """
    Triaxial acceleration captured at a fixed rate.

    Axes of unequal length are truncated to the shortest one.
    """

    x: np.ndarray
    y: np.ndarray
    z: np.ndarray

    def __post_init__(self) -> None:
        axes = [np.asarray(a, dtype=np.float64).ravel() for a in (self.x, self.y, self.z)]
        n = min(len(a) for a in axes)
        self.x, self.y, self.z = (a[:n] for a in axes)

    @classmethod
    def from_axes(cls, axes: Sequence[Sequence[float]]) -> "AccelerationData":
        """Build from a ``[x, y, z]`` sequence or a ``(3, n)`` array."""
        if len(axes) != 3:
            raise ValueError(f"Expected 3 acceleration axes, got {len(axes)}")
        return cls(axes[0], axes[1], axes[2])

    def __len__(self) -> int:
        return len(self.x)

    def magnitude(self) -> np.ndarray:
        return np.sqrt(self.x**2 + self.y**2 + self.z**2)


@dataclass
class LiveSample:
    """
    Live sensor data offered for authentication.

    Any field may be omitted; :attr:`available_modalities` reports which
    channels were actually supplied.
    """

    ppg: Optional[np.ndarray] = None
    acceleration: Optional[AccelerationData] = None
    touch_events: Optional[List[TouchEvent]] = None

    @property
    def available_modalities(self) -> FrozenSet[Modality]:
        available = set()
        if self.ppg is not None and len(self.ppg) > 0:
            available.add(Modality.CARDIAC)
        if self.acceleration is not None and len(self.acceleration) > 0:
            available.add(Modality.MOVEMENT)
        if self.touch_events:
            available.add(Modality.TOUCH)
        return frozenset(available)


@dataclass
class ModalityQuality:
    """
    Per-modality quality scores recorded at enrollment time.

    Parameters
    ----------
    cardiac, movement, touch : float
        Scores in [0, 1].
    overall : float
        Mean of the three measured scores.
    voice : float, optional
        Reserved for a future voice modality.
    """

    cardiac: float
    movement: float
    touch: float
    overall: float
    voice: Optional[float] = None

    @classmethod
    def from_scores(
        cls, cardiac: float, movement: float, touch: float
    ) -> "ModalityQuality":
        return cls(
            cardiac=cardiac,
            movement=movement,
            touch=touch,
            overall=(cardiac + movement + touch) / 3,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "cardiac": self.cardiac,
            "movement": self.movement,
            "touch": self.touch,
            "overall": self.overall,
        }
        if self.voice is not None:
            result["voice"] = self.voice
        return result


@dataclass
class EnrollmentData:
    """
    The persisted enrollment record. Exactly one exists per device.

    Parameters
    ----------
    vector : np.ndarray
        Weighted concatenation of the modality feature vectors. Only the
        identity manager's evolution step may write to it.
    hash : str
        Hex digest of the vector's raw bytes, used for external registration.
    timestamp : datetime
        Creation time (UTC).
    quality : ModalityQuality
        Quality scores measured during the enrollment ceremony.
    version : int
        Schema version of the record.
    """

    vector: np.ndarray
    hash: str
    quality: ModalityQuality
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = ENROLLMENT_SCHEMA_VERSION

    def __post_init__(self) -> None:
        if not isinstance(self.vector, np.ndarray) or self.vector.ndim != 1:
            raise ValueError("vector must be a 1D numpy array")
        if self.vector.dtype != np.float64:
            self.vector = self.vector.astype(np.float64)
        if not self.hash or not isinstance(self.hash, str):
            raise ValueError("hash must be a non-empty string")

    @property
    def dimension(self) -> int:
        return len(self.vector)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the record to a JSON-compatible dictionary.

        The vector is stored as base64 of its little-endian float64 bytes so
        that reloading reproduces it bit for bit.
        """
        raw = self.vector.astype("<f8", copy=False).tobytes()
        return {
            "vector": base64.b64encode(raw).decode("ascii"),
            "hash": self.hash,
            "timestamp": self.timestamp.isoformat(),
            "quality": self.quality.to_dict(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EnrollmentData":
        raw = base64.b64decode(data["vector"])
        vector = np.frombuffer(raw, dtype="<f8").astype(np.float64)
        return cls(
            vector=vector,
            hash=data["hash"],
            quality=ModalityQuality(**data["quality"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            version=int(data.get("version", ENROLLMENT_SCHEMA_VERSION)),
        )


@dataclass(frozen=True)
class AuthResult:
    """
    Outcome of one authentication attempt. Never persisted.

    ``confidence`` is the cosine similarity between the live and enrolled
    vectors (0.0 when no comparison took place).
    """

    success: bool
    confidence: float
    level: Optional[AuthLevel] = None
    reason: Optional[AuthFailureReason] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "confidence": self.confidence,
            "level": self.level.value if self.level else None,
            "reason": self.reason.value if self.reason else None,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class IdentityStatus:
    """Snapshot of the identity manager's state."""

    enrolled: bool
    authenticated: bool
    confidence: float
    continuous_active: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enrolled": self.enrolled,
            "authenticated": self.authenticated,
            "confidence": self.confidence,
            "continuous_active": self.continuous_active,
        }
