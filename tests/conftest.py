"""Shared fixtures: synthetic captures and engines with scripted outputs."""

import numpy as np
import pytest

from pulseid import synthetic
from pulseid.cardiac import CardiacEngine
from pulseid.constants import CARDIAC_FEATURE_DIM, MOVEMENT_FEATURE_DIM, TOUCH_FEATURE_DIM
from pulseid.identity_manager import IdentityManager
from pulseid.movement import MovementEngine
from pulseid.storage import InMemoryEnrollmentStore
from pulseid.touch import TouchEngine


class ScriptedCardiacEngine(CardiacEngine):
    """Returns fixed features, quality and liveness; counts calls."""

    def __init__(self, features, quality=1.0, liveness=1.0):
        super().__init__()
        self.features = np.asarray(features, dtype=np.float64)
        self.quality = quality
        self.liveness = liveness
        self.extract_calls = 0
        self.liveness_calls = 0

    def extract_features(self, ppg):
        self.extract_calls += 1
        return self.features.copy()

    def assess_quality(self, features):
        return self.quality

    def check_liveness(self, ppg):
        self.liveness_calls += 1
        return self.liveness


class ScriptedMovementEngine(MovementEngine):
    def __init__(self, features):
        super().__init__()
        self.features = np.asarray(features, dtype=np.float64)
        self.buffer_features = None

    def extract_features(self, accel):
        return self.features.copy()

    def get_recent_buffer(self):
        if self.buffer_features is None:
            return None
        return np.array(self.buffer_features, dtype=np.float64)


class ScriptedTouchEngine(TouchEngine):
    def __init__(self, features):
        super().__init__()
        self.features = np.asarray(features, dtype=np.float64)
        self.buffer_features = None

    def extract_features(self, events):
        return self.features.copy()

    def get_recent_buffer(self):
        if self.buffer_features is None:
            return None
        return np.array(self.buffer_features, dtype=np.float64)


@pytest.fixture
def feature_vectors():
    rng = np.random.default_rng(7)
    return {
        "cardiac": rng.uniform(0.5, 1.5, CARDIAC_FEATURE_DIM),
        "movement": rng.uniform(0.5, 1.5, MOVEMENT_FEATURE_DIM),
        "touch": rng.uniform(0.5, 1.5, TOUCH_FEATURE_DIM),
    }


@pytest.fixture
def scripted_engines(feature_vectors):
    return {
        "cardiac": ScriptedCardiacEngine(feature_vectors["cardiac"]),
        "movement": ScriptedMovementEngine(feature_vectors["movement"]),
        "touch": ScriptedTouchEngine(feature_vectors["touch"]),
    }


@pytest.fixture
def store():
    return InMemoryEnrollmentStore()


@pytest.fixture
def scripted_manager(scripted_engines, store):
    manager = IdentityManager(
        store=store,
        cardiac_engine=scripted_engines["cardiac"],
        movement_engine=scripted_engines["movement"],
        touch_engine=scripted_engines["touch"],
        drift_rate=0.01,
        continuous_interval=0.01,
        hash_algorithm="sha256",
    )
    yield manager
    manager.stop_continuous_auth()


@pytest.fixture
def enrolled_manager(scripted_manager):
    # Scripted engines ignore their inputs
    scripted_manager.enroll([0.0], [[0.0], [0.0], [0.0]], [])
    return scripted_manager


@pytest.fixture(scope="session")
def live_ppg():
    return synthetic.live_ppg(duration=60.0, seed=1)


@pytest.fixture(scope="session")
def replay_ppg():
    return synthetic.replay_ppg(duration=60.0)


@pytest.fixture(scope="session")
def walking():
    return synthetic.walking_acceleration(duration=10.0, seed=1)


@pytest.fixture(scope="session")
def touch_session():
    return synthetic.mixed_touch_session(seed=1)
