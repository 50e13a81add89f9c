"""
Utility functions and decorators for the PulseID identity engine.

This module provides the small helpers shared across the package: a timing
decorator for the expensive ceremony steps, the registration hash applied to
identity vectors, and filesystem helpers used by the file-backed store.
"""

import time
import hashlib
import functools
from typing import Any, Callable, TypeVar, Union
from pathlib import Path

import numpy as np
import structlog

from .constants import DEFAULT_HASH_ALGORITHM
from .exceptions import ConfigurationError

# Initialize structured logger
logger = structlog.get_logger(__name__)

# Type variable for generic decorators
F = TypeVar("F", bound=Callable[..., Any])


def timer(func: F) -> F:
    """
    Decorator to measure and log function execution time.

    Only the function name and duration are logged; arguments and return
    values never are, since they may carry biometric data.

    Parameters
    ----------
    func : Callable
        Function to be timed.

    Returns
    -------
    Callable
        Wrapped function with timing capability.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()

        try:
            result = func(*args, **kwargs)
            execution_time = (time.perf_counter() - start_time) * 1000

            logger.debug(
                "Function execution completed",
                function_name=func.__name__,
                module=func.__module__,
                execution_time_ms=execution_time,
                success=True,
            )

            return result

        except Exception as e:
            execution_time = (time.perf_counter() - start_time) * 1000

            logger.error(
                "Function execution failed",
                function_name=func.__name__,
                module=func.__module__,
                execution_time_ms=execution_time,
                error_type=type(e).__name__,
                success=False,
            )

            raise

    return wrapper


def hash_vector(vector: np.ndarray, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    """
    Hex digest of a vector's raw little-endian float64 bytes.

    The same vector always produces the same digest, so the value can be
    registered externally as an identity fingerprint.

    Parameters
    ----------
    vector : np.ndarray
        Identity vector to fingerprint.
    algorithm : str, default="sha256"
        Any ``hashlib`` algorithm with a 256-bit (or configurable) digest.

    Returns
    -------
    str
        Lowercase hexadecimal digest (64 characters for the supported set).

    Raises
    ------
    ConfigurationError
        If the algorithm is not available.

    Examples
    --------
    >>> len(hash_vector(np.zeros(3)))
    64
    """
    algorithm = algorithm.lower()
    raw = np.ascontiguousarray(vector, dtype="<f8").tobytes()

    if algorithm == "blake2b":
        return hashlib.blake2b(raw, digest_size=32).hexdigest()

    if algorithm not in hashlib.algorithms_available:
        raise ConfigurationError(
            f"Hash algorithm '{algorithm}' not available",
            config_key="ENROLLMENT_HASH_ALGORITHM",
            config_value=algorithm,
        )

    hasher = hashlib.new(algorithm)
    hasher.update(raw)
    return hasher.hexdigest()


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure directory exists, creating it if necessary.

    Parameters
    ----------
    path : Union[str, Path]
        Directory path.

    Returns
    -------
    Path
        Path object for the directory.
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
