"""
Configuration management for the PulseID identity engine.

This module handles configuration loading from environment variables and
.env files. Protocol constants that must never vary between enrollment and
authentication live in :mod:`pulseid.constants`; only deployment-level knobs
are read here.
"""

import os
import logging
import sys
from pathlib import Path
from typing import Optional

import structlog
from dotenv import load_dotenv

from .constants import DEFAULT_HASH_ALGORITHM, MAX_DRIFT_RATE
from .exceptions import ConfigurationError

# Load environment variables from .env file if it exists
load_dotenv()

# Digests accepted for the registration hash; all produce 256-bit output
SUPPORTED_HASH_ALGORITHMS = ("sha256", "sha3_256", "blake2b", "blake2s")

# =============================================================================
# Storage Configuration
# =============================================================================
# Default location of the enrollment record used by the CLI
ENROLLMENT_STORE_PATH: Path = Path(
    os.getenv(
        "ENROLLMENT_STORE_PATH", str(Path.home() / ".pulseid" / "enrollment.json")
    )
).expanduser()

# =============================================================================
# Logging Configuration
# =============================================================================
# Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# Render log events as JSON lines instead of console output
STRUCTURED_LOGGING: bool = os.getenv("STRUCTURED_LOGGING", "true").lower() == "true"

# =============================================================================
# Identity Protocol Configuration
# =============================================================================
# Digest applied to the raw identity vector bytes for registration
ENROLLMENT_HASH_ALGORITHM: str = os.getenv(
    "ENROLLMENT_HASH_ALGORITHM", DEFAULT_HASH_ALGORITHM
).lower()

# Fraction of the distance moved toward a live vector per evolution event
ENROLLMENT_DRIFT_RATE: float = float(os.getenv("ENROLLMENT_DRIFT_RATE", "0.01"))

# Seconds between continuous authentication checks
CONTINUOUS_AUTH_INTERVAL_SECONDS: float = float(
    os.getenv("CONTINUOUS_AUTH_INTERVAL_SECONDS", "5.0")
)

# =============================================================================
# Development and Debugging Configuration
# =============================================================================
# Enable debug mode (skips import-time validation)
DEBUG_MODE: bool = os.getenv("DEBUG_MODE", "false").lower() == "true"


# =============================================================================
# Configuration Validation
# =============================================================================
def validate_configuration() -> bool:
    """
    Validate the current configuration settings.

    Returns
    -------
    bool
        True if configuration is valid.

    Raises
    ------
    ConfigurationError
        If any configuration parameter is invalid.
    """
    errors = []

    if ENROLLMENT_HASH_ALGORITHM not in SUPPORTED_HASH_ALGORITHMS:
        errors.append(
            f"ENROLLMENT_HASH_ALGORITHM must be one of {list(SUPPORTED_HASH_ALGORITHMS)}"
        )

    if not 0.0 < ENROLLMENT_DRIFT_RATE <= MAX_DRIFT_RATE:
        errors.append(f"ENROLLMENT_DRIFT_RATE must be in (0, {MAX_DRIFT_RATE}]")

    if CONTINUOUS_AUTH_INTERVAL_SECONDS <= 0:
        errors.append("CONTINUOUS_AUTH_INTERVAL_SECONDS must be positive")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if LOG_LEVEL not in valid_log_levels:
        errors.append(f"LOG_LEVEL must be one of {valid_log_levels}")

    if errors:
        raise ConfigurationError(
            "Configuration validation failed:\n"
            + "\n".join(f"- {error}" for error in errors),
            context={"error_count": len(errors)},
        )

    return True


def get_config_summary() -> dict:
    """
    Get a summary of the current configuration.

    Returns
    -------
    dict
        Dictionary containing key configuration parameters.
    """
    return {
        "storage": {
            "enrollment_store_path": str(ENROLLMENT_STORE_PATH),
        },
        "identity": {
            "hash_algorithm": ENROLLMENT_HASH_ALGORITHM,
            "drift_rate": ENROLLMENT_DRIFT_RATE,
            "continuous_interval_seconds": CONTINUOUS_AUTH_INTERVAL_SECONDS,
        },
        "logging": {
            "level": LOG_LEVEL,
            "structured": STRUCTURED_LOGGING,
        },
        "debug_mode": DEBUG_MODE,
    }


def configure_logging(
    level: Optional[str] = None, structured: Optional[bool] = None
) -> None:
    """
    Configure structlog for the process.

    Library code only ever calls ``structlog.get_logger``; applications (the
    CLI included) call this once at start-up.

    Parameters
    ----------
    level : str, optional
        Log level name. Defaults to ``LOG_LEVEL``.
    structured : bool, optional
        Render JSON lines when True. Defaults to ``STRUCTURED_LOGGING``.
    """
    level_name = (level or LOG_LEVEL).upper()
    use_json = STRUCTURED_LOGGING if structured is None else structured

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level_name, logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# Validate configuration on import
if not DEBUG_MODE:
    validate_configuration()
