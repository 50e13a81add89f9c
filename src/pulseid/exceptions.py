"""
Custom exception classes for the PulseID identity engine.

This module defines the exception hierarchy used across the engines and the
identity manager. Enrollment problems and programming errors are raised;
authentication failures are never raised out of
:meth:`pulseid.identity_manager.IdentityManager.authenticate` and are
reported as a returned :class:`pulseid.data_models.AuthResult` instead.
"""

from typing import Optional, Dict, Any


class PulseIdError(Exception):
    """
    Base exception class for all PulseID related errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    context : dict, optional
        Additional context information about the error. Never carries raw
        biometric samples or feature vectors.
    error_code : str, optional
        Unique error code for programmatic handling.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message = message
        self.context = context or {}
        self.error_code = error_code
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return a formatted string representation of the error."""
        parts = [self.message]

        if self.error_code:
            parts.append(f"[Error Code: {self.error_code}]")

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"[Context: {context_str}]")

        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the exception to a dictionary for structured logging.

        Returns
        -------
        dict
            Dictionary representation of the exception.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class VectorError(PulseIdError):
    """
    Exception raised when two compared vectors have different dimensions.

    This is a caller bug, not a security event, and should never be caught
    and turned into an authentication result.
    """

    def __init__(self, left_dim: int, right_dim: int, operation: str = "compare") -> None:
        message = f"Vector dimension mismatch: {left_dim} vs {right_dim}"
        context = {"left_dim": left_dim, "right_dim": right_dim, "operation": operation}
        super().__init__(message, context, "VECTOR_001")


class SignalProcessingError(PulseIdError):
    """
    Exception raised when a modality engine cannot process its input.

    Parameters
    ----------
    message : str
        Human-readable error message.
    modality : str, optional
        Modality whose processing failed.
    """

    def __init__(
        self,
        message: str,
        modality: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.get("context", {})
        if modality:
            context["modality"] = modality

        super().__init__(message, context, kwargs.get("error_code"))


class CardiacSignalError(SignalProcessingError):
    """
    Exception raised when a pulse waveform cannot yield a feature vector.

    The ``code`` is one of ``signal_too_short`` or ``insufficient_cycles``.
    """

    def __init__(self, code: str, message: str, **context) -> None:
        self.code = code
        super().__init__(
            message, modality="cardiac", context=dict(context), error_code=code
        )


class EnrollmentError(PulseIdError):
    """
    Exception raised when the enrollment ceremony must be aborted.

    Parameters
    ----------
    code : str
        One of ``cardiac_quality``, ``signal_too_short`` or
        ``insufficient_cycles``.
    message : str
        Instructions suitable for asking the user to retry.
    """

    def __init__(self, code: str, message: str, **context) -> None:
        self.code = code
        super().__init__(message, dict(context), code)


class ModalityRequirementError(PulseIdError):
    """Exception raised when a live sample cannot satisfy an auth level."""

    def __init__(self, reason: str, level: str, available: list) -> None:
        self.reason = reason
        message = f"Live sample does not satisfy auth level '{level}': {reason}"
        context = {"level": level, "available_modalities": available}
        super().__init__(message, context, reason)


class StorageError(PulseIdError):
    """Exception raised when the enrollment record cannot be read or written."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs) -> None:
        context = kwargs.get("context", {})
        if path:
            context["path"] = path

        super().__init__(message, context, kwargs.get("error_code", "STORAGE_001"))


class ConfigurationError(PulseIdError):
    """
    Exception raised for configuration-related errors.

    This includes invalid configuration values or unsupported hash
    algorithms.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key
        if config_value:
            context["config_value"] = config_value

        super().__init__(message, context, kwargs.get("error_code", "CONFIG_001"))
