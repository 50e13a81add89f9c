"""
Enrollment record persistence.

The identity manager talks to storage only through the three-method
:class:`EnrollmentStore` contract. Encryption at rest is the host platform's
responsibility; these stores only guarantee that a saved record reloads bit
for bit.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

import structlog

from .data_models import EnrollmentData
from .exceptions import StorageError
from .utils import ensure_directory

# Initialize structured logger
logger = structlog.get_logger(__name__)


class EnrollmentStore(Protocol):
    """Save/load/delete contract for the single per-device enrollment record."""

    def get_enrollment(self) -> Optional[EnrollmentData]:
        ...

    def save_enrollment(self, data: EnrollmentData) -> None:
        ...

    def delete_enrollment(self) -> None:
        ...


class InMemoryEnrollmentStore:
    """
    Process-local store.

    Records are kept in serialized form so that callers never share the
    stored vector buffer with the live one.
    """

    def __init__(self) -> None:
        self._record: Optional[Dict[str, Any]] = None

    def get_enrollment(self) -> Optional[EnrollmentData]:
        if self._record is None:
            return None
        return EnrollmentData.from_dict(self._record)

    def save_enrollment(self, data: EnrollmentData) -> None:
        self._record = data.to_dict()

    def delete_enrollment(self) -> None:
        self._record = None


class FileEnrollmentStore:
    """
    Single JSON file store.

    Writes go to a temporary file in the same directory which then replaces
    the record, so a crash never leaves a half-written file behind.

    Parameters
    ----------
    path : str or Path
        Location of the enrollment record.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()

    def get_enrollment(self) -> Optional[EnrollmentData]:
        if not self.path.exists():
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                payload = json.load(f)
            return EnrollmentData.from_dict(payload)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise StorageError(
                f"Failed to read enrollment record: {e}", path=str(self.path)
            ) from e

    def save_enrollment(self, data: EnrollmentData) -> None:
        ensure_directory(self.path.parent)
        json_str = json.dumps(data.to_dict(), indent=2)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(json_str)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(
                f"Failed to write enrollment record: {e}", path=str(self.path)
            ) from e

        logger.debug("Saved enrollment record", path=str(self.path))

    def delete_enrollment(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(
                f"Failed to delete enrollment record: {e}", path=str(self.path)
            ) from e

        logger.debug("Deleted enrollment record", path=str(self.path))
