import sys
import json
import argparse
from pathlib import Path
from typing import Any, Dict, Optional, List
import structlog

from .config import ENROLLMENT_STORE_PATH, configure_logging, get_config_summary
from .data_models import AccelerationData, AuthLevel, LiveSample, TouchEvent
from .exceptions import EnrollmentError, PulseIdError
from .identity_manager import IdentityManager
from .storage import FileEnrollmentStore

# Initialize structured logger
logger = structlog.get_logger(__name__)


def load_capture(path: Path) -> Dict[str, Any]:
    """
    Read a capture file into engine inputs.

    A capture is a JSON object with optional ``ppg`` (list of floats),
    ``acceleration`` (``{"x": [...], "y": [...], "z": [...]}``) and
    ``touch_events`` (list of event objects) entries.
    """
    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)

    capture: Dict[str, Any] = {"ppg": None, "acceleration": None, "touch_events": None}
    if payload.get("ppg"):
        capture["ppg"] = payload["ppg"]
    if payload.get("acceleration"):
        accel = payload["acceleration"]
        capture["acceleration"] = AccelerationData(accel["x"], accel["y"], accel["z"])
    if payload.get("touch_events"):
        capture["touch_events"] = [TouchEvent.from_dict(e) for e in payload["touch_events"]]
    return capture


class PulseIdCLI:
    """Command-line interface for enrolling and authenticating against a capture file."""

    def __init__(self) -> None:
        self.parser = self._create_argument_parser()

    def _create_argument_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        parser = argparse.ArgumentParser(
            prog="pulseid",
            description="PulseID - Multi-modal biometric identity engine",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "--store",
            type=Path,
            default=ENROLLMENT_STORE_PATH,
            help=f"Enrollment record location. Default: {ENROLLMENT_STORE_PATH}",
        )

        subparsers = parser.add_subparsers(dest="command", required=True)

        enroll_parser = subparsers.add_parser(
            "enroll", help="Create the device identity from a capture file."
        )
        enroll_parser.add_argument("capture", type=Path, help="Capture JSON file.")

        auth_parser = subparsers.add_parser(
            "authenticate", help="Check a capture file against the enrollment."
        )
        auth_parser.add_argument("capture", type=Path, help="Capture JSON file.")
        auth_parser.add_argument(
            "--level",
            choices=[level.value for level in AuthLevel],
            default=AuthLevel.STANDARD.value,
            help="Authentication level. Default: standard.",
        )

        subparsers.add_parser("status", help="Show whether an identity is enrolled.")
        subparsers.add_parser("delete", help="Erase the enrollment record.")
        subparsers.add_parser("config", help="Print the active configuration.")

        return parser

    def _manager(self, args: argparse.Namespace) -> IdentityManager:
        return IdentityManager(store=FileEnrollmentStore(args.store))

    def _execute_enroll_command(self, args: argparse.Namespace) -> int:
        capture = load_capture(args.capture)
        missing = [name for name, value in capture.items() if value is None]
        if missing:
            print(
                f"\n[ERROR] Enrollment needs every channel; missing: {', '.join(missing)}",
                file=sys.stderr,
            )
            return 1

        try:
            enrollment = self._manager(args).enroll(
                capture["ppg"], capture["acceleration"], capture["touch_events"]
            )
        except EnrollmentError as e:
            print(f"\n[ENROLLMENT FAILED] {e.message} ({e.code})", file=sys.stderr)
            return 1

        print("\n" + "=" * 60)
        print("PULSEID - ENROLLMENT COMPLETE")
        print("=" * 60)
        print(f"Identity hash:     {enrollment.hash}")
        print(f"Vector dimension:  {enrollment.dimension}")
        print(f"Cardiac quality:   {enrollment.quality.cardiac:.3f}")
        print(f"Movement quality:  {enrollment.quality.movement:.3f}")
        print(f"Touch quality:     {enrollment.quality.touch:.3f}")
        print(f"Record saved to:   {args.store}")
        print("=" * 60)
        return 0

    def _execute_authenticate_command(self, args: argparse.Namespace) -> int:
        capture = load_capture(args.capture)
        live = LiveSample(
            ppg=capture["ppg"],
            acceleration=capture["acceleration"],
            touch_events=capture["touch_events"],
        )
        result = self._manager(args).authenticate(AuthLevel(args.level), live)

        print(json.dumps(result.to_dict(), indent=2))
        return 0 if result.success else 1

    def _execute_status_command(self, args: argparse.Namespace) -> int:
        status = self._manager(args).get_status()
        print(json.dumps({"store": str(args.store), **status.to_dict()}, indent=2))
        return 0

    def _execute_delete_command(self, args: argparse.Namespace) -> int:
        self._manager(args).delete_identity()
        print(f"Enrollment record erased: {args.store}")
        return 0

    def _execute_config_command(self, args: argparse.Namespace) -> int:
        print(json.dumps(get_config_summary(), indent=2))
        return 0

    def run_from_args(self, args_list: Optional[List[str]] = None) -> int:
        """Run the CLI with provided arguments."""
        commands = {
            "enroll": self._execute_enroll_command,
            "authenticate": self._execute_authenticate_command,
            "status": self._execute_status_command,
            "delete": self._execute_delete_command,
            "config": self._execute_config_command,
        }
        try:
            args = self.parser.parse_args(args_list)
            return commands[args.command](args)
        except KeyboardInterrupt:
            print("\nOperation cancelled by user.", file=sys.stderr)
            return 130
        except (PulseIdError, OSError, ValueError) as e:
            logger.error("Command failed", command=args.command, error=str(e))
            print(f"\n[ERROR] {e}", file=sys.stderr)
            return 1


def main() -> int:
    """Main entry point for the CLI."""
    configure_logging()
    cli = PulseIdCLI()
    return cli.run_from_args()


if __name__ == "__main__":
    sys.exit(main())
