"""
Synthetic Capture Generator

Writes capture files in the JSON layout read by ``pulseid enroll`` and
``pulseid authenticate``, so the enrollment and authentication flows can be
exercised without a phone.

Usage:
    python scripts/generate_capture.py enroll.json --seed 1
    python scripts/generate_capture.py live.json --seed 1 --channels ppg touch
    python scripts/generate_capture.py replay.json --replay
"""

import argparse
import json
from pathlib import Path

from pulseid import synthetic

CHANNELS = ("ppg", "acceleration", "touch")


class CaptureGenerator:
    """Builds one capture file from the synthetic signal generators."""

    def __init__(self, seed=0, duration=60.0, replay=False, channels=CHANNELS):
        self.seed = seed
        self.duration = duration
        self.replay = replay
        self.channels = set(channels)

    def build(self) -> dict:
        """Assemble the requested channels into a capture dictionary."""
        capture = {}

        if "ppg" in self.channels:
            if self.replay:
                ppg = synthetic.replay_ppg(duration=self.duration)
            else:
                ppg = synthetic.live_ppg(duration=self.duration, seed=self.seed)
            capture["ppg"] = ppg.tolist()

        if "acceleration" in self.channels:
            accel = synthetic.walking_acceleration(duration=10.0, seed=self.seed)
            capture["acceleration"] = {
                "x": accel.x.tolist(),
                "y": accel.y.tolist(),
                "z": accel.z.tolist(),
            }

        if "touch" in self.channels:
            events = synthetic.mixed_touch_session(seed=self.seed)
            capture["touch_events"] = [event.to_dict() for event in events]

        return capture

    def write(self, output: Path) -> None:
        """Write the capture to ``output``."""
        capture = self.build()
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w", encoding="utf-8") as f:
            json.dump(capture, f)

        print(f"Capture written to: {output}")
        print(f"  Channels: {', '.join(sorted(capture))}")
        if "ppg" in capture:
            kind = "replayed" if self.replay else "live"
            print(f"  PPG: {len(capture['ppg'])} samples ({kind})")


def main():
    """Main function to run the script."""
    parser = argparse.ArgumentParser(
        description="Generate a synthetic PulseID capture file."
    )
    parser.add_argument("output", type=Path, help="Destination JSON file")
    parser.add_argument("--seed", type=int, default=0, help="Random seed (default: 0)")
    parser.add_argument(
        "--duration",
        type=float,
        default=60.0,
        help="PPG duration in seconds (default: 60)",
    )
    parser.add_argument(
        "--replay",
        action="store_true",
        help="Write a perfectly periodic (replayed) pulse waveform",
    )
    parser.add_argument(
        "--channels",
        nargs="+",
        choices=CHANNELS,
        default=list(CHANNELS),
        help="Channels to include (default: all)",
    )
    args = parser.parse_args()

    generator = CaptureGenerator(
        seed=args.seed,
        duration=args.duration,
        replay=args.replay,
        channels=args.channels,
    )
    generator.write(args.output)


if __name__ == "__main__":
    main()
