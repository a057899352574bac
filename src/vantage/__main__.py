# src/vantage/__main__.py
from __future__ import annotations

import argparse
import sys

from vantage.cli.argparse_model import add_model_to_parser, model_from_namespace
from vantage.cli.commands import (
    InspectCommand,
    ParticipantCommand,
    TrackCommand,
    handle_inspect,
    handle_participant,
    handle_track,
)
from vantage.exceptions import VantageError


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="vantage")
    sub = parser.add_subparsers(dest="command", required=True)

    inspect_p = sub.add_parser("inspect", help="Show configuration, connection and definitions.")
    add_model_to_parser(inspect_p, InspectCommand)

    participant_p = sub.add_parser("participant", help="Show the alternatives assigned to a participant.")
    add_model_to_parser(participant_p, ParticipantCommand)

    track_p = sub.add_parser("track", help="Track a metric.")
    add_model_to_parser(track_p, TrackCommand)

    ns = parser.parse_args(argv)

    try:
        if ns.command == "inspect":
            handle_inspect(model_from_namespace(InspectCommand, ns))
        elif ns.command == "participant":
            handle_participant(model_from_namespace(ParticipantCommand, ns))
        elif ns.command == "track":
            handle_track(model_from_namespace(TrackCommand, ns))
        else:
            raise RuntimeError(f"Unknown command: {ns.command}")
    except VantageError as e:
        print(f"vantage: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
