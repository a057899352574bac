# src/vantage/cli/commands.py
from __future__ import annotations

import logging
import sys
from typing import Literal, Optional, TextIO

from pydantic import BaseModel, Field

from vantage.config import LoggingSettings
from vantage.exceptions import VantageError
from vantage.playground import Playground

LogLevel = Literal[
    "CRITICAL",
    "ERROR",
    "WARNING",
    "INFO",
    "DEBUG",
    "critical",
    "error",
    "warning",
    "info",
    "debug",
]


class CommandLineError(VantageError): ...


class PlaygroundCommand(BaseModel):
    config_root: Optional[str] = Field(None, description="Directory holding vantage.yml (default: ./config).")
    load_path: Optional[str] = Field(None, description="Directory holding definition files.")
    environment: Optional[str] = Field(None, description="Configuration environment to use.")
    connection: Optional[str] = Field(None, description="Connection URL overriding the config files.")
    loglevel: Optional[LogLevel] = Field(None, description="Logging level override.")


class InspectCommand(PlaygroundCommand):
    pass


class ParticipantCommand(PlaygroundCommand):
    participant_id: str = Field(description="Participant identity to look up.")


class TrackCommand(PlaygroundCommand):
    metric: str = Field(description="Metric identifier.")
    count: int = Field(1, description="Amount to add.")
    identity: Optional[str] = Field(None, description="Participant identity the event belongs to.")


def configure_logging(loglevel: Optional[str]) -> logging.Logger:
    settings = LoggingSettings() if loglevel is None else LoggingSettings(level=loglevel.upper())
    logging.basicConfig(level=settings.level, format=settings.format)
    log = logging.getLogger("vantage")
    log.setLevel(settings.level)
    return log


def build_playground(command: PlaygroundCommand) -> Playground:
    log = configure_logging(command.loglevel)
    return Playground(
        command.connection,
        logger=log,
        config_root=command.config_root,
        environment=command.environment,
        load_path=command.load_path,
    )


def handle_inspect(command: InspectCommand, out: Optional[TextIO] = None) -> None:
    out = out or sys.stdout
    playground = build_playground(command)
    print(f"environment: {playground.environment}", file=out)
    print(f"connected:   {playground.connected}", file=out)
    print(f"collecting:  {playground.collecting}", file=out)
    print(f"load path:   {playground.load_path}", file=out)

    print("experiments:", file=out)
    for experiment in sorted(playground.experiments().values(), key=lambda e: e.id):
        values = ", ".join(str(a) for a in experiment.alternatives)
        print(f"  {experiment.id}: {experiment.name} [{values}]", file=out)

    print("metrics:", file=out)
    for metric in sorted(playground.metrics().values(), key=lambda m: m.id):
        suffix = f" -> {metric.remote_url}" if metric.remote_url else ""
        print(f"  {metric.id}: {metric.name}{suffix}", file=out)


def handle_participant(command: ParticipantCommand, out: Optional[TextIO] = None) -> None:
    out = out or sys.stdout
    playground = build_playground(command)
    info = playground.participant_info(command.participant_id)
    if not info:
        print(f"{command.participant_id} takes part in no experiments", file=out)
        return
    for experiment, alternative in info:
        print(f"{experiment.id}: {alternative}", file=out)


def handle_track(command: TrackCommand, out: Optional[TextIO] = None) -> None:
    out = out or sys.stdout
    if command.count < 1:
        raise CommandLineError(f"Count must be positive, got {command.count}")
    playground = build_playground(command)
    playground.metric(command.metric).track(command.count, identity=command.identity)
    print(f"tracked {command.metric} +{command.count}", file=out)
