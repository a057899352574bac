from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Any

import pytest

import vantage.__main__ as vantage_main
from vantage.cli.commands import (
    CommandLineError,
    InspectCommand,
    ParticipantCommand,
    TrackCommand,
    handle_inspect,
    handle_participant,
    handle_track,
)


@dataclass(slots=True)
class Captured:
    calls: list[Any] = field(default_factory=list)


@pytest.fixture
def definitions(write_file) -> None:
    write_file("config/vantage.yml", "development: mock://\nmetrics:\n  downloads: http://stats.local/d\n")
    write_file("experiments/metrics/signups.py", "metric('Signups')\n")
    write_file("experiments/checkout.py", "ab_test('Checkout Button', alternatives=('green', 'orange'), metrics=['signups'])\n")


def test_main_dispatches_track(monkeypatch: pytest.MonkeyPatch) -> None:
    cap = Captured()
    monkeypatch.setattr(vantage_main, "handle_track", lambda cmd: cap.calls.append(cmd))

    code = vantage_main.main(["track", "--metric", "signups", "--count", "2", "--loglevel", "debug"])

    assert code == 0
    (cmd,) = cap.calls
    assert isinstance(cmd, TrackCommand)
    assert (cmd.metric, cmd.count, cmd.loglevel) == ("signups", 2, "debug")


def test_main_dispatches_participant_and_inspect(monkeypatch: pytest.MonkeyPatch) -> None:
    cap = Captured()
    monkeypatch.setattr(vantage_main, "handle_participant", lambda cmd: cap.calls.append(cmd))
    monkeypatch.setattr(vantage_main, "handle_inspect", lambda cmd: cap.calls.append(cmd))

    vantage_main.main(["participant", "--participant-id", "u1", "--config-root", "conf"])
    vantage_main.main(["inspect", "--environment", "staging"])

    participant, inspect = cap.calls
    assert isinstance(participant, ParticipantCommand)
    assert participant.participant_id == "u1"
    assert participant.config_root == "conf"
    assert isinstance(inspect, InspectCommand)
    assert inspect.environment == "staging"


def test_main_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        vantage_main.main([])


def test_main_reports_vantage_errors(write_file, capsys: pytest.CaptureFixture[str]) -> None:
    write_file("config/vantage.yml", "production: mock://\n")

    code = vantage_main.main(["inspect"])

    assert code == 1
    assert "No configuration for development" in capsys.readouterr().err


def test_inspect_lists_definitions(definitions) -> None:
    out = io.StringIO()

    handle_inspect(InspectCommand(), out)

    text = out.getvalue()
    assert "environment: development" in text
    assert "connected:   True" in text
    assert "checkout_button: Checkout Button [green, orange]" in text
    assert "signups: Signups" in text
    assert "downloads: downloads -> http://stats.local/d" in text


def test_participant_and_track_commands(definitions) -> None:
    out = io.StringIO()
    handle_participant(ParticipantCommand(participant_id="u1"), out)
    assert out.getvalue() == "u1 takes part in no experiments\n"

    out = io.StringIO()
    handle_track(TrackCommand(metric="signups", count=2, identity="u1"), out)
    assert out.getvalue() == "tracked signups +2\n"


def test_track_rejects_non_positive_count() -> None:
    with pytest.raises(CommandLineError, match="positive"):
        handle_track(TrackCommand(metric="signups", count=0), io.StringIO())


def test_loglevel_applies_to_vantage_logger(definitions) -> None:
    handle_inspect(InspectCommand(loglevel="info"), io.StringIO())
    assert logging.getLogger("vantage").level == logging.INFO
