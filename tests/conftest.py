"""
Every test runs from an empty temporary working directory with no VANTAGE_*
or APP_ENV variables set, so the default config root (./config), the default
load path (./experiments) and `.env` files never leak in from the host.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable

import pytest

from vantage.adapters.mock import MockAdapter
from vantage.playground import Playground, reset_playground


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    for key in list(os.environ):
        if key.startswith("VANTAGE_") or key == "APP_ENV":
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    reset_playground()


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write `text` to `relative` under the temporary working directory."""

    def _write(relative: str, text: str) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def mock_adapter() -> MockAdapter:
    return MockAdapter({"adapter": "mock"})


@pytest.fixture
def make_playground(mock_adapter: MockAdapter) -> Callable[..., Playground]:
    """Playground on the shared MockAdapter; keyword options are passed through."""

    def _make(**options: Any) -> Playground:
        options.setdefault("adapter", mock_adapter)
        return Playground(**options)

    return _make
