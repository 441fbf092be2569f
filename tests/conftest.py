"""Shared pytest fixtures for the qlang test suite."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest


@pytest.fixture
def write_q(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a q source file under tmp_path and return its path."""

    def _write(text: str, name: str = "main.q") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
        return path

    return _write
