from collections.abc import Callable
from pathlib import Path

import pytest


@pytest.fixture()
def write_csv(tmp_path: Path) -> Callable[[str, list[str]], Path]:
    """Write a decisions CSV under tmp_path and return its path."""

    def _write(name: str, lines: list[str]) -> Path:
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def decisions_csv_lines() -> list[str]:
    """Three data rows with a quoted proof reference."""
    return [
        "Unique Key,Action,Proof (optional)",
        "K1,Accept,doc-1",
        'K2,Reject,"box 4, folder 2"',
        "K3,accept,",
    ]
