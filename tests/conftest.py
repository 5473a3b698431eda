"""Shared fixtures: ini files on disk and a restored process timezone."""

import os
import time
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _restore_timezone() -> Iterator[None]:
    """Runners set TZ for the whole process; put it back after each test."""
    saved = os.environ.get("TZ")
    yield
    if saved is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = saved
    if hasattr(time, "tzset"):
        time.tzset()


@pytest.fixture
def write_ini(tmp_path: Path) -> Callable[..., Path]:
    """Write an ini file built from ``{section: {key: value}}``."""

    def write(sections: dict[str, dict[str, str]], name: str = "app.ini") -> Path:
        lines: list[str] = []
        for section, values in sections.items():
            lines.append(f"[{section}]")
            lines.extend(f"{key} = {value}" for key, value in values.items())
            lines.append("")
        path = tmp_path / name
        path.write_text("\n".join(lines), encoding="utf-8")
        return path

    return write
