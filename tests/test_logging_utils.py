from __future__ import annotations

import asyncio
import io
from pathlib import Path

import pytest
from rich.console import Console

from storybook_magic.logging_utils import RunLogger


def _logger(level: str = "INFO", logfile: Path | None = None) -> tuple[RunLogger, io.StringIO]:
    buffer = io.StringIO()
    return RunLogger(console=Console(file=buffer, width=200), level=level, logfile=logfile), buffer


def test_levels_below_threshold_are_dropped() -> None:
    logger, buffer = _logger("warning")

    logger.log("flow", "stage=upload")
    logger.log("export", "fallback used", level="WARN")

    output = buffer.getvalue()
    assert "stage=upload" not in output
    assert "[WARN ] [EXPORT ] fallback used" in output


def test_lines_are_mirrored_to_logfile(tmp_path: Path) -> None:
    logfile = tmp_path / "logs" / "session.log"
    logger, _ = _logger(logfile=logfile)

    logger.log("result", "https://x/y.png")
    logger.close()

    assert "[RESULT ] https://x/y.png" in logfile.read_text(encoding="utf-8")


@pytest.mark.asyncio
async def test_timed_reports_elapsed_and_reraises() -> None:
    logger, buffer = _logger()

    async def _ok() -> int:
        await asyncio.sleep(0)
        return 3

    async def _boom() -> None:
        raise RuntimeError("endpoint down")

    assert await logger.timed("request", lambda value: f"value={value}", _ok()) == 3
    with pytest.raises(RuntimeError):
        await logger.timed("request", "unused", _boom())

    output = buffer.getvalue()
    assert "value=3 (ms=" in output
    assert "error: endpoint down" in output
