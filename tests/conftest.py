"""Shared test fixtures for the dataplayground test suite.

Provides a template directory, a small Python program that behaves
enough like R for the session machinery (echoes input, writes JSON and
PNG bytes into the session's named pipes), and interpreter configs
pointing at it.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import textwrap
from pathlib import Path

import pytest

from dataplayground.config.settings import InterpreterConfig
from dataplayground.domain.models import MessageType, OutboundMessage
from dataplayground.protocol.chunked import ChunkedWriter
from dataplayground.utils.logging import LOGGER_NAMES

MARKER = "#DataPlayground"

# Bytes the fake interpreter writes to plot.png for a `plot(...)` command
FAKE_PNG = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 3 + b"IEND"

FAKE_INTERPRETER = textwrap.dedent(
    '''
    import json
    import os
    import re
    import sys

    FRAMES = {
        "mtcars": [
            {"mpg": 21.0, "cyl": 6, "hp": 110, "_row": "Mazda RX4"},
            {"mpg": 22.8, "cyl": 4, "hp": 93, "_row": "Datsun 710"},
            {"mpg": 18.7, "cyl": 8, "hp": 175, "_row": "Hornet Sportabout"},
        ],
    }
    PNG = %(png)r

    pidfile = os.environ.get("PIDFILE")
    if pidfile:
        with open(pidfile, "w") as f:
            json.dump({"pid": os.getpid(), "env": dict(os.environ)}, f)

    while True:
        line = sys.stdin.readline()
        if not line:
            break
        sys.stdout.write("> " + line)
        sys.stdout.flush()
        match = re.search(r'toJSON\\((\\w+)\\), file = "([^"]+)"', line)
        if match:
            with open(match.group(2), "w") as f:
                json.dump(FRAMES.get(match.group(1), []), f)
            continue
        if 'file = "dflist.json"' in line:
            with open("dflist.json", "w") as f:
                json.dump(sorted(FRAMES), f)
            continue
        if line.startswith("plot("):
            with open("plot.png", "wb") as f:
                f.write(PNG)
        elif line.startswith("stop("):
            sys.stderr.write("Error: boom\\n")
            sys.stderr.flush()
        elif not line.startswith("invisible("):
            sys.stdout.write("[1] ok\\n")
            sys.stdout.flush()
    '''
) % {"png": FAKE_PNG}


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    """A template directory with two small files."""
    path = tmp_path / "template"
    path.mkdir()
    (path / ".Rprofile").write_text("library(jsonlite)\n")
    (path / "helpers.R").write_text("square <- function(x) x * x\n")
    return path


@pytest.fixture
def fake_interpreter(tmp_path: Path) -> Path:
    """Path to the fake interpreter script."""
    path = tmp_path / "fake_r.py"
    path.write_text(FAKE_INTERPRETER)
    return path


@pytest.fixture
def interpreter_config(template_dir: Path, fake_interpreter: Path) -> InterpreterConfig:
    """An InterpreterConfig that runs the fake interpreter."""
    return InterpreterConfig(
        command=[sys.executable, "-u", str(fake_interpreter)],
        template_dir=str(template_dir),
        marker=MARKER,
    )


class MessageCollector:
    """Collects outbound messages; usable as a ChunkedWriter send function."""

    def __init__(self) -> None:
        self.messages: list[OutboundMessage] = []

    async def __call__(self, message: OutboundMessage) -> None:
        self.messages.append(message)

    def writer(self, message_type: MessageType, max_fragment_size: int = 65536) -> ChunkedWriter:
        return ChunkedWriter(message_type, self, max_fragment_size)

    def terminators(self, message_type: MessageType | None = None) -> int:
        return sum(
            1 for m in self.messages
            if m.is_terminator and (message_type is None or m.type is message_type)
        )

    def payloads(self, message_type: MessageType) -> list[str]:
        """Concatenated fragments between terminators, in order."""
        result: list[str] = []
        current: list[str] = []
        for m in self.messages:
            if m.type is not message_type:
                continue
            if m.data:
                current.append(m.data)
            else:
                result.append("".join(current))
                current = []
        return result

    async def wait_for_terminators(self, count: int, timeout: float = 5.0) -> None:
        async def _poll() -> None:
            while self.terminators() < count:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def collector() -> MessageCollector:
    return MessageCollector()


def _write_fifo(path: Path, data: bytes) -> None:
    # Blocks until the channel has the pipe open for reading
    with open(path, "wb") as f:
        f.write(data)


async def write_fifo(path: Path, data: bytes, timeout: float = 5.0) -> None:
    """Open a FIFO as a writer, write ``data`` and close it."""
    loop = asyncio.get_running_loop()
    await asyncio.wait_for(loop.run_in_executor(None, _write_fifo, path, data), timeout)


@pytest.fixture
def fifo_writer():
    """The ``write_fifo`` coroutine function."""
    return write_fifo


@pytest.fixture
def fake_png() -> bytes:
    return FAKE_PNG


@pytest.fixture(autouse=True)
def _reset_logging():
    """Drop handlers installed by setup_logging so they don't outlive the test."""
    yield
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        for handler in [h for h in logger.handlers if getattr(h, "_dataplayground_handler", False)]:
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(logging.NOTSET)
