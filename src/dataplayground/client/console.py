"""Terminal client for a dataplayground server.

Reads R commands from the terminal, sends them over the WebSocket and
renders what comes back: console output inline, stderr highlighted,
data frames as text tables, plots written to PNG files.

Console commands besides plain R input::

    :df NAME      request a snapshot of data frame NAME
    :frames       list the data frames the session knows about
    :history      show recent commands (newest first)
    :quit         disconnect
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import TextIO
from urllib.parse import urlencode

import websockets

from dataplayground.client.reassembler import (
    ClientReassembler,
    DataFrameTable,
    PlotImage,
    RecentCommandHistory,
)

logger = logging.getLogger(__name__)

STDERR_STYLE = "\x1b[33m{}\x1b[0m"
MAX_TABLE_ROWS = 20


class ConsoleRenderer:
    """Renders session output onto a text stream."""

    def __init__(self, plot_dir: Path | str = "plots", out: TextIO | None = None) -> None:
        self._plot_dir = Path(plot_dir)
        self._out = out or sys.stdout

    def stdout(self, text: str) -> None:
        self._out.write(text)
        self._out.flush()

    def stderr(self, text: str) -> None:
        self._out.write(STDERR_STYLE.format(text))
        self._out.flush()

    def plot_started(self, plot: PlotImage) -> None:
        logger.debug("Receiving plot %d", plot.index)

    def plot_finished(self, plot: PlotImage) -> None:
        self._plot_dir.mkdir(parents=True, exist_ok=True)
        path = self._plot_dir / f"plot-{plot.index:03d}.png"
        path.write_bytes(plot.png_bytes())
        self._out.write(f"[plot saved to {path}]\n")
        self._out.flush()

    def dataframe(self, table: DataFrameTable) -> None:
        self._out.write(format_table(table) + "\n")
        self._out.flush()

    def dataframe_list(self, names: list[str]) -> None:
        if names:
            self._out.write(f"[data frames: {', '.join(names)}]\n")
        else:
            self._out.write("[no data frames]\n")
        self._out.flush()


def format_table(table: DataFrameTable, max_rows: int = MAX_TABLE_ROWS) -> str:
    """Lay out row records as a fixed-width text table."""
    columns = table.columns
    if not columns:
        return json.dumps(table.rows)
    shown = table.rows[:max_rows]
    cells = [[str(row.get(col, "")) for col in columns] for row in shown]
    widths = [
        max([len(col)] + [len(line[i]) for line in cells]) for i, col in enumerate(columns)
    ]
    lines = [
        "  ".join(col.ljust(w) for col, w in zip(columns, widths)),
        "  ".join("-" * w for w in widths),
    ]
    lines.extend("  ".join(cell.ljust(w) for cell, w in zip(line, widths)) for line in cells)
    if table.row_count > max_rows:
        lines.append(f"... {table.row_count - max_rows} more row(s)")
    return "\n".join(lines)


def session_url(base_url: str, env: dict[str, str] | None = None) -> str:
    """Append interpreter environment variables as query parameters."""
    if not env:
        return base_url
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode(env)}"


def stdin_message(command: str) -> str:
    return json.dumps({"type": "stdin", "data": command + "\n"})


def dataframe_message(name: str) -> str:
    return json.dumps({"type": "dataframe", "data": name})


class ConsoleClient:
    """Interactive REPL over one WebSocket session."""

    def __init__(
        self,
        url: str,
        renderer: ConsoleRenderer | None = None,
        history_size: int = 50,
    ) -> None:
        self._url = url
        self._renderer = renderer or ConsoleRenderer()
        self._reassembler = ClientReassembler(self._renderer)
        self._history = RecentCommandHistory(history_size)

    @property
    def history(self) -> RecentCommandHistory:
        return self._history

    @property
    def reassembler(self) -> ClientReassembler:
        return self._reassembler

    async def run(self) -> None:
        async with websockets.connect(self._url) as ws:
            logger.info("Connected to %s", self._url)
            receiver = asyncio.create_task(self._receive(ws))
            try:
                await self._prompt_loop(ws, receiver)
            finally:
                receiver.cancel()
                try:
                    await receiver
                except asyncio.CancelledError:
                    pass

    def translate(self, line: str) -> str | None:
        """Turn one console line into an outbound message, if any."""
        if line.startswith(":df "):
            return dataframe_message(line[4:].strip())
        if line == ":history":
            for i, cmd in enumerate(self._history.commands):
                self._renderer.stdout(f"{i:3d}  {cmd}\n")
            return None
        if line == ":frames":
            self._renderer.dataframe_list(self._reassembler.dataframe_names)
            return None
        self._history.add(line)
        return stdin_message(line)

    async def _prompt_loop(self, ws, receiver: asyncio.Task[None]) -> None:  # type: ignore[no-untyped-def]
        loop = asyncio.get_running_loop()
        while not receiver.done():
            try:
                line = await loop.run_in_executor(None, sys.stdin.readline)
            except KeyboardInterrupt:
                return
            if not line or line.strip() == ":quit":
                return
            message = self.translate(line.rstrip("\n"))
            if message is not None:
                await ws.send(message)

    async def _receive(self, ws) -> None:  # type: ignore[no-untyped-def]
        try:
            async for raw in ws:
                try:
                    self._reassembler.feed_json(raw)
                except ValueError as e:
                    # pydantic ValidationError and binascii.Error included
                    logger.warning("Dropping unreadable message: %s", e)
        except websockets.ConnectionClosed as e:
            logger.info("Connection closed: %s", e)
        self._renderer.stdout("\n[session ended]\n")
