"""Client-side reassembly of session output.

The server streams plots and data frames as fragment runs closed by an
empty payload. ClientReassembler keeps the per-session state needed to
put them back together (the plot being received, the JSON buffers, the
transcript) and hands finished values to a Renderer. Nothing here is
global: one reassembler per connection.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from dataplayground.domain.models import MessageType, OutboundMessage
from dataplayground.protocol.chunked import ChunkAssembler

logger = logging.getLogger(__name__)

PLOT_URI_PREFIX = "data:image/png;base64,"
MAX_RECENT_COMMANDS = 50


# ---------------------------------------------------------------------------
# Rendered values
# ---------------------------------------------------------------------------


@dataclass
class PlotImage:
    """One plot, growing as its base64 fragments arrive."""

    index: int
    src: str = PLOT_URI_PREFIX
    complete: bool = False

    @property
    def base64_data(self) -> str:
        return self.src[len(PLOT_URI_PREFIX):]

    def png_bytes(self) -> bytes:
        return base64.b64decode(self.base64_data)


@dataclass
class DataFrameTable:
    """A data frame snapshot: a list of row records."""

    rows: list[Any] = field(default_factory=list)

    @property
    def columns(self) -> list[str]:
        if self.rows and isinstance(self.rows[0], dict):
            return list(self.rows[0].keys())
        return []

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass
class TranscriptEntry:
    text: str
    is_error: bool = False


class Renderer(Protocol):
    """Receives reassembled values as they complete."""

    def stdout(self, text: str) -> None: ...

    def stderr(self, text: str) -> None: ...

    def plot_started(self, plot: PlotImage) -> None: ...

    def plot_finished(self, plot: PlotImage) -> None: ...

    def dataframe(self, table: DataFrameTable) -> None: ...

    def dataframe_list(self, names: list[str]) -> None: ...


class NullRenderer:
    """A Renderer that ignores everything."""

    def stdout(self, text: str) -> None:
        pass

    def stderr(self, text: str) -> None:
        pass

    def plot_started(self, plot: PlotImage) -> None:
        pass

    def plot_finished(self, plot: PlotImage) -> None:
        pass

    def dataframe(self, table: DataFrameTable) -> None:
        pass

    def dataframe_list(self, names: list[str]) -> None:
        pass


# ---------------------------------------------------------------------------
# Command history
# ---------------------------------------------------------------------------


class RecentCommandHistory:
    """Most-recent-first command history with an up/down recall cursor.

    The cursor starts at -1, meaning "the empty line below the newest
    entry". ``up`` moves toward older entries and stops at the oldest;
    ``down`` moves back and stops at -1.
    """

    def __init__(self, max_size: int = MAX_RECENT_COMMANDS) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._max_size = max_size
        self._commands: list[str] = []
        self._index = -1

    @property
    def commands(self) -> list[str]:
        return list(self._commands)

    @property
    def index(self) -> int:
        return self._index

    def __len__(self) -> int:
        return len(self._commands)

    def add(self, command: str) -> None:
        self._commands.insert(0, command)
        del self._commands[self._max_size:]
        self._index = -1

    def current(self) -> str:
        if self._index < 0:
            return ""
        return self._commands[self._index]

    def up(self) -> str:
        if self._index < len(self._commands) - 1:
            self._index += 1
        return self.current()

    def down(self) -> str:
        if self._index > -1:
            self._index -= 1
        return self.current()


# ---------------------------------------------------------------------------
# Reassembler
# ---------------------------------------------------------------------------


class ClientReassembler:
    """Rebuilds plots, tables and the transcript from server messages."""

    def __init__(self, renderer: Renderer | None = None) -> None:
        self._renderer = renderer or NullRenderer()
        self._assembler = ChunkAssembler()
        self._working_plot: PlotImage | None = None
        self.plots: list[PlotImage] = []
        self.transcript: list[TranscriptEntry] = []
        self.dataframe: DataFrameTable | None = None
        self.dataframe_names: list[str] = []

    @property
    def working_plot(self) -> PlotImage | None:
        return self._working_plot

    def feed_json(self, raw: str) -> None:
        """Handle one raw protocol message as received from the socket.

        Raises:
            pydantic.ValidationError: If ``raw`` is not a valid message.
        """
        self.feed(OutboundMessage.model_validate_json(raw))

    def feed(self, message: OutboundMessage) -> None:
        if message.type is MessageType.STDOUT:
            self.transcript.append(TranscriptEntry(message.data))
            self._renderer.stdout(message.data)
        elif message.type is MessageType.STDERR:
            self.transcript.append(TranscriptEntry(message.data, is_error=True))
            self._renderer.stderr(message.data)
        elif message.type is MessageType.PLOT:
            self._feed_plot(message.data)
        elif message.type is MessageType.DATAFRAME:
            payload = self._assembler.feed(message)
            if payload is not None:
                self._finish_dataframe(payload)
        elif message.type is MessageType.DFLIST:
            payload = self._assembler.feed(message)
            if payload is not None:
                self._finish_dataframe_list(payload)

    def _feed_plot(self, data: str) -> None:
        if not data:
            plot, self._working_plot = self._working_plot, None
            if plot is not None:
                plot.complete = True
                self._renderer.plot_finished(plot)
            return
        if self._working_plot is None:
            self._working_plot = PlotImage(index=len(self.plots))
            self.plots.append(self._working_plot)
            self._renderer.plot_started(self._working_plot)
        self._working_plot.src += data

    def _finish_dataframe(self, payload: str) -> None:
        rows = _parse_json(payload, "dataframe")
        if rows is None:
            return
        if not isinstance(rows, list):
            logger.warning("Data frame payload is not a list of rows")
            return
        self.dataframe = DataFrameTable(rows=rows)
        self._renderer.dataframe(self.dataframe)

    def _finish_dataframe_list(self, payload: str) -> None:
        names = _parse_json(payload, "dflist")
        if names is None:
            return
        if not isinstance(names, list):
            logger.warning("Data frame list payload is not a list")
            return
        self.dataframe_names = [str(name) for name in names]
        self._renderer.dataframe_list(self.dataframe_names)


def _parse_json(payload: str, channel: str) -> Any | None:
    if not payload.strip():
        logger.debug("Empty %s payload", channel)
        return None
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        logger.warning("Dropping unparsable %s payload: %s", channel, e)
        return None
