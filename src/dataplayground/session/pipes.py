"""Self-healing named pipe channels.

The interpreter writes plots and JSON snapshots into FIFO special files
in its run directory. A FIFO only lasts for one write session: a writer
opens it, writes, closes it, and the reader sees EOF. NamedPipeChannel
hides that lifecycle behind a durable logical stream: every EOF ends the
current payload with a terminator and the same path is reopened right
away, ready for the next writer.

There is a small window between EOF and the reopen where a writer that
is already attached would have its bytes merged into the previous
cycle. Writers that open after the reopen are delivered intact.
"""

from __future__ import annotations

import asyncio
import base64
import codecs
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from dataplayground.errors import PipeCreationError, StreamError
from dataplayground.protocol.chunked import ChunkedWriter

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 65536


class Base64Encoder:
    """Incremental base64 encoder.

    Holds back up to two bytes between calls so that the concatenated
    output of every ``feed`` plus ``flush`` is one valid base64 document.
    """

    def __init__(self) -> None:
        self._pending = b""

    def feed(self, data: bytes) -> str:
        data = self._pending + data
        cut = len(data) - len(data) % 3
        self._pending = data[cut:]
        return base64.b64encode(data[:cut]).decode("ascii")

    def flush(self) -> str:
        data, self._pending = self._pending, b""
        return base64.b64encode(data).decode("ascii")


class Utf8Decoder:
    """Incremental UTF-8 decoder that never splits a multi-byte character."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, data: bytes) -> str:
        return self._decoder.decode(data)

    def flush(self) -> str:
        text = self._decoder.decode(b"", final=True)
        self._decoder.reset()
        return text


ENCODERS = {
    "base64": Base64Encoder,
    "utf-8": Utf8Decoder,
}


class NamedPipeChannel:
    """A FIFO presented as a durable stream of chunked payloads.

    Usage::

        channel = NamedPipeChannel(run_dir / "plot.png", writer, encoding="base64")
        await channel.create()
        channel.start()
        ...
        await channel.stop()

    The channel's identity is its path. The underlying stream object is
    replaced on every cycle and always refers to the live one.
    """

    def __init__(
        self,
        path: Path | str,
        subscriber: ChunkedWriter,
        encoding: str = "utf-8",
        read_size: int = DEFAULT_READ_SIZE,
        name: str | None = None,
    ) -> None:
        if encoding not in ENCODERS:
            raise ValueError(f"Unsupported channel encoding: {encoding}")
        self._path = Path(path)
        self._name = name or self._path.name
        self._subscriber = subscriber
        self._encoder = ENCODERS[encoding]()
        self._read_size = read_size
        self._stream: asyncio.StreamReader | None = None
        self._transport: asyncio.ReadTransport | None = None
        self._cycles = 0
        self._closed = False
        self._failed = False
        self._task: asyncio.Task[None] | None = None
        # The blocking open runs here, never in the loop's default executor
        self._opener = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"pipe-{self._name}")

    @property
    def path(self) -> Path:
        return self._path

    @property
    def name(self) -> str:
        return self._name

    @property
    def stream(self) -> asyncio.StreamReader | None:
        """The stream bound to the current open cycle, if any."""
        return self._stream

    @property
    def cycles(self) -> int:
        """How many times the pipe has been opened."""
        return self._cycles

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_inert(self) -> bool:
        """Whether a stream error stopped the channel."""
        return self._failed

    async def create(self) -> None:
        """Create the FIFO special file.

        Raises:
            PipeCreationError: If the special file cannot be created.
        """
        try:
            os.mkfifo(self._path)
        except OSError as e:
            raise PipeCreationError(
                f"Failed to create named pipe {self._path}: {e}", path=str(self._path)
            ) from e
        logger.debug("Created named pipe %s", self._path)

    async def run(self) -> None:
        """Forward pipe contents to the subscriber until ``close``."""
        while not self._closed:
            try:
                await self._reopen()
                if self._closed:
                    break
                await self._drain()
            except OSError as e:
                if not self._closed:
                    self._fail(e)
                break
            if self._closed:
                break
            await self._end_cycle()
        self._release()
        logger.debug("Channel %s stopped after %d cycle(s)", self._name, self._cycles)

    def start(self) -> None:
        """Run the channel in a background task."""
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name=f"pipe:{self._name}")

    async def stop(self, timeout: float = 1.0) -> None:
        """Close the channel and wait for its background task to finish.

        A reader blocked in open is released by attaching a writer, which
        only works once the open call is actually waiting, so the release
        is repeated until the task finishes or ``timeout`` runs out.
        """
        self.close()
        if self._task is None:
            return
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not self._task.done() and loop.time() < deadline:
            self._unblock_open()
            await asyncio.wait({self._task}, timeout=0.05)
        if not self._task.done():
            logger.warning("Channel %s did not stop in %.1fs, cancelling", self._name, timeout)
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def close(self) -> None:
        """Stop the reopen loop. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._transport is not None:
            self._transport.close()
        self._unblock_open()
        self._opener.shutdown(wait=False)

    async def _reopen(self) -> None:
        loop = asyncio.get_running_loop()
        # Blocks until a writer attaches
        fd = await loop.run_in_executor(self._opener, os.open, self._path, os.O_RDONLY)
        pipe = os.fdopen(fd, "rb", buffering=0)
        if self._closed:
            pipe.close()
            return
        reader = asyncio.StreamReader()
        transport, _ = await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), pipe
        )
        self._stream = reader
        self._transport = transport
        self._cycles += 1
        logger.debug("Channel %s opened (cycle %d)", self._name, self._cycles)

    async def _drain(self) -> None:
        assert self._stream is not None
        while True:
            data = await self._stream.read(self._read_size)
            if not data:
                return
            text = self._encoder.feed(data)
            if text:
                await self._subscriber.write(text)

    async def _end_cycle(self) -> None:
        tail = self._encoder.flush()
        if tail:
            await self._subscriber.write(tail)
        await self._subscriber.end()
        logger.debug("Channel %s closed by writer, reopening", self._name)

    def _fail(self, exc: OSError) -> None:
        self._failed = True
        err = StreamError(f"Channel {self._name} failed: {exc}", stream=self._name)
        logger.error("%s", err)

    def _release(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        self._opener.shutdown(wait=False)

    def _unblock_open(self) -> None:
        """Attach and detach a writer so a reader blocked in open returns."""
        try:
            fd = os.open(self._path, os.O_WRONLY | os.O_NONBLOCK)
        except OSError:
            # ENXIO: nobody is waiting to read; ENOENT: already removed
            return
        os.close(fd)
