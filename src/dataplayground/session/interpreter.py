"""The per-session interpreter child process.

Owns one R process started inside the session's run directory and
exposes its three standard streams: a command sink, a line stream of
stdout with bookkeeping echoes removed, and raw stderr chunks.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

from dataplayground.errors import InterpreterSpawnError, StreamError

logger = logging.getLogger(__name__)

STDERR_READ_SIZE = 4096

# StreamReader buffer limit for stdout; longer lines are read in pieces
STDOUT_LIMIT = 1 << 20


class InterpreterProcess:
    """A long-lived interpreter subprocess.

    A failed spawn does not raise: it is logged and the handle stays
    dead. Writes to a dead handle are dropped and its output streams are
    empty, so a session built around it closes as soon as it starts
    reading stdout.
    """

    def __init__(
        self,
        command: Sequence[str],
        cwd: Path | str,
        env: dict[str, str],
        marker: str,
        limit: int = STDOUT_LIMIT,
    ) -> None:
        if not command:
            raise ValueError("Interpreter command must not be empty")
        self._command = list(command)
        self._cwd = Path(cwd)
        self._env = dict(env)
        self._marker = marker
        self._limit = limit
        self._process: asyncio.subprocess.Process | None = None
        self._spawn_error: InterpreterSpawnError | None = None
        self._stdin_closed = asyncio.Event()
        self._exited = asyncio.Event()
        self._wait_task: asyncio.Task[None] | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def is_alive(self) -> bool:
        return self._process is not None and not self._exited.is_set()

    @property
    def spawn_error(self) -> InterpreterSpawnError | None:
        return self._spawn_error

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    @property
    def exited(self) -> asyncio.Event:
        """Set once the process has exited (or never started)."""
        return self._exited

    @property
    def stdin_closed(self) -> asyncio.Event:
        """Set once writing to the interpreter's stdin has failed."""
        return self._stdin_closed

    async def start(self) -> None:
        """Spawn the interpreter with the run directory as cwd."""
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self._cwd),
                env=self._env,
                limit=self._limit,
            )
        except OSError as e:
            self._spawn_error = InterpreterSpawnError(
                f"Failed to spawn {self._command[0]}: {e}"
            )
            logger.error("Spawn error: %s", self._spawn_error)
            self._stdin_closed.set()
            self._exited.set()
            return

        self._wait_task = asyncio.create_task(self._watch_exit())
        logger.info(
            "Spawned %s @ %s (pid=%d)", " ".join(self._command), self._cwd, self._process.pid
        )

    async def write(self, text: str) -> None:
        """Send command text to the interpreter's stdin."""
        if self._process is None or self._process.stdin is None:
            logger.debug("Dropping write to dead interpreter: %r", text[:50])
            return
        if self._stdin_closed.is_set():
            logger.debug("Dropping write to closed stdin: %r", text[:50])
            return
        try:
            self._process.stdin.write(text.encode())
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.info("Interpreter stdin closed: %s", e)
            self._stdin_closed.set()

    async def lines(self) -> AsyncIterator[str]:
        """Yield stdout lines (without newline), skipping marked lines.

        A line longer than the reader limit is collected piece by piece
        and yielded whole. A final line without a newline is yielded at EOF.
        """
        if self._process is None or self._process.stdout is None:
            return
        stdout = self._process.stdout
        pieces: list[bytes] = []
        while True:
            eof = False
            try:
                raw = await stdout.readuntil(b"\n")
            except asyncio.LimitOverrunError as e:
                pieces.append(await stdout.read(e.consumed))
                continue
            except asyncio.IncompleteReadError as e:
                raw = e.partial
                eof = True
            except OSError as e:
                logger.error("%s", StreamError(f"stdout read failed: {e}", stream="stdout"))
                return
            if pieces:
                pieces.append(raw)
                raw = b"".join(pieces)
                pieces = []
            if raw:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if self._marker in line:
                    logger.debug("Suppressed bookkeeping line: %s", line[:200])
                else:
                    yield line
            if eof:
                return

    async def stderr_chunks(self) -> AsyncIterator[str]:
        """Yield raw stderr output as it arrives."""
        if self._process is None or self._process.stderr is None:
            return
        stderr = self._process.stderr
        while True:
            try:
                data = await stderr.read(STDERR_READ_SIZE)
            except OSError as e:
                logger.error("%s", StreamError(f"stderr read failed: {e}", stream="stderr"))
                return
            if not data:
                return
            yield data.decode("utf-8", errors="replace")

    async def wait(self) -> int | None:
        await self._exited.wait()
        return self.returncode

    def kill(self) -> None:
        """Forcibly terminate the interpreter."""
        if self._process is None or self._process.returncode is not None:
            return
        try:
            self._process.kill()
            logger.info("Killed interpreter (pid=%d)", self._process.pid)
        except ProcessLookupError:
            pass

    async def _watch_exit(self) -> None:
        assert self._process is not None
        code = await self._process.wait()
        logger.info("Interpreter exit (pid=%d, code=%s)", self._process.pid, code)
        self._exited.set()
