"""Per-connection session orchestration.

A session ties one WebSocket connection to one interpreter process.
Setup is linear (run directory, then the three pipe channels, then the
process); once running, every output source feeds one outbound queue
that a single writer drains into the connection.

    PROVISIONING -> RUNNING -> CLOSING -> CLOSED
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState
from pydantic import ValidationError

from dataplayground.config.settings import InterpreterConfig
from dataplayground.domain.models import (
    InboundCommand,
    MessageType,
    OutboundMessage,
    SessionState,
)
from dataplayground.errors import PipeCreationError, ProtocolError, ProvisioningError
from dataplayground.protocol.chunked import ChunkedWriter
from dataplayground.session import commands
from dataplayground.session.interpreter import InterpreterProcess
from dataplayground.session.pipes import NamedPipeChannel
from dataplayground.session.rundir import RunDirectory, RunDirectoryProvisioner

logger = logging.getLogger(__name__)

# Seconds to wait for the killed interpreter to be reaped
KILL_TIMEOUT = 5.0


@dataclass
class SessionResources:
    """Everything a running session owns."""

    run_dir: RunDirectory
    plot: NamedPipeChannel
    dataframe: NamedPipeChannel
    dflist: NamedPipeChannel
    process: InterpreterProcess

    @property
    def channels(self) -> tuple[NamedPipeChannel, NamedPipeChannel, NamedPipeChannel]:
        return (self.plot, self.dataframe, self.dflist)


def interpreter_environment(
    params: Mapping[str, str], config: InterpreterConfig
) -> dict[str, str]:
    """Build the interpreter environment from connection query parameters."""
    env = dict(os.environ) if config.inherit_environment else {}
    env.update(params)
    env[config.api_domain_var] = config.api_domain
    return env


def parse_command(raw: str) -> InboundCommand:
    """Parse one inbound protocol message.

    Raises:
        ProtocolError: If the message is not a valid command.
    """
    try:
        command = InboundCommand.model_validate_json(raw)
    except ValidationError as e:
        raise ProtocolError(f"Malformed message: {e.error_count()} validation error(s)") from e
    if command.type == "dataframe" and ("\n" in command.data or not command.data.strip()):
        raise ProtocolError(f"Invalid data frame name: {command.data!r}")
    return command


class SessionOrchestrator:
    """Runs one interpreter session for one WebSocket connection.

    The connection must already be accepted. ``run`` returns once the
    session is fully torn down.
    """

    def __init__(
        self,
        websocket: WebSocket,
        config: InterpreterConfig,
        env: Mapping[str, str],
        provisioner: RunDirectoryProvisioner | None = None,
    ) -> None:
        self._websocket = websocket
        self._config = config
        self._env = dict(env)
        self._provisioner = provisioner or RunDirectoryProvisioner(
            config.template_dir, prefix=config.run_dir_prefix
        )
        self._state = SessionState.PROVISIONING
        self._resources: SessionResources | None = None
        self._outbox: asyncio.Queue[OutboundMessage] = asyncio.Queue()
        self._closing = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def resources(self) -> SessionResources | None:
        return self._resources

    async def run(self) -> None:
        """Provision, serve the connection, then tear everything down."""
        try:
            self._resources = await self._setup()
        except (ProvisioningError, PipeCreationError) as e:
            logger.error("Session setup failed: %s", e)
            self._state = SessionState.CLOSING
            await self._close_connection()
            self._state = SessionState.CLOSED
            return

        self._state = SessionState.RUNNING
        logger.info("Session running @ %s", self._resources.run_dir.path)
        self._start_tasks(self._resources)
        try:
            await self._closing.wait()
            await self._teardown(self._resources)
        except asyncio.CancelledError:
            self._abort(self._resources)
            raise

    async def handle_message(self, raw: str) -> None:
        """Translate one inbound message into interpreter commands."""
        try:
            command = parse_command(raw)
        except ProtocolError as e:
            logger.warning("Ignoring inbound message: %s", e)
            return
        if self._state is not SessionState.RUNNING or self._resources is None:
            logger.debug("Ignoring %s command in state %s", command.type, self._state.value)
            return

        process = self._resources.process
        cfg = self._config
        if command.type == "stdin":
            logger.info("Got stdin: %s", command.data.rstrip("\n"))
            await process.write(command.data)
            for line in commands.after_stdin(
                cfg.marker, cfg.plot_pipe, cfg.dflist_pipe, cfg.plot_width, cfg.plot_height
            ):
                await process.write(line)
        else:
            logger.info("Got dataframe request: %s", command.data)
            await process.write(
                commands.silent(commands.write_dataframe(command.data, cfg.dataframe_pipe), cfg.marker)
            )

    async def send(self, message: OutboundMessage) -> None:
        """Queue a message for the client. Dropped unless running."""
        if self._state is SessionState.RUNNING:
            self._outbox.put_nowait(message)

    # -------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------

    async def _setup(self) -> SessionResources:
        cfg = self._config
        run_dir = await self._provisioner.provision()
        try:
            plot = await self._create_channel(run_dir, cfg.plot_pipe, MessageType.PLOT, "base64")
            dataframe = await self._create_channel(
                run_dir, cfg.dataframe_pipe, MessageType.DATAFRAME, "utf-8"
            )
            dflist = await self._create_channel(run_dir, cfg.dflist_pipe, MessageType.DFLIST, "utf-8")
        except PipeCreationError:
            await run_dir.remove()
            raise

        process = InterpreterProcess(cfg.command, run_dir.path, self._env, cfg.marker)
        await process.start()
        return SessionResources(run_dir, plot, dataframe, dflist, process)

    async def _create_channel(
        self, run_dir: RunDirectory, pipe_name: str, message_type: MessageType, encoding: str
    ) -> NamedPipeChannel:
        writer = ChunkedWriter(message_type, self.send, self._config.max_fragment_size)
        channel = NamedPipeChannel(
            run_dir.join(pipe_name),
            writer,
            encoding=encoding,
            read_size=self._config.read_size,
            name=message_type.value,
        )
        await channel.create()
        return channel

    def _start_tasks(self, res: SessionResources) -> None:
        for channel in res.channels:
            channel.start()
        self._tasks = [
            asyncio.create_task(self._write_outbox()),
            asyncio.create_task(self._pump_stdout(res.process)),
            asyncio.create_task(self._pump_stderr(res.process)),
            asyncio.create_task(self._close_on(res.process.exited, "interpreter exited")),
            asyncio.create_task(self._close_on(res.process.stdin_closed, "interpreter stdin closed")),
            asyncio.create_task(self._receive_loop()),
        ]

    # -------------------------------------------------------------------
    # Fan-in / fan-out tasks
    # -------------------------------------------------------------------

    async def _pump_stdout(self, process: InterpreterProcess) -> None:
        try:
            async for line in process.lines():
                await self.send(OutboundMessage(type=MessageType.STDOUT, data=line + "\n"))
        finally:
            self._begin_closing("interpreter stdout closed")

    async def _pump_stderr(self, process: InterpreterProcess) -> None:
        async for chunk in process.stderr_chunks():
            logger.debug("stderr: %s", chunk.rstrip())
            await self.send(OutboundMessage(type=MessageType.STDERR, data=chunk))

    async def _close_on(self, event: asyncio.Event, reason: str) -> None:
        await event.wait()
        self._begin_closing(reason)

    async def _receive_loop(self) -> None:
        try:
            while True:
                message = await self._websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.info(
                        "Websocket close: %s - %s", message.get("code"), message.get("reason", "")
                    )
                    return
                text = message.get("text")
                if text is None and message.get("bytes") is not None:
                    text = message["bytes"].decode("utf-8", errors="replace")
                if text is not None:
                    await self.handle_message(text)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.info("Websocket receive ended: %s", e)
        finally:
            self._begin_closing("connection closed")

    async def _write_outbox(self) -> None:
        while True:
            message = await self._outbox.get()
            if not self._connection_open():
                continue
            try:
                await self._websocket.send_text(message.to_json())
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.info("Websocket send failed: %s", e)
                self._begin_closing("send failed")
                return

    # -------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------

    def _begin_closing(self, reason: str) -> None:
        if self._state is not SessionState.RUNNING:
            return
        logger.info("Session closing: %s", reason)
        self._state = SessionState.CLOSING
        self._closing.set()

    async def _teardown(self, res: SessionResources) -> None:
        res.process.kill()
        try:
            await asyncio.wait_for(res.process.wait(), timeout=KILL_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Interpreter pid=%s not reaped after kill", res.process.pid)

        await asyncio.gather(*(channel.stop() for channel in res.channels))

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        await self._close_connection()
        await res.run_dir.remove()
        self._state = SessionState.CLOSED
        logger.info("Session closed")

    def _abort(self, res: SessionResources) -> None:
        """Teardown for a cancelled session task. Must not await."""
        logger.info("Session cancelled, cleaning up")
        res.process.kill()
        for channel in res.channels:
            channel.close()
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        res.run_dir.remove_now()
        self._state = SessionState.CLOSED

    def _connection_open(self) -> bool:
        return (
            self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def _close_connection(self) -> None:
        if not self._connection_open():
            return
        try:
            await self._websocket.close()
        except (RuntimeError, OSError) as e:
            logger.debug("Websocket already closed: %s", e)
