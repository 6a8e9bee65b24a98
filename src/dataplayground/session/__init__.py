"""Interpreter session machinery for dataplayground.

One session per WebSocket connection: a run directory, three named pipe
channels, an interpreter process, and the orchestrator that wires them
to the connection.

Public API:
    RunDirectoryProvisioner -- Creates and seeds run directories
    NamedPipeChannel -- Self-healing FIFO reader
    InterpreterProcess -- The interpreter child process
    SessionOrchestrator -- Per-connection state machine
"""

from dataplayground.session.interpreter import InterpreterProcess
from dataplayground.session.orchestrator import SessionOrchestrator, SessionResources
from dataplayground.session.pipes import NamedPipeChannel
from dataplayground.session.rundir import RunDirectory, RunDirectoryProvisioner

__all__ = [
    "InterpreterProcess",
    "NamedPipeChannel",
    "RunDirectory",
    "RunDirectoryProvisioner",
    "SessionOrchestrator",
    "SessionResources",
]
