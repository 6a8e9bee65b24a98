"""Core domain models for dataplayground.

These models represent the data flowing between the browser and a
session: inbound commands from the client, outbound messages fanned in
from the interpreter and its pipes, and the session lifecycle state.
"""

from __future__ import annotations

import enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MessageType(str, enum.Enum):
    """Outbound message categories (one per logical channel)."""

    STDOUT = "stdout"
    STDERR = "stderr"
    PLOT = "plot"
    DATAFRAME = "dataframe"
    DFLIST = "dflist"


# Channels that carry fragments closed by an empty-payload terminator
CHUNKED_TYPES = frozenset({MessageType.PLOT, MessageType.DATAFRAME, MessageType.DFLIST})


class SessionState(str, enum.Enum):
    """Lifecycle of a per-connection interpreter session."""

    PROVISIONING = "provisioning"
    RUNNING = "running"
    CLOSING = "closing"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# Protocol messages
# ---------------------------------------------------------------------------


class OutboundMessage(BaseModel):
    """A server-to-client message.

    ``data`` may be a fragment of a larger logical value; for chunked
    types an empty ``data`` ends the current value.
    """

    model_config = ConfigDict(frozen=True)

    type: MessageType = Field(description="Channel the payload belongs to")
    data: str = Field(default="", description="Payload or payload fragment")

    @property
    def is_terminator(self) -> bool:
        return self.type in CHUNKED_TYPES and self.data == ""

    def to_json(self) -> str:
        return self.model_dump_json()


class InboundCommand(BaseModel):
    """A client-to-server message.

    ``stdin`` carries raw command text (newline-terminated by the sender);
    ``dataframe`` carries a bare variable or expression name.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["stdin", "dataframe"] = Field(description="Command kind")
    data: str = Field(description="Command text or data frame name")
