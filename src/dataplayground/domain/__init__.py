"""Domain models for dataplayground.

This package contains the protocol messages and lifecycle enumerations
shared by the server, the session machinery and the client. All models
use Pydantic v2 for validation and serialization.
"""

from dataplayground.domain.models import (
    CHUNKED_TYPES,
    InboundCommand,
    MessageType,
    OutboundMessage,
    SessionState,
)

__all__ = [
    "CHUNKED_TYPES",
    "InboundCommand",
    "MessageType",
    "OutboundMessage",
    "SessionState",
]
