"""Chunked transfer over the message channel.

A logical value of unknown or large size travels as an ordered run of
same-typed messages, each carrying a non-empty fragment, followed by
exactly one message of that type with an empty payload. The receiver
owns concatenation.

Sending side::

    writer = ChunkedWriter(MessageType.PLOT, send)
    await writer.write(fragment)
    await writer.end()

Receiving side::

    assembler = ChunkAssembler()
    payload = assembler.feed(message)   # None until the terminator
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator

from dataplayground.domain.models import CHUNKED_TYPES, MessageType, OutboundMessage

logger = logging.getLogger(__name__)

DEFAULT_MAX_FRAGMENT_SIZE = 65536

SendFunc = Callable[[OutboundMessage], Awaitable[None]]


def _fragments(data: str, max_fragment_size: int) -> Iterator[str]:
    for start in range(0, len(data), max_fragment_size):
        yield data[start:start + max_fragment_size]


def split_payload(
    message_type: MessageType,
    payload: str,
    max_fragment_size: int = DEFAULT_MAX_FRAGMENT_SIZE,
) -> list[OutboundMessage]:
    """Turn one complete logical value into its message sequence."""
    if max_fragment_size <= 0:
        raise ValueError("max_fragment_size must be positive")
    messages = [
        OutboundMessage(type=message_type, data=fragment)
        for fragment in _fragments(payload, max_fragment_size)
    ]
    messages.append(OutboundMessage(type=message_type, data=""))
    return messages


class ChunkedWriter:
    """Emits fragments and terminators for one chunked message type.

    ``write`` never sends an empty message, so the only empty payload a
    receiver sees is the one produced by ``end``.
    """

    def __init__(
        self,
        message_type: MessageType,
        send: SendFunc,
        max_fragment_size: int = DEFAULT_MAX_FRAGMENT_SIZE,
    ) -> None:
        if message_type not in CHUNKED_TYPES:
            raise ValueError(f"{message_type.value} is not a chunked message type")
        if max_fragment_size <= 0:
            raise ValueError("max_fragment_size must be positive")
        self._type = message_type
        self._send = send
        self._max_fragment_size = max_fragment_size
        self._fragments_sent = 0
        self._payloads_ended = 0

    @property
    def message_type(self) -> MessageType:
        return self._type

    @property
    def in_payload(self) -> bool:
        """Whether fragments were sent since the last terminator."""
        return self._fragments_sent > 0

    @property
    def payloads_ended(self) -> int:
        return self._payloads_ended

    async def write(self, data: str) -> None:
        for fragment in _fragments(data, self._max_fragment_size):
            await self._send(OutboundMessage(type=self._type, data=fragment))
            self._fragments_sent += 1

    async def end(self) -> None:
        await self._send(OutboundMessage(type=self._type, data=""))
        logger.debug(
            "%s payload ended after %d fragment(s)", self._type.value, self._fragments_sent
        )
        self._fragments_sent = 0
        self._payloads_ended += 1


class ChunkAssembler:
    """Buffers fragments per message type until their terminator."""

    def __init__(self) -> None:
        self._buffers: dict[MessageType, list[str]] = {}

    def pending(self, message_type: MessageType) -> str:
        """The fragments buffered so far for ``message_type``."""
        return "".join(self._buffers.get(message_type, []))

    def feed(self, message: OutboundMessage) -> str | None:
        """Add one message; return the whole payload on its terminator.

        Non-chunked messages are complete on their own and are returned
        as-is.
        """
        if message.type not in CHUNKED_TYPES:
            return message.data
        if message.data:
            self._buffers.setdefault(message.type, []).append(message.data)
            return None
        return "".join(self._buffers.pop(message.type, []))

    def reset(self, message_type: MessageType | None = None) -> None:
        if message_type is None:
            self._buffers.clear()
        else:
            self._buffers.pop(message_type, None)
