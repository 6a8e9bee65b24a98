"""Tests for chunked transfer framing."""

from __future__ import annotations

import pytest

from dataplayground.domain.models import MessageType, OutboundMessage
from dataplayground.protocol.chunked import ChunkAssembler, ChunkedWriter, split_payload


class TestSplitPayload:
    def test_fragments_then_terminator(self) -> None:
        messages = split_payload(MessageType.DATAFRAME, "abcdefg", max_fragment_size=3)
        assert [m.data for m in messages] == ["abc", "def", "g", ""]
        assert all(m.type is MessageType.DATAFRAME for m in messages)

    def test_empty_payload_is_only_terminator(self) -> None:
        messages = split_payload(MessageType.PLOT, "")
        assert len(messages) == 1
        assert messages[0].is_terminator

    def test_exactly_one_terminator(self) -> None:
        messages = split_payload(MessageType.DFLIST, "x" * 1000, max_fragment_size=7)
        assert sum(m.is_terminator for m in messages) == 1
        assert messages[-1].is_terminator

    def test_invalid_fragment_size(self) -> None:
        with pytest.raises(ValueError):
            split_payload(MessageType.PLOT, "abc", max_fragment_size=0)


class TestChunkedWriter:
    @pytest.mark.asyncio
    async def test_write_and_end(self, collector) -> None:
        writer = collector.writer(MessageType.PLOT, max_fragment_size=4)
        await writer.write("iVBORw0K")
        assert writer.in_payload
        await writer.end()
        assert [m.data for m in collector.messages] == ["iVBO", "Rw0K", ""]
        assert not writer.in_payload
        assert writer.payloads_ended == 1

    @pytest.mark.asyncio
    async def test_empty_write_sends_nothing(self, collector) -> None:
        writer = collector.writer(MessageType.DFLIST)
        await writer.write("")
        assert collector.messages == []

    @pytest.mark.asyncio
    async def test_end_without_fragments(self, collector) -> None:
        writer = collector.writer(MessageType.DATAFRAME)
        await writer.end()
        await writer.end()
        assert collector.terminators(MessageType.DATAFRAME) == 2
        assert writer.payloads_ended == 2

    def test_rejects_unchunked_type(self, collector) -> None:
        with pytest.raises(ValueError, match="not a chunked"):
            ChunkedWriter(MessageType.STDOUT, collector)


class TestChunkAssembler:
    def test_joins_fragments_on_terminator(self) -> None:
        assembler = ChunkAssembler()
        assert assembler.feed(OutboundMessage(type=MessageType.DATAFRAME, data='[{"a"')) is None
        assert assembler.feed(OutboundMessage(type=MessageType.DATAFRAME, data=": 1}]")) is None
        assert assembler.pending(MessageType.DATAFRAME) == '[{"a": 1}]'
        assert assembler.feed(OutboundMessage(type=MessageType.DATAFRAME, data="")) == '[{"a": 1}]'
        assert assembler.pending(MessageType.DATAFRAME) == ""

    def test_types_are_independent(self) -> None:
        assembler = ChunkAssembler()
        assembler.feed(OutboundMessage(type=MessageType.DATAFRAME, data="[1"))
        assembler.feed(OutboundMessage(type=MessageType.DFLIST, data='["df"]'))
        assembler.feed(OutboundMessage(type=MessageType.DATAFRAME, data=",2]"))
        assert assembler.feed(OutboundMessage(type=MessageType.DFLIST, data="")) == '["df"]'
        assert assembler.feed(OutboundMessage(type=MessageType.DATAFRAME, data="")) == "[1,2]"

    def test_terminator_alone_yields_empty_payload(self) -> None:
        assembler = ChunkAssembler()
        assert assembler.feed(OutboundMessage(type=MessageType.PLOT, data="")) == ""

    def test_unchunked_message_passes_through(self) -> None:
        assembler = ChunkAssembler()
        assert assembler.feed(OutboundMessage(type=MessageType.STDOUT, data="hi\n")) == "hi\n"

    def test_reset(self) -> None:
        assembler = ChunkAssembler()
        assembler.feed(OutboundMessage(type=MessageType.DATAFRAME, data="junk"))
        assembler.reset(MessageType.DATAFRAME)
        assert assembler.feed(OutboundMessage(type=MessageType.DATAFRAME, data="")) == ""

    def test_split_then_assemble(self) -> None:
        payload = '[{"mpg": 21.0, "cyl": 6}]' * 40
        assembler = ChunkAssembler()
        results = [
            assembler.feed(m) for m in split_payload(MessageType.DATAFRAME, payload, 16)
        ]
        assert results[-1] == payload
        assert all(r is None for r in results[:-1])
