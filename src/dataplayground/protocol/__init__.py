"""Wire conventions shared by the server and its clients."""

from dataplayground.protocol.chunked import ChunkAssembler, ChunkedWriter, split_payload

__all__ = ["ChunkAssembler", "ChunkedWriter", "split_payload"]
