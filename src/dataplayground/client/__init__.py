"""Client side of the dataplayground protocol.

Reassembles chunked plot and data frame payloads and keeps the command
history for one connection. The console client needs the ``websockets``
package and is imported lazily.

Public API:
    ClientReassembler -- Per-connection reassembly state
    RecentCommandHistory -- Bounded up/down command recall
    ConsoleClient -- Terminal REPL over a WebSocket session
"""

from dataplayground.client.reassembler import ClientReassembler, RecentCommandHistory

__all__ = ["ClientReassembler", "RecentCommandHistory", "ConsoleClient"]


def __getattr__(name: str) -> type:
    """Lazy import for the WebSocket console client."""
    if name == "ConsoleClient":
        from dataplayground.client.console import ConsoleClient
        return ConsoleClient
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
