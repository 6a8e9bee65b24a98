"""dataplayground -- Browser REPL bridge to a live R interpreter.

Each WebSocket connection gets its own R process running inside a
throwaway directory. Console output, rendered plots and data frame
snapshots stream back to the browser as JSON messages; plots and data
frames travel through named pipes the interpreter writes into.
"""

__version__ = "0.1.0"
