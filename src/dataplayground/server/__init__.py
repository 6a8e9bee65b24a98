"""Network surface of dataplayground.

Serves the per-connection WebSocket session endpoint and, separately,
the static files of the browser client.
"""
