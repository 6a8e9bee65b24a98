"""Bookkeeping commands injected into the R interpreter.

After every user command the session quietly refreshes the plot device
and the list of data frames; on request it serializes a data frame.
Each injected command is wrapped in ``invisible()`` so R prints no
value, and tagged with a marker comment so the echo R writes to stdout
can be filtered out before it reaches the client.
"""

from __future__ import annotations


def silent(command: str, marker: str) -> str:
    """Wrap ``command`` so neither its value nor its echo is shown."""
    return f"invisible({command}) {marker}\n"


def close_plot_devices() -> str:
    # graphics.off() is a no-op when only the null device is open
    return "graphics.off()"


def open_plot_device(pipe_name: str, width: int, height: int) -> str:
    return f'png("{pipe_name}", {width}, {height})'


def write_dataframe_list(pipe_name: str) -> str:
    return (
        "write(toJSON(Filter(function(x) is.data.frame(get(x)), ls())), "
        f'file = "{pipe_name}")'
    )


def write_dataframe(name: str, pipe_name: str) -> str:
    return f'write(toJSON({name}), file = "{pipe_name}")'


def after_stdin(
    marker: str,
    plot_pipe: str,
    dflist_pipe: str,
    width: int,
    height: int,
) -> list[str]:
    """The commands that follow every forwarded ``stdin`` payload, in order."""
    return [
        silent(close_plot_devices(), marker),
        silent(open_plot_device(plot_pipe, width, height), marker),
        silent(write_dataframe_list(dflist_pipe), marker),
    ]
