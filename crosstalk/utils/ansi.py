"""Colour and styling helpers built on :mod:`rich`."""

from __future__ import annotations

from enum import Enum

from rich.console import Console


class ColorMode(str, Enum):
    AUTO = "auto"
    ON = "on"
    OFF = "off"

    def __str__(self) -> str:
        return self.value


def make_console(mode: ColorMode = ColorMode.AUTO, *, stderr: bool = False) -> Console:
    """Return a console honouring *mode*; ``auto`` follows the terminal and ``NO_COLOR``."""
    if mode is ColorMode.ON:
        return Console(stderr=stderr, force_terminal=True)
    if mode is ColorMode.OFF:
        return Console(stderr=stderr, no_color=True, highlight=False)
    return Console(stderr=stderr)


console = make_console()
err_console = make_console(stderr=True)


def configure_color(mode: ColorMode) -> Console:
    """Rebuild the shared consoles for *mode* and return the stdout one."""
    global console, err_console
    console = make_console(mode)
    err_console = make_console(mode, stderr=True)
    return console


class Ansi:
    """Lightweight collection of style names used throughout the app."""

    BOLD = "bold"

    FG_GREEN = "green"
    FG_YELLOW = "yellow"
    FG_RED = "red"
    DIM = "dim"

    @staticmethod
    def style(text: str, *codes: str) -> str:
        """Return *text* wrapped in rich markup; the console decides on colour."""
        style = " ".join(codes)
        return f"[{style}]{text}[/]"


# Common labels used throughout the application
ASSISTANT_LABEL = Ansi.style("assistant", Ansi.FG_GREEN, Ansi.BOLD)
ERROR_LABEL = Ansi.style("error", Ansi.FG_RED, Ansi.BOLD)
WARNING_LABEL = Ansi.style("warning", Ansi.FG_YELLOW, Ansi.BOLD)
