from .ansi import (
    Ansi,
    ColorMode,
    ASSISTANT_LABEL,
    ERROR_LABEL,
    WARNING_LABEL,
    configure_color,
    make_console,
)
from .spinner import Spinner

__all__ = [
    "Ansi",
    "ColorMode",
    "ASSISTANT_LABEL",
    "ERROR_LABEL",
    "WARNING_LABEL",
    "configure_color",
    "make_console",
    "Spinner",
]
