"""External editor support for composing prompts."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shlex
import sys
import tempfile
from pathlib import Path
from typing import Iterator, List, Optional, TextIO

from .errors import EditorError

logger = logging.getLogger(__name__)

try:
    import termios
except ImportError:  # pragma: no cover - Windows has no termios
    termios = None  # type: ignore[assignment]


@contextlib.contextmanager
def terminal_scope(stream: Optional[TextIO] = None) -> Iterator[None]:
    """Hand the terminal to a child process and restore its mode afterwards.

    The attributes of *stream* (stdin by default) are saved on entry and put
    back on every exit path, so an editor that crashes or leaves the tty in
    raw mode cannot break the prompt that follows.
    """
    stream = stream or sys.stdin
    saved = None
    fd = None
    if termios is not None:
        try:
            if stream.isatty():
                fd = stream.fileno()
                saved = termios.tcgetattr(fd)
        except (OSError, ValueError, termios.error) as exc:
            logger.debug("terminal attributes unavailable: %s", exc)
    try:
        yield
    finally:
        if saved is not None:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)


class ExternalEditor:
    """Run a user-configured editor against a temporary prompt file."""

    SUFFIX = ".md"

    def __init__(self, command: str):
        self.command = command

    def argv(self, path: Path) -> List[str]:
        try:
            args = shlex.split(self.command)
        except ValueError as exc:
            raise EditorError(f"cannot parse editor command {self.command!r}: {exc}") from exc
        if not args:
            raise EditorError("editor command is empty")
        return args + [str(path)]

    async def edit(self, seed: str = "") -> Optional[str]:
        """Open the editor seeded with *seed* and return the edited text.

        Returns ``None`` when the buffer comes back empty. Raises
        :class:`EditorError` when the editor cannot be started, exits with
        a failure status or leaves text that is not UTF-8.
        """
        fd, name = tempfile.mkstemp(prefix="crosstalk-", suffix=self.SUFFIX)
        path = Path(name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(seed)
            argv = self.argv(path)
            logger.debug("launching editor: %s", argv)
            with terminal_scope():
                try:
                    process = await asyncio.create_subprocess_exec(*argv)
                except OSError as exc:
                    raise EditorError(f"cannot start editor '{argv[0]}': {exc}") from exc
                try:
                    status = await process.wait()
                finally:
                    if process.returncode is None:
                        with contextlib.suppress(ProcessLookupError):
                            process.kill()
                        await process.wait()
            if status != 0:
                raise EditorError(f"editor exited with status {status}")
            try:
                text = path.read_text(encoding="utf-8").strip()
            except UnicodeDecodeError as exc:
                raise EditorError(f"prompt file is not valid UTF-8: {exc}") from exc
        finally:
            with contextlib.suppress(FileNotFoundError):
                path.unlink()
        return text or None
