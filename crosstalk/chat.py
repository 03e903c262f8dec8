"""The ``chat`` command: wires configuration, registry and terminal into a session."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Optional, TextIO

from rich.console import Console
from rich.markup import escape

from .core.conversation import Conversation
from .core.editor import ExternalEditor
from .core.errors import UnknownModelError
from .core.keybindings import KeyBindingMap
from .core.registry import Registry
from .core.session import EXIT_FAILURE, ChatSession, ModelPicker, SessionConfig
from .core.terminal import KeyWatcher, PromptReader
from .utils import ERROR_LABEL, WARNING_LABEL, ansi
from .utils.picker import pick_model

logger = logging.getLogger(__name__)


@dataclass
class ChatOptions:
    model: Optional[str] = None
    interactive: bool = False
    prompt: Optional[str] = None


def read_piped_prompt(stdin: TextIO) -> Optional[str]:
    """Return piped standard input, or ``None`` when stdin is a terminal."""
    if stdin.isatty():
        return None
    text = stdin.read().strip()
    return text or None


async def chat_cmd(
    editor: Optional[str],
    keybindings: KeyBindingMap,
    default_model: Optional[str],
    registry: Registry,
    options: ChatOptions,
    *,
    system_prompt: Optional[str] = None,
    console: Optional[Console] = None,
    stdin: Optional[TextIO] = None,
    model_picker: Optional[ModelPicker] = pick_model,
) -> int:
    """Run a chat session and return the process exit status."""
    console = console or ansi.console
    stdin = stdin or sys.stdin
    tty = stdin.isatty()

    prompt = options.prompt
    if prompt is None:
        prompt = read_piped_prompt(stdin)
    # With no prompt and no editor there is nothing to send: go interactive.
    interactive = options.interactive or (prompt is None and editor is None and tty)
    if interactive and not tty:
        console.print(f"[{WARNING_LABEL}] standard input is not a terminal; answering once", highlight=False)
        interactive = False

    try:
        provider, model = registry.resolve(options.model, default_model)
    except UnknownModelError as exc:
        console.print(f"[{ERROR_LABEL}] {escape(str(exc))}", highlight=False)
        if not (interactive and model_picker is not None and registry.model_names()):
            return EXIT_FAILURE
        choice = await model_picker(registry.model_names(), None)
        if not choice:
            return EXIT_FAILURE
        provider, model = registry.resolve(choice)

    config = SessionConfig(model=model, interactive=interactive, keybindings=keybindings, editor=editor)
    session = ChatSession(
        registry,
        config,
        provider=provider,
        conversation=Conversation(system_prompt=system_prompt),
        reader=PromptReader(keybindings, color=not console.no_color) if interactive else None,
        editor=ExternalEditor(editor) if editor else None,
        key_watcher=KeyWatcher(keybindings) if interactive else None,
        model_picker=model_picker if interactive else None,
        console=console,
    )
    logger.debug("starting %s session with %s/%s", "interactive" if interactive else "single-shot", provider.identifier.value, model)
    return await session.run(prompt)
