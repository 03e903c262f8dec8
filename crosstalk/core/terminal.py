"""Terminal input: the interactive prompt and the key watcher used while streaming."""

from __future__ import annotations

import contextlib
from typing import Callable, Iterator, Union

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.input import create_input
from prompt_toolkit.key_binding import KeyBindings, KeyPressEvent
from prompt_toolkit.keys import Keys

from .errors import ConfigurationError
from .keybindings import KeyBindingMap, MetaAction

PROMPT_MESSAGE = HTML("<ansicyan><b>you</b></ansicyan>&gt; ")


def build_key_bindings(bindings: KeyBindingMap) -> KeyBindings:
    """Translate a keybinding map into prompt_toolkit bindings.

    ``submit`` accepts the current line; every other action leaves the
    prompt with the action as its result. Keys without a binding keep their
    usual meaning and end up as text.
    """
    kb = KeyBindings()
    for keys, action in bindings.items():
        if action is MetaAction.SUBMIT:
            handler = _submit
        else:
            handler = _exit_with(action)
        try:
            kb.add(*keys)(handler)
        except ValueError as exc:
            raise ConfigurationError(f"invalid key gesture '{' '.join(keys)}': {exc}") from exc
    return kb


def _submit(event: KeyPressEvent) -> None:
    event.current_buffer.validate_and_handle()


def _exit_with(action: MetaAction) -> Callable[[KeyPressEvent], None]:
    def handler(event: KeyPressEvent) -> None:
        event.app.exit(result=action)

    return handler


class PromptReader:
    """Read one line or one meta-action from the user."""

    def __init__(self, bindings: KeyBindingMap, color: bool = True):
        self._message = PROMPT_MESSAGE if color else "you> "
        self._session: PromptSession = PromptSession(
            history=InMemoryHistory(),
            key_bindings=build_key_bindings(bindings),
        )

    async def read(self, default: str = "") -> Union[str, MetaAction]:
        """Raises ``EOFError`` on Ctrl-D and ``KeyboardInterrupt`` on Ctrl-C."""
        return await self._session.prompt_async(self._message, default=default)


class KeyWatcher:
    """Watch the keyboard while a reply streams.

    The terminal is put in raw mode for the duration of :meth:`watch`, which
    also turns Ctrl-C into a key press rather than a signal. Only single-key
    bindings can be recognised here.
    """

    def __init__(self, bindings: KeyBindingMap):
        self._actions = bindings.single_key_actions()

    @contextlib.contextmanager
    def watch(
        self,
        on_action: Callable[[MetaAction], None],
        on_interrupt: Callable[[], None],
    ) -> Iterator[None]:
        terminal = create_input()

        def keys_ready() -> None:
            for press in terminal.read_keys():
                name = press.key.value if isinstance(press.key, Keys) else press.key
                if name == Keys.ControlC.value:
                    on_interrupt()
                    continue
                action = self._actions.get(name)
                if action is not None:
                    on_action(action)

        with terminal.raw_mode(), terminal.attach(keys_ready):
            yield
