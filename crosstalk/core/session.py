"""Chat session engine: turn sequencing, meta-actions and rendering."""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    ContextManager,
    List,
    Optional,
    Union,
)

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from ..utils import ASSISTANT_LABEL, ERROR_LABEL, WARNING_LABEL, Ansi, Spinner
from ..utils import ansi
from .conversation import Conversation
from .editor import ExternalEditor
from .errors import EditorError, ProviderError, UnknownModelError
from .keybindings import KeyBindingMap, MetaAction
from .protocol import (
    CancellationToken,
    Cancelled,
    Completed,
    Failed,
    Fragment,
    StreamIncrement,
    bind_interrupt,
)
from .registry import ProviderDescriptor, Registry

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130

ModelPicker = Callable[[List[str], Optional[str]], Awaitable[Optional[str]]]


class SessionState(Enum):
    AWAITING_INPUT = "awaiting-input"
    COMPOSING = "composing"
    STREAMING = "streaming"
    RENDERING = "rendering"
    EXITING = "exiting"


@dataclass(frozen=True)
class SessionConfig:
    model: str
    interactive: bool = False
    keybindings: KeyBindingMap = field(default_factory=KeyBindingMap)
    editor: Optional[str] = None


class ChatSession:
    """High-level orchestration class for one conversation.

    *reader* supplies interactive input (a line of text or a
    :class:`MetaAction`), *editor* composes prompts in an external program,
    and *key_watcher* reports key presses while a reply streams. All three
    are optional; a single-shot session needs none of them.
    """

    def __init__(
        self,
        registry: Registry,
        config: SessionConfig,
        *,
        provider: Optional[ProviderDescriptor] = None,
        conversation: Optional[Conversation] = None,
        reader=None,
        editor: Optional[ExternalEditor] = None,
        key_watcher=None,
        model_picker: Optional[ModelPicker] = None,
        console: Optional[Console] = None,
        handle_signals: bool = True,
    ):
        self.registry = registry
        self.config = config
        self.conversation = conversation if conversation is not None else Conversation()
        self.reader = reader
        self.editor = editor
        self.key_watcher = key_watcher
        self.model_picker = model_picker
        self.console = console or ansi.console
        self.handle_signals = handle_signals
        self.state = SessionState.AWAITING_INPUT

        self._provider = provider
        self._model = config.model
        self._token: Optional[CancellationToken] = None
        self._quit_requested = False
        self._prefill = ""
        self._replace_last_turn = False

    # ---------------- Model resolution ----------------

    @property
    def model(self) -> str:
        return self._model

    @property
    def provider(self) -> ProviderDescriptor:
        return self.resolve()

    def resolve(self) -> ProviderDescriptor:
        """Resolve the session model once; later calls return the cached provider."""
        if self._provider is None:
            self._provider, self._model = self.registry.resolve(self._model)
        return self._provider

    def change_model(self, model: str) -> None:
        provider, name = self.registry.resolve(model)
        self._provider, self._model = provider, name
        logger.info("switched to %s/%s", provider.identifier.value, name)

    # ---------------- External triggers ----------------

    def interrupt(self) -> None:
        """Cancel the in-flight request, if any."""
        if self._token is not None:
            self._token.cancel()

    def request_quit(self) -> None:
        self._quit_requested = True
        self.interrupt()

    @property
    def quit_requested(self) -> bool:
        return self._quit_requested

    # ---------------- Entry point ----------------

    async def run(self, initial_prompt: Optional[str] = None) -> int:
        """Run the session and return the process exit status."""
        try:
            self.resolve()
            if not self.config.interactive:
                return await self._run_once(initial_prompt)

            self._banner()
            if initial_prompt is not None and initial_prompt.strip():
                await self.submit(initial_prompt.strip())
            while not self._quit_requested:
                if not await self.step():
                    break
            return EXIT_OK
        finally:
            self.state = SessionState.EXITING
            self.console.file.flush()

    async def _run_once(self, prompt: Optional[str]) -> int:
        if prompt is None or not prompt.strip():
            prompt = await self.compose("")
            if prompt is None:
                return EXIT_FAILURE
        outcome = await self.submit(prompt.strip())
        if isinstance(outcome, Completed):
            return EXIT_OK
        if isinstance(outcome, Cancelled):
            return EXIT_OK if self._quit_requested else EXIT_CANCELLED
        return EXIT_FAILURE

    async def step(self) -> bool:
        """Wait for one input and act on it. Return False to end the session."""
        if self.reader is None:
            return False
        self.state = SessionState.AWAITING_INPUT
        default, self._prefill = self._prefill, ""
        # An inline edit applies only to the very next input.
        replace_last, self._replace_last_turn = self._replace_last_turn, False
        try:
            entry = await self.reader.read(default=default)
        except (EOFError, KeyboardInterrupt):
            self.console.print()
            return False

        if isinstance(entry, MetaAction):
            return await self.dispatch(entry)

        text = entry.strip()
        if not text:
            return True
        if replace_last:
            self.conversation.truncate_last_turn()
        await self.submit(text)
        return not self._quit_requested

    # ---------------- Meta-actions ----------------

    async def dispatch(self, action: MetaAction) -> bool:
        """Handle a meta-action. Return False to end the session."""
        logger.debug("meta-action %s", action.value)

        if action is MetaAction.QUIT:
            self.request_quit()
            return False

        if action is MetaAction.CLEAR_HISTORY:
            self.conversation.clear()
            self._notice("[conversation cleared]")

        elif action is MetaAction.OPEN_EDITOR:
            text = await self.compose("")
            if text is not None:
                await self.submit(text)

        elif action is MetaAction.EDIT_LAST:
            await self._edit_last()

        elif action is MetaAction.RESEND:
            last = self.conversation.last_user_prompt()
            if last is None:
                self._notice("[nothing to resend]")
            else:
                self.conversation.truncate_last_turn()
                await self.submit(last)

        elif action is MetaAction.SELECT_MODEL:
            await self._select_model()

        return not self._quit_requested

    async def _edit_last(self) -> None:
        last = self.conversation.last_user_prompt()
        if last is None:
            self._notice("[nothing to edit]")
            return
        if self.editor is None:
            # Without an editor the previous prompt is offered for inline editing.
            self._prefill = last
            self._replace_last_turn = True
            return
        text = await self.compose(last)
        if text is None:
            return
        self.conversation.truncate_last_turn()
        await self.submit(text)

    async def _select_model(self) -> None:
        if self.model_picker is None:
            self._notice("[model selection is not available]")
            return
        choice = await self.model_picker(self.registry.model_names(), self._model)
        if not choice or choice == self._model:
            return
        try:
            self.change_model(choice)
        except UnknownModelError as exc:
            self.console.print(f"[{ERROR_LABEL}] {escape(str(exc))}", highlight=False)
            return
        self._notice(f"[model switched to {self._model}]")

    # ---------------- Composing ----------------

    async def compose(self, seed: str = "") -> Optional[str]:
        """Let the user write a prompt in the external editor.

        Returns ``None`` when there is no editor, the editor fails or the
        buffer is left empty; the conversation is untouched in every case.
        """
        if self.editor is None:
            self.console.print(
                f"[{WARNING_LABEL}] no prompt given and no editor configured (set 'editor' or $EDITOR)",
                highlight=False,
            )
            return None
        previous = self.state
        self.state = SessionState.COMPOSING
        try:
            text = await self.editor.edit(seed)
        except EditorError as exc:
            self.console.print(f"[{WARNING_LABEL}] {escape(str(exc))}; prompt discarded", highlight=False)
            return None
        finally:
            self.state = previous
        if text is None:
            self._notice("[empty prompt, nothing sent]")
        return text

    # ---------------- Streaming & rendering ----------------

    async def submit(self, text: str) -> StreamIncrement:
        """Send *text* as the next user turn and render the reply."""
        provider = self.provider
        self.state = SessionState.STREAMING
        self.conversation.add_user_message(text)
        token = CancellationToken()
        self._token = token
        try:
            with self._interrupt_scope(token), self._watch_keys():
                increments = provider.backend.complete(self.conversation, self._model, token)
                outcome = await self.render(increments)
        finally:
            self._token = None
        self._record(outcome)
        self.state = SessionState.EXITING if self._quit_requested else SessionState.AWAITING_INPUT
        return outcome

    async def render(self, increments: AsyncIterator[StreamIncrement]) -> StreamIncrement:
        """Write fragments as they arrive and return the terminal increment."""
        prefix = f"{ASSISTANT_LABEL}> " if self.config.interactive else ""
        outcome: Optional[StreamIncrement] = None
        try:
            with Spinner(self.console, prefix) as spinner:
                async for increment in increments:
                    self.state = SessionState.RENDERING
                    if isinstance(increment, Fragment):
                        spinner.stop()
                        self.console.out(increment.text, end="", highlight=False)
                    else:
                        outcome = increment
        finally:
            await increments.aclose()
        self.console.out("")
        if outcome is None:
            outcome = Failed(ProviderError("the reply ended without a result"))
        return outcome

    def _record(self, outcome: StreamIncrement) -> None:
        if isinstance(outcome, Completed):
            self.conversation.append(outcome.message)
        elif isinstance(outcome, Cancelled):
            self._notice("[cancelled]")
        elif isinstance(outcome, Failed):
            self.console.print(f"[{ERROR_LABEL}] {escape(outcome.error.describe())}", highlight=False)
            hint = self._hint(MetaAction.RESEND)
            if self.config.interactive and hint:
                self._notice(f"[press {hint} to resend]")

    def _interrupt_scope(self, token: CancellationToken) -> ContextManager[None]:
        if not self.handle_signals:
            return contextlib.nullcontext()
        return bind_interrupt(token)

    def _watch_keys(self) -> ContextManager[None]:
        if self.key_watcher is None:
            return contextlib.nullcontext()
        return self.key_watcher.watch(self._on_key_action, self.interrupt)

    def _on_key_action(self, action: MetaAction) -> None:
        if action is MetaAction.QUIT:
            self.request_quit()

    # ---------------- Output helpers ----------------

    def _hint(self, action: MetaAction) -> Union[str, None]:
        gestures = self.config.keybindings.gestures_for(action)
        return gestures[0] if gestures else None

    def _notice(self, text: str) -> None:
        self.console.print(Ansi.style(escape(text), Ansi.DIM), highlight=False)

    def _banner(self) -> None:
        provider = self.provider
        self.console.print(Panel.fit(f"crosstalk · {provider.name} · {self._model}", style="bold magenta"))
        lines = ["Type your message and press Enter. Ctrl-D exits, Ctrl-C cancels a reply."]
        for action in MetaAction:
            gestures = self.config.keybindings.gestures_for(action)
            if gestures:
                lines.append(f"  {', '.join(gestures):<12} {action.value}")
        for line in lines:
            self.console.print(Ansi.style(line, Ansi.FG_YELLOW), highlight=False, markup=True)
