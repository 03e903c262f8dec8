"""Streaming completion contract shared by every provider back-end.

A back-end only has to produce raw text fragments from :meth:`CompletionBackend.stream`
and, optionally, map its library's exceptions in :meth:`CompletionBackend.classify`.
:meth:`CompletionBackend.complete` turns that raw stream into the sequence of
:class:`StreamIncrement` values the session consumes:

* zero or more :class:`Fragment` values, in the order the back-end produced them;
* exactly one terminal value: :class:`Completed`, :class:`Cancelled` or :class:`Failed`.

The sequence is single use. Retrying means calling ``complete`` again.
"""

from __future__ import annotations

import abc
import asyncio
import contextlib
import logging
import signal
from dataclasses import dataclass
from typing import AsyncIterator, Iterator, List, Union

import httpx

from .conversation import Conversation, Message
from .errors import CompletionError, ProviderError, TransportError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Stream increments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Fragment:
    text: str


@dataclass(frozen=True)
class Completed:
    message: Message


@dataclass(frozen=True)
class Cancelled:
    partial: str = ""


@dataclass(frozen=True)
class Failed:
    error: CompletionError


StreamIncrement = Union[Fragment, Completed, Cancelled, Failed]
TERMINAL_INCREMENTS = (Completed, Cancelled, Failed)


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class CancellationToken:
    """Cooperative cancellation flag observed by a running completion."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


@contextlib.contextmanager
def bind_interrupt(token: CancellationToken) -> Iterator[None]:
    """Route SIGINT to *token* while the block runs."""
    loop = asyncio.get_running_loop()
    previous = signal.getsignal(signal.SIGINT)
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except (NotImplementedError, RuntimeError) as exc:
        # Windows event loops and non-main threads cannot install handlers;
        # Ctrl-C then surfaces as KeyboardInterrupt instead.
        logger.debug("SIGINT not bound to cancellation: %s", exc)
        yield
        return
    try:
        yield
    finally:
        loop.remove_signal_handler(signal.SIGINT)
        # remove_signal_handler installs the default handler, not the previous one.
        if previous is not None:
            signal.signal(signal.SIGINT, previous)


# ---------------------------------------------------------------------------
# Back-end base class
# ---------------------------------------------------------------------------


class CompletionBackend(abc.ABC):
    """A chat-completion implementation for one provider."""

    @abc.abstractmethod
    def stream(self, conversation: Conversation, model: str) -> AsyncIterator[str]:
        """Yield raw text fragments for *conversation* as they arrive.

        Implementations are async generators. They may raise a
        :class:`CompletionError` subclass directly or let their library's
        exceptions escape to :meth:`classify`.
        """

    def classify(self, exc: Exception) -> CompletionError:
        """Map an exception escaping :meth:`stream` onto the error taxonomy."""
        if isinstance(exc, CompletionError):
            return exc
        if isinstance(exc, httpx.TransportError):
            return TransportError(str(exc) or type(exc).__name__)
        return ProviderError(str(exc) or type(exc).__name__)

    async def complete(
        self, conversation: Conversation, model: str, cancel: CancellationToken
    ) -> AsyncIterator[StreamIncrement]:
        fragments: List[str] = []
        raw = self.stream(conversation, model)
        pending = None
        logger.debug("%s: requesting completion from %s", type(self).__name__, model)
        try:
            while True:
                if cancel.cancelled:
                    yield Cancelled("".join(fragments))
                    return
                pending = asyncio.ensure_future(raw.__anext__())
                waiter = asyncio.ensure_future(cancel.wait())
                try:
                    await asyncio.wait({pending, waiter}, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    waiter.cancel()
                if cancel.cancelled:
                    await _discard(pending)
                    yield Cancelled("".join(fragments))
                    return
                try:
                    text = pending.result()
                except StopAsyncIteration:
                    break
                except Exception as exc:  # classified below, never re-raised
                    error = self.classify(exc)
                    logger.debug("%s: %s", type(self).__name__, error.describe())
                    yield Failed(error)
                    return
                if not text:
                    continue
                fragments.append(text)
                yield Fragment(text)
        finally:
            if pending is not None:
                await _discard(pending)
            await raw.aclose()
        yield Completed(Message.assistant("".join(fragments)))


async def _discard(task: "asyncio.Future[str]") -> None:
    """Cancel a pending fragment fetch and wait for it to unwind."""
    if not task.done():
        task.cancel()
    with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration, Exception):
        await task
