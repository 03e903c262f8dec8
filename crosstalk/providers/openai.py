"""OpenAI back-end built on the official SDK's streaming Chat Completions API."""

from __future__ import annotations

from typing import AsyncIterator, Optional

import openai
from openai import AsyncOpenAI

from ..core.conversation import Conversation
from ..core.errors import (
    AuthError,
    CompletionError,
    InvalidRequest,
    ProviderError,
    RateLimited,
    TransportError,
    parse_retry_after,
)
from ..core.protocol import CompletionBackend


class OpenAIBackend(CompletionBackend):
    """Thin wrapper around the OpenAI Python SDK hiding streaming details."""

    def __init__(self, client: AsyncOpenAI):
        self.client = client

    @classmethod
    def from_settings(
        cls,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        organization: Optional[str] = None,
        timeout: float = 60.0,
    ) -> "OpenAIBackend":
        client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            organization=organization,
            timeout=timeout,
            # Retries are the session's decision, not the SDK's.
            max_retries=0,
        )
        return cls(client)

    async def stream(self, conversation: Conversation, model: str) -> AsyncIterator[str]:
        response = await self.client.chat.completions.create(
            model=model,
            messages=[m.to_dict() for m in conversation.request_messages()],
            stream=True,
        )
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta is not None and delta.content:
                    yield delta.content
        finally:
            await response.close()

    def classify(self, exc: Exception) -> CompletionError:
        if isinstance(exc, CompletionError):
            return exc
        message = _message(exc)
        if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return AuthError(message)
        if isinstance(exc, openai.RateLimitError):
            retry_after = parse_retry_after(exc.response.headers.get("retry-after"))
            return RateLimited(message, retry_after=retry_after)
        if isinstance(
            exc,
            (openai.BadRequestError, openai.NotFoundError, openai.UnprocessableEntityError),
        ):
            return InvalidRequest(message)
        # APITimeoutError is a subclass of APIConnectionError.
        if isinstance(exc, openai.APIConnectionError):
            return TransportError(message)
        if isinstance(exc, openai.APIStatusError):
            return ProviderError(f"HTTP {exc.status_code}: {message}")
        return super().classify(exc)


def _message(exc: Exception) -> str:
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        detail = body.get("message")
        if isinstance(detail, str) and detail:
            return detail
    return getattr(exc, "message", None) or str(exc) or type(exc).__name__
