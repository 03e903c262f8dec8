"""Anthropic back-end streaming server-sent events from the Messages API."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..core.conversation import Conversation, Role
from ..core.errors import CompletionError, ProviderError, RateLimited
from ..core.protocol import CompletionBackend
from .http import make_client, raise_for_status

PROVIDER = "anthropic"
API_VERSION = "2023-06-01"


def build_payload(conversation: Conversation, model: str, max_tokens: int) -> Dict[str, Any]:
    """Translate a conversation to the Messages API shape.

    System messages move to the top-level ``system`` field; empty turns are
    dropped because the API rejects them.
    """
    messages: List[Dict[str, Any]] = []
    system_parts: List[str] = []
    for message in conversation.request_messages():
        text = message.content.strip()
        if not text:
            continue
        if message.role is Role.SYSTEM:
            system_parts.append(text)
            continue
        messages.append({"role": message.role.value, "content": [{"type": "text", "text": text}]})

    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "stream": True,
    }
    if system_parts:
        payload["system"] = "\n\n".join(system_parts)
    return payload


class AnthropicBackend(CompletionBackend):
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.anthropic.com",
        max_tokens: int = 4096,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.max_tokens = max_tokens
        self.client = make_client(base_url.rstrip("/"), timeout, client)

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
            "accept": "text/event-stream",
        }

    async def stream(self, conversation: Conversation, model: str) -> AsyncIterator[str]:
        payload = build_payload(conversation, model, self.max_tokens)
        async with self.client.stream("POST", "/v1/messages", headers=self._headers(), json=payload) as response:
            await raise_for_status(response, PROVIDER)
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                try:
                    event = json.loads(line[len("data:"):].strip())
                except ValueError:
                    continue
                etype = event.get("type")
                if etype == "content_block_delta":
                    delta = event.get("delta") or {}
                    if delta.get("type") == "text_delta" and delta.get("text"):
                        yield delta["text"]
                elif etype == "error":
                    raise _stream_error(event.get("error") or {})
                elif etype == "message_stop":
                    return


def _stream_error(error: Dict[str, Any]) -> CompletionError:
    message = f"[{PROVIDER}] {error.get('message') or 'stream error'}"
    if error.get("type") == "rate_limit_error":
        return RateLimited(message)
    return ProviderError(message)
