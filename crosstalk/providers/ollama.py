"""Ollama back-end streaming newline-delimited JSON from ``/api/chat``."""

from __future__ import annotations

import json
from typing import AsyncIterator, List, Optional

import httpx

from ..core.conversation import Conversation
from ..core.errors import ProviderError
from ..core.protocol import CompletionBackend
from .http import make_client, raise_for_status

PROVIDER = "ollama"


class OllamaBackend(CompletionBackend):
    def __init__(self, host: str, *, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.host = host.rstrip("/")
        self.client = make_client(self.host, timeout, client)

    async def list_models(self) -> List[str]:
        """Return the names of the models installed on the Ollama host."""
        response = await self.client.get("/api/tags")
        await raise_for_status(response, PROVIDER)
        payload = response.json()
        return [m["name"] for m in payload.get("models", []) if m.get("name")]

    async def stream(self, conversation: Conversation, model: str) -> AsyncIterator[str]:
        payload = {
            "model": model,
            "messages": [m.to_dict() for m in conversation.request_messages()],
            "stream": True,
        }
        async with self.client.stream("POST", "/api/chat", json=payload) as response:
            await raise_for_status(response, PROVIDER)
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                try:
                    chunk = json.loads(line)
                except ValueError:
                    raise ProviderError(f"[{PROVIDER}] malformed stream line: {line[:80]!r}") from None
                if "error" in chunk:
                    raise ProviderError(f"[{PROVIDER}] {chunk['error']}")
                content = (chunk.get("message") or {}).get("content")
                if content:
                    yield content
                if chunk.get("done"):
                    return
