"""Helpers shared by the back-ends that speak HTTP through :mod:`httpx`."""

from __future__ import annotations

import json
from typing import Optional

import httpx

from ..core.errors import (
    AuthError,
    CompletionError,
    InvalidRequest,
    ProviderError,
    RateLimited,
    parse_retry_after,
)


def error_detail(body: str) -> str:
    """Pull a readable message out of a JSON error body."""
    try:
        data = json.loads(body)
    except ValueError:
        return body.strip()
    if isinstance(data, dict):
        error = data.get("error", data)
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str):
                return message
        elif isinstance(error, str):
            return error
    return body.strip()


def status_error(response: httpx.Response, body: str, provider: str) -> CompletionError:
    """Classify a non-success HTTP response."""
    status = response.status_code
    detail = error_detail(body) or response.reason_phrase
    if status in (401, 403):
        return AuthError(f"[{provider}] {detail}")
    if status == 429:
        return RateLimited(f"[{provider}] {detail}", retry_after=parse_retry_after(response.headers.get("retry-after")))
    if status in (400, 404, 413, 422):
        return InvalidRequest(f"[{provider}] {detail}")
    return ProviderError(f"[{provider}] HTTP {status}: {detail}")


async def raise_for_status(response: httpx.Response, provider: str) -> None:
    """Raise a classified error for a streamed response that failed."""
    if response.is_success:
        return
    body = (await response.aread()).decode("utf-8", errors="ignore")
    raise status_error(response, body, provider)


def make_client(base_url: str, timeout: float, client: Optional[httpx.AsyncClient] = None) -> httpx.AsyncClient:
    if client is not None:
        return client
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(connect=10.0, read=timeout, write=30.0, pool=10.0),
        trust_env=True,
    )
