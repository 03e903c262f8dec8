"""crosstalk: one terminal client for many chat-completion providers.

Features
--------
1. Provider registry: OpenAI, Anthropic and Ollama back-ends behind one streaming contract.
2. Single-shot or interactive chat, with replies rendered as they stream and Ctrl-C to cancel.
3. External-editor prompt composition and configurable keybindings for meta-actions
   (edit-last, resend, clear-history, select-model, quit).

Run `crosstalk` or `python -m crosstalk`; `crosstalk list models` shows what is available.
"""
__version__ = "0.3.0"

# Re-export useful symbols for convenience
from .core import (
    ChatSession,
    Conversation,
    Message,
    ProviderDescriptor,
    ProviderIdentifier,
    Registry,
    SessionConfig,
)

__all__ = [
    "__version__",
    "ChatSession",
    "Conversation",
    "Message",
    "ProviderDescriptor",
    "ProviderIdentifier",
    "Registry",
    "SessionConfig",
]
