from .conversation import Conversation, Message, Role
from .registry import ProviderDescriptor, ProviderIdentifier, Registry
from .session import ChatSession, SessionConfig, SessionState

__all__ = [
    "Conversation",
    "Message",
    "Role",
    "ProviderDescriptor",
    "ProviderIdentifier",
    "Registry",
    "ChatSession",
    "SessionConfig",
    "SessionState",
]
