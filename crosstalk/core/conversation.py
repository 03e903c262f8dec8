"""Conversation state for one chat session."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Message:
    role: Role
    content: str

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(Role.ASSISTANT, content)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(Role.SYSTEM, content)

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class Conversation:
    """Ordered turn history handed to a back-end on every request.

    The optional system prompt is configuration: it is sent ahead of the
    turns but it is not part of the history, so clearing the conversation
    leaves it in place.
    """

    def __init__(self, messages: Optional[List[Message]] = None, system_prompt: Optional[str] = None):
        self._messages: List[Message] = list(messages or [])
        self.system_prompt = system_prompt

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def request_messages(self) -> List[Message]:
        """Messages to send to a back-end, system prompt first."""
        head = [Message.system(self.system_prompt)] if self.system_prompt else []
        return head + self._messages

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def add_user_message(self, content: str) -> None:
        self.append(Message.user(content))

    def add_assistant_message(self, content: str) -> None:
        self.append(Message.assistant(content))

    def clear(self) -> None:
        self._messages.clear()

    def last_user_prompt(self) -> Optional[str]:
        for message in reversed(self._messages):
            if message.role is Role.USER:
                return message.content
        return None

    def truncate_last_turn(self) -> Optional[Message]:
        """Drop the last user message and everything after it.

        Returns the removed user message, or ``None`` when the conversation
        holds no user message.
        """
        for index in range(len(self._messages) - 1, -1, -1):
            if self._messages[index].role is Role.USER:
                removed = self._messages[index]
                del self._messages[index:]
                return removed
        return None
