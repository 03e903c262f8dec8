"""Meta-actions and the keybinding map that triggers them."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import ConfigurationError


class MetaAction(str, Enum):
    SUBMIT = "submit"
    EDIT_LAST = "edit-last"
    CLEAR_HISTORY = "clear-history"
    QUIT = "quit"
    OPEN_EDITOR = "open-editor"
    RESEND = "resend"
    SELECT_MODEL = "select-model"

    @classmethod
    def parse(cls, value: str) -> "MetaAction":
        normalized = value.strip().lower().replace("_", "-")
        try:
            return cls(normalized)
        except ValueError:
            choices = ", ".join(action.value for action in cls)
            raise ConfigurationError(f"unknown action '{value}' (expected one of: {choices})") from None


DEFAULT_KEYBINDINGS: Dict[str, str] = {
    "c-x c-e": MetaAction.OPEN_EDITOR.value,
    "c-x e": MetaAction.EDIT_LAST.value,
    "c-x r": MetaAction.RESEND.value,
    "c-x m": MetaAction.SELECT_MODEL.value,
    "c-l": MetaAction.CLEAR_HISTORY.value,
    "c-q": MetaAction.QUIT.value,
}


class KeyBindingMap:
    """Immutable mapping from key gestures to meta-actions.

    A gesture is a prompt_toolkit key name (``c-e``, ``escape``, ``f2``) or a
    space separated sequence of them (``c-x c-e``).
    """

    def __init__(self, bindings: Optional[Mapping[str, MetaAction]] = None):
        self._bindings: Dict[Tuple[str, ...], MetaAction] = {}
        for gesture, action in (bindings or {}).items():
            self._bindings[split_gesture(gesture)] = action

    @classmethod
    def from_config(cls, raw: Optional[Mapping[str, Optional[str]]]) -> "KeyBindingMap":
        """Build a map from configuration, layered over the defaults.

        A gesture mapped to ``None`` removes the default binding.
        """
        merged: Dict[str, Optional[str]] = dict(DEFAULT_KEYBINDINGS)
        for gesture, action in (raw or {}).items():
            merged[" ".join(split_gesture(gesture))] = action
        return cls({gesture: MetaAction.parse(action) for gesture, action in merged.items() if action is not None})

    def __len__(self) -> int:
        return len(self._bindings)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, KeyBindingMap) and self._bindings == other._bindings

    def items(self) -> List[Tuple[Tuple[str, ...], MetaAction]]:
        return list(self._bindings.items())

    def action_for(self, *keys: str) -> Optional[MetaAction]:
        return self._bindings.get(tuple(keys))

    def gestures_for(self, action: MetaAction) -> List[str]:
        return [" ".join(keys) for keys, bound in self._bindings.items() if bound is action]

    def single_key_actions(self) -> Dict[str, MetaAction]:
        """Bindings made of one key, the only ones watched while streaming."""
        return {keys[0]: action for keys, action in self._bindings.items() if len(keys) == 1}


def split_gesture(gesture: str) -> Tuple[str, ...]:
    keys = tuple(part.lower() for part in gesture.replace(",", " ").split())
    if not keys:
        raise ConfigurationError("empty key gesture in keybindings")
    return keys
