"""Interactive list picker built on :mod:`questionary`."""

from __future__ import annotations

from typing import List, Optional

import questionary

from . import ansi


async def pick(title: str, options: List[str], current: Optional[str] = None) -> Optional[str]:
    """Present *options* to the user and return the selected value.

    Returns ``None`` when there is nothing to choose from or the user cancels.
    """
    if not options:
        ansi.console.print("(no items available)")
        return None
    try:
        return await questionary.select(
            title,
            choices=options,
            default=current if current in options else None,
        ).ask_async()
    except (KeyboardInterrupt, EOFError):
        ansi.console.print()
        return None


async def pick_model(models: List[str], current: Optional[str] = None) -> Optional[str]:
    return await pick("Select a model:", models, current)
