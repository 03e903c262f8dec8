"""The ``list`` command: render providers and models in several formats."""

from __future__ import annotations

import json
from enum import Enum
from typing import Dict, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from .core.registry import ProviderIdentifier, Registry
from .utils import ansi


class ListingFormat(str, Enum):
    TABLE = "table"
    JSON = "json"
    HEADERLESS_TABLE = "headerless-table"

    def __str__(self) -> str:
        return self.value


class ListObject(str, Enum):
    MODELS = "models"
    PROVIDERS = "providers"


def model_rows(registry: Registry, provider: Optional[ProviderIdentifier] = None) -> List[Dict[str, str]]:
    return [{"provider": pid.value, "model": model} for pid, model in registry.models(provider)]


def provider_rows(registry: Registry) -> List[Dict[str, str]]:
    return [
        {"provider": d.identifier.value, "name": d.name, "models": str(len(d.models))}
        for d in registry.providers()
    ]


def render(rows: Sequence[Dict[str, str]], columns: Sequence[str], fmt: ListingFormat, console: Console) -> None:
    if fmt is ListingFormat.JSON:
        console.out(json.dumps(list(rows), indent=2), highlight=False)
        return

    headerless = fmt is ListingFormat.HEADERLESS_TABLE
    table = Table(
        show_header=not headerless,
        box=None if headerless else box.SIMPLE,
        pad_edge=False,
        header_style="bold magenta",
    )
    for column in columns:
        table.add_column(column.upper(), no_wrap=True)
    for row in rows:
        table.add_row(*(row[column] for column in columns))
    console.print(table)


def list_cmd(
    registry: Registry,
    what: ListObject,
    fmt: ListingFormat = ListingFormat.TABLE,
    provider: Optional[ProviderIdentifier] = None,
    console: Optional[Console] = None,
) -> int:
    console = console or ansi.console
    if what is ListObject.PROVIDERS:
        render(provider_rows(registry), ("provider", "name", "models"), fmt, console)
    else:
        render(model_rows(registry, provider), ("provider", "model"), fmt, console)
    return 0
