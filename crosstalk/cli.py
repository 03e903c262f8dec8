"""Command-line entry point for crosstalk."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from types import TracebackType
from typing import List, Optional, Type

from rich.markup import escape

from . import __version__
from .chat import ChatOptions, chat_cmd
from .config import AppConfig, load_config
from .core.errors import ConfigurationError
from .core.registry import ProviderIdentifier
from .listing import ListingFormat, ListObject, list_cmd
from .providers import populate
from .utils import ERROR_LABEL, ColorMode, ansi, configure_color
from .utils.logging import configure_logging

logger = logging.getLogger(__name__)

BUG_REPORT_NOTICE = (
    "\nIt seems you may have encountered a bug. If you believe something is not "
    "functioning correctly, please report it on the project's issue tracker, "
    "including the traceback above and the output of `crosstalk --version`.\n"
)


def install_bug_report_hook() -> None:
    """Print a bug-report notice after the default traceback of a crash."""
    default_hook = sys.excepthook

    def hook(
        exc_type: Type[BaseException],
        exc: BaseException,
        tb: Optional[TracebackType],
    ) -> None:
        default_hook(exc_type, exc, tb)
        if not issubclass(exc_type, KeyboardInterrupt):
            sys.stderr.write(BUG_REPORT_NOTICE)

    sys.excepthook = hook


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="crosstalk", description="A general-purpose CLI for chat models.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--color",
        type=ColorMode,
        choices=list(ColorMode),
        default=ColorMode.AUTO,
        help="use ANSI color (default: auto)",
    )
    parser.add_argument("--config", type=Path, help="alternative configuration file")
    parser.add_argument("--log-level", help="logging level (default: $CROSSTALK_LOG_LEVEL or WARNING)")

    commands = parser.add_subparsers(dest="command")

    chat = commands.add_parser("chat", help="start a chat")
    chat.add_argument("-m", "--model", help="model to use during the chat")
    chat.add_argument("-i", "--interactive", action="store_true", help="enter interactive mode")
    chat.add_argument("prompt", nargs="?", help="initial prompt")

    listing = commands.add_parser("list", help="list available models or providers")
    listing.add_argument(
        "-f",
        "--format",
        type=ListingFormat,
        choices=list(ListingFormat),
        default=ListingFormat.TABLE,
        help="output format (default: table)",
    )
    objects = listing.add_subparsers(dest="object", required=True)
    models = objects.add_parser("models", help="registered models")
    models.add_argument(
        "-p",
        "--provider",
        type=ProviderIdentifier,
        choices=list(ProviderIdentifier),
        help="limit the listing to one provider",
    )
    objects.add_parser("providers", help="enabled providers")
    return parser


async def _dispatch(args: argparse.Namespace, config: AppConfig) -> int:
    registry = await populate(config)

    if args.command == "list":
        return list_cmd(
            registry,
            ListObject(args.object),
            args.format,
            provider=getattr(args, "provider", None),
            console=ansi.console,
        )

    options = ChatOptions()
    if args.command == "chat":
        options = ChatOptions(model=args.model, interactive=args.interactive, prompt=args.prompt)
    return await chat_cmd(
        config.editor,
        config.keybindings,
        config.default_model,
        registry,
        options,
        system_prompt=config.system_prompt,
        console=ansi.console,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    console = configure_color(args.color)
    try:
        configure_logging(args.log_level, ansi.err_console)
    except ValueError as exc:
        console.print(f"[{ERROR_LABEL}] {escape(str(exc))}", highlight=False)
        return 2

    try:
        config = load_config(args.config)
        return asyncio.run(_dispatch(args, config))
    except ConfigurationError as exc:
        ansi.err_console.print(f"[{ERROR_LABEL}] configuration: {escape(str(exc))}", highlight=False)
        return 1
    except KeyboardInterrupt:
        console.print()
        return 0


def run_cli() -> None:  # pragma: no cover
    install_bug_report_hook()
    sys.exit(main())


if __name__ == "__main__":  # pragma: no cover
    run_cli()
