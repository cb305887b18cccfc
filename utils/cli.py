"""Generic CLI dispatcher utilities."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from utils.error_tracker import ErrorTracker
from utils.logger import Logger, LoggerType


@dataclass
class Command:
    """Represents a single CLI command."""

    name: str
    handler: Callable[[argparse.Namespace], None]
    add_arguments: Optional[Callable[[argparse.ArgumentParser], None]] = None
    help: str | None = None


@dataclass
class CommandDispatcher:
    """Register and execute subcommands using ``argparse``."""

    description: str
    commands: Iterable[Command] = field(default_factory=list)
    common_arguments: Optional[Callable[[argparse.ArgumentParser], None]] = None

    def _build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(description=self.description)
        subparsers = parser.add_subparsers(dest="command")
        for cmd in self.commands:
            sp = subparsers.add_parser(cmd.name, help=cmd.help)
            if self.common_arguments:
                self.common_arguments(sp)
            if cmd.add_arguments:
                cmd.add_arguments(sp)
            sp.set_defaults(func=cmd.handler)
        return parser

    def run(
        self,
        args: Optional[list[str]] = None,
        *,
        logger: Optional[LoggerType] = None,
        track_exceptions: bool = True,
    ) -> None:
        """
        Parse arguments and dispatch the selected command.

        ``SystemExit`` raised by ``argparse`` is logged before re-raising.
        With ``track_exceptions`` the global :class:`ErrorTracker` hooks are
        installed before dispatch and restored once the command returns.
        An exception escaping the command leaves them in place so the hook
        can log it.
        """

        if logger is None:
            logger = Logger.get_logger("utils.cli")

        if track_exceptions:
            ErrorTracker.install_excepthook()
            ErrorTracker.install_signal_handlers()

        parser = self._build_parser()

        try:
            ns = parser.parse_args(args)
        except SystemExit as exc:  # argparse calls sys.exit() on error
            if exc.code:
                logger.error(f"Argument parsing failed: {exc}")
            raise

        if hasattr(ns, "func"):
            ns.func(ns)
        else:
            parser.print_help()

        if track_exceptions:
            ErrorTracker.uninstall_excepthook()
            ErrorTracker.uninstall_signal_handlers()
