"""Centralized error types and unhandled exception tracking."""

from __future__ import annotations

import signal
import sys
import traceback
from typing import Any, Callable, Dict, List, Optional

from utils.logger import Logger


class CalibrationError(Exception):
    """Base class for calibration related errors."""


class ConfigurationError(CalibrationError, ValueError):
    """Raised when a calibration setting is out of range or inconsistent."""


class PatternNotFoundError(CalibrationError):
    """Raised when the target is mandatory but cannot be found in an image."""


class InsufficientDataError(CalibrationError):
    """Raised when there are not enough accepted views to estimate a model."""


class NotCalibratedError(CalibrationError):
    """Raised when a model lacks the intrinsics or pose an operation needs."""


class ImageSourceError(CalibrationError):
    """Raised when an image folder or file cannot be read."""


class ErrorTracker:
    """Installable global exception hook that logs uncaught errors."""

    logger = Logger.get_logger("utils.error_tracker")
    _installed = False
    _orig_hook: Optional[Callable[..., None]] = None
    _orig_signals: Dict[int, Any] = {}
    _cleanup_funcs: List[Callable[[], None]] = []

    @classmethod
    def register_cleanup(cls, func: Callable[[], None]) -> None:
        """Register a cleanup function executed on fatal errors."""
        cls._cleanup_funcs.append(func)

    @classmethod
    def _run_cleanup(cls) -> None:
        for func in cls._cleanup_funcs:
            try:
                func()
            except Exception as e:
                cls.logger.error(f"Cleanup failed: {e}")

    @classmethod
    def report(cls, exc: BaseException) -> None:
        """Log ``exc`` with its traceback; callers decide whether to re-raise."""
        message = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
        cls.logger.error(f"{type(exc).__name__}: {exc}\n{message}")

    @classmethod
    def install_excepthook(cls) -> None:
        """Log unhandled exceptions through the project logger."""
        if cls._installed:
            return

        cls._orig_hook = sys.excepthook

        def _hook(exc_type, exc, tb) -> None:
            message = "".join(traceback.format_exception(exc_type, exc, tb))
            cls.logger.error(f"Unhandled exception:\n{message}")
            cls._run_cleanup()
            if cls._orig_hook:
                cls._orig_hook(exc_type, exc, tb)

        sys.excepthook = _hook
        cls._installed = True
        cls.logger.debug("Global exception hook installed")

    @classmethod
    def uninstall_excepthook(cls) -> None:
        """Restore the interpreter's previous exception hook."""
        if not cls._installed:
            return
        sys.excepthook = cls._orig_hook or sys.__excepthook__
        cls._installed = False

    @classmethod
    def install_signal_handlers(cls) -> None:
        """Shutdown gracefully on SIGINT or SIGTERM."""

        def _handler(signum, frame) -> None:
            cls.logger.info(f"Received signal {signum}")
            cls._run_cleanup()
            raise SystemExit(1)

        for signum in (signal.SIGINT, signal.SIGTERM):
            cls._orig_signals.setdefault(signum, signal.getsignal(signum))
            signal.signal(signum, _handler)

    @classmethod
    def uninstall_signal_handlers(cls) -> None:
        """Restore the handlers replaced by :meth:`install_signal_handlers`."""
        for signum, handler in cls._orig_signals.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        cls._orig_signals.clear()
