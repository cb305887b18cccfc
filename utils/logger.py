"""Logging helpers built on top of loguru."""

from __future__ import annotations

import os
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterable, TypeVar, cast

from loguru import logger as _logger
from loguru._logger import Logger as LoguruLogger
from tqdm.auto import tqdm

from utils.settings import logging as LOGCFG

LoggerType = LoguruLogger
T = TypeVar("T")

_is_configured = False
_log_dir = LOGCFG.log_dir


class Logger:
    """Project-wide logger wrapper using loguru and global config."""

    @staticmethod
    def _configure(level: str, json_format: bool, to_file: bool = True) -> None:
        """Configure console and file sinks."""
        global _is_configured
        _logger.remove()
        _logger.configure(extra={"module": "calib2d"})
        _logger.add(
            sys.stdout,
            level=level,
            serialize=False,
            format=LOGCFG.log_format,
        )
        if to_file:
            os.makedirs(_log_dir, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            suffix = ".log.json" if json_format else ".log"
            log_file = Path(_log_dir) / f"calib2d_{timestamp}{suffix}"
            _logger.add(
                log_file,
                level=level,
                serialize=json_format,
                format=LOGCFG.log_file_format,
            )
        _is_configured = True

    @staticmethod
    def get_logger(
        name: str, level: str | None = None, json_format: bool | None = None
    ) -> LoguruLogger:
        """
        Return a configured loguru logger bound to ``name``.
        If level or json_format are not specified, uses global config.
        """
        if not _is_configured:
            Logger._configure(
                level or LOGCFG.level,
                json_format if json_format is not None else LOGCFG.json,
            )
        return _logger.bind(module=name)

    @staticmethod
    def progress(
        iterable: Iterable[T],
        desc: str | None = None,
        total: int | None = None,
    ) -> Iterable[T]:
        """Return a tqdm iterator with unified style."""
        return cast(
            Iterable[T],
            tqdm(
                iterable,
                desc=desc,
                total=total,
                leave=False,
                bar_format=LOGCFG.progress_bar_format,
            ),
        )

    @staticmethod
    def configure(
        level: str | None = None,
        log_dir: str | Path | None = None,
        json_format: bool | None = None,
        to_file: bool = True,
    ) -> None:
        """Manually configure the logger with given settings."""
        global _log_dir
        _log_dir = Path(log_dir) if log_dir is not None else LOGCFG.log_dir
        Logger._configure(
            level or LOGCFG.level,
            json_format if json_format is not None else LOGCFG.json,
            to_file=to_file,
        )


class CaptureStderrToLogger:
    """
    Context manager: redirects C/C++ stderr (fd=2) to the provided logger.
    OpenCV prints solver and decoder warnings there.
    """

    def __init__(self, logger):
        self.logger = logger
        self.pipe_read = None
        self.pipe_write = None
        self.thread = None
        self._old_stderr_fd = None

    def _reader(self):
        with os.fdopen(self.pipe_read, "r", errors="replace") as f:
            for line in f:
                line = line.rstrip()
                if line:
                    self.logger.warning(f"[opencv] {line}")

    def __enter__(self):
        self._old_stderr_fd = os.dup(2)
        self.pipe_read, self.pipe_write = os.pipe()
        os.dup2(self.pipe_write, 2)
        self.thread = threading.Thread(target=self._reader, daemon=True)
        self.thread.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        sys.stderr.flush()
        os.dup2(self._old_stderr_fd, 2)
        os.close(self.pipe_write)
        os.close(self._old_stderr_fd)
        if self.thread:
            self.thread.join(timeout=0.2)
