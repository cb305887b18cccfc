import sys

import pytest

from utils.error_tracker import (
    CalibrationError,
    ConfigurationError,
    ErrorTracker,
    NotCalibratedError,
)
from utils.logger import CaptureStderrToLogger, Logger


def test_hierarchy():
    assert issubclass(ConfigurationError, ValueError)
    assert issubclass(NotCalibratedError, CalibrationError)


def test_excepthook_install_and_restore():
    original = sys.excepthook
    ErrorTracker.install_excepthook()
    try:
        assert sys.excepthook is not original
    finally:
        ErrorTracker.uninstall_excepthook()
    assert sys.excepthook is original


def test_cleanup_runs_and_survives_failures():
    calls = []

    def broken():
        raise RuntimeError("boom")

    ErrorTracker.register_cleanup(broken)
    ErrorTracker.register_cleanup(lambda: calls.append("done"))
    try:
        ErrorTracker._run_cleanup()
    finally:
        ErrorTracker._cleanup_funcs.clear()
    assert calls == ["done"]


def test_report_logs_traceback():
    messages = []
    handler = ErrorTracker.logger.add(messages.append, level="ERROR")
    try:
        try:
            raise ConfigurationError("bad square size")
        except ConfigurationError as exc:
            ErrorTracker.report(exc)
    finally:
        ErrorTracker.logger.remove(handler)
    assert any("bad square size" in str(m) for m in messages)


def test_progress_wraps_iterable():
    assert list(Logger.progress([1, 2, 3], desc="x")) == [1, 2, 3]


def test_capture_stderr_restores_fd():
    log = Logger.get_logger("test")
    with CaptureStderrToLogger(log):
        pass
    with pytest.raises(ZeroDivisionError):
        with CaptureStderrToLogger(log):
            1 / 0
