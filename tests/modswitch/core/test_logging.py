# tests/modswitch/core/test_logging.py
from __future__ import annotations
import json
import logging

from modswitch.core.logging import configureLogging, getLogContext, logContext
from modswitch.core.logging.filters import RecurringSuppressFilter
from modswitch.core.logging.formatters import DevFormatter, JsonFormatter
from modswitch.core.logging.setup import LOG_FILE_NAME



class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now



class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)



def _record(msg: str, name: str = "modswitch.test") -> logging.LogRecord:
    return logging.LogRecord(name, logging.WARNING, __file__, 1, msg, None, None)


def test_recurringFilter_suppressesAfterLimitWithinWindow():
    clock = _Clock()
    flt = RecurringSuppressFilter(windowSeconds=10, maxPerWindow=2, clock=clock)
    results = [flt.filter(_record("rename 123 failed")) for _ in range(5)]
    assert results == [True, True, False, False, False]
    # A different message has its own window
    assert flt.filter(_record("rename 456 failed")) is True


def test_recurringFilter_emitsSummaryWhenWindowSlides():
    clock = _Clock()
    loggerName = "modswitch.test.summary"
    handler = _ListHandler()
    lg = logging.getLogger(loggerName)
    lg.addHandler(handler)
    lg.setLevel(logging.DEBUG)
    try:
        flt = RecurringSuppressFilter(windowSeconds=10, maxPerWindow=1, clock=clock)
        assert flt.filter(_record("locked", loggerName)) is True
        assert flt.filter(_record("locked", loggerName)) is False
        assert flt.filter(_record("locked", loggerName)) is False
        clock.now = 60.0
        assert flt.filter(_record("locked", loggerName)) is True
    finally:
        lg.removeHandler(handler)

    summaries = [rec.getMessage() for rec in handler.records]
    assert summaries == ["Suppressed 2 repeated logs: locked"]


def test_logContext_isScopedAndRestored():
    assert not getLogContext()
    with logContext(applyId="apply_1", root="/w"):
        assert getLogContext() == {"applyId": "apply_1", "root": "/w"}
        with logContext(phase="rename"):
            assert getLogContext()["phase"] == "rename"
            assert getLogContext()["applyId"] == "apply_1"
        assert "phase" not in getLogContext()
    assert not getLogContext()


def test_formatters_includeContext():
    record = _record("Renamed 123 -> _OFF_123")
    with logContext(applyId="apply_9", phase="rename"):
        dev = DevFormatter().format(record)
        payload = json.loads(JsonFormatter().format(record))
    assert dev == "WARNING: [modswitch.test] Renamed 123 -> _OFF_123 [apply_9/rename]"
    assert payload["msg"] == "Renamed 123 -> _OFF_123"
    assert payload["level"] == "warning"
    assert payload["ctx"]["applyId"] == "apply_9"


def test_configureLogging_attachesRotatingJsonFile(tmp_path, globalConfig):
    configureLogging(tmp_path / "logs")
    logging.getLogger("modswitch.test.file").warning("hello file")
    for handler in logging.getLogger().handlers:
        handler.flush()

    lines = (tmp_path / "logs" / LOG_FILE_NAME).read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[-1])["msg"] == "hello file"


def test_configureLogging_respectsLogFileToggle(tmp_path, globalConfig):
    globalConfig.set("debug.logFileEnabled", False)
    configureLogging(tmp_path / "logs")
    assert not (tmp_path / "logs" / LOG_FILE_NAME).exists()
    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert root.handlers[0].level == logging.WARNING
