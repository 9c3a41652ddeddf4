import logging
from logging import getLogger, DEBUG, INFO

from _pytest.logging import LogCaptureFixture

from fixwaf.logger import JsonFormatter, LoggingConfig, aggregate_logger, setup_logger, setup_from_config


def test_json_logging() -> None:
    format = JsonFormatter({"level": "levelname", "message": "message"})
    record = logging.getLogger().makeRecord("test", logging.INFO, "test", 1, "test message", (), None)
    assert format.format(record) == '{"level": "INFO", "message": "test message"}'


def test_json_logging_static_values() -> None:
    format = JsonFormatter({"message": "message"}, static_values={"process": "fixwaf"})
    record = logging.getLogger().makeRecord("test", logging.INFO, "test", 1, "%s message", ("test",), None)
    assert format.format(record) == '{"message": "test message", "process": "fixwaf"}'


def test_json_logging_context() -> None:
    format = JsonFormatter({"message": "message"})
    extra = {"aggregate": "WebACL test", "scope": "REGIONAL"}
    record = logging.getLogger().makeRecord("test", logging.INFO, "test", 1, "update", (), None, extra=extra)
    assert format.format(record) == '{"message": "update", "aggregate": "WebACL test", "scope": "REGIONAL"}'


def test_aggregate_logger(caplog: LogCaptureFixture) -> None:
    log = aggregate_logger(getLogger("fix.waf"), "WebACL test", "REGIONAL")
    with caplog.at_level(logging.INFO, logger="fix.waf"):
        log.info("update", extra={"action": "update-web-acl"})
    assert caplog.records[-1].getMessage() == "[WebACL test] update"
    assert caplog.records[-1].aggregate == "WebACL test"  # type: ignore
    assert caplog.records[-1].scope == "REGIONAL"  # type: ignore
    assert caplog.records[-1].action == "update-web-acl"  # type: ignore


def test_setup_logger() -> None:
    try:
        setup_logger("test", verbose=True)
        assert getLogger("fix").level == DEBUG
        setup_logger("test", level="WARNING", json_format=False)
        assert getLogger("fix").level == logging.WARNING
        setup_from_config("test", LoggingConfig())
        assert getLogger("fix").level == INFO
        setup_from_config("test", LoggingConfig(verbose=True))
        assert getLogger("fix").level == DEBUG
    finally:
        getLogger("fix").setLevel(INFO)
