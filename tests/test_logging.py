import logging

import pytest

from ptreex import config as cx_config
from ptreex.logging import LIFECYCLE_EVENTS, get_logger, log_lifecycle
from tests.utils import encode_record, load_bytes


def test_logger_respects_runtime_level(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PTREEX_LOG_LEVEL", "DEBUG")
    cx_config.reset_runtime_config_cache()

    logger = get_logger("tests.logging")

    assert logger.level == logging.DEBUG
    assert logger.name == "ptreex.tests.logging"

    monkeypatch.delenv("PTREEX_LOG_LEVEL")
    cx_config.reset_runtime_config_cache()


def test_materialization_is_logged(caplog: pytest.LogCaptureFixture):
    root, _ = load_bytes(encode_record(b"abc"))
    with caplog.at_level(logging.DEBUG, logger="ptreex.view"):
        root.materialize()

    assert any("Materialized window" in record.getMessage() for record in caplog.records)
    root.close()


def test_lifecycle_records_are_tagged_and_reads_stay_silent(caplog: pytest.LogCaptureFixture):
    root, _ = load_bytes(encode_record(b"abcdef"))
    with caplog.at_level(logging.DEBUG, logger="ptreex.view"), caplog.at_level(
        logging.DEBUG, logger="ptreex.storage"
    ):
        root.read(3)
        root.seek(0)
        assert not caplog.records
        root.seek(0, 2)
        root.write(b"!")

    events = [getattr(record, "lifecycle_event", None) for record in caplog.records]
    assert "materialize" in events
    assert "allocate" in events
    assert set(events) <= set(LIFECYCLE_EVENTS)
    root.close()


def test_unknown_lifecycle_event_is_rejected():
    with pytest.raises(ValueError):
        log_lifecycle(get_logger("tests.logging"), "per-read")
