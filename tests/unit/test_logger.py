"""Unit tests for the logging utility."""

from __future__ import annotations

import json
import logging

from transactional.core.context import Context, use_context, with_transaction
from transactional.core.logger import CorrelationFilter, JSONFormatter, configure_logging

from tests.helpers.fakes import FakeTransaction


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "transaction.begin", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_configure_logging_sets_level() -> None:
    """``configure_logging`` should set the root logger level."""

    # Act
    configure_logging("DEBUG")

    # Assert
    assert logging.getLogger().level == logging.DEBUG


def test_filter_stamps_current_transaction_id() -> None:
    record = _record()
    ctx = with_transaction(Context.background(), FakeTransaction("abc123"))

    with use_context(ctx):
        CorrelationFilter().filter(record)

    assert record.tx_id == "abc123"
    assert record.request_id is None


def test_explicit_tx_id_wins() -> None:
    record = _record(tx_id="explicit")
    ctx = with_transaction(Context.background(), FakeTransaction("ambient"))

    with use_context(ctx):
        CorrelationFilter().filter(record)

    assert record.tx_id == "explicit"


def test_formatter_emits_transaction_fields() -> None:
    record = _record(tx_id="abc123", outcome="commit", request_id=None)

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "transaction.begin"
    assert payload["tx_id"] == "abc123"
    assert payload["outcome"] == "commit"
