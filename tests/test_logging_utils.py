"""Tests for logging utilities and sensitive data redaction."""

from __future__ import annotations

import json
import logging

import pytest

from homestock.logging_utils import JsonFormatter, SensitiveDataFilter, configure_logging, redact


@pytest.mark.parametrize("fmt", ["plain", "json"])
def test_sensitive_data_filter_redacts_tokens(fmt):
    secret = "top-secret-token"
    configure_logging("INFO", fmt, [secret])

    handler = logging.getLogger().handlers[0]
    record = logging.LogRecord(
        name="homestock.test.redaction",
        level=logging.INFO,
        pathname=__file__,
        lineno=0,
        msg="Authorization header Bearer %s",
        args=(secret,),
        exc_info=None,
    )

    for filter_ in handler.filters:
        filter_.filter(record)

    formatted = handler.format(record)
    assert secret not in formatted
    assert "[redacted]" in formatted


def test_redact_masks_invite_codes_and_query_tokens():
    message = "GET /households/join?invite_code=ABCD2345&api_token=xyz"
    assert redact(message) == "GET /households/join?invite_code=[redacted]&api_token=[redacted]"


def test_json_formatter_includes_context_fields():
    record = logging.LogRecord(
        name="homestock.reconcile.engine",
        level=logging.INFO,
        pathname=__file__,
        lineno=0,
        msg="Reconciled entry %s",
        args=(7,),
        exc_info=None,
    )
    record.entry_id = 7
    record.household_id = 3

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "Reconciled entry 7"
    assert payload["entry_id"] == 7
    assert payload["household_id"] == 3
    assert "request_id" not in payload


def test_extra_fields_redacted_without_configured_secrets():
    record = logging.LogRecord(
        name="homestock.access",
        level=logging.INFO,
        pathname=__file__,
        lineno=0,
        msg="HTTP POST /households/join",
        args=(),
        exc_info=None,
    )
    record.request_id = "Bearer abc.def"
    record.detail = "join?invite_code=ABCD2345"

    SensitiveDataFilter([]).filter(record)

    assert record.request_id == "Bearer [redacted]"
    assert record.detail == "join?invite_code=[redacted]"
