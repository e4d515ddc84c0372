from __future__ import annotations

import json
import logging

from app.core.logging import CORRELATION_ID_CTX, JsonLogFormatter, new_run_id


def test_json_formatter_includes_correlation_and_staffing_fields() -> None:
    token = CORRELATION_ID_CTX.set("req-42")
    try:
        record = logging.LogRecord(
            name="staffing",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="pair_synced %s",
            args=("ok",),
            exc_info=None,
        )
        record.staff_id = "A"
        record.client_id = "X"
        record.source = ""

        payload = json.loads(JsonLogFormatter().format(record))
    finally:
        CORRELATION_ID_CTX.reset(token)

    assert payload["message"] == "pair_synced ok"
    assert payload["correlation_id"] == "req-42"
    assert payload["staff_id"] == "A"
    assert payload["client_id"] == "X"
    assert "source" not in payload


def test_new_run_id_becomes_current_correlation_id() -> None:
    token = CORRELATION_ID_CTX.set("")
    try:
        run_id = new_run_id("sync")
        current = CORRELATION_ID_CTX.get()
    finally:
        CORRELATION_ID_CTX.reset(token)

    assert run_id.startswith("sync-")
    assert current == run_id
