import json
import logging

from conftest import utc

from override_pricing.audit.sink import LoggingAuditSink
from override_pricing.utils.logging import JsonFormatter


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("override_pricing.test", logging.INFO, __file__, 1, "override %s", ("created",), None)
    record.override_id = "o-1"

    line = json.loads(JsonFormatter().format(record))

    assert line["message"] == "override created"
    assert line["level"] == "INFO"
    assert line["override_id"] == "o-1"


def test_logging_audit_sink_emits_structured_record(caplog):
    with caplog.at_level(logging.INFO, logger="override_pricing.audit"):
        LoggingAuditSink().record("override.created", "admin-1", {"override_id": "o-1"}, utc(2025, 1, 1))

    record = caplog.records[-1]
    assert record.getMessage() == "override.created by admin-1"
    assert record.payload == {"override_id": "o-1"}
    assert record.recorded_at == "2025-01-01T00:00:00+00:00"
