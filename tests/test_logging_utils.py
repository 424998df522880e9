import json
import logging

from app.core.logging_utils import JsonFormatter


def test_json_formatter_includes_extra_context():
    record = logging.LogRecord("audit", logging.INFO, __file__, 1, "event.image.uploaded", None, None)
    record.event_id = "ev-1"
    record.display_order = 3
    record.unserialisable = object()

    out = json.loads(JsonFormatter().format(record))
    assert out["message"] == "event.image.uploaded"
    assert out["logger"] == "audit"
    assert out["event_id"] == "ev-1"
    assert out["display_order"] == 3
    assert out["unserialisable"].startswith("<object object")
