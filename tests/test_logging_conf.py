import json
import logging

from tailor_ops.logging_conf import JsonFormatter, configure_logging


class TestJsonFormatter:
    def test_formats_extra_fields(self):
        record = logging.LogRecord("tailor_ops.api", logging.INFO, __file__, 1, "validation_error", None, None)
        record.evt = "validation_error"
        record.status_code = 400

        payload = json.loads(JsonFormatter().format(record))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "tailor_ops.api"
        assert payload["message"] == "validation_error"
        assert payload["evt"] == "validation_error"
        assert payload["status_code"] == 400
        assert "lineno" not in payload


class TestConfigureLogging:
    def test_installs_single_handler(self):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            configure_logging("debug", json_format=True)
            configure_logging("debug", json_format=True)

            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
            assert root.level == logging.DEBUG
            assert logging.getLogger("uvicorn.access").handlers == root.handlers
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)
