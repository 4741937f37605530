import io
import json
import logging
import sys
import unittest
from typing import Any, Dict, List
from unittest.mock import MagicMock, patch

from gcplogs import log_ctx
from gcplogs.core.context import SPAN_ID_KEY, TRACE_KEY, TRACE_SAMPLED_KEY
from gcplogs.logging_setup import (
    GCPTraceFilter,
    StructuredFormatter,
    configure_cloud_logging,
    configure_logging,
    severity_for,
)


def make_record(name: str = "app", level: int = logging.INFO, **extra: Any) -> logging.LogRecord:
    record = logging.LogRecord(name, level, "app.py", 10, "test message", (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestGCPTraceFilter(unittest.TestCase):
    def setUp(self) -> None:
        log_ctx.clear()

    def test_trace_from_request_context(self) -> None:
        log_ctx.add(TRACE_KEY, "projects/test-project/traces/abc")
        log_ctx.add(SPAN_ID_KEY, "42")
        log_ctx.add(TRACE_SAMPLED_KEY, True)

        record = make_record()
        self.assertTrue(GCPTraceFilter(project_id="test-project").filter(record))
        self.assertEqual(record.trace, "projects/test-project/traces/abc")
        self.assertEqual(record.span_id, "42")
        self.assertTrue(record.trace_sampled)

    def test_trace_from_otel_span(self) -> None:
        # Mock a valid span context
        mock_span_context = MagicMock()
        mock_span_context.is_valid = True
        mock_span_context.trace_id = 0x12345678123456781234567812345678
        mock_span_context.span_id = 0x1234567812345678
        mock_span_context.trace_flags.sampled = True

        mock_span = MagicMock()
        mock_span.get_span_context.return_value = mock_span_context

        with patch("opentelemetry.trace.get_current_span", return_value=mock_span):
            filt = GCPTraceFilter(project_id="test-project")
            record = make_record()

            self.assertTrue(filt.filter(record))
            self.assertEqual(
                record.trace,
                "projects/test-project/traces/12345678123456781234567812345678",
            )
            self.assertEqual(record.span_id, "1234567812345678")
            self.assertTrue(record.trace_sampled)

    def test_no_trace(self) -> None:
        record = make_record()
        self.assertTrue(GCPTraceFilter(project_id="test-project").filter(record))
        self.assertFalse(hasattr(record, "trace"))

    def test_project_id_resolved_when_omitted(self) -> None:
        with patch(
            "gcplogs.logging_setup.default_project_id", return_value="resolved"
        ) as mock_get_project:
            filt = GCPTraceFilter()
        mock_get_project.assert_called_once()
        self.assertEqual(filt.project_id, "resolved")

    def test_loop_protection(self) -> None:
        filt = GCPTraceFilter(project_id="test-project")

        # Google loggers should be dropped
        self.assertFalse(filt.filter(make_record("google.cloud.logging")))
        # OTel loggers should be dropped
        self.assertFalse(filt.filter(make_record("opentelemetry.trace")))
        # Standard loggers should be kept
        self.assertTrue(filt.filter(make_record("gcplogs.requests")))


class TestStructuredFormatter(unittest.TestCase):
    def format(self, record: logging.LogRecord) -> Dict[str, Any]:
        return json.loads(StructuredFormatter().format(record))  # type: ignore[no-any-return]

    def test_basic_entry(self) -> None:
        entry = self.format(make_record(level=logging.WARNING))

        self.assertEqual(entry["severity"], "WARNING")
        self.assertEqual(entry["message"], "test message")
        self.assertTrue(entry["time"].endswith("+00:00"))
        self.assertEqual(
            entry["logging.googleapis.com/sourceLocation"]["line"], 10
        )
        self.assertNotIn(TRACE_KEY, entry)

    def test_custom_levels_map_to_nearest_severity(self) -> None:
        self.assertEqual(severity_for(25), "INFO")
        self.assertEqual(severity_for(logging.WARN), "WARNING")
        self.assertEqual(severity_for(logging.FATAL), "CRITICAL")
        self.assertEqual(severity_for(5), "DEFAULT")
        self.assertEqual(self.format(make_record(level=35))["severity"], "WARNING")

    def test_trace_fields(self) -> None:
        entry = self.format(
            make_record(trace="projects/p/traces/t", span_id="7", trace_sampled=True)
        )

        self.assertEqual(entry[TRACE_KEY], "projects/p/traces/t")
        self.assertEqual(entry[SPAN_ID_KEY], "7")
        self.assertIs(entry[TRACE_SAMPLED_KEY], True)

    def test_json_fields_and_serializer(self) -> None:
        from datetime import date

        entry = self.format(
            make_record(json_fields={"httpRequest": {"status": 200}, "day": date(2024, 1, 2)})
        )

        self.assertEqual(entry["httpRequest"], {"status": 200})
        self.assertEqual(entry["day"], "2024-01-02")

    def test_exception_traceback_in_message(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                "app", logging.ERROR, "app.py", 10, "failed", (), exc_info=sys.exc_info()
            )

        entry = self.format(record)
        self.assertEqual(entry["severity"], "ERROR")
        self.assertTrue(entry["message"].startswith("failed\nTraceback"))
        self.assertIn("ValueError: boom", entry["message"])


class TestConfigureLogging(unittest.TestCase):
    def setUp(self) -> None:
        log_ctx.clear()
        self.root = logging.getLogger()
        self.saved_handlers = list(self.root.handlers)
        self.saved_level = self.root.level

    def tearDown(self) -> None:
        self.root.handlers = self.saved_handlers
        self.root.setLevel(self.saved_level)
        log_ctx.clear()

    def gcplogs_handlers(self) -> List[logging.Handler]:
        return [h for h in self.root.handlers if getattr(h, "_gcplogs_handler", False)]

    def test_writes_structured_lines(self) -> None:
        stream = io.StringIO()
        configure_logging(project_id="test-project", stream=stream)

        log_ctx.add(TRACE_KEY, "projects/test-project/traces/abc")
        logging.getLogger("myapp").info("hello %s", "world")

        entry = json.loads(stream.getvalue().strip().splitlines()[-1])
        self.assertEqual(entry["message"], "hello world")
        self.assertEqual(entry["severity"], "INFO")
        self.assertEqual(entry[TRACE_KEY], "projects/test-project/traces/abc")

    def test_idempotent(self) -> None:
        configure_logging(project_id="test-project", stream=io.StringIO())
        configure_logging(project_id="test-project", stream=io.StringIO())

        self.assertEqual(len(self.gcplogs_handlers()), 1)

    def test_resolves_project_once(self) -> None:
        with patch(
            "gcplogs.logging_setup.default_project_id", return_value="test-project"
        ) as mock_get_project:
            configure_logging(stream=io.StringIO())

        mock_get_project.assert_called_once()
        filt = self.gcplogs_handlers()[0].filters[0]
        self.assertEqual(filt.project_id, "test-project")

    def test_drops_request_logger_bootstrap_handler(self) -> None:
        from gcplogs.core.logger import logger as request_logger

        saved = list(request_logger.handlers)
        try:
            configure_logging(project_id="test-project", stream=io.StringIO())
            self.assertFalse(
                any(getattr(h, "_gcplogs_default", False) for h in request_logger.handlers)
            )
        finally:
            request_logger.handlers = saved

    def test_configure_cloud_logging(self) -> None:
        mock_google = MagicMock()
        mock_handler_cls = MagicMock()
        # The handler ends up on the root logger and must pass level checks
        mock_handler_cls.return_value.level = logging.NOTSET
        with patch("gcplogs.logging_setup.google", mock_google), patch(
            "gcplogs.logging_setup.CloudLoggingHandler", mock_handler_cls
        ):
            configure_logging(
                project_id="test-project",
                stream=io.StringIO(),
                enable_cloud_logging=True,
            )

        # Verify client initialized with project
        mock_google.cloud.logging.Client.assert_called_with(project="test-project")
        # Verify handler initialized and attached
        mock_handler_cls.assert_called_once_with(mock_google.cloud.logging.Client.return_value)
        self.assertIn(mock_handler_cls.return_value, self.root.handlers)
        self.root.removeHandler(mock_handler_cls.return_value)

    def test_configure_cloud_logging_resolves_project(self) -> None:
        mock_google = MagicMock()
        mock_handler_cls = MagicMock()
        mock_handler_cls.return_value.level = logging.NOTSET
        with patch("gcplogs.logging_setup.google", mock_google), patch(
            "gcplogs.logging_setup.CloudLoggingHandler", mock_handler_cls
        ), patch(
            "gcplogs.logging_setup.default_project_id", return_value="resolved"
        ):
            configure_cloud_logging()

        self.root.removeHandler(mock_handler_cls.return_value)
        mock_google.cloud.logging.Client.assert_called_with(project="resolved")
        trace_filter = mock_handler_cls.return_value.addFilter.call_args[0][0]
        self.assertIsInstance(trace_filter, GCPTraceFilter)
        self.assertEqual(trace_filter.project_id, "resolved")

    def test_cloud_logging_not_installed(self) -> None:
        with patch("gcplogs.logging_setup.CloudLoggingHandler", None), self.assertLogs(
            "gcplogs.logging_setup", level="WARNING"
        ) as logs:
            configure_logging(
                project_id="test-project",
                stream=io.StringIO(),
                enable_cloud_logging=True,
            )

        self.assertIn("google-cloud-logging", logs.output[0])

    def test_cloud_logging_client_failure(self) -> None:
        mock_google = MagicMock()
        mock_google.cloud.logging.Client.side_effect = RuntimeError("no credentials")
        with patch("gcplogs.logging_setup.google", mock_google), patch(
            "gcplogs.logging_setup.CloudLoggingHandler", MagicMock()
        ), self.assertLogs("gcplogs.logging_setup", level="ERROR") as logs:
            configure_logging(
                project_id="test-project",
                stream=io.StringIO(),
                enable_cloud_logging=True,
            )

        self.assertIn("no credentials", logs.output[0])


if __name__ == "__main__":
    unittest.main()
