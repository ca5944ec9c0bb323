"""Tests for the output layer."""

from __future__ import annotations

import json
import logging

import pytest

from evento.exceptions import HttpRequestFailedError, UsageError
from evento.output import OutputFormat, OutputManager, get_output, reset_output, set_output


def _manager(format: OutputFormat, **kwargs) -> OutputManager:
    return OutputManager(format=format, no_color=True, **kwargs)


class TestResults:
    def test_json_success_envelope(self, capsys) -> None:
        _manager(OutputFormat.JSON).print_success({"id": "e1"}, text="ignored")
        captured = capsys.readouterr()
        assert json.loads(captured.out) == {"success": True, "data": {"id": "e1"}}
        assert captured.err == ""

    def test_text_prefers_text_rendering(self, capsys) -> None:
        _manager(OutputFormat.TEXT).print_success({"id": "e1"}, text="Event e1")
        assert capsys.readouterr().out == "Event e1\n"

    def test_text_structured_fallback(self, capsys) -> None:
        _manager(OutputFormat.TEXT).print_success({"id": "e1"})
        assert json.loads(capsys.readouterr().out) == {"id": "e1"}

    def test_text_string_result(self, capsys) -> None:
        _manager(OutputFormat.TEXT).print_success("plain value")
        assert capsys.readouterr().out == "plain value\n"

    def test_json_none_data(self, capsys) -> None:
        _manager(OutputFormat.JSON).print_success(None)
        assert capsys.readouterr().out == '{"success": true, "data": null}\n'


class TestFailures:
    def test_json_failure_on_stdout(self, capsys) -> None:
        exc = HttpRequestFailedError(
            "Event not found", "events get", endpoint="GET /v1/events/x", status=404
        )
        code = _manager(OutputFormat.JSON).print_failure(exc)
        captured = capsys.readouterr()

        assert code == 1
        envelope = json.loads(captured.out)
        assert envelope["success"] is False
        assert envelope["message"] == "Event not found"
        assert envelope["data"] is None
        assert envelope["error"]["code"] == "HTTP_REQUEST_FAILED"
        assert envelope["error"]["status"] == 404
        assert captured.err == ""

    def test_text_failure_on_stderr(self, capsys) -> None:
        exc = UsageError("Invalid path", "api", request_id=None)
        code = _manager(OutputFormat.TEXT).print_failure(exc)
        captured = capsys.readouterr()
        assert code == 2
        assert captured.out == ""
        assert captured.err == "Error: Invalid path\n"

    def test_text_failure_shows_request_id(self, capsys) -> None:
        exc = HttpRequestFailedError("Boom", request_id="req-7")
        _manager(OutputFormat.TEXT).print_failure(exc)
        assert "Request id: req-7" in capsys.readouterr().err


class TestDiagnostics:
    def test_quiet_suppresses_info_not_warnings(self, capsys) -> None:
        out = _manager(OutputFormat.TEXT, quiet=True)
        out.info("hello")
        out.success("done")
        out.suggest("next")
        out.warning("careful")
        out.error("bad")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == "Warning: careful\nError: bad\n"

    def test_debug_only_when_verbose(self, capsys) -> None:
        _manager(OutputFormat.TEXT).debug("hidden")
        _manager(OutputFormat.TEXT, verbose=True).debug("shown")
        assert capsys.readouterr().err == "[debug] shown\n"

    def test_configure_logging_levels(self) -> None:
        _manager(OutputFormat.JSON, verbose=True).configure_logging()
        logger = logging.getLogger("evento")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

        _manager(OutputFormat.JSON).configure_logging()
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1


class TestFormatResolution:
    def test_auto_is_json_when_not_a_tty(self, capsys) -> None:
        assert OutputManager(format=OutputFormat.AUTO).format == OutputFormat.JSON

    def test_no_color_env(self, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        OutputManager(format=OutputFormat.TEXT).warning("plain")
        assert capsys.readouterr().err == "Warning: plain\n"


class TestGlobalInstance:
    def test_set_and_reset(self) -> None:
        manager = _manager(OutputFormat.TEXT)
        set_output(manager)
        assert get_output() is manager
        reset_output()
        assert get_output() is not manager
