"""Tests for template expansion and logging helpers."""

import logging

from easyflow.utils import StructuredLogger, configure_logging, get_logger
from easyflow.utils.templates import escape_newlines, expand, has_placeholders, placeholders


class TestExpand:
    """Tests for expand()."""

    def test_substitutes_value(self):
        """Test that a resolved placeholder is replaced with str(value)."""
        assert expand("Score: {{score}}", {"score": 0.8}) == "Score: 0.8"

    def test_unresolved_left_literal(self):
        """Test that unknown names keep the placeholder."""
        assert expand("Score: {{score}}", {}) == "Score: {{score}}"
        assert expand("Score: {{score}}", {"other": 1}) == "Score: {{score}}"

    def test_partial_context(self):
        """Test a mix of resolved and unresolved placeholders."""
        text = expand("{{a}} and {{b}}", {"a": "x"})

        assert text == "x and {{b}}"

    def test_whitespace_and_special_names(self):
        """Test names with surrounding spaces and debugger keys."""
        context = {"$output": 42, "$outputName": "score"}

        assert expand("{{ $outputName }} = {{$output}}", context) == "score = 42"

    def test_repeated_placeholder(self):
        assert expand("{{x}}{{x}}", {"x": "ab"}) == "abab"

    def test_none_context(self):
        assert expand("{{x}}", None) == "{{x}}"

    def test_helpers(self):
        """Test placeholder discovery helpers."""
        assert has_placeholders("story_{{index}}")
        assert not has_placeholders("story")
        assert not has_placeholders(None)
        assert placeholders("{{a}} {{ b }} {{a}}") == ["a", "b", "a"]
        assert escape_newlines("a\nb") == "a\\nb"
        assert escape_newlines(None) is None


class TestLogging:
    """Tests for logging helpers."""

    def test_get_logger_namespace(self):
        assert get_logger("debugger").name == "easyflow.debugger"

    def test_structured_logger_appends_context(self, caplog):
        """Test that context pairs are appended to messages."""
        log = StructuredLogger("tests").bind(session="s-1")

        with caplog.at_level(logging.INFO, logger="easyflow.tests"):
            log.info("Session started", entries=2, missing=None)

        assert "Session started | session=s-1 entries=2" in caplog.text
        assert "missing" not in caplog.text

    def test_bind_does_not_mutate(self):
        base = StructuredLogger("tests", debugger="d")
        bound = base.bind(session="s-1")

        assert base.context == {"debugger": "d"}
        assert bound.context == {"debugger": "d", "session": "s-1"}

    def test_configure_logging_replaces_handler(self):
        """Test that a second configure_logging call replaces the first handler."""
        first, second = logging.NullHandler(), logging.NullHandler()
        logger = logging.getLogger("easyflow")
        try:
            configure_logging("DEBUG", handler=first)
            configure_logging("warning", handler=second)

            assert first not in logger.handlers
            assert second in logger.handlers
            assert logger.level == logging.WARNING
        finally:
            logger.removeHandler(first)
            logger.removeHandler(second)
            logger.propagate = True
            logger.setLevel(logging.NOTSET)

    def test_configure_logging_level_from_env(self, monkeypatch):
        monkeypatch.setenv("EASYFLOW_LOG_LEVEL", "error")
        handler = logging.NullHandler()
        logger = logging.getLogger("easyflow")
        try:
            assert configure_logging(handler=handler).level == logging.ERROR
        finally:
            logger.removeHandler(handler)
            logger.propagate = True
            logger.setLevel(logging.NOTSET)
