"""Tests for structured logging and trace context propagation."""

import asyncio
import json
import logging

import pytest

from convograph.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    clear_trace_context,
    get_trace_context,
    set_trace_context,
    strip_ansi_codes,
)


def make_record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("convograph.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def clean_context():
    clear_trace_context()
    yield
    clear_trace_context()


class TestTraceContext:
    """Context fields accumulate within a task and never leak across tasks."""

    def test_set_and_get(self):
        set_trace_context(session_id="s1")
        set_trace_context(run_id="run_1")
        assert get_trace_context() == {"session_id": "s1", "run_id": "run_1"}

    def test_get_returns_copy(self):
        set_trace_context(session_id="s1")
        get_trace_context()["session_id"] = "changed"
        assert get_trace_context()["session_id"] == "s1"

    @pytest.mark.asyncio
    async def test_tasks_are_isolated(self):
        async def handle(session_id: str) -> dict:
            set_trace_context(session_id=session_id)
            await asyncio.sleep(0.01)
            return get_trace_context()

        first, second = await asyncio.gather(handle("a"), handle("b"))

        assert first["session_id"] == "a"
        assert second["session_id"] == "b"
        assert get_trace_context() == {}


class TestFormatters:
    """JSON for machines, colour for humans."""

    def test_structured_includes_context_and_extras(self):
        set_trace_context(session_id="s1", node_id="ChatModel")
        line = StructuredFormatter().format(make_record("\033[32mhello\033[0m", steps=3))
        entry = json.loads(line)

        assert entry["message"] == "hello"
        assert entry["level"] == "info"
        assert entry["session_id"] == "s1"
        assert entry["node_id"] == "ChatModel"
        assert entry["steps"] == 3

    def test_human_readable_prefix(self):
        set_trace_context(session_id="session_20260101_120000_abcd1234", node_id="Human")
        line = HumanReadableFormatter().format(make_record("waiting"))
        assert "[session:abcd1234 | node:Human]" in line
        assert line.endswith("waiting")

    def test_strip_ansi_codes(self):
        assert strip_ansi_codes("\033[31mred\033[0m") == "red"
