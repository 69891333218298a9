"""Tests for pipeline tracing: enabling, category filtering and stage timing."""
from __future__ import annotations

import asyncio

import pytest

import debug_trace
from debug_trace import close_log, enable, trace, trace_call, trace_exception


@pytest.fixture(autouse=True)
def tracing_off(monkeypatch):
    monkeypatch.setattr(debug_trace, "DEBUG_TRACE", False)
    monkeypatch.setattr(debug_trace, "CATEGORIES", set())
    monkeypatch.setattr(debug_trace, "LOG_FILE", None)
    monkeypatch.setattr(debug_trace, "_log_file", None)
    yield
    close_log()


class TestTrace:
    def test_silent_when_disabled(self, capsys):
        trace("rendering", "MMDC")
        assert capsys.readouterr().err == ""

    def test_errors_always_written(self, capsys):
        trace("boom", "ERROR")
        assert "[ERROR] boom" in capsys.readouterr().err

    def test_enable(self, capsys):
        enable()
        trace("rendering", "MMDC")
        assert "[MMDC] rendering" in capsys.readouterr().err

    def test_category_filter(self, capsys):
        enable(categories=["parse"])
        trace("skipped", "MMDC")
        trace("kept", "PARSE")
        err = capsys.readouterr().err
        assert "kept" in err and "skipped" not in err

    def test_trace_file(self, tmp_path):
        log = tmp_path / "trace.log"
        enable(log)
        trace("to file", "SCENE")
        close_log()
        assert "[SCENE] to file" in log.read_text(encoding="utf-8")

    def test_trace_exception(self, capsys):
        try:
            raise ValueError("bad block")
        except ValueError:
            trace_exception("Block 3 failed")
        err = capsys.readouterr().err
        assert "Block 3 failed" in err and "ValueError: bad block" in err


class TestTraceCall:
    def test_sync_timing(self, capsys):
        @trace_call("CONVERT")
        def stage(x):
            return x * 2

        enable()
        assert stage(21) == 42
        err = capsys.readouterr().err
        assert ">>> TestTraceCall.test_sync_timing.<locals>.stage" in err
        assert " ms)" in err

    def test_async_stage(self, capsys):
        @trace_call("MMDC")
        async def render():
            return "<svg/>"

        enable()
        assert asyncio.run(render()) == "<svg/>"
        assert "<<< " in capsys.readouterr().err

    def test_enabled_after_decoration(self, capsys):
        @trace_call("PARSE")
        def stage():
            return 1

        stage()
        assert capsys.readouterr().err == ""
        enable()
        stage()
        assert ">>>" in capsys.readouterr().err

    def test_failure_reraised(self, capsys):
        @trace_call("PARSE")
        async def stage():
            raise RuntimeError("mmdc exploded")

        enable()
        with pytest.raises(RuntimeError):
            asyncio.run(stage())
        assert "!!! " in capsys.readouterr().err
