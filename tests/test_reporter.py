# tests/test_reporter.py
"""
Tests for the output formats of the reporter.
"""

import io
import json

import pytest

from awaitguard.diagnostics import Diagnostic, Note, Severity
from awaitguard.hir import Span
from awaitguard.may_block import MAY_BLOCK
from awaitguard.reporter import Reporter, ReporterStats

SOURCE = """\
import time

async def handler():
    s = time.sleep(1)
    await refresh()
"""

DIAG = Diagnostic(
    lint_id="may-block",
    message="this blocking function can slow down the async runtime.",
    severity=Severity.ERROR,
    span=Span("app.py", 4, 5, 4, 6),
    note=Note("these are all the await points this lock is held through",
              Span("app.py", 4, 5, 5, 20)),
)


def _render(fmt, diags=(DIAG,), **kwargs):
    out, err = io.StringIO(), io.StringIO()
    rep = Reporter(fmt=fmt, stream=out, summary_stream=err, color=False,
                   lints=[MAY_BLOCK], tool_version="1.2.3", **kwargs)
    rep.add_source("app.py", SOURCE)
    for diag in diags:
        rep.report(diag)
    stats = rep.finish()
    return out.getvalue(), err.getvalue(), stats


class TestReporterStats:
    """Counting and the summary line."""

    def test_empty(self):
        assert ReporterStats().summary_line() == "no diagnostics emitted"

    def test_counts(self):
        stats = ReporterStats()
        stats.record(Severity.ERROR)
        stats.record(Severity.ERROR)
        stats.record(Severity.WARNING)
        stats.record(Severity.INFORMATION)
        assert stats.total == 4
        assert stats.summary_line() == "2 errors; 1 warning; 1 info (4 total)"


class TestHumanFormat:
    """Rust-style rendering with a source excerpt."""

    def test_header_and_location(self):
        out, _, _ = _render("human")
        lines = out.splitlines()
        assert lines[0] == f"error[may-block]: {DIAG.message}"
        assert lines[1] == " --> app.py:4:5"

    def test_primary_excerpt(self):
        out, _, _ = _render("human")
        assert " 4 |     s = time.sleep(1)" in out.splitlines()
        assert "   |     ^" in out.splitlines()

    def test_note_excerpt(self):
        out, _, _ = _render("human")
        lines = out.splitlines()
        assert "note: these are all the await points this lock is held through" in lines
        assert "   |     -----------------" in lines
        assert " 5 |     await refresh()" in lines
        assert "   |     ---------------" in lines

    def test_no_color_codes(self):
        out, _, _ = _render("human")
        assert "\x1b[" not in out

    def test_color(self):
        out = io.StringIO()
        rep = Reporter(fmt="human", stream=out, summary_stream=io.StringIO(), color=True)
        rep.report(DIAG)
        assert "\x1b[" in out.getvalue()

    def test_without_source(self):
        out = io.StringIO()
        rep = Reporter(fmt="human", stream=out, summary_stream=io.StringIO(), color=False)
        rep.report(DIAG)
        assert "|" not in out.getvalue()

    def test_summary(self):
        _, err, stats = _render("human")
        assert err == "  ╰─ 1 error (1 total)\n"
        assert stats.error == 1


class TestMachineFormats:
    """gcc, json and sarif output."""

    def test_gcc(self):
        out, err, _ = _render("gcc")
        assert out.splitlines() == [
            f"app.py:4:5: error: {DIAG.message} [may-block]",
            "app.py:4:5: note: these are all the await points this lock is held through",
        ]
        assert err == ""

    def test_json_lines(self):
        out, _, _ = _render("json", diags=(DIAG, DIAG))
        records = [json.loads(line) for line in out.splitlines()]
        assert len(records) == 2
        assert records[0]["secondary"]["endLine"] == 5

    def test_sarif(self):
        out, _, _ = _render("sarif")
        doc = json.loads(out)
        assert doc["version"] == "2.1.0"
        run = doc["runs"][0]
        assert run["tool"]["driver"]["name"] == "awaitguard"
        assert run["tool"]["driver"]["version"] == "1.2.3"
        assert run["tool"]["driver"]["rules"] == [{
            "id": "may-block",
            "shortDescription": {"text": MAY_BLOCK.description},
            "properties": {"category": "correctness"},
        }]
        result = run["results"][0]
        assert result["level"] == "error"
        assert result["locations"][0]["physicalLocation"]["region"] == {
            "startLine": 4, "startColumn": 5, "endLine": 4, "endColumn": 6,
        }
        related = result["relatedLocations"][0]
        assert related["message"]["text"].startswith("these are all")
        assert related["physicalLocation"]["region"]["endLine"] == 5

    def test_sarif_empty(self):
        out, _, _ = _render("sarif", diags=())
        assert json.loads(out)["runs"][0]["results"] == []

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            Reporter(fmt="xml")

    def test_context_manager_finishes(self):
        out = io.StringIO()
        with Reporter(fmt="sarif", stream=out) as rep:
            rep.report(DIAG)
        assert json.loads(out.getvalue())["runs"][0]["results"]

    def test_finish_inside_context_manager_writes_once(self):
        out, err = io.StringIO(), io.StringIO()
        with Reporter(fmt="sarif", stream=out, summary_stream=err) as rep:
            rep.report(DIAG)
            stats = rep.finish()
        assert stats.error == 1
        assert out.getvalue().count('"version": "2.1.0"') == 1
        json.loads(out.getvalue())

    def test_human_summary_written_once(self):
        out, err = io.StringIO(), io.StringIO()
        with Reporter(fmt="human", stream=out, summary_stream=err, color=False) as rep:
            rep.finish()
        assert err.getvalue() == "  ╰─ no diagnostics emitted\n"
