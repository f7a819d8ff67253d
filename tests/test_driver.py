# tests/test_driver.py
"""
Tests for the lint runner: single sources, file discovery, parallel runs
and graceful degradation.
"""

import textwrap

import pytest

from awaitguard.diagnostics import Severity
from awaitguard.driver import (
    INTERNAL_ERROR_ID,
    SYNTAX_ERROR_ID,
    LintRunner,
    RunResults,
    default_store,
    discover_files,
)
from awaitguard.errors import SourceError
from awaitguard.hir import Span
from awaitguard.lint import Lint, LintCategory, LintPass
from awaitguard.may_block import MayBlock
from awaitguard.paths import BLOCKING_PRIMITIVES
from awaitguard.suppressions import SuppressionManager

BLOCKING = textwrap.dedent("""\
    import time

    async def handler():
        s = time.sleep(1)
        await refresh()
""")

CLEAN = textwrap.dedent("""\
    import asyncio

    async def handler():
        await asyncio.sleep(1)
""")

BOOM = Lint("boom", LintCategory.SUSPICIOUS, "always fails")


class ExplodingPass(LintPass):
    name = "exploding"
    lints = (BOOM,)

    def check_module(self, cx):
        cx.span_lint(BOOM, Span(cx.module.filename, 1, 1, 1, 2), "partial finding")
        raise RuntimeError("boom")


@pytest.fixture
def tree(tmp_path):
    """A small project: two offending files, one clean, one excluded."""
    (tmp_path / "pkg").mkdir()
    (tmp_path / "pkg" / "a.py").write_text(BLOCKING, encoding="utf-8")
    (tmp_path / "pkg" / "b.py").write_text(CLEAN, encoding="utf-8")
    (tmp_path / "pkg" / "c.py").write_text(BLOCKING, encoding="utf-8")
    (tmp_path / "build").mkdir()
    (tmp_path / "build" / "gen.py").write_text(BLOCKING, encoding="utf-8")
    (tmp_path / "notes.txt").write_text("not python", encoding="utf-8")
    return tmp_path


class TestRunSource:
    """One in-memory file."""

    def test_finding(self):
        results = LintRunner().run_source(BLOCKING, "app.py")
        assert results.files == ["app.py"]
        assert results.sources == {"app.py": BLOCKING}
        assert [d.lint_id for d in results.diagnostics] == ["may-block"]
        assert results.error_count == 1
        assert "app.py_elapsed_ms" in results.stats

    def test_clean(self):
        assert LintRunner().run_source(CLEAN, "app.py").diagnostics == []

    def test_inline_suppression(self):
        source = BLOCKING.replace("time.sleep(1)", "time.sleep(1)  # awaitguard: ignore[may-block]")
        assert LintRunner().run_source(source, "app.py").diagnostics == []

    def test_inline_suppression_does_not_leak(self):
        runner = LintRunner()
        source = BLOCKING.replace("time.sleep(1)", "time.sleep(1)  # awaitguard: ignore")
        runner.run_source(source, "app.py")
        assert len(runner.run_source(BLOCKING, "app.py").diagnostics) == 1

    def test_global_suppression(self):
        suppressions = SuppressionManager()
        suppressions.add_global_suppression("may-block")
        runner = LintRunner(suppressions=suppressions)
        assert runner.run_source(BLOCKING, "app.py").diagnostics == []

    def test_registry_handed_to_passes(self):
        source = BLOCKING.replace("time.sleep(1)", "requests.get(url)").replace(
            "import time", "import requests")
        assert LintRunner().run_source(source, "app.py").diagnostics == []
        runner = LintRunner(registry=BLOCKING_PRIMITIVES.extend([("requests", "get")]))
        assert len(runner.run_source(source, "app.py").diagnostics) == 1

    def test_syntax_error(self):
        results = LintRunner().run_source("def broken(:\n    pass\n", "bad.py")
        [diag] = results.diagnostics
        assert diag.lint_id == SYNTAX_ERROR_ID
        assert diag.severity is Severity.INFORMATION
        assert diag.message.startswith("cannot parse file: ")
        assert diag.span.file == "bad.py"
        assert diag.span.line == 1
        assert results.error_count == 0

    def test_failing_pass_degrades(self):
        store = default_store()
        store.register(ExplodingPass)
        results = LintRunner(store=store).run_source(BLOCKING, "app.py")
        ids = [d.lint_id for d in results.diagnostics]
        assert ids == ["may-block", INTERNAL_ERROR_ID]
        internal = results.diagnostics[1]
        assert internal.message == "lint pass 'exploding' failed: boom"
        assert internal.severity is Severity.INFORMATION
        assert all(d.message != "partial finding" for d in results.diagnostics)


class TestDiscoverFiles:
    """Expanding paths into Python files."""

    def test_directory(self, tree):
        files = discover_files([tree])
        assert [f.rsplit("/", 1)[-1] for f in files] == ["gen.py", "a.py", "b.py", "c.py"]
        assert files == sorted(files)

    def test_exclude(self, tree):
        files = discover_files([tree], exclude=["*/build/*"])
        assert not any("/build/" in f for f in files)
        assert len(files) == 3

    def test_explicit_file_kept(self, tree):
        assert discover_files([tree / "notes.txt"]) == [(tree / "notes.txt").as_posix()]

    def test_duplicates_removed(self, tree):
        files = discover_files([tree / "pkg", tree / "pkg" / "a.py"])
        assert len(files) == 3

    def test_missing(self, tmp_path):
        with pytest.raises(SourceError, match="no such file or directory"):
            discover_files([tmp_path / "absent"])


class TestRunPaths:
    """Whole-tree runs."""

    def test_sequential(self, tree):
        results = LintRunner().run_paths([tree / "pkg"])
        assert len(results.files) == 3
        assert [d.span.file.rsplit("/", 1)[-1] for d in results.diagnostics] == ["a.py", "c.py"]
        assert "elapsed_ms" in results.stats
        assert set(results.sources) == set(results.files)

    def test_parallel_matches_sequential(self, tree):
        runner = LintRunner()
        sequential = runner.run_paths([tree], exclude=["*/build/*"])
        parallel = runner.run_paths([tree], jobs=4, exclude=["*/build/*"])
        assert parallel.files == sequential.files
        assert parallel.diagnostics == sequential.diagnostics

    def test_missing_path(self, tmp_path):
        with pytest.raises(SourceError):
            LintRunner().run_paths([tmp_path / "absent"])


class TestRunFile:
    """Reading files from disk."""

    def test_bad_encoding(self, tmp_path):
        path = tmp_path / "latin.py"
        path.write_bytes(b"x = '\xff'\n")
        results = LintRunner().run_file(str(path))
        [diag] = results.diagnostics
        assert diag.lint_id == SYNTAX_ERROR_ID
        assert diag.message.startswith("cannot read file: ")

    def test_encoding_cookie(self, tmp_path):
        path = tmp_path / "latin.py"
        path.write_bytes(b"# -*- coding: latin-1 -*-\nx = '\xff'\n")
        assert LintRunner().run_file(str(path)).diagnostics == []

    def test_unreadable(self, tmp_path):
        results = LintRunner().run_file(str(tmp_path / "absent.py"))
        assert [d.lint_id for d in results.diagnostics] == [SYNTAX_ERROR_ID]


class TestRunResults:
    """Aggregation helpers."""

    def test_summary(self):
        results = LintRunner().run_source(BLOCKING, "app.py")
        assert results.summary().splitlines() == [
            "Checked 1 file: 1 diagnostics (1 errors, 0 warnings)",
            "  may-block: 1 findings",
        ]

    def test_grouping(self):
        results = RunResults()
        results.extend(LintRunner().run_source(BLOCKING, "a.py"))
        results.extend(LintRunner().run_source(BLOCKING, "b.py"))
        assert results.files == ["a.py", "b.py"]
        assert len(results.by_file("a.py")) == 1
        assert list(results.by_lint()) == ["may-block"]
        assert len(results.by_severity(Severity.ERROR)) == 2
        assert results.warning_count == 0

    def test_default_store(self):
        assert default_store().passes() == [MayBlock]
