# awaitguard/driver.py
"""
Running lint passes over files.

:class:`LintRunner` ties the pieces together for one file: lower the
source, build a :class:`~awaitguard.lint.LintContext`, run every
registered pass, apply suppressions.  :meth:`LintRunner.run_paths` does the
same for a set of files and directories, optionally on a thread pool.

Failures never abort a run:

  • a file that cannot be read or parsed yields one ``syntax-error``
    diagnostic (severity information)
  • an exception inside a pass discards that pass's findings for the file
    and yields one ``internal-error`` diagnostic instead
"""

from __future__ import annotations

import logging
import time
import tokenize
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import Path as FsPath
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from awaitguard.diagnostics import Diagnostic, DiagnosticBuffer, Severity
from awaitguard.errors import SourceError
from awaitguard.hir import Span, lower_module
from awaitguard.lint import LintContext, LintStore, run_passes
from awaitguard.may_block import MayBlock
from awaitguard.paths import BLOCKING_PRIMITIVES, BlockingPrimitiveRegistry
from awaitguard.suppressions import SuppressionManager
from awaitguard.typeck import TypeContext

logger = logging.getLogger(__name__)

SYNTAX_ERROR_ID = "syntax-error"
INTERNAL_ERROR_ID = "internal-error"


def default_store() -> LintStore:
    """A store with every built-in pass registered."""
    store = LintStore()
    store.register(MayBlock)
    return store


@dataclass
class RunResults:
    """
    Aggregate results of a run.

    Attributes
    ----------
    diagnostics : every diagnostic, ordered by file then emission
    files       : files analysed, in report order
    sources     : source text per file, for excerpts
    stats       : timing statistics (``<file>_elapsed_ms``, ``elapsed_ms``)
    """
    diagnostics: List[Diagnostic] = field(default_factory=list)
    files: List[str] = field(default_factory=list)
    sources: Dict[str, str] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity == Severity.WARNING)

    @property
    def total_count(self) -> int:
        return len(self.diagnostics)

    def by_severity(self, severity: Severity) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == severity]

    def by_file(self, file: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.span.file == file]

    def by_lint(self) -> Dict[str, List[Diagnostic]]:
        grouped: Dict[str, List[Diagnostic]] = defaultdict(list)
        for diag in self.diagnostics:
            grouped[diag.lint_id].append(diag)
        return dict(grouped)

    def extend(self, other: RunResults) -> None:
        self.diagnostics.extend(other.diagnostics)
        self.files.extend(other.files)
        self.sources.update(other.sources)
        self.stats.update(other.stats)

    def summary(self) -> str:
        """Human-readable summary."""
        lines = [
            f"Checked {len(self.files)} file{'s' if len(self.files) != 1 else ''}: "
            f"{self.total_count} diagnostics "
            f"({self.error_count} errors, {self.warning_count} warnings)",
        ]
        for lint_id, diags in sorted(self.by_lint().items()):
            lines.append(f"  {lint_id}: {len(diags)} findings")
        return "\n".join(lines)


def discover_files(
    paths: Iterable[Union[str, FsPath]],
    exclude: Sequence[str] = (),
) -> List[str]:
    """
    Python files named by ``paths``, recursing into directories.

    Files given explicitly are kept whatever their suffix.  Anything
    matching one of the ``exclude`` glob patterns is skipped.  The result
    is sorted and free of duplicates.

    Raises
    ------
    SourceError
        When a path does not exist.
    """
    found = set()
    for raw in paths:
        path = FsPath(raw)
        if path.is_dir():
            candidates = [p for p in path.rglob("*.py") if p.is_file()]
        elif path.exists():
            candidates = [path]
        else:
            raise SourceError("no such file or directory", str(raw))
        for candidate in candidates:
            name = candidate.as_posix()
            if any(fnmatch(name, pattern) for pattern in exclude):
                logger.debug("excluded %s", name)
                continue
            found.add(name)
    return sorted(found)


class LintRunner:
    """
    Runs the passes of a :class:`LintStore` over source files.

    Usage
    -----
    >>> runner = LintRunner()
    >>> results = runner.run_source(code, "app.py")
    >>> results = runner.run_paths(["src/"], jobs=4)
    >>> print(results.summary())

    Parameters for constructor
    ─────────────────────────
    store        : LintStore, passes and lint levels (default: built-ins)
    suppressions : SuppressionManager, file-level and global rules
    registry     : blocking primitives, handed to every pass as the
                   ``"registry"`` option
    """

    def __init__(
        self,
        store: Optional[LintStore] = None,
        suppressions: Optional[SuppressionManager] = None,
        registry: BlockingPrimitiveRegistry = BLOCKING_PRIMITIVES,
    ) -> None:
        self.store = store or default_store()
        self.suppressions = suppressions or SuppressionManager()
        self.registry = registry

    def run_source(
        self,
        source: str,
        filename: str = "<string>",
        module_name: Optional[str] = None,
    ) -> RunResults:
        """Analyse one in-memory source file."""
        results = RunResults(files=[filename], sources={filename: source})
        t0 = time.monotonic()

        suppressions = self.suppressions.copy()
        suppressions.load_inline_suppressions(source, filename)

        try:
            module = lower_module(source, filename, module_name)
        except SourceError as exc:
            logger.info("cannot parse %s: %s", filename, exc)
            line, column = max(exc.line, 1), max(exc.column, 1)
            span = Span(filename, line, column, line, column + 1)
            diags = [_host_diagnostic(SYNTAX_ERROR_ID, f"cannot parse file: {exc.message}", span)]
        except RecursionError:
            logger.info("cannot parse %s: too deeply nested", filename)
            span = Span(filename, 1, 1, 1, 1)
            diags = [_host_diagnostic(SYNTAX_ERROR_ID, "cannot parse file: too deeply nested", span)]
        else:
            diags = self._run_passes(module)

        results.diagnostics.extend(suppressions.filter_diagnostics(diags))
        results.stats[f"{filename}_elapsed_ms"] = (time.monotonic() - t0) * 1000.0
        return results

    def _run_passes(self, module) -> List[Diagnostic]:
        diags: List[Diagnostic] = []
        options = {"registry": self.registry}
        tcx = TypeContext(module)
        for pass_cls in self.store.passes():
            cx = LintContext(module, self.store, DiagnosticBuffer(), tcx)
            try:
                lint_pass = pass_cls()
                lint_pass.configure(options)
                run_passes(cx, [lint_pass])
            except Exception as exc:
                # Graceful degradation: report the failure, don't crash
                logger.debug("pass %s failed on %s", pass_cls.name, module.filename,
                             exc_info=True)
                span = Span(module.filename, 1, 1, 1, 1)
                diags.append(_host_diagnostic(
                    INTERNAL_ERROR_ID, f"lint pass '{pass_cls.name}' failed: {exc}", span
                ))
                continue
            diags.extend(cx.sink.diagnostics)
        return diags

    def run_file(self, filename: str) -> RunResults:
        """Read ``filename`` (honouring its encoding cookie) and analyse it."""
        try:
            with tokenize.open(filename) as fh:
                source = fh.read()
        except (OSError, SyntaxError, UnicodeDecodeError) as exc:
            logger.info("cannot read %s: %s", filename, exc)
            span = Span(filename, 1, 1, 1, 1)
            diag = _host_diagnostic(SYNTAX_ERROR_ID, f"cannot read file: {exc}", span)
            return RunResults(diagnostics=[diag], files=[filename])
        return self.run_source(source, filename)

    def run_paths(
        self,
        paths: Iterable[Union[str, FsPath]],
        jobs: int = 1,
        exclude: Sequence[str] = (),
    ) -> RunResults:
        """
        Analyse every Python file under ``paths``.

        Results are ordered by file path whatever ``jobs`` is.

        Raises
        ------
        SourceError
            When one of ``paths`` does not exist.
        """
        files = discover_files(paths, exclude)
        logger.info("checking %d file(s) with %d job(s)", len(files), jobs)
        t0 = time.monotonic()

        if jobs > 1 and len(files) > 1:
            with ThreadPoolExecutor(max_workers=jobs) as pool:
                partials = list(pool.map(self.run_file, files))
        else:
            partials = [self.run_file(f) for f in files]

        combined = RunResults()
        for partial in partials:
            combined.extend(partial)
        combined.stats["elapsed_ms"] = (time.monotonic() - t0) * 1000.0
        return combined


def _host_diagnostic(lint_id: str, message: str, span: Span) -> Diagnostic:
    return Diagnostic(
        lint_id=lint_id,
        message=message,
        severity=Severity.INFORMATION,
        span=span,
    )


__all__ = [
    "INTERNAL_ERROR_ID",
    "LintRunner",
    "RunResults",
    "SYNTAX_ERROR_ID",
    "default_store",
    "discover_files",
]
