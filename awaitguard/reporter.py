# awaitguard/reporter.py
"""
awaitguard/reporter.py
══════════════════════

Diagnostic rendering.

Output formats
──────────────
  • human : Rust-style rendering with a source excerpt, coloured with
            termcolor when the stream is a terminal (or ``--color``)
  • gcc   : ``file:line:col: severity: message [id]`` plus a note line
  • json  : one JSON object per line
  • sarif : a SARIF 2.1.0 document written when the reporter finishes

Usage
─────
    with Reporter(fmt="human") as rep:
        rep.add_source("app.py", text)
        for diag in diagnostics:
            rep.report(diag)
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, TextIO

from termcolor import colored

from awaitguard.diagnostics import Diagnostic, Severity
from awaitguard.hir import Span
from awaitguard.lint import Lint

# excerpts longer than this keep their first and last lines only
_MAX_EXCERPT_LINES = 6


@dataclass
class ReporterStats:
    """Aggregate counts per severity."""
    error: int = 0
    warning: int = 0
    style: int = 0
    information: int = 0

    def record(self, severity: Severity) -> None:
        setattr(self, severity.label, getattr(self, severity.label) + 1)

    @property
    def total(self) -> int:
        return self.error + self.warning + self.style + self.information

    def summary_line(self) -> str:
        parts: List[str] = []
        if self.error:
            parts.append(f"{self.error} error{'s' if self.error != 1 else ''}")
        if self.warning:
            parts.append(f"{self.warning} warning{'s' if self.warning != 1 else ''}")
        if self.style:
            parts.append(f"{self.style} style")
        if self.information:
            parts.append(f"{self.information} info")
        if not parts:
            return "no diagnostics emitted"
        return "; ".join(parts) + f" ({self.total} total)"


# ═════════════════════════════════════════════════════════════════════════
#  TERMINAL RENDERER  (Rust-style output)
# ═════════════════════════════════════════════════════════════════════════

class _TerminalRenderer:
    """Render diagnostics with a source excerpt, optionally coloured."""

    def __init__(self, stream: TextIO, color: bool, sources: Dict[str, List[str]]) -> None:
        self._stream = stream
        self._color = color
        self._sources = sources

    def _paint(self, text: str, color: Optional[str] = None, attrs: Optional[List[str]] = None) -> str:
        if not self._color:
            return text
        return colored(text, color, attrs=attrs, force_color=True)

    def render(self, diag: Diagnostic) -> None:
        lines: List[str] = []
        gutter_w = len(str(self._last_line(diag))) + 1

        # ── header: severity[lint]: message ──────────────────────────
        sev_str = self._paint(f"{diag.severity.label}[{diag.lint_id}]",
                              diag.severity.color, attrs=["bold"])
        lines.append(f"{sev_str}: {self._paint(diag.message, attrs=['bold'])}")
        lines.append(self._location(diag.span, gutter_w))
        lines.extend(self._excerpt(diag.span, "^", diag.severity.color, gutter_w))

        # ── note with its secondary span ─────────────────────────────
        if diag.note is not None:
            prefix = self._paint("note", "cyan", attrs=["bold"])
            lines.append(f"{prefix}: {diag.note.message}")
            if diag.note.span is not None:
                lines.append(self._location(diag.note.span, gutter_w))
                lines.extend(self._excerpt(diag.note.span, "-", "cyan", gutter_w))

        lines.append("")
        self._stream.write("\n".join(lines) + "\n")
        self._stream.flush()

    @staticmethod
    def _last_line(diag: Diagnostic) -> int:
        last = diag.span.end_line
        if diag.note is not None and diag.note.span is not None:
            last = max(last, diag.note.span.end_line)
        return last

    def _location(self, span: Span, gutter_w: int) -> str:
        arrow = self._paint("-->", "blue", attrs=["bold"])
        return f"{' ' * (gutter_w - 1)}{arrow} {span}"

    def _excerpt(self, span: Span, marker: str, color: str, gutter_w: int) -> List[str]:
        """Annotated source view of ``span``; empty when the source is unknown."""
        source = self._sources.get(span.file)
        if not source:
            return []
        pipe = self._paint("|", "blue", attrs=["bold"])
        blank_gutter = " " * gutter_w
        result = [f"{blank_gutter} {pipe}"]

        numbers = list(range(span.line, min(span.end_line, len(source)) + 1))
        if len(numbers) > _MAX_EXCERPT_LINES:
            numbers = numbers[:3] + [0] + numbers[-2:]

        for lineno in numbers:
            if lineno == 0:
                result.append(f"{self._paint('...', 'blue', attrs=['bold'])}")
                continue
            text = source[lineno - 1]
            number = self._paint(str(lineno).rjust(gutter_w), "blue", attrs=["bold"])
            result.append(f"{number} {pipe} {text}")

            start = span.column if lineno == span.line else len(text) - len(text.lstrip()) + 1
            end = span.end_column if lineno == span.end_line else len(text) + 1
            width = max(end - start, 1)
            underline = self._paint(marker * width, color, attrs=["bold"])
            result.append(f"{blank_gutter} {pipe} {' ' * (start - 1)}{underline}")

        result.append(f"{blank_gutter} {pipe}")
        return result


# ═════════════════════════════════════════════════════════════════════════
#  SARIF 2.1.0 BUILDER
# ═════════════════════════════════════════════════════════════════════════

def _region(span: Span) -> Dict[str, Any]:
    return {
        "startLine": span.line,
        "startColumn": span.column,
        "endLine": span.end_line,
        "endColumn": span.end_column,
    }


class _SarifBuilder:
    """Accumulates diagnostics and produces a SARIF 2.1.0 document."""

    SARIF_VERSION = "2.1.0"
    SARIF_SCHEMA = (
        "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/"
        "Schemata/sarif-schema-2.1.0.json"
    )

    def __init__(self, lints: Dict[str, Lint]) -> None:
        self._lints = lints
        self._results: List[Dict[str, Any]] = []
        self._rules: Dict[str, Dict[str, Any]] = {}  # lint id → rule obj

    def add(self, diag: Diagnostic) -> None:
        if diag.lint_id not in self._rules:
            lint = self._lints.get(diag.lint_id)
            rule: Dict[str, Any] = {
                "id": diag.lint_id,
                "shortDescription": {"text": lint.description if lint else diag.message},
            }
            if lint is not None:
                rule["properties"] = {"category": lint.category.label}
            self._rules[diag.lint_id] = rule

        result: Dict[str, Any] = {
            "ruleId": diag.lint_id,
            "level": diag.severity.sarif_level,
            "message": {"text": diag.message},
            "locations": [{
                "physicalLocation": {
                    "artifactLocation": {"uri": diag.span.file},
                    "region": _region(diag.span),
                }
            }],
        }
        if diag.note is not None:
            related: Dict[str, Any] = {"id": 0, "message": {"text": diag.note.message}}
            if diag.note.span is not None:
                related["physicalLocation"] = {
                    "artifactLocation": {"uri": diag.note.span.file},
                    "region": _region(diag.note.span),
                }
            result["relatedLocations"] = [related]
        self._results.append(result)

    def to_json(self, tool_name: str, version: str) -> str:
        sarif: Dict[str, Any] = {
            "$schema": self.SARIF_SCHEMA,
            "version": self.SARIF_VERSION,
            "runs": [
                {
                    "tool": {
                        "driver": {
                            "name": tool_name,
                            "version": version,
                            "rules": [self._rules[k] for k in sorted(self._rules)],
                        }
                    },
                    "results": self._results,
                }
            ],
        }
        return json.dumps(sarif, indent=2)


# ═════════════════════════════════════════════════════════════════════════
#  REPORTER
# ═════════════════════════════════════════════════════════════════════════

class Reporter:
    """
    Writes diagnostics in one output format and keeps per-severity counts.

    Parameters
    ----------
    fmt            : one of ``human``, ``gcc``, ``json``, ``sarif``
    stream         : where diagnostics go (stdout by default)
    summary_stream : where the ``human`` summary line goes (stderr by default)
    color          : force colour on or off; ``None`` colours only a TTY
    lints          : known lints, used for SARIF rule descriptions
    """

    def __init__(
        self,
        fmt: str = "human",
        stream: Optional[TextIO] = None,
        summary_stream: Optional[TextIO] = None,
        color: Optional[bool] = None,
        lints: Iterable[Lint] = (),
        tool_name: str = "awaitguard",
        tool_version: str = "",
    ) -> None:
        if fmt not in ("human", "gcc", "json", "sarif"):
            raise ValueError(f"unknown output format {fmt!r}")
        self.fmt = fmt
        self.stream = stream if stream is not None else sys.stdout
        self.summary_stream = summary_stream if summary_stream is not None else sys.stderr
        if color is None:
            color = bool(getattr(self.stream, "isatty", lambda: False)())
        self.color = color
        self.tool_name = tool_name
        self.tool_version = tool_version
        self.stats = ReporterStats()
        self._sources: Dict[str, List[str]] = {}
        self._terminal = _TerminalRenderer(self.stream, color, self._sources)
        self._sarif = _SarifBuilder({lint.name: lint for lint in lints})
        self._finished = False

    # ── context manager ──────────────────────────────────────────────

    def __enter__(self) -> Reporter:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.finish()

    # ── input ────────────────────────────────────────────────────────

    def add_source(self, filename: str, text: str) -> None:
        """Make ``text`` available for excerpts of ``filename``."""
        self._sources[filename] = text.splitlines()

    def report(self, diag: Diagnostic) -> None:
        self.stats.record(diag.severity)
        if self.fmt == "human":
            self._terminal.render(diag)
        elif self.fmt == "gcc":
            self.stream.write(diag.to_gcc_format() + "\n")
        elif self.fmt == "json":
            self.stream.write(diag.to_json_str() + "\n")
        else:
            self._sarif.add(diag)

    # ── finalisation ─────────────────────────────────────────────────

    def finish(self) -> ReporterStats:
        """
        Write the SARIF document or the ``human`` summary line.

        Returns the final :class:`ReporterStats`.  Only the first call writes
        anything.
        """
        if self._finished:
            return self.stats
        self._finished = True
        if self.fmt == "sarif":
            self.stream.write(self._sarif.to_json(self.tool_name, self.tool_version) + "\n")
        elif self.fmt == "human":
            summary = f"  ╰─ {self.stats.summary_line()}"
            if self.color:
                if self.stats.error:
                    summary = colored(summary, "red", attrs=["bold"], force_color=True)
                elif self.stats.total:
                    summary = colored(summary, "yellow", attrs=["bold"], force_color=True)
                else:
                    summary = colored(summary, "green", attrs=["bold"], force_color=True)
            self.summary_stream.write(summary + "\n")
        self.stream.flush()
        return self.stats


__all__ = [
    "Reporter",
    "ReporterStats",
]
