# awaitguard/diagnostics.py
"""
Diagnostic model.

A :class:`Diagnostic` is a finished report: lint identifier, severity,
primary span and message, and an optional note carrying the secondary
span.  Renderers (see :mod:`awaitguard.reporter`) turn it into text, JSON
or SARIF; the lint rules never format output themselves.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from awaitguard.hir import Span


class Severity(enum.Enum):
    """
    Diagnostic severity levels.

    Each carries:
      • label      : the name used in output and configuration
      • color      : termcolor colour name
      • sarif_level: SARIF 2.1.0 ``level`` string
      • rank       : ordering, higher is more severe
    """

    ERROR = ("error", "red", "error", 3)
    WARNING = ("warning", "yellow", "warning", 2)
    STYLE = ("style", "cyan", "note", 1)
    INFORMATION = ("information", "white", "note", 0)

    def __init__(self, label: str, color: str, sarif_level: str, rank: int) -> None:
        self.label = label
        self.color = color
        self.sarif_level = sarif_level
        self.rank = rank

    @classmethod
    def from_string(cls, s: str) -> Severity:
        """
        Parse a severity from its label (case-insensitive).

        Raises
        ------
        ValueError
            On an unknown label.
        """
        s_low = s.strip().lower()
        for member in cls:
            if member.label == s_low:
                return member
        raise ValueError(f"unknown severity {s!r}")


@dataclass(frozen=True)
class Note:
    """Secondary message, optionally pointing at a span."""
    message: str
    span: Optional[Span] = None


@dataclass(frozen=True)
class Diagnostic:
    """
    A single diagnostic finding.

    Attributes
    ----------
    lint_id  : identifier of the lint that fired (e.g. ``"may-block"``)
    message  : primary message
    severity : Severity
    span     : primary span
    note     : secondary note and span
    extra    : machine-readable context for downstream tooling
    """
    lint_id: str
    message: str
    severity: Severity
    span: Span
    note: Optional[Note] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def file(self) -> str:
        return self.span.file

    def sort_key(self) -> tuple:
        return (self.span.file, self.span.line, self.span.column, self.lint_id)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        result: Dict[str, Any] = {
            "file": self.span.file,
            "line": self.span.line,
            "column": self.span.column,
            "endLine": self.span.end_line,
            "endColumn": self.span.end_column,
            "severity": self.severity.label,
            "message": self.message,
            "lintId": self.lint_id,
        }
        if self.note is not None:
            secondary: Dict[str, Any] = {"message": self.note.message}
            if self.note.span is not None:
                secondary.update(
                    file=self.note.span.file,
                    line=self.note.span.line,
                    column=self.note.span.column,
                    endLine=self.note.span.end_line,
                    endColumn=self.note.span.end_column,
                )
            result["secondary"] = secondary
        if self.extra:
            result["extra"] = dict(self.extra)
        return result

    def to_json_str(self) -> str:
        """Single-line JSON string."""
        return json.dumps(self.to_dict())

    def to_gcc_format(self) -> str:
        """GCC-style: ``file:line:col: severity: message [id]`` plus a note line."""
        line = f"{self.span}: {self.severity.label}: {self.message} [{self.lint_id}]"
        if self.note is None:
            return line
        if self.note.span is not None:
            return f"{line}\n{self.note.span}: note: {self.note.message}"
        return f"{line}\n  note: {self.note.message}"

    def one_line(self) -> str:
        """Compact form: ``[file:line]: (severity) message [id]``."""
        return (f"[{self.span.file}:{self.span.line}]: ({self.severity.label}) "
                f"{self.message} [{self.lint_id}]")


class DiagnosticBuffer:
    """Diagnostic sink collecting diagnostics in emission order."""

    def __init__(self) -> None:
        self._diagnostics: List[Diagnostic] = []

    def emit(self, diag: Diagnostic) -> None:
        self._diagnostics.append(diag)

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return list(self._diagnostics)

    def __len__(self) -> int:
        return len(self._diagnostics)


__all__ = [
    "Diagnostic",
    "DiagnosticBuffer",
    "Note",
    "Severity",
]
