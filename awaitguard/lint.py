# awaitguard/lint.py
"""
Lint host: declarations, passes, the pass registry and the per-module
context handed to passes.

Lifecycle
─────────
  1. a :class:`LintPass` subclass declares the :class:`Lint` objects it
     can emit and is registered in a :class:`LintStore`
  2. the driver lowers a file, builds one :class:`LintContext` and, per pass,
     a fresh instance configured with ``configure(options)``
  3. for every pass, ``check_module(cx)`` runs once, then
     ``check_body(cx, body)`` runs once per body in source order
  4. passes report through ``cx.span_lint`` / ``cx.span_lint_and_note``;
     the context applies the store's enable / severity configuration and
     forwards to the diagnostic sink

Passes keep no state between bodies; a new pass instance is created for
every file.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple, Type

from awaitguard.diagnostics import Diagnostic, DiagnosticBuffer, Note, Severity
from awaitguard.hir import Body, BodyId, DefId, ModuleHir, Span
from awaitguard.ty import Path, Ty, def_path
from awaitguard.typeck import TypeckResults, TypeContext

logger = logging.getLogger(__name__)


class LintCategory(enum.Enum):
    """Lint groups and the severity their lints default to."""
    CORRECTNESS = ("correctness", Severity.ERROR)
    SUSPICIOUS = ("suspicious", Severity.WARNING)
    PERF = ("perf", Severity.WARNING)
    STYLE = ("style", Severity.STYLE)

    def __init__(self, label: str, default_severity: Severity) -> None:
        self.label = label
        self.default_severity = default_severity


@dataclass(frozen=True)
class Lint:
    """Static declaration of one lint."""
    name: str
    category: LintCategory
    description: str
    explanation: str = ""

    @property
    def default_severity(self) -> Severity:
        return self.category.default_severity


class LintPass:
    """
    Base class for lint passes.

    Subclass contract: set ``lints`` and override ``check_body`` and / or
    ``check_module``.  Both default to doing nothing.
    """

    name: ClassVar[str] = "base-pass"
    lints: ClassVar[Tuple[Lint, ...]] = ()

    def configure(self, options: Dict[str, Any]) -> None:
        """
        Called before the pass runs on a file.

        Override to read run-wide settings from ``options``.  Default
        implementation does nothing.
        """
        pass

    def check_module(self, cx: LintContext) -> None:
        pass

    def check_body(self, cx: LintContext, body: Body) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.name}'>"


class LintStore:
    """
    Registry of lint passes plus the lint level table.

    Usage
    -----
    >>> store = LintStore()
    >>> store.register(MayBlock)
    >>> store.set_severity("may-block", Severity.WARNING)
    >>> store.disable("may-block")
    """

    def __init__(self) -> None:
        self._passes: Dict[str, Type[LintPass]] = {}
        self._lints: Dict[str, Lint] = {}
        self._disabled: set = set()
        self._severity: Dict[str, Severity] = {}

    def register(self, pass_cls: Type[LintPass]) -> None:
        self._passes[pass_cls.name] = pass_cls
        for lint in pass_cls.lints:
            self._lints[lint.name] = lint

    def get_lint(self, name: str) -> Optional[Lint]:
        return self._lints.get(name)

    def passes(self) -> List[Type[LintPass]]:
        return list(self._passes.values())

    def lints(self) -> List[Lint]:
        return sorted(self._lints.values(), key=lambda l: l.name)

    def disable(self, name: str) -> None:
        self._require(name)
        self._disabled.add(name)

    def enable(self, name: str) -> None:
        self._require(name)
        self._disabled.discard(name)

    def is_enabled(self, name: str) -> bool:
        return name in self._lints and name not in self._disabled

    def set_severity(self, name: str, severity: Severity) -> None:
        self._require(name)
        self._severity[name] = severity

    def severity(self, lint: Lint) -> Severity:
        return self._severity.get(lint.name, lint.default_severity)

    def _require(self, name: str) -> None:
        if name not in self._lints:
            raise KeyError(f"unknown lint {name!r}")


class LintContext:
    """
    What a pass sees of the host while checking one module.

    Attributes
    ----------
    module : lowered module
    tcx    : type-check result lookup
    store  : lint levels
    sink   : where finished diagnostics go
    """

    def __init__(
        self,
        module: ModuleHir,
        store: LintStore,
        sink: Optional[DiagnosticBuffer] = None,
        tcx: Optional[TypeContext] = None,
    ) -> None:
        self.module = module
        self.store = store
        self.sink = sink if sink is not None else DiagnosticBuffer()
        self.tcx = tcx if tcx is not None else TypeContext(module)

    # ── host lookups ─────────────────────────────────────────────────

    def body_owner_def_id(self, body_id: BodyId) -> DefId:
        return self.module.body_owner_def_id(body_id)

    def typeck(self, def_id: DefId) -> Optional[TypeckResults]:
        return self.tcx.typeck(def_id)

    def def_path(self, ty: Ty) -> Optional[Path]:
        return def_path(ty)

    # ── reporting ────────────────────────────────────────────────────

    def span_lint(self, lint: Lint, span: Span, msg: str) -> None:
        self._emit(lint, span, msg, None)

    def span_lint_and_note(
        self,
        lint: Lint,
        span: Span,
        msg: str,
        note_span: Optional[Span],
        note: str,
    ) -> None:
        self._emit(lint, span, msg, Note(note, note_span))

    def _emit(self, lint: Lint, span: Span, msg: str, note: Optional[Note]) -> None:
        if not self.store.is_enabled(lint.name):
            return
        diag = Diagnostic(
            lint_id=lint.name,
            message=msg,
            severity=self.store.severity(lint),
            span=span,
            note=note,
        )
        logger.debug("%s: %s", span, lint.name)
        self.sink.emit(diag)


def run_passes(cx: LintContext, passes: Sequence[LintPass]) -> None:
    """Drive ``passes`` over every body of ``cx.module`` in source order."""
    for lint_pass in passes:
        lint_pass.check_module(cx)
        for body in cx.module.bodies:
            lint_pass.check_body(cx, body)


__all__ = [
    "Lint",
    "LintCategory",
    "LintContext",
    "LintPass",
    "LintStore",
    "run_passes",
]
