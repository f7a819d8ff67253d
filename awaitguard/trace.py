# awaitguard/trace.py
"""
Interior trace: an S-expression dump of what the type checker records for
every asynchronous body.  This is the ``awaitguard dump-interior`` command;
nothing here runs during a normal check.

One form per body, on one line (wrapped here)::

    (body "handlers:fetch" (kind "async fn") (span "handlers.py:5:5-6:21")
      (suspends "handlers.py:6:9-6:21")
      (interior
        (value local "s" (ty "time.sleep") (span "handlers.py:5:5-5:6")
               (scope "handlers.py:5:5-6:21") blocking)))
"""

from __future__ import annotations

from typing import Iterator, List, Optional, Sequence

import sexpdata
from sexpdata import Symbol

from awaitguard.hir import ModuleHir, Span
from awaitguard.paths import BLOCKING_PRIMITIVES, BlockingPrimitiveRegistry, match_def_path
from awaitguard.ty import def_path
from awaitguard.typeck import GeneratorInteriorTypeCause, TypeContext


def _span_sexp(span: Optional[Span]) -> str:
    if span is None:
        return ""
    return f"{span}-{span.end_line}:{span.end_column}"


def _cause_sexp(cause: GeneratorInteriorTypeCause, registry: BlockingPrimitiveRegistry) -> list:
    form: list = [Symbol("value"), Symbol(cause.kind.value), cause.name,
                  [Symbol("ty"), str(cause.ty)],
                  [Symbol("span"), _span_sexp(cause.span)]]
    if cause.scope_span is not None:
        form.append([Symbol("scope"), _span_sexp(cause.scope_span)])
    path = def_path(cause.ty)
    if path is not None and match_def_path(path, registry):
        form.append(Symbol("blocking"))
    return form


def iter_interior_forms(
    module: ModuleHir,
    registry: BlockingPrimitiveRegistry = BLOCKING_PRIMITIVES,
    tcx: Optional[TypeContext] = None,
) -> Iterator[list]:
    """One ``(body ...)`` form per asynchronous body, in source order."""
    tcx = tcx or TypeContext(module)
    for body in module.async_bodies():
        form: list = [Symbol("body"), str(body.def_id),
                      [Symbol("kind"), body.generator_kind.value],
                      [Symbol("span"), _span_sexp(body.value_span)]]
        results = tcx.typeck(body.def_id)
        if results is None:
            form.append(Symbol("unavailable"))
            yield form
            continue
        form.append([Symbol("suspends")] + [_span_sexp(s) for s in results.suspension_points])
        form.append([Symbol("interior")] + [
            _cause_sexp(cause, registry) for cause in results.generator_interior_types
        ])
        yield form


def dump_interior_types(
    module: ModuleHir,
    registry: BlockingPrimitiveRegistry = BLOCKING_PRIMITIVES,
) -> List[str]:
    """The interior trace of ``module`` as printable lines."""
    return [sexpdata.dumps(form) for form in iter_interior_forms(module, registry)]


def write_interior_types(
    modules: Sequence[ModuleHir],
    stream,
    registry: BlockingPrimitiveRegistry = BLOCKING_PRIMITIVES,
) -> int:
    """Write the trace of every module; returns the number of bodies."""
    count = 0
    for module in modules:
        for line in dump_interior_types(module, registry):
            stream.write(line + "\n")
            count += 1
    return count


__all__ = [
    "dump_interior_types",
    "iter_interior_forms",
    "write_interior_types",
]
