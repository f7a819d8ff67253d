# awaitguard/typeck.py
"""
Per-definition type checking and generator interior tables.

For every body, :class:`TypeContext` produces a :class:`TypeckResults`
holding the inferred type of each local name and, for bodies that can
suspend, ``generator_interior_types``: the values that are part of the
body's persisted state because they are live across a suspension point.

Liveness model
──────────────
Python frames keep locals alive until they are rebound, deleted or the
frame finishes; there is no drop at last use.  The walker therefore tracks,
per local name, the set of bindings that may currently be held, and at each
suspension point records everything that is held:

  * local bindings and parameters (kind LOCAL / PARAM)
  * context-manager values of enclosing ``with`` blocks (kind GUARD)
  * call arguments already evaluated when a later argument suspends
    (kind TEMPORARY)

Branches join and loops iterate to a fixed point.  ``return``, ``raise``,
``break`` and ``continue`` leave through a stack of enclosing frames:

  * a loop takes ``break`` to its exit and ``continue`` to its head
  * a ``try`` with handlers takes ``raise`` to the handlers
  * a ``try`` with ``finally`` runs the ``finally`` with the leaving state,
    then lets the exit carry on outwards
  * an ``async with`` suspends in ``__aexit__`` with the leaving state

Suspension points
─────────────────
  ``await``                               every body
  ``async for`` iteration                 every body
  ``async with`` enter and exit           every body
  ``yield`` / ``yield from``              generator bodies
"""

from __future__ import annotations

import ast
import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple, Union

from awaitguard.hir import (
    Body,
    DefId,
    ModuleHir,
    Span,
    iter_arguments,
    outer_parts,
    scope_roots,
    walk_scope,
)
from awaitguard.ty import (
    UNKNOWN,
    ExprTyper,
    Ty,
    builtin_ty,
    import_bindings,
    join_tys,
)

logger = logging.getLogger(__name__)

_MAX_LOOP_PASSES = 16


class InteriorKind(enum.Enum):
    LOCAL = "local"
    PARAM = "param"
    GUARD = "guard"
    TEMPORARY = "temporary"


@dataclass(frozen=True)
class GeneratorInteriorTypeCause:
    """
    A value held across at least one suspension point.

    Attributes
    ----------
    ty         : type descriptor of the value
    span       : where the value is declared
    scope_span : region covering every suspension point the value is held
                 across; ``None`` when no such scope exists (temporaries)
    kind       : how the value is held
    name       : binding name, empty for guards and temporaries
    """
    ty: Ty
    span: Span
    scope_span: Optional[Span] = None
    kind: InteriorKind = InteriorKind.LOCAL
    name: str = ""


@dataclass
class TypeckResults:
    """Type-check results of one definition."""
    def_id: DefId
    binding_types: Dict[str, Ty] = field(default_factory=dict)
    generator_interior_types: List[GeneratorInteriorTypeCause] = field(default_factory=list)
    suspension_points: List[Span] = field(default_factory=list)


# ═════════════════════════════════════════════════════════════════════════
#  BINDINGS AND FLOW STATE
# ═════════════════════════════════════════════════════════════════════════

class _Binding:
    """One place a value starts being held.  Compared by identity."""

    __slots__ = ("order", "name", "ty", "span", "kind", "scope_span")

    def __init__(
        self,
        order: int,
        name: str,
        ty: Ty,
        span: Span,
        kind: InteriorKind,
        scope_span: Optional[Span] = None,
    ) -> None:
        self.order = order
        self.name = name
        self.ty = ty
        self.span = span
        self.kind = kind
        self.scope_span = scope_span

    def __repr__(self) -> str:
        return f"<_Binding {self.name or self.kind.value} {self.ty} @{self.span}>"


# name → bindings that may be held; ``None`` means unreachable
_State = Optional[Dict[str, FrozenSet[_Binding]]]


def _join(*states: _State) -> _State:
    live = [s for s in states if s is not None]
    if not live:
        return None
    merged: Dict[str, FrozenSet[_Binding]] = {}
    for state in live:
        for name, bindings in state.items():
            merged[name] = merged.get(name, frozenset()) | bindings
    return merged


class _LoopFrame:
    __slots__ = ("breaks", "continues")

    def __init__(self) -> None:
        self.breaks: List[_State] = []
        self.continues: List[_State] = []


class _AsyncWithFrame:
    """An ``async with`` block; every way out of it suspends in ``__aexit__``."""

    __slots__ = ("exits",)

    def __init__(self, exits: List[Tuple[int, Span]]) -> None:
        # (guards still held, span) per ``__aexit__``, innermost first
        self.exits = exits


class _TryFrame:
    """A ``try`` statement that catches exceptions or runs a ``finally``."""

    __slots__ = ("catching", "has_finally", "raised", "pending")

    def __init__(self, catching: bool, has_finally: bool) -> None:
        self.catching = catching
        self.has_finally = has_finally
        self.raised: List[_State] = []
        # exit kind → states that reach the ``finally`` that way
        self.pending: Dict[str, List[_State]] = {}


_Frame = Union[_LoopFrame, _AsyncWithFrame, _TryFrame]


def _local_names(body: Body) -> Set[str]:
    """Names a body binds in its own frame."""
    node = body.node
    names: Set[str] = set()
    declared: Set[str] = set()
    comp_targets: Set[int] = set()
    if not isinstance(node, ast.GeneratorExp):
        names.update(a.arg for a in iter_arguments(node.args))
    for sub in walk_scope(scope_roots(node)):
        if isinstance(sub, (ast.ListComp, ast.SetComp, ast.DictComp)):
            for gen in sub.generators:
                comp_targets.update(id(n) for n in ast.walk(gen.target))
        elif isinstance(sub, ast.Name) and isinstance(sub.ctx, (ast.Store, ast.Del)):
            if id(sub) not in comp_targets:
                names.add(sub.id)
        elif isinstance(sub, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.add(sub.name)
        elif isinstance(sub, (ast.Import, ast.ImportFrom)):
            names.update(local for local, _, _ in import_bindings(sub))
        elif isinstance(sub, ast.ExceptHandler) and sub.name:
            names.add(sub.name)
        elif isinstance(sub, (ast.MatchAs, ast.MatchStar)) and sub.name:
            names.add(sub.name)
        elif isinstance(sub, ast.MatchMapping) and sub.rest:
            names.add(sub.rest)
        elif isinstance(sub, (ast.Global, ast.Nonlocal)):
            declared.update(sub.names)
    return names - declared


# ═════════════════════════════════════════════════════════════════════════
#  MODULE AND CLASS SCOPES
# ═════════════════════════════════════════════════════════════════════════

class _ModuleTyper(ExprTyper):
    """Types module-level statements in order."""

    def __init__(self, hir: ModuleHir) -> None:
        self.hir = hir
        self.env: Dict[str, List[Ty]] = {}

    def lookup_name(self, name: str) -> Ty:
        if name in self.env:
            return join_tys(self.env[name])
        return super().lookup_name(name)

    def _bind(self, name: str, ty: Ty) -> None:
        self.env.setdefault(name, []).append(ty)

    def run(self, stmts: Sequence[ast.stmt]) -> Dict[str, Ty]:
        for stmt in stmts:
            self._stmt(stmt)
        return {name: join_tys(tys) for name, tys in self.env.items()}

    def _stmt(self, stmt: ast.stmt) -> None:
        if isinstance(stmt, (ast.Import, ast.ImportFrom)):
            for local, ty, _ in import_bindings(stmt):
                self._bind(local, ty)
        elif isinstance(stmt, ast.Assign):
            ty = self.type_of(stmt.value)
            for target in stmt.targets:
                if isinstance(target, ast.Name):
                    self._bind(target.id, ty)
        elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            ty = self.annotation_ty(stmt.annotation)
            if ty is UNKNOWN and stmt.value is not None:
                ty = self.type_of(stmt.value)
            self._bind(stmt.target.id, ty)
        elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            self._bind(stmt.name, Ty.def_((self.hir.module_name, stmt.name)))
        elif isinstance(stmt, ast.If):
            self.run(stmt.body)
            self.run(stmt.orelse)
        elif isinstance(stmt, (ast.Try, getattr(ast, "TryStar", ast.Try))):
            self.run(stmt.body)
            for handler in stmt.handlers:
                self.run(handler.body)
            self.run(stmt.orelse)
            self.run(stmt.finalbody)


class _ScopedTyper(ExprTyper):
    """Types an expression against a fixed name table, then the module."""

    def __init__(self, tcx: TypeContext, names: Dict[str, Ty]) -> None:
        self.tcx = tcx
        self.names = names

    def lookup_name(self, name: str) -> Ty:
        if name in self.names:
            return self.names[name]
        return self.tcx.lookup_global(name)


def _class_attributes(tcx: TypeContext, cls: ast.ClassDef) -> Dict[str, Ty]:
    """Attribute table of a class: class-level assignments and ``self.x = ...``."""
    found: Dict[str, List[Ty]] = {}
    module_typer = _ScopedTyper(tcx, {})
    for stmt in cls.body:
        if isinstance(stmt, ast.Assign):
            ty = module_typer.type_of(stmt.value)
            for target in stmt.targets:
                if isinstance(target, ast.Name):
                    found.setdefault(target.id, []).append(ty)
        elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            ty = module_typer.annotation_ty(stmt.annotation)
            if ty is UNKNOWN and stmt.value is not None:
                ty = module_typer.type_of(stmt.value)
            found.setdefault(stmt.target.id, []).append(ty)
        elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            params = list(stmt.args.posonlyargs) + list(stmt.args.args)
            if not params:
                continue
            self_name = params[0].arg
            names = {a.arg: module_typer.annotation_ty(a.annotation)
                     for a in iter_arguments(stmt.args)}
            names.pop(self_name, None)
            typer = _ScopedTyper(tcx, names)
            for sub in walk_scope(stmt.body):
                value: Optional[ast.AST] = None
                targets: List[ast.AST] = []
                annotation: Optional[ast.AST] = None
                if isinstance(sub, ast.Assign):
                    value, targets = sub.value, list(sub.targets)
                elif isinstance(sub, ast.AnnAssign):
                    value, targets, annotation = sub.value, [sub.target], sub.annotation
                for target in targets:
                    if (isinstance(target, ast.Attribute)
                            and isinstance(target.value, ast.Name)
                            and target.value.id == self_name):
                        ty = typer.annotation_ty(annotation)
                        if ty is UNKNOWN and value is not None:
                            ty = typer.type_of(value)
                        found.setdefault(target.attr, []).append(ty)
    return {name: join_tys(tys) for name, tys in found.items()}


# ═════════════════════════════════════════════════════════════════════════
#  BODY WALKER
# ═════════════════════════════════════════════════════════════════════════

class _BodyWalker(ExprTyper):
    """Walks one body, tracking held values and recording suspension points."""

    def __init__(self, tcx: TypeContext, body: Body) -> None:
        self.tcx = tcx
        self.hir = tcx.hir
        self.body = body
        self.locals = _local_names(body)
        self.can_yield = body.generator_kind is not None

        self.state: _State = {}
        self.guards: List[_Binding] = []
        self.temps: List[_Binding] = []
        self.frames: List[_Frame] = []

        self._bindings: Dict[Tuple[str, int], _Binding] = {}
        self._records: Dict[_Binding, Dict[Span, None]] = {}
        self._points: Dict[Span, None] = {}

    # ── typing hooks ─────────────────────────────────────────────────

    def lookup_name(self, name: str) -> Ty:
        if name in self.locals:
            if self.state is None:
                return UNKNOWN
            bindings = self.state.get(name, frozenset())
            if not bindings:
                return UNKNOWN
            return join_tys([b.ty for b in bindings])
        return self.tcx.lookup_enclosing(self.body, name)

    def lookup_self_attr(self, base: ast.Name, attr: str) -> Optional[Ty]:
        if self.body.owner_class is None or base.id != self.body.self_name:
            return None
        attrs = self.tcx.class_attrs(self.body.owner_class)
        return attrs.get(attr)

    # ── bookkeeping ──────────────────────────────────────────────────

    def _span(self, node: ast.AST) -> Span:
        return self.hir.span(node)

    def _binding(
        self,
        key: ast.AST,
        name: str,
        ty: Ty,
        span: Span,
        kind: InteriorKind,
        scope_span: Optional[Span] = None,
    ) -> _Binding:
        ident = (name, id(key))
        found = self._bindings.get(ident)
        if found is None:
            found = _Binding(len(self._bindings), name, ty, span, kind, scope_span)
            self._bindings[ident] = found
        elif found.ty != ty:
            found.ty = UNKNOWN
        return found

    def _bind(self, name: str, ty: Ty, node: ast.AST,
              kind: InteriorKind = InteriorKind.LOCAL) -> None:
        if self.state is None or name not in self.locals:
            return
        binding = self._binding(node, name, ty, self._span(node), kind)
        self.state[name] = frozenset({binding})

    def _suspend(self, span: Span) -> None:
        if self.state is None:
            return
        self._record(span, self.state, self.guards)

    def _record(self, span: Span, state: Dict[str, FrozenSet[_Binding]],
                guards: Sequence[_Binding]) -> None:
        self._points.setdefault(span, None)
        held: List[_Binding] = []
        for name in sorted(state):
            held.extend(state[name])
        held.extend(guards)
        held.extend(self.temps)
        for binding in held:
            self._records.setdefault(binding, {}).setdefault(span, None)

    # ── early exits ──────────────────────────────────────────────────

    def _leave(self, kind: str) -> None:
        """End the current path with ``return``, ``raise``, ``break`` or ``continue``."""
        if self.state is not None:
            self._dispatch(kind, self._copy())
        self.state = None

    def _dispatch(self, kind: str, state: Dict[str, FrozenSet[_Binding]]) -> None:
        # innermost frame first; the first frame that absorbs the exit ends
        # the walk, every async with passed on the way suspends
        for frame in reversed(self.frames):
            if isinstance(frame, _LoopFrame):
                if kind == "break":
                    frame.breaks.append(state)
                    return
                if kind == "continue":
                    frame.continues.append(state)
                    return
            elif isinstance(frame, _TryFrame):
                if kind == "raise" and frame.catching:
                    frame.raised.append(state)
                    return
                if frame.has_finally:
                    frame.pending.setdefault(kind, []).append(state)
                    return
            else:
                self._async_exit(frame, state)

    def _async_exit(self, frame: _AsyncWithFrame,
                    state: Dict[str, FrozenSet[_Binding]]) -> None:
        for depth, span in frame.exits:
            self._record(span, state, self.guards[:depth])

    # ── entry point ──────────────────────────────────────────────────

    def run(self) -> TypeckResults:
        node = self.body.node
        if isinstance(node, ast.GeneratorExp):
            self._genexp(node)
        else:
            self._params(node.args)
            if isinstance(node, ast.Lambda):
                self._expr(node.body)
            else:
                self._stmts(node.body)

        binding_types: Dict[str, List[Ty]] = {}
        for binding in self._bindings.values():
            if binding.name:
                binding_types.setdefault(binding.name, []).append(binding.ty)

        causes: List[GeneratorInteriorTypeCause] = []
        for binding in sorted(self._records, key=lambda b: b.order):
            points = list(self._records[binding])
            if binding.kind is InteriorKind.GUARD:
                scope: Optional[Span] = binding.scope_span
            elif binding.kind is InteriorKind.TEMPORARY:
                scope = None
            else:
                scope = _cover([binding.span] + points)
            causes.append(GeneratorInteriorTypeCause(
                ty=binding.ty,
                span=binding.span,
                scope_span=scope,
                kind=binding.kind,
                name=binding.name,
            ))

        return TypeckResults(
            def_id=self.body.def_id,
            binding_types={n: join_tys(t) for n, t in binding_types.items()},
            generator_interior_types=causes,
            suspension_points=list(self._points),
        )

    def _params(self, args: ast.arguments) -> None:
        for arg in iter_arguments(args):
            if arg.arg == self.body.self_name and self.body.owner_class:
                ty = Ty.adt((self.hir.module_name,) + tuple(self.body.owner_class.split(".")))
            elif arg is args.vararg:
                ty = Ty.builtin("tuple")
            elif arg is args.kwarg:
                ty = Ty.builtin("dict")
            else:
                ty = self.annotation_ty(arg.annotation)
            self._bind(arg.arg, ty, arg, InteriorKind.PARAM)

    def _genexp(self, node: ast.GeneratorExp) -> None:
        # the generator loops, so a target bound on one iteration is still
        # held at the next iteration's header
        for _ in range(2):
            for idx, gen in enumerate(node.generators):
                if idx:
                    self._expr(gen.iter)
                if gen.is_async:
                    self._suspend(self._span(gen.iter))
                self._assign(gen.target, UNKNOWN)
                for cond in gen.ifs:
                    self._expr(cond)
            self._expr(node.elt)
            if self.can_yield:
                self._suspend(self._span(node.elt))

    # ── statements ───────────────────────────────────────────────────

    def _stmts(self, stmts: Sequence[ast.stmt]) -> None:
        for stmt in stmts:
            if self.state is None:
                return
            self._stmt(stmt)

    def _stmt(self, node: ast.stmt) -> None:
        method = getattr(self, f"_stmt_{type(node).__name__}", None)
        if method is not None:
            method(node)
            return
        for child in ast.iter_child_nodes(node):
            if isinstance(child, ast.expr):
                self._expr(child)

    def _stmt_Expr(self, node: ast.Expr) -> None:
        self._expr(node.value)

    def _stmt_Assign(self, node: ast.Assign) -> None:
        self._expr(node.value)
        ty = self.type_of(node.value)
        for target in node.targets:
            self._assign(target, ty, node.value)

    def _stmt_AnnAssign(self, node: ast.AnnAssign) -> None:
        if node.value is None:
            return
        self._expr(node.value)
        ty = self.annotation_ty(node.annotation)
        if ty is UNKNOWN:
            ty = self.type_of(node.value)
        self._assign(node.target, ty, node.value)

    def _stmt_AugAssign(self, node: ast.AugAssign) -> None:
        self._expr(node.value)
        if isinstance(node.target, ast.Name):
            self._bind(node.target.id, self.lookup_name(node.target.id), node.target)
        else:
            self._target_exprs(node.target)

    def _stmt_Delete(self, node: ast.Delete) -> None:
        for target in node.targets:
            self._delete(target)

    def _delete(self, target: ast.AST) -> None:
        if isinstance(target, ast.Name):
            if self.state is not None and target.id in self.locals:
                self.state[target.id] = frozenset()
        elif isinstance(target, (ast.Tuple, ast.List)):
            for elt in target.elts:
                self._delete(elt)
        else:
            self._target_exprs(target)

    def _stmt_Return(self, node: ast.Return) -> None:
        self._expr(node.value)
        self._leave("return")

    def _stmt_Raise(self, node: ast.Raise) -> None:
        self._expr(node.exc)
        self._expr(node.cause)
        self._leave("raise")

    def _stmt_Break(self, node: ast.Break) -> None:
        self._leave("break")

    def _stmt_Continue(self, node: ast.Continue) -> None:
        self._leave("continue")

    def _stmt_If(self, node: ast.If) -> None:
        self._expr(node.test)
        entry = self._copy()
        self._stmts(node.body)
        after_body = self.state
        self.state = entry
        self._stmts(node.orelse)
        self.state = _join(after_body, self.state)

    def _stmt_While(self, node: ast.While) -> None:
        self._loop(node, lambda: self._expr(node.test), lambda: None)

    def _stmt_For(self, node: ast.For) -> None:
        self._expr(node.iter)
        self._loop(node, lambda: None, lambda: self._assign(node.target, UNKNOWN))

    def _stmt_AsyncFor(self, node: ast.AsyncFor) -> None:
        self._expr(node.iter)
        header = self._span(node.iter)
        self._loop(node, lambda: self._suspend(header),
                   lambda: self._assign(node.target, UNKNOWN))

    def _loop(self, node, head, enter) -> None:
        head_state = self._copy()
        exit_state: _State = None
        frame = _LoopFrame()
        for _ in range(_MAX_LOOP_PASSES):
            self.state = _copy_state(head_state)
            head()
            exit_state = self._copy()
            enter()
            frame = _LoopFrame()
            self.frames.append(frame)
            self._stmts(node.body)
            self.frames.pop()
            back = _join(self.state, *frame.continues)
            new_head = _join(head_state, back)
            if new_head == head_state:
                break
            head_state = new_head
        self.state = exit_state
        self._stmts(node.orelse)
        self.state = _join(self.state, *frame.breaks)

    def _stmt_With(self, node: ast.With) -> None:
        self._with(node, is_async=False)

    def _stmt_AsyncWith(self, node: ast.AsyncWith) -> None:
        self._with(node, is_async=True)

    def _with(self, node, is_async: bool) -> None:
        scope = self._span(node)
        base = len(self.guards)
        for item in node.items:
            self._expr(item.context_expr)
            ty = self.type_of(item.context_expr).entered()
            expr_span = self._span(item.context_expr)
            guard = self._binding(item.context_expr, "", ty, expr_span,
                                  InteriorKind.GUARD, scope)
            self.guards.append(guard)
            if is_async:
                self._suspend(expr_span)
            if item.optional_vars is not None:
                self._assign(item.optional_vars, UNKNOWN)
        if not is_async:
            self._stmts(node.body)
            del self.guards[base:]
            return
        frame = _AsyncWithFrame([
            (base + idx + 1, self._span(item.context_expr))
            for idx, item in reversed(list(enumerate(node.items)))
        ])
        self.frames.append(frame)
        self._stmts(node.body)
        self.frames.pop()
        if self.state is not None:
            self._async_exit(frame, self.state)
        del self.guards[base:]

    def _stmt_Try(self, node: ast.Try) -> None:
        entry = self._copy()
        frame = _TryFrame(bool(node.handlers), bool(node.finalbody))
        self.frames.append(frame)
        self._stmts(node.body)
        after_body = self._copy()
        handler_entry = _join(entry, after_body, *frame.raised)
        frame.catching = False
        outcomes: List[_State] = []
        for handler in node.handlers:
            self.state = _copy_state(handler_entry)
            self._expr(handler.type)
            if handler.name:
                ty = UNKNOWN
                if isinstance(handler.type, (ast.Name, ast.Attribute)):
                    ty = self.annotation_ty(handler.type)
                self._bind(handler.name, ty, handler)
            self._stmts(handler.body)
            if handler.name and self.state is not None and handler.name in self.locals:
                self.state[handler.name] = frozenset()
            outcomes.append(self.state)
        self.state = after_body
        self._stmts(node.orelse)
        self.frames.pop()
        after = _join(self.state, *outcomes)
        if not node.finalbody:
            self.state = after
            return
        # the finally runs on the way out of the statement, once per way out
        self.state = _join(after, handler_entry)
        self._stmts(node.finalbody)
        normal = self.state if after is not None else None
        for kind, states in frame.pending.items():
            self.state = _join(*states)
            self._stmts(node.finalbody)
            self._leave(kind)
        self.state = normal

    _stmt_TryStar = _stmt_Try

    def _stmt_Match(self, node) -> None:
        self._expr(node.subject)
        entry = self._copy()
        outcomes: List[_State] = [entry]
        for case in node.cases:
            self.state = _copy_state(entry)
            for sub in ast.walk(case.pattern):
                if isinstance(sub, (ast.MatchAs, ast.MatchStar)) and sub.name:
                    self._bind(sub.name, UNKNOWN, sub)
                elif isinstance(sub, ast.MatchMapping) and sub.rest:
                    self._bind(sub.rest, UNKNOWN, sub)
                elif isinstance(sub, ast.expr):
                    self._expr(sub)
            self._expr(case.guard)
            self._stmts(case.body)
            outcomes.append(self.state)
        self.state = _join(*outcomes)

    def _stmt_FunctionDef(self, node: ast.FunctionDef) -> None:
        for part in outer_parts(node):
            self._expr(part)
        self._bind(node.name, Ty.def_((self.hir.module_name, node.name)), node)

    _stmt_AsyncFunctionDef = _stmt_FunctionDef
    _stmt_ClassDef = _stmt_FunctionDef

    def _stmt_Import(self, node: ast.Import) -> None:
        for local, ty, alias in import_bindings(node):
            self._bind(local, ty, alias)

    _stmt_ImportFrom = _stmt_Import

    def _stmt_Global(self, node: ast.Global) -> None:
        pass

    _stmt_Nonlocal = _stmt_Global

    # ── assignment targets ───────────────────────────────────────────

    def _assign(self, target: ast.AST, ty: Ty, value: Optional[ast.AST] = None) -> None:
        if isinstance(target, ast.Name):
            self._bind(target.id, ty, target)
        elif isinstance(target, (ast.Tuple, ast.List)):
            values: List[Optional[ast.AST]] = [None] * len(target.elts)
            if (isinstance(value, (ast.Tuple, ast.List))
                    and len(value.elts) == len(target.elts)
                    and not any(isinstance(e, ast.Starred) for e in value.elts)):
                values = list(value.elts)
            for elt, sub_value in zip(target.elts, values):
                sub_ty = self.type_of(sub_value) if sub_value is not None else UNKNOWN
                self._assign(elt, sub_ty, sub_value)
        elif isinstance(target, ast.Starred):
            self._assign(target.value, Ty.builtin("list"))
        else:
            self._target_exprs(target)

    def _target_exprs(self, target: ast.AST) -> None:
        if isinstance(target, ast.Attribute):
            self._expr(target.value)
        elif isinstance(target, ast.Subscript):
            self._expr(target.value)
            self._expr(target.slice)

    # ── expressions ──────────────────────────────────────────────────

    def _expr(self, node: Optional[ast.AST]) -> None:
        if node is None or self.state is None:
            return
        if isinstance(node, ast.Await):
            self._expr(node.value)
            self._suspend(self._span(node))
        elif isinstance(node, (ast.Yield, ast.YieldFrom)):
            self._expr(node.value)
            if self.can_yield:
                self._suspend(self._span(node))
        elif isinstance(node, ast.NamedExpr):
            self._expr(node.value)
            self._bind(node.target.id, self.type_of(node.value), node.target)
        elif isinstance(node, ast.Call):
            self._call(node)
        elif isinstance(node, (ast.Lambda, ast.GeneratorExp)):
            for part in outer_parts(node):
                self._expr(part)
        elif isinstance(node, (ast.ListComp, ast.SetComp, ast.DictComp)):
            self._comprehension(node)
        else:
            for child in ast.iter_child_nodes(node):
                self._expr(child)

    def _call(self, node: ast.Call) -> None:
        self._expr(node.func)
        args: List[ast.AST] = list(node.args) + [kw.value for kw in node.keywords]
        pushed = 0
        for idx, arg in enumerate(args):
            self._expr(arg)
            value = arg.value if isinstance(arg, ast.Starred) else arg
            if isinstance(value, ast.Call) and idx < len(args) - 1:
                temp = self._binding(value, "", self.type_of(value),
                                     self._span(value), InteriorKind.TEMPORARY)
                self.temps.append(temp)
                pushed += 1
        if pushed:
            del self.temps[len(self.temps) - pushed:]

    def _comprehension(self, node) -> None:
        for idx, gen in enumerate(node.generators):
            self._expr(gen.iter)
            if gen.is_async:
                self._suspend(self._span(gen.iter))
            for cond in gen.ifs:
                self._expr(cond)
        if isinstance(node, ast.DictComp):
            self._expr(node.key)
            self._expr(node.value)
        else:
            self._expr(node.elt)

    def _copy(self) -> _State:
        return _copy_state(self.state)


def _copy_state(state: _State) -> _State:
    return dict(state) if state is not None else None


def _cover(spans: Sequence[Span]) -> Span:
    """Smallest span containing every span in ``spans``."""
    first = min(spans, key=lambda s: s.start)
    last = max(spans, key=lambda s: s.end)
    return Span(first.file, first.line, first.column, last.end_line, last.end_column)


# ═════════════════════════════════════════════════════════════════════════
#  TYPE CONTEXT
# ═════════════════════════════════════════════════════════════════════════

class TypeContext:
    """
    Lazily computed, cached type-check results for one module.

    ``typeck(def_id)`` returns ``None`` when the definition is unknown or
    inference could not complete; callers treat that as "no information".
    """

    def __init__(self, hir: ModuleHir) -> None:
        self.hir = hir
        self._by_def: Dict[DefId, Body] = {b.def_id: b for b in hir.bodies}
        self._results: Dict[DefId, Optional[TypeckResults]] = {}
        self._globals: Optional[Dict[str, Ty]] = None
        self._class_attrs: Dict[str, Dict[str, Ty]] = {}

    def typeck(self, def_id: DefId) -> Optional[TypeckResults]:
        if def_id in self._results:
            return self._results[def_id]
        body = self._by_def.get(def_id)
        if body is None:
            logger.debug("no body for %s", def_id)
            return None
        try:
            results: Optional[TypeckResults] = _BodyWalker(self, body).run()
        except RecursionError:
            logger.debug("type inference for %s exceeded the recursion limit", def_id)
            results = None
        self._results[def_id] = results
        return results

    def lookup_global(self, name: str) -> Ty:
        if self._globals is None:
            self._globals = _ModuleTyper(self.hir).run(self.hir.tree.body)
        if name in self._globals:
            return self._globals[name]
        ty = builtin_ty(name)
        return ty if ty is not None else UNKNOWN

    def lookup_enclosing(self, body: Body, name: str) -> Ty:
        """Type of a free variable of ``body``."""
        parent_id = body.parent
        while parent_id is not None:
            parent = self.hir.body(parent_id)
            results = self.typeck(parent.def_id)
            if results is not None and name in results.binding_types:
                return results.binding_types[name]
            if name in _local_names(parent):
                return UNKNOWN
            parent_id = parent.parent
        return self.lookup_global(name)

    def class_attrs(self, qualname: str) -> Dict[str, Ty]:
        if qualname not in self._class_attrs:
            cls = self.hir.classes.get(qualname)
            self._class_attrs[qualname] = _class_attributes(self, cls) if cls else {}
        return self._class_attrs[qualname]


__all__ = [
    "GeneratorInteriorTypeCause",
    "InteriorKind",
    "TypeContext",
    "TypeckResults",
]
