# awaitguard/hir.py
"""
Lowering of Python source into compiled bodies.

A :class:`ModuleHir` is the host-side view of one source file: the parsed
``ast.Module`` plus an ordered list of :class:`Body` records, one for every
function, nested function, lambda and generator expression.  Each body
knows its owning definition (:class:`DefId`), the span of its code and how
it executes (:class:`GeneratorKind`).

Body classification
───────────────────
  ``async def`` at module or class level        → ASYNC_FN
  ``async def`` nested inside another body      → ASYNC_CLOSURE
  asynchronous generator expression             → ASYNC_BLOCK
  ``def`` / ``lambda`` containing ``yield``,
  synchronous generator expression              → GEN
  anything else                                 → None (plain body)

Scope walking
─────────────
:func:`walk_scope` yields the nodes executed in a body's own frame.  It
stops at nested bodies and classes, but still visits the parts of them the
enclosing frame evaluates (decorators, defaults, annotations, base classes
and the outermost iterable of a generator expression).
"""

from __future__ import annotations

import ast
import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from awaitguard.errors import SourceError

logger = logging.getLogger(__name__)

FunctionNode = Union[ast.FunctionDef, ast.AsyncFunctionDef]
BodyNode = Union[ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.GeneratorExp]

_BODY_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.GeneratorExp)


# ═════════════════════════════════════════════════════════════════════════
#  SPANS AND IDENTIFIERS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, order=True)
class Span:
    """
    A region of a source file.

    Lines and columns are 1-based; ``end_column`` is exclusive.
    """
    file: str = ""
    line: int = 0
    column: int = 0
    end_line: int = 0
    end_column: int = 0

    @classmethod
    def from_node(cls, node: ast.AST, file: str = "") -> Span:
        line = getattr(node, "lineno", 0)
        col = getattr(node, "col_offset", 0)
        end_line = getattr(node, "end_lineno", None) or line
        end_col = getattr(node, "end_col_offset", None)
        if end_col is None:
            end_col = col
        return cls(file, line, col + 1, end_line, end_col + 1)

    @property
    def start(self) -> tuple:
        return (self.line, self.column)

    @property
    def end(self) -> tuple:
        return (self.end_line, self.end_column)

    def to(self, other: Span) -> Span:
        """Span from the start of ``self`` to the end of ``other``."""
        if other.end > self.end:
            return Span(self.file, self.line, self.column,
                        other.end_line, other.end_column)
        return self

    def contains(self, other: Span) -> bool:
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"


@dataclass(frozen=True, order=True)
class DefId:
    """Identifier of a definition owning a body."""
    module: str
    qualname: str
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        return f"{self.module}:{self.qualname}"


BodyId = int


class GeneratorKind(enum.Enum):
    """How a body executes when it is not a plain function."""
    ASYNC_FN = "async fn"
    ASYNC_CLOSURE = "async closure"
    ASYNC_BLOCK = "async block"
    GEN = "generator"

    @property
    def is_async(self) -> bool:
        return self is not GeneratorKind.GEN


@dataclass
class Body:
    """
    A compiled body.

    Attributes
    ----------
    id             : index of the body inside its module
    def_id         : owning definition
    node           : the ``ast`` node that introduced the body
    value_span     : span of the body's code
    generator_kind : classification, ``None`` for plain bodies
    parent         : enclosing body, ``None`` at module level
    owner_class    : qualname of the class a method is defined in
    self_name      : name of the instance parameter of a method
    """
    id: BodyId
    def_id: DefId
    node: BodyNode
    value_span: Span
    generator_kind: Optional[GeneratorKind] = None
    parent: Optional[BodyId] = None
    owner_class: Optional[str] = None
    self_name: Optional[str] = None

    @property
    def is_async(self) -> bool:
        return self.generator_kind is not None and self.generator_kind.is_async

    @property
    def name(self) -> str:
        return self.def_id.qualname.rsplit(".", 1)[-1]


@dataclass
class ModuleHir:
    """All bodies of one source file, in source order."""
    filename: str
    module_name: str
    source: str
    tree: ast.Module
    bodies: List[Body] = field(default_factory=list)
    classes: Dict[str, ast.ClassDef] = field(default_factory=dict)

    def body(self, body_id: BodyId) -> Body:
        return self.bodies[body_id]

    def body_owner_def_id(self, body_id: BodyId) -> DefId:
        return self.bodies[body_id].def_id

    def body_by_def_id(self, def_id: DefId) -> Optional[Body]:
        for body in self.bodies:
            if body.def_id == def_id:
                return body
        return None

    def async_bodies(self) -> Iterator[Body]:
        return (b for b in self.bodies if b.is_async)

    def span(self, node: ast.AST) -> Span:
        return Span.from_node(node, self.filename)


# ═════════════════════════════════════════════════════════════════════════
#  SCOPE WALKING
# ═════════════════════════════════════════════════════════════════════════

def scope_roots(node: ast.AST) -> List[ast.AST]:
    """Nodes that execute in the frame of the body introduced by ``node``."""
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
        return list(node.body)
    if isinstance(node, ast.Lambda):
        return [node.body]
    if isinstance(node, ast.GeneratorExp):
        roots: List[ast.AST] = []
        for idx, gen in enumerate(node.generators):
            if idx:
                roots.append(gen.iter)
            roots.append(gen.target)
            roots.extend(gen.ifs)
        roots.append(node.elt)
        return roots
    if isinstance(node, ast.Module):
        return list(node.body)
    return []


def outer_parts(node: ast.AST) -> List[ast.AST]:
    """Parts of a nested body or class evaluated by the enclosing frame."""
    parts: List[ast.AST] = []
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
        parts.extend(node.decorator_list)
        parts.extend(_argument_defaults(node.args))
        parts.extend(_argument_annotations(node.args))
        if node.returns is not None:
            parts.append(node.returns)
    elif isinstance(node, ast.Lambda):
        parts.extend(_argument_defaults(node.args))
    elif isinstance(node, ast.GeneratorExp):
        parts.append(node.generators[0].iter)
    elif isinstance(node, ast.ClassDef):
        parts.extend(node.decorator_list)
        parts.extend(node.bases)
        parts.extend(kw.value for kw in node.keywords)
    return parts


def walk_scope(nodes: Iterable[ast.AST]) -> Iterator[ast.AST]:
    """Pre-order walk that does not enter nested bodies or class bodies."""
    for node in nodes:
        yield node
        if isinstance(node, _BODY_NODES) or isinstance(node, ast.ClassDef):
            yield from walk_scope(outer_parts(node))
        else:
            yield from walk_scope(ast.iter_child_nodes(node))


def iter_arguments(args: ast.arguments) -> Iterator[ast.arg]:
    """Every parameter of a signature, in declaration order."""
    yield from args.posonlyargs
    yield from args.args
    if args.vararg is not None:
        yield args.vararg
    yield from args.kwonlyargs
    if args.kwarg is not None:
        yield args.kwarg


def _argument_defaults(args: ast.arguments) -> List[ast.AST]:
    return list(args.defaults) + [d for d in args.kw_defaults if d is not None]


def _argument_annotations(args: ast.arguments) -> List[ast.AST]:
    return [a.annotation for a in iter_arguments(args) if a.annotation is not None]


def _has_yield(node: ast.AST) -> bool:
    return any(
        isinstance(n, (ast.Yield, ast.YieldFrom))
        for n in walk_scope(scope_roots(node))
    )


def _is_async_genexp(node: ast.GeneratorExp) -> bool:
    if any(gen.is_async for gen in node.generators):
        return True
    return any(isinstance(n, ast.Await) for n in walk_scope(scope_roots(node)))


def _is_staticmethod(node: FunctionNode) -> bool:
    for deco in node.decorator_list:
        if isinstance(deco, ast.Name) and deco.id in ("staticmethod", "classmethod"):
            return True
    return False


# ═════════════════════════════════════════════════════════════════════════
#  LOWERING
# ═════════════════════════════════════════════════════════════════════════

class _Scope:
    __slots__ = ("kind", "qualname", "body_id")

    def __init__(self, kind: str, qualname: str, body_id: Optional[BodyId]) -> None:
        self.kind = kind            # "module" | "class" | "function"
        self.qualname = qualname
        self.body_id = body_id


class _Lowerer(ast.NodeVisitor):
    """Collect bodies and classes of a module in source order."""

    def __init__(self, hir: ModuleHir) -> None:
        self.hir = hir
        self.scopes: List[_Scope] = [_Scope("module", "", None)]

    # ── naming ───────────────────────────────────────────────────────

    def _child_qualname(self, name: str) -> str:
        scope = self.scopes[-1]
        if scope.kind == "module":
            return name
        if scope.kind == "class":
            return f"{scope.qualname}.{name}"
        return f"{scope.qualname}.<locals>.{name}"

    def _enclosing_body(self) -> Optional[BodyId]:
        for scope in reversed(self.scopes):
            if scope.kind == "function":
                return scope.body_id
        return None

    # ── visitors ─────────────────────────────────────────────────────

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        for part in outer_parts(node):
            self.visit(part)
        qualname = self._child_qualname(node.name)
        self.hir.classes[qualname] = node
        self.scopes.append(_Scope("class", qualname, None))
        for stmt in node.body:
            self.visit(stmt)
        self.scopes.pop()

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        kind = GeneratorKind.GEN if _has_yield(node) else None
        self._lower_function(node, kind)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        if self._enclosing_body() is not None:
            kind = GeneratorKind.ASYNC_CLOSURE
        else:
            kind = GeneratorKind.ASYNC_FN
        self._lower_function(node, kind)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        for part in outer_parts(node):
            self.visit(part)
        kind = GeneratorKind.GEN if _has_yield(node) else None
        span = self.hir.span(node.body)
        self._lower_body(node, "<lambda>", kind, span, [node.body])

    def visit_GeneratorExp(self, node: ast.GeneratorExp) -> None:
        for part in outer_parts(node):
            self.visit(part)
        kind = GeneratorKind.ASYNC_BLOCK if _is_async_genexp(node) else GeneratorKind.GEN
        self._lower_body(node, "<genexpr>", kind, self.hir.span(node), scope_roots(node))

    # ── helpers ──────────────────────────────────────────────────────

    def _lower_function(
        self, node: FunctionNode, kind: Optional[GeneratorKind]
    ) -> None:
        for part in outer_parts(node):
            self.visit(part)
        span = self.hir.span(node.body[0]).to(self.hir.span(node.body[-1]))
        owner_class = None
        self_name = None
        scope = self.scopes[-1]
        if scope.kind == "class":
            owner_class = scope.qualname
            params = list(node.args.posonlyargs) + list(node.args.args)
            if params and not _is_staticmethod(node):
                self_name = params[0].arg
        self._lower_body(node, node.name, kind, span, node.body,
                         owner_class=owner_class, self_name=self_name)

    def _lower_body(
        self,
        node: BodyNode,
        name: str,
        kind: Optional[GeneratorKind],
        span: Span,
        roots: Iterable[ast.AST],
        owner_class: Optional[str] = None,
        self_name: Optional[str] = None,
    ) -> None:
        qualname = self._child_qualname(name)
        def_id = DefId(self.hir.module_name, qualname,
                       getattr(node, "lineno", 0), getattr(node, "col_offset", 0) + 1)
        body = Body(
            id=len(self.hir.bodies),
            def_id=def_id,
            node=node,
            value_span=span,
            generator_kind=kind,
            parent=self._enclosing_body(),
            owner_class=owner_class,
            self_name=self_name,
        )
        self.hir.bodies.append(body)
        self.scopes.append(_Scope("function", qualname, body.id))
        for root in roots:
            self.visit(root)
        self.scopes.pop()


def module_name_for(filename: str) -> str:
    """Dotted-less module name derived from a file path."""
    path = Path(filename)
    if path.stem == "__init__" and path.parent.name:
        return path.parent.name
    return path.stem or "<module>"


def lower_module(
    source: str,
    filename: str = "<string>",
    module_name: Optional[str] = None,
) -> ModuleHir:
    """
    Parse ``source`` and collect its bodies.

    Raises
    ------
    SourceError
        When the source does not parse.
    """
    try:
        tree = ast.parse(source, filename=filename, type_comments=False)
    except SyntaxError as exc:
        raise SourceError(exc.msg or "invalid syntax", filename,
                          exc.lineno or 0, exc.offset or 0) from exc
    except ValueError as exc:
        raise SourceError(str(exc), filename) from exc

    hir = ModuleHir(
        filename=filename,
        module_name=module_name or module_name_for(filename),
        source=source,
        tree=tree,
    )
    _Lowerer(hir).visit(tree)
    logger.debug("lowered %s: %d bodies, %d async",
                 filename, len(hir.bodies), sum(1 for _ in hir.async_bodies()))
    return hir


__all__ = [
    "Body",
    "BodyId",
    "DefId",
    "GeneratorKind",
    "ModuleHir",
    "Span",
    "iter_arguments",
    "lower_module",
    "module_name_for",
    "outer_parts",
    "scope_roots",
    "walk_scope",
]
