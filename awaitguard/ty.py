# awaitguard/ty.py
"""
Type descriptors and name resolution.

A :class:`Ty` is deliberately coarse: the only question the lint rules ask
is "which nominal type is this value an instance of?".  Everything that is
not an instance of a resolvable, fully-qualified type is either a builtin
literal / display, a module, a reference to a definition, or unknown.

Typing rules
────────────
  literal / display                     → BUILTIN(int | str | list | ...)
  ``import a.b``                         → MODULE(a)
  ``from m import n``                    → DEF(m.n)
  builtin name                          → DEF(builtins.<name>)
  attribute of MODULE / DEF             → DEF(path + attr)
  call of DEF(p)                        → ADT(p)
  annotation resolving to DEF(p)        → ADT(p)
  ``with`` on ADT(p)                    → ADT(p.__enter__)   (the held guard)
  anything else                         → UNKNOWN
"""

from __future__ import annotations

import ast
import builtins
import enum
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple, Union

Path = Tuple[str, ...]

_SEGMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

GUARD_SEGMENT = "__enter__"


class TyKind(enum.Enum):
    ADT = "adt"            # instance of a nominal type
    DEF = "def"            # the class / function object itself
    MODULE = "module"
    BUILTIN = "builtin"    # literal or display of a builtin container
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Ty:
    """A type descriptor."""
    kind: TyKind
    path: Path = ()

    @classmethod
    def adt(cls, path: Sequence[str]) -> Ty:
        return cls(TyKind.ADT, tuple(path))

    @classmethod
    def def_(cls, path: Sequence[str]) -> Ty:
        return cls(TyKind.DEF, tuple(path))

    @classmethod
    def module(cls, path: Sequence[str]) -> Ty:
        return cls(TyKind.MODULE, tuple(path))

    @classmethod
    def builtin(cls, name: str) -> Ty:
        return cls(TyKind.BUILTIN, (name,))

    @property
    def is_adt(self) -> bool:
        return self.kind is TyKind.ADT and bool(self.path)

    def instantiate(self) -> Ty:
        """Type of the value produced by calling a value of this type."""
        if self.kind is TyKind.DEF:
            return Ty.adt(self.path)
        return UNKNOWN

    def entered(self) -> Ty:
        """
        Type of the guard held while a ``with`` block on this value runs.

        Entering an instance of ``p`` holds an ``ADT(p.__enter__)``, so a
        lock that is merely bound is never confused with a lock that is
        held.
        """
        if self.is_adt:
            return Ty.adt(self.path + (GUARD_SEGMENT,))
        return UNKNOWN

    def attr(self, name: str) -> Ty:
        """Type of ``<value>.name``."""
        if self.kind in (TyKind.MODULE, TyKind.DEF):
            return Ty.def_(self.path + (name,))
        return UNKNOWN

    def __str__(self) -> str:
        dotted = format_path(self.path)
        if self.kind is TyKind.ADT:
            return dotted
        if self.kind is TyKind.DEF:
            return f"def {dotted}"
        if self.kind is TyKind.MODULE:
            return f"module {dotted}"
        if self.kind is TyKind.BUILTIN:
            return dotted
        return "?"


UNKNOWN = Ty(TyKind.UNKNOWN)


def join_tys(tys: Sequence[Ty]) -> Ty:
    """A single type when all agree, ``UNKNOWN`` otherwise."""
    distinct = set(tys)
    if len(distinct) == 1:
        return next(iter(distinct))
    return UNKNOWN


# ═════════════════════════════════════════════════════════════════════════
#  PATHS
# ═════════════════════════════════════════════════════════════════════════

def def_path(ty: Ty) -> Optional[Path]:
    """
    Fully-qualified path of a nominal type.

    Returns ``None`` for anything that is not an instance of a nominal
    type; callers treat that as "cannot match".
    """
    if ty.is_adt:
        return ty.path
    return None


def parse_path(dotted: str) -> Path:
    """
    Split ``"a.b.c"`` into ``("a", "b", "c")``.

    Raises
    ------
    ValueError
        When a segment is not a Python identifier.
    """
    segments = tuple(dotted.strip().split("."))
    for seg in segments:
        if not _SEGMENT_RE.match(seg):
            raise ValueError(f"malformed path {dotted!r}: bad segment {seg!r}")
    return segments


def format_path(path: Sequence[str]) -> str:
    return ".".join(path)


# ═════════════════════════════════════════════════════════════════════════
#  IMPORTS
# ═════════════════════════════════════════════════════════════════════════

def import_bindings(
    node: Union[ast.Import, ast.ImportFrom],
) -> Iterator[Tuple[str, Ty, ast.alias]]:
    """Names bound by an import statement and the type each receives."""
    if isinstance(node, ast.Import):
        for alias in node.names:
            segments = tuple(alias.name.split("."))
            if alias.asname:
                yield alias.asname, Ty.module(segments), alias
            else:
                yield segments[0], Ty.module(segments[:1]), alias
        return

    for alias in node.names:
        if alias.name == "*":
            continue
        local = alias.asname or alias.name
        if node.level or not node.module:
            # relative imports cannot be anchored without package layout
            yield local, UNKNOWN, alias
        else:
            yield local, Ty.def_(tuple(node.module.split(".")) + (alias.name,)), alias


def builtin_ty(name: str) -> Optional[Ty]:
    if hasattr(builtins, name):
        return Ty.def_(("builtins", name))
    return None


# ═════════════════════════════════════════════════════════════════════════
#  EXPRESSION TYPING
# ═════════════════════════════════════════════════════════════════════════

_DISPLAY_NAMES = {
    ast.List: "list",
    ast.ListComp: "list",
    ast.Tuple: "tuple",
    ast.Set: "set",
    ast.SetComp: "set",
    ast.Dict: "dict",
    ast.DictComp: "dict",
    ast.JoinedStr: "str",
}


class ExprTyper:
    """
    Infers the :class:`Ty` of an expression.

    Subclasses provide name lookup; ``lookup_self_attr`` lets method bodies
    resolve ``self.<attr>`` through a class attribute table.
    """

    def lookup_name(self, name: str) -> Ty:
        ty = builtin_ty(name)
        return ty if ty is not None else UNKNOWN

    def lookup_self_attr(self, base: ast.Name, attr: str) -> Optional[Ty]:
        return None

    def type_of(self, node: ast.AST) -> Ty:
        if isinstance(node, ast.Constant):
            return Ty.builtin(type(node.value).__name__)
        display = _DISPLAY_NAMES.get(type(node))
        if display is not None:
            return Ty.builtin(display)
        if isinstance(node, ast.Name):
            return self.lookup_name(node.id)
        if isinstance(node, ast.Attribute):
            if isinstance(node.value, ast.Name):
                ty = self.lookup_self_attr(node.value, node.attr)
                if ty is not None:
                    return ty
            return self.type_of(node.value).attr(node.attr)
        if isinstance(node, ast.Call):
            return self.type_of(node.func).instantiate()
        if isinstance(node, ast.NamedExpr):
            return self.type_of(node.value)
        if isinstance(node, ast.IfExp):
            return join_tys([self.type_of(node.body), self.type_of(node.orelse)])
        return UNKNOWN

    def annotation_ty(self, node: Optional[ast.AST]) -> Ty:
        """Type of a value declared with annotation ``node``."""
        if node is None:
            return UNKNOWN
        if isinstance(node, ast.Constant):
            if node.value is None:
                return Ty.builtin("NoneType")
            if isinstance(node.value, str):
                try:
                    parsed = ast.parse(node.value.strip(), mode="eval")
                except SyntaxError:
                    return UNKNOWN
                return self.annotation_ty(parsed.body)
            return UNKNOWN
        if isinstance(node, (ast.Name, ast.Attribute)):
            ty = self.type_of(node)
            if ty.kind is TyKind.DEF:
                return Ty.adt(ty.path)
        return UNKNOWN


__all__ = [
    "ExprTyper",
    "GUARD_SEGMENT",
    "Path",
    "Ty",
    "TyKind",
    "UNKNOWN",
    "builtin_ty",
    "def_path",
    "format_path",
    "import_bindings",
    "join_tys",
    "parse_path",
]
