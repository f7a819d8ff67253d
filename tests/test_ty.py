# tests/test_ty.py
"""
Tests for type descriptors, path helpers and expression typing.
"""

import ast

import pytest

from awaitguard.ty import (
    UNKNOWN,
    ExprTyper,
    Ty,
    TyKind,
    def_path,
    format_path,
    import_bindings,
    join_tys,
    parse_path,
)


class _NameTable(ExprTyper):
    """ExprTyper resolving names through a fixed table, then builtins."""

    def __init__(self, names):
        self.names = names

    def lookup_name(self, name):
        if name in self.names:
            return self.names[name]
        return super().lookup_name(name)


def _expr(src):
    return ast.parse(src, mode="eval").body


def _bindings(src):
    node = ast.parse(src).body[0]
    return [(local, ty) for local, ty, _ in import_bindings(node)]


class TestTy:
    """Constructors and derived types."""

    def test_instantiate_def(self):
        assert Ty.def_(("threading", "Lock")).instantiate() == Ty.adt(("threading", "Lock"))

    def test_instantiate_non_def_is_unknown(self):
        assert Ty.adt(("threading", "Lock")).instantiate() is UNKNOWN
        assert Ty.module(("time",)).instantiate() is UNKNOWN

    def test_attr(self):
        assert Ty.module(("time",)).attr("sleep") == Ty.def_(("time", "sleep"))
        assert Ty.adt(("a", "B")).attr("c") is UNKNOWN

    def test_entered(self):
        lock = Ty.adt(("threading", "Lock"))
        assert lock.entered() == Ty.adt(("threading", "Lock", "__enter__"))
        assert str(lock.entered()) == "threading.Lock.__enter__"
        assert Ty.def_(("threading", "Lock")).entered() is UNKNOWN
        assert UNKNOWN.entered() is UNKNOWN

    def test_str(self):
        assert str(Ty.adt(("threading", "Lock"))) == "threading.Lock"
        assert str(Ty.def_(("time", "sleep"))) == "def time.sleep"
        assert str(Ty.module(("os",))) == "module os"
        assert str(UNKNOWN) == "?"

    def test_join(self):
        lock = Ty.adt(("threading", "Lock"))
        assert join_tys([lock, lock]) == lock
        assert join_tys([lock, Ty.builtin("int")]) is UNKNOWN
        assert join_tys([]) is UNKNOWN


class TestPaths:
    """Dotted path helpers and nominal path resolution."""

    def test_parse_path(self):
        assert parse_path("threading.Lock") == ("threading", "Lock")
        assert parse_path(" time.sleep ") == ("time", "sleep")

    @pytest.mark.parametrize("bad", ["", "a..b", "1a.b", "a.b-c", "a.", "a b"])
    def test_parse_path_rejects(self, bad):
        with pytest.raises(ValueError):
            parse_path(bad)

    def test_format_path(self):
        assert format_path(("a", "b", "c")) == "a.b.c"

    def test_def_path_only_for_nominal_instances(self):
        assert def_path(Ty.adt(("time", "sleep"))) == ("time", "sleep")
        assert def_path(Ty.def_(("time", "sleep"))) is None
        assert def_path(Ty.builtin("int")) is None
        assert def_path(UNKNOWN) is None


class TestImportBindings:
    """Names bound by import statements."""

    def test_import_binds_top_package(self):
        assert _bindings("import os.path") == [("os", Ty.module(("os",)))]

    def test_import_as_binds_full_module(self):
        assert _bindings("import os.path as osp") == [("osp", Ty.module(("os", "path")))]

    def test_from_import(self):
        assert _bindings("from time import sleep as nap, monotonic") == [
            ("nap", Ty.def_(("time", "sleep"))),
            ("monotonic", Ty.def_(("time", "monotonic"))),
        ]

    def test_relative_import_is_unknown(self):
        assert _bindings("from .locks import Lock") == [("Lock", UNKNOWN)]

    def test_star_import_binds_nothing(self):
        assert _bindings("from threading import *") == []


class TestExprTyper:
    """Constructor-call typing and annotations."""

    @pytest.fixture
    def typer(self):
        return _NameTable({
            "threading": Ty.module(("threading",)),
            "sleep": Ty.def_(("time", "sleep")),
        })

    def test_literals(self, typer):
        assert typer.type_of(_expr("1")) == Ty.builtin("int")
        assert typer.type_of(_expr("'x'")) == Ty.builtin("str")
        assert typer.type_of(_expr("[1, 2]")) == Ty.builtin("list")
        assert typer.type_of(_expr("{k: v for k, v in x}")) == Ty.builtin("dict")

    def test_call_of_definition(self, typer):
        assert typer.type_of(_expr("sleep(1)")) == Ty.adt(("time", "sleep"))
        assert typer.type_of(_expr("threading.Lock()")) == Ty.adt(("threading", "Lock"))

    def test_call_of_instance_is_unknown(self, typer):
        assert typer.type_of(_expr("threading.Lock()()")) is UNKNOWN

    def test_builtin_names(self, typer):
        assert typer.type_of(_expr("open")) == Ty.def_(("builtins", "open"))
        assert typer.type_of(_expr("open('f')")) == Ty.adt(("builtins", "open"))

    def test_unknown_name(self, typer):
        assert typer.type_of(_expr("mystery()")) is UNKNOWN

    def test_conditional_expression(self, typer):
        assert typer.type_of(_expr("sleep(1) if c else sleep(2)")) == Ty.adt(("time", "sleep"))
        assert typer.type_of(_expr("sleep(1) if c else 0")) is UNKNOWN

    def test_await_is_unknown(self, typer):
        node = ast.parse("async def f():\n    await sleep(1)\n").body[0].body[0].value
        assert typer.type_of(node) is UNKNOWN

    def test_annotation(self, typer):
        assert typer.annotation_ty(_expr("threading.Lock")) == Ty.adt(("threading", "Lock"))

    def test_string_annotation(self, typer):
        assert typer.annotation_ty(_expr("'threading.Lock'")) == Ty.adt(("threading", "Lock"))

    def test_subscript_annotation_is_unknown(self, typer):
        assert typer.annotation_ty(_expr("Optional[threading.Lock]")) is UNKNOWN

    def test_none_annotation(self, typer):
        assert typer.annotation_ty(_expr("None")) == Ty.builtin("NoneType")
        assert typer.annotation_ty(None) is UNKNOWN

    def test_kind_of_unknown(self):
        assert UNKNOWN.kind is TyKind.UNKNOWN
        assert not UNKNOWN.is_adt
