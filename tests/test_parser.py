"""Tests for the Elixir parser."""

from pathlib import Path

import pytest

from compilegraph_cli.errors import ParseError, SourceFileNotFound
from compilegraph_cli.parser import parse_file, parse_source
from compilegraph_cli.syntax import (
    Alias,
    AliasDecl,
    BinaryOp,
    Call,
    Capture,
    FunctionDef,
    ImportDecl,
    KeywordList,
    ModuleAttr,
    ModuleDef,
    RemoteCall,
    RequireDecl,
    Struct,
    StructDef,
    UseDecl,
    Var,
    expr_lines_span,
)


def _module_body(source: str):
    tree = parse_source(source)
    assert len(tree.exprs) == 1
    module = tree.exprs[0]
    assert isinstance(module, ModuleDef)
    return module.body


def test_parse_module_with_functions():
    """Test that defmodule and def forms are lowered to dedicated nodes."""
    body = _module_body(
        "defmodule A.B do\n"
        "  def one, do: 1\n"
        "  defp two(x, y \\\\ 2) when is_integer(x) do\n"
        "    x + y\n"
        "  end\n"
        "end\n"
    )
    one, two = body
    assert isinstance(one, FunctionDef)
    assert one.name == "one" and one.params == [] and one.public
    assert isinstance(two, FunctionDef)
    assert two.kind == "defp" and not two.public
    assert two.arities() == [1, 2]
    assert isinstance(two.guard, Call) and two.guard.name == "is_integer"
    assert isinstance(two.body[0], BinaryOp)


def test_parse_macro_definition():
    """Test defmacro is flagged as a macro."""
    (macro,) = _module_body("defmodule M do\n  defmacro m(a), do: a\nend\n")
    assert macro.is_macro
    assert macro.arities() == [1]


def test_parse_declarations():
    """Test alias, import, require and use lowering with options."""
    body = _module_body(
        "defmodule M do\n"
        "  alias Foo.Bar, as: Baz\n"
        "  alias Foo.{One, Two.Three}\n"
        "  import Enum, only: [map: 2, filter: 2]\n"
        "  import Kernel, except: [inspect: 1]\n"
        "  import Macros, only: :macros\n"
        "  require Logger\n"
        "  use GenServer, restart: :transient\n"
        "end\n"
    )
    alias_as, multi, imp_only, imp_except, imp_macros, req, use = body

    assert isinstance(alias_as, AliasDecl)
    assert alias_as.targets[0].dotted == "Foo.Bar" and alias_as.as_name == "Baz"
    assert [t.dotted for t in multi.targets] == ["Foo.One", "Foo.Two.Three"]

    assert isinstance(imp_only, ImportDecl)
    assert imp_only.only == [("map", 2), ("filter", 2)]
    assert imp_except.except_ == [("inspect", 1)]
    assert imp_macros.only == "macros"

    assert isinstance(req, RequireDecl) and req.target.dotted == "Logger"
    assert isinstance(use, UseDecl) and use.target.dotted == "GenServer"
    assert isinstance(use.args[0], KeywordList)


def test_parse_struct_definition_and_literal():
    """Test defstruct and multi-line struct literal spans."""
    body = _module_body(
        "defmodule S do\n"
        "  defstruct [:a, b: 1]\n"
        "  def new do\n"
        "    %__MODULE__{\n"
        "      a: 1\n"
        "    }\n"
        "  end\n"
        "end\n"
    )
    struct_def, new = body
    assert isinstance(struct_def, StructDef)
    literal = new.body[0]
    assert isinstance(literal, Struct)
    assert literal.name.parts == ("__MODULE__",)
    assert expr_lines_span(literal) == (4, 6)


def test_no_parens_call_takes_do_block():
    """Test that do binds to the outermost call without parentheses."""
    tree = parse_source("if valid? x do\n  :ok\nelse\n  :error\nend\n")
    (call,) = tree.exprs
    assert isinstance(call, Call) and call.name == "if"
    assert len(call.args) == 1
    inner = call.args[0]
    assert isinstance(inner, Call) and inner.name == "valid?" and inner.do_block is None
    assert call.do_block.section("else")[0].value == "error"
    assert call.arity == 2


def test_bare_identifier_is_a_variable():
    """Test that an identifier with no arguments is a variable, not a call."""
    (expr,) = parse_source("y1").exprs
    assert isinstance(expr, Var)


def test_remote_calls_and_pipelines():
    """Test remote calls and pipelines continuing on the next line."""
    (pipe,) = parse_source("value\n|> Foo.Bar.run(1)\n|> Baz.go\n").exprs
    assert isinstance(pipe, BinaryOp) and pipe.op == "|>"
    last = pipe.right
    assert isinstance(last, RemoteCall)
    assert last.name == "go" and last.receiver.dotted == "Baz"
    first = pipe.left.right
    assert isinstance(first, RemoteCall)
    assert first.receiver.dotted == "Foo.Bar" and first.arity == 1


def test_remote_call_without_parentheses():
    """Test remote calls taking arguments up to the end of the line."""
    (call,) = parse_source("Logger.info \"hello\", user: 1\nnext()").exprs[:1]
    assert isinstance(call, RemoteCall)
    assert call.arity == 2
    assert isinstance(call.args[1], KeywordList)


def test_captures():
    """Test &Mod.fun/arity and &fun/arity captures."""
    remote, local, anon = parse_source("&Foo.bar/2\n&baz/1\n&(&1 + 1)").exprs
    assert isinstance(remote, Capture)
    assert remote.receiver.dotted == "Foo" and remote.name == "bar" and remote.arity == 2
    assert isinstance(local, Capture) and local.receiver is None and local.arity == 1
    assert not isinstance(anon, Capture)


def test_capture_argument_field_access():
    """Test &1.field inside shorthand captures."""
    spaced, grouped, piped = parse_source(
        "Enum.sort_by(list, & &1.id)\n"
        "Enum.map(list, &(&1.name))\n"
        "list |> Enum.map(&String.upcase(&1.user.email))\n"
    ).exprs
    field = spaced.args[1].operand
    assert isinstance(field, RemoteCall)
    assert field.name == "id" and not field.parens
    assert field.receiver.kind == "capture_arg" and field.receiver.value == "1"
    assert grouped.args[1].operand.name == "name"
    email = piped.right.args[0].operand.args[0]
    assert email.name == "email" and email.receiver.name == "user"


def test_module_attributes():
    """Test attribute definitions and reads."""
    body = _module_body("defmodule M do\n  @limit Config.max()\n  def f, do: @limit\nend\n")
    attr, fun = body
    assert isinstance(attr, ModuleAttr) and attr.name == "limit"
    assert isinstance(attr.value, RemoteCall)
    read = fun.body[0]
    assert isinstance(read, ModuleAttr) and read.value is None


def test_fn_and_case_clauses():
    """Test stab clauses inside fn and case."""
    (call,) = parse_source(
        "case x do\n"
        "  {:ok, v} -> v\n"
        "  _ ->\n"
        "    fn a, b -> a + b end\n"
        "end\n"
    ).exprs
    clauses = call.do_block.section("do")
    assert len(clauses) == 2
    assert len(clauses[1].body) == 1


def test_nested_modules_and_alias_chain():
    """Test nested defmodule keeps its own body."""
    body = _module_body("defmodule Outer do\n  defmodule Inner do\n    def f, do: 1\n  end\nend\n")
    inner = body[0]
    assert isinstance(inner, ModuleDef)
    assert inner.name == Alias(2, ("Inner",))


def test_binary_operator_precedence():
    """Test that * binds tighter than + and | is right associative."""
    (expr,) = parse_source("a + b * c").exprs
    assert expr.op == "+" and expr.right.op == "*"
    (cons,) = parse_source("[h | t]").exprs
    assert cons.items[0].op == "|"


def test_missing_end_raises_parse_error():
    """Test that an unclosed do block is reported with its line."""
    with pytest.raises(ParseError) as exc_info:
        parse_source("defmodule A do\n  def f do\n    1\n", source_file="lib/a.ex")
    assert "end" in exc_info.value.message
    assert exc_info.value.source_file == "lib/a.ex"


def test_stray_token_raises_parse_error():
    """Test that two expressions on one line are rejected."""
    with pytest.raises(ParseError):
        parse_source("foo() bar()")


def test_parse_file_missing(temp_dir: Path):
    """Test that an unreadable file raises SourceFileNotFound."""
    with pytest.raises(SourceFileNotFound):
        parse_file(temp_dir / "missing.ex")


def test_parse_sample_project(sample_project_path: Path):
    """Test that every sample source file parses."""
    for path in sorted((sample_project_path / "lib").rglob("*.ex")):
        tree = parse_file(path)
        assert isinstance(tree.exprs[0], ModuleDef)
