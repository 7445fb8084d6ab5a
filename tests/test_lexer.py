"""Tests for the Elixir tokenizer."""

import pytest

from compilegraph_cli.errors import ParseError
from compilegraph_cli.lexer import tokenize


def _kinds(text):
    return [(t.kind, t.value) for t in tokenize(text) if t.kind != "eof"]


def test_identifiers_aliases_and_keywords():
    assert _kinds("foo Bar do: baz?") == [
        ("ident", "foo"),
        ("alias", "Bar"),
        ("kw", "do"),
        ("ident", "baz?"),
    ]


def test_atoms_including_quoted_and_operator_atoms():
    assert _kinds(':ok :"with space" :+') == [
        ("atom", "ok"),
        ("atom", "<quoted>"),
        ("atom", "+"),
    ]


def test_longest_operator_wins():
    assert [v for _, v in _kinds("a |> b === c \\\\ d")] == ["a", "|>", "b", "===", "c", "\\\\", "d"]


def test_newline_and_space_flags():
    tokens = tokenize("foo -1\nbar - 1")
    minus = tokens[1]
    assert minus.value == "-" and minus.space_before
    assert not tokens[2].space_before
    bar = tokens[3]
    assert bar.newline_before


def test_comments_are_skipped():
    assert _kinds("a # comment with \"quote\"\nb") == [("ident", "a"), ("ident", "b")]


def test_heredoc_keeps_line_numbers():
    tokens = tokenize('@doc """\nline one\nline two\n"""\ndef x, do: 1')
    string = [t for t in tokens if t.kind == "string"][0]
    assert string.line == 1
    def_tok = [t for t in tokens if t.value == "def"][0]
    assert def_tok.line == 5


def test_interpolation_with_nested_quotes():
    tokens = tokenize('"a #{inspect("b")} c" + 1')
    assert [t.kind for t in tokens[:-1]] == ["string", "op", "number"]


def test_sigils_with_various_delimiters():
    tokens = tokenize("~r/a+b/i ~w(one two)a ~S[x]")
    assert [t.kind for t in tokens[:-1]] == ["sigil", "sigil", "sigil"]


def test_char_literals_and_numbers():
    assert _kinds("?a 0x1F 1_000 3.14e-2") == [
        ("char", "a"),
        ("number", "0x1F"),
        ("number", "1_000"),
        ("number", "3.14e-2"),
    ]


def test_unterminated_string_raises_parse_error():
    with pytest.raises(ParseError) as exc_info:
        tokenize('x = "never closed\n', source_file="lib/bad.ex")
    assert exc_info.value.line == 1
    assert "lib/bad.ex" in str(exc_info.value)
