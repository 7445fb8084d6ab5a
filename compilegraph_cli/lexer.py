"""Tokenizer for the subset of Elixir understood by the parser.

String, charlist and sigil contents are kept opaque: only their start line
matters for the analysis. Newlines are not emitted as tokens; instead each
token records whether a newline (``newline_before``) or any whitespace
(``space_before``) separates it from the previous one, which is all the
parser needs to tell statements and no-parenthesis calls apart.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .errors import ParseError

OPERATORS = sorted(
    [
        "===", "!==", "<<<", ">>>", "|||", "&&&", "^^^", "~~~", "<<~", "~>>",
        "<~>", "<|>", "+++", "---", "...",
        "==", "!=", "=~", "<=", ">=", "&&", "||", "|>", "<>", "++", "--",
        "->", "<-", "::", "..", "//", "<<", ">>", "=>", "**", "~>", "<~",
        "\\\\",
        "+", "-", "*", "/", "=", "<", ">", "|", "&", "^", "!", "@", ".", "%",
    ],
    key=len,
    reverse=True,
)
PUNCTUATION = set("()[]{},;")
CLOSING = {"(": ")", "[": "]", "{": "}", "<": ">"}


@dataclass
class Token:
    kind: str  # ident, alias, kw, atom, string, sigil, number, char, op, punct, eof
    value: str
    line: int
    space_before: bool = False
    newline_before: bool = False

    def is_op(self, *values: str) -> bool:
        return self.kind == "op" and self.value in values

    def is_punct(self, value: str) -> bool:
        return self.kind == "punct" and self.value == value

    def is_ident(self, *values: str) -> bool:
        return self.kind == "ident" and self.value in values


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() and ch.islower() or ch == "_"


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


class Lexer:
    def __init__(self, text: str, source_file: Optional[str] = None) -> None:
        self.text = text
        self.source_file = source_file
        self.pos = 0
        self.line = 1
        self.tokens: List[Token] = []
        self._space = True
        self._newline = True

    def tokenize(self) -> List[Token]:
        text = self.text
        while True:
            self._skip_blank()
            if self.pos >= len(text):
                self._emit("eof", "", self.line)
                return self.tokens
            self._lex_token()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _error(self, message: str, line: Optional[int] = None) -> ParseError:
        return ParseError(message, line or self.line, self.source_file)

    def _peek(self, offset: int = 0) -> str:
        idx = self.pos + offset
        return self.text[idx] if idx < len(self.text) else ""

    def _emit(self, kind: str, value: str, line: int) -> None:
        self.tokens.append(Token(kind, value, line, self._space, self._newline))
        self._space = False
        self._newline = False

    def _skip_blank(self) -> None:
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            if ch == "\n":
                self.line += 1
                self.pos += 1
                self._space = self._newline = True
            elif ch in " \t\r":
                self.pos += 1
                self._space = True
            elif ch == "\\" and self._peek(1) == "\n":
                self.pos += 2
                self.line += 1
                self._space = True
            elif ch == "#":
                while self.pos < len(text) and text[self.pos] != "\n":
                    self.pos += 1
                self._space = True
            else:
                return

    def _keyword_follows(self) -> bool:
        """``name:`` followed by blank space is a keyword key."""
        if self._peek() != ":" or self._peek(1) == ":":
            return False
        nxt = self._peek(1)
        return nxt == "" or nxt in " \t\r\n"

    # ------------------------------------------------------------------
    # Token dispatch
    # ------------------------------------------------------------------

    def _lex_token(self) -> None:
        ch = self._peek()
        line = self.line

        if _is_ident_start(ch) or ch.isupper():
            start = self.pos
            while _is_ident_char(self._peek()):
                self.pos += 1
            if ch.islower() or ch == "_":
                if self._peek() in ("?", "!"):
                    self.pos += 1
            word = self.text[start:self.pos]
            if self._keyword_follows():
                self.pos += 1
                self._emit("kw", word, line)
            else:
                self._emit("alias" if ch.isupper() else "ident", word, line)
            return

        if ch.isdigit():
            self._lex_number(line)
            return

        if ch == "?" and self.pos + 1 < len(self.text):
            self.pos += 1
            if self._peek() == "\\":
                self.pos += 1
            self.pos += 1
            self._emit("char", self.text[self.pos - 1], line)
            return

        if ch == ":" and self._peek(1) != ":":
            if self._lex_atom(line):
                return

        if ch in ('"', "'"):
            self._read_quoted(ch)
            if self._keyword_follows():
                self.pos += 1
                self._emit("kw", "<quoted>", line)
            else:
                self._emit("string", "", line)
            return

        if ch == "~" and self._peek(1).isalpha():
            self._lex_sigil(line)
            return

        if ch in PUNCTUATION:
            self.pos += 1
            self._emit("punct", ch, line)
            return

        for op in OPERATORS:
            if self.text.startswith(op, self.pos):
                self.pos += len(op)
                self._emit("op", op, line)
                return

        raise self._error(f"unexpected character {ch!r}")

    def _lex_number(self, line: int) -> None:
        text = self.text
        start = self.pos
        if text.startswith(("0x", "0b", "0o"), self.pos):
            self.pos += 2
            while _is_ident_char(self._peek()):
                self.pos += 1
        else:
            while self._peek().isdigit() or self._peek() == "_":
                self.pos += 1
            if self._peek() == "." and self._peek(1).isdigit():
                self.pos += 1
                while self._peek().isdigit() or self._peek() == "_":
                    self.pos += 1
                if self._peek() in ("e", "E"):
                    self.pos += 1
                    if self._peek() in ("+", "-"):
                        self.pos += 1
                    while self._peek().isdigit():
                        self.pos += 1
        self._emit("number", text[start:self.pos], line)

    def _lex_atom(self, line: int) -> bool:
        nxt = self._peek(1)
        if nxt in ('"', "'"):
            self.pos += 1
            self._read_quoted(nxt)
            self._emit("atom", "<quoted>", line)
            return True
        if _is_ident_start(nxt) or nxt.isupper():
            self.pos += 1
            start = self.pos
            while _is_ident_char(self._peek()) or self._peek() == "@":
                self.pos += 1
            if self._peek() in ("?", "!"):
                self.pos += 1
            self._emit("atom", self.text[start:self.pos], line)
            return True
        for op in OPERATORS:
            if self.text.startswith(op, self.pos + 1):
                self.pos += 1 + len(op)
                self._emit("atom", op, line)
                return True
        return False

    def _lex_sigil(self, line: int) -> None:
        self.pos += 1
        while self._peek().isalpha():
            self.pos += 1
        delim = self._peek()
        if self.text.startswith('"""', self.pos) or self.text.startswith("'''", self.pos):
            self._read_quoted(delim)
        elif delim in CLOSING:
            self._read_delimited(delim, CLOSING[delim])
        elif delim in ('/', '|', '"', "'"):
            self._read_delimited(delim, delim)
        else:
            raise self._error(f"invalid sigil delimiter {delim!r}")
        while self._peek().isalpha():
            self.pos += 1
        self._emit("sigil", "", line)

    # ------------------------------------------------------------------
    # Quoted content
    # ------------------------------------------------------------------

    def _read_delimited(self, opening: str, closing: str) -> None:
        start_line = self.line
        self.pos += 1
        depth = 1
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch == "\\":
                if self._peek(1) == "\n":
                    self.line += 1
                self.pos += 2
                continue
            if ch == "\n":
                self.line += 1
            elif ch == closing and opening != closing:
                depth -= 1
                if depth == 0:
                    self.pos += 1
                    return
            elif ch == opening and opening != closing:
                depth += 1
            elif ch == closing:
                self.pos += 1
                return
            self.pos += 1
        raise self._error("unterminated sigil", start_line)

    def _read_quoted(self, quote: str) -> None:
        """Consume a string, charlist or heredoc starting at ``self.pos``."""
        start_line = self.line
        triple = quote * 3
        if self.text.startswith(triple, self.pos):
            end = self.text.find(triple, self.pos + 3)
            while end != -1 and self.text[end - 1] == "\\":
                end = self.text.find(triple, end + 1)
            if end == -1:
                raise self._error("unterminated heredoc", start_line)
            self.line += self.text.count("\n", self.pos, end)
            self.pos = end + 3
            return

        self.pos += 1
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch == "\\":
                if self._peek(1) == "\n":
                    self.line += 1
                self.pos += 2
                continue
            if ch == "\n":
                self.line += 1
            elif ch == "#" and self._peek(1) == "{":
                self._skip_interpolation()
                continue
            elif ch == quote:
                self.pos += 1
                return
            self.pos += 1
        raise self._error("unterminated string", start_line)

    def _skip_interpolation(self) -> None:
        start_line = self.line
        self.pos += 2
        depth = 1
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch in ('"', "'"):
                self._read_quoted(ch)
                continue
            if ch == "\n":
                self.line += 1
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    self.pos += 1
                    return
            self.pos += 1
        raise self._error("unterminated interpolation", start_line)


def tokenize(text: str, source_file: Optional[str] = None) -> List[Token]:
    return Lexer(text, source_file).tokenize()
