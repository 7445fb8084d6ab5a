"""Recursive-descent parser turning Elixir source into :mod:`syntax` nodes.

Only syntax matters here: nothing is evaluated or type-checked. Operator
precedence and associativity follow the Elixir operator table. Calls
without parentheses take every argument up to the end of the line, and a
``do ... end`` block binds to the outermost such call, as in Elixir.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Dict, FrozenSet, Iterator, List, Optional, Tuple, Union

from .errors import ParseError, SourceFileNotFound
from .lexer import Token, tokenize
from .syntax import (
    Access,
    Alias,
    AliasDecl,
    AnonCall,
    BinaryOp,
    Bitstring,
    Block,
    Call,
    Capture,
    Clause,
    DoBlock,
    Fn,
    FunctionDef,
    ImportDecl,
    KeywordList,
    ListExpr,
    Literal,
    MapExpr,
    ModuleAttr,
    ModuleDef,
    MultiAlias,
    Node,
    RemoteCall,
    RequireDecl,
    Struct,
    StructDef,
    TupleExpr,
    UnaryOp,
    UseDecl,
    Var,
)


# op -> (precedence, right associative)
BINARY_OPS: Dict[str, Tuple[int, bool]] = {
    "\\\\": (1, True), "<-": (1, False),
    "when": (2, True),
    "::": (3, True),
    "|": (4, True),
    "=>": (5, True),
    "=": (7, True),
    "||": (8, False), "|||": (8, False), "or": (8, False),
    "&&": (9, False), "&&&": (9, False), "and": (9, False),
    "==": (10, False), "!=": (10, False), "=~": (10, False),
    "===": (10, False), "!==": (10, False),
    "<": (11, False), ">": (11, False), "<=": (11, False), ">=": (11, False),
    "|>": (12, False), "<<<": (12, False), ">>>": (12, False), "<<~": (12, False),
    "~>>": (12, False), "<~": (12, False), "~>": (12, False), "<~>": (12, False),
    "<|>": (12, False),
    "in": (13, False), "not in": (13, False),
    "^^^": (14, False),
    "++": (15, True), "--": (15, True), "+++": (15, True), "---": (15, True),
    "..": (15, True), "<>": (15, True), "//": (15, True),
    "+": (16, False), "-": (16, False),
    "*": (17, False), "/": (17, False),
    "**": (18, False),
}
WORD_OPS = {"when", "and", "or", "in"}
UNARY_OPS = {"+", "-", "!", "^", "~~~"}
UNARY_PREC = 19
CAPTURE_PREC = 6

BLOCK_SECTIONS = ("else", "after", "rescue", "catch")
BLOCK_TERMINATORS: FrozenSet[str] = frozenset(("end",) + BLOCK_SECTIONS)
# Identifiers that never start an argument of a call without parentheses
NON_ARG_IDENTS = {"do", "end", "when", "and", "or", "in"} | set(BLOCK_SECTIONS)
RESERVED = NON_ARG_IDENTS

DEF_KINDS = {"def", "defp", "defmacro", "defmacrop", "defguard", "defguardp"}


class _Parser:
    def __init__(self, tokens: List[Token], source_file: Optional[str] = None) -> None:
        self.tokens = tokens
        self.source_file = source_file
        self.pos = 0
        self.last_line = 1
        # > 0 while parsing the arguments of a call without parentheses
        self._no_parens_depth = 0

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    def peek(self, offset: int = 0) -> Token:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.kind != "eof":
            self.pos += 1
            self.last_line = tok.line
        return tok

    def error(self, message: str, tok: Optional[Token] = None) -> ParseError:
        tok = tok or self.peek()
        return ParseError(message, tok.line, self.source_file)

    def expect_punct(self, value: str) -> Token:
        tok = self.peek()
        if not tok.is_punct(value):
            raise self.error(f"expected {value!r}, got {_describe(tok)}")
        return self.advance()

    def expect_op(self, value: str) -> Token:
        tok = self.peek()
        if not tok.is_op(value):
            raise self.error(f"expected {value!r}, got {_describe(tok)}")
        return self.advance()

    @contextmanager
    def _nested(self) -> Iterator[None]:
        """Brackets and blocks start afresh: ``do`` binds inside them again."""
        saved = self._no_parens_depth
        self._no_parens_depth = 0
        try:
            yield
        finally:
            self._no_parens_depth = saved

    # ------------------------------------------------------------------
    # Statements and clauses
    # ------------------------------------------------------------------

    def parse_file(self) -> Block:
        exprs = self._parse_stab_body(frozenset())
        tok = self.peek()
        if tok.kind != "eof":
            raise self.error(f"unexpected {_describe(tok)}")
        return Block(1, exprs)

    def _parse_stab_body(
        self,
        terminators: FrozenSet[str],
        closing: Optional[str] = None,
    ) -> List[Node]:
        """Parse statements, grouping them into ``->`` clauses when present."""
        plain: List[Node] = []
        clauses: List[Clause] = []
        while True:
            while self.peek().is_punct(";"):
                self.advance()
            tok = self.peek()
            if tok.kind == "eof" or self._at_terminator(tok, terminators, closing):
                break

            if tok.is_op("->"):
                heads: List[Node] = []
            else:
                heads = [self.parse_expr()]
                while self.peek().is_punct(","):
                    self.advance()
                    heads.append(self.parse_expr())

            if self.peek().is_op("->"):
                self.advance()
                clauses.append(Clause(tok.line, heads, []))
                continue
            if len(heads) != 1:
                raise self.error("unexpected ','")

            (clauses[-1].body if clauses else plain).append(heads[0])
            self._expect_separator(terminators, closing)
        return plain + clauses

    @staticmethod
    def _at_terminator(tok: Token, terminators: FrozenSet[str], closing: Optional[str]) -> bool:
        if tok.kind == "ident" and tok.value in terminators:
            return True
        return closing is not None and tok.is_punct(closing)

    def _expect_separator(self, terminators: FrozenSet[str], closing: Optional[str]) -> None:
        tok = self.peek()
        if tok.kind == "eof" or tok.newline_before or tok.is_punct(";"):
            return
        if self._at_terminator(tok, terminators, closing):
            return
        raise self.error(f"unexpected {_describe(tok)}")

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def parse_expr(self, min_prec: int = 0) -> Node:
        left = self._parse_unary()
        while True:
            tok = self.peek()
            op, width = self._binary_op_at(tok)
            if op is None:
                break
            prec, right_assoc = BINARY_OPS[op]
            if prec < min_prec:
                break
            if tok.newline_before and op in ("+", "-"):
                break
            for _ in range(width):
                self.advance()
            right = self.parse_expr(prec if right_assoc else prec + 1)
            left = BinaryOp(tok.line, op, left, right)
        return left

    def _binary_op_at(self, tok: Token) -> Tuple[Optional[str], int]:
        if tok.kind == "op" and tok.value in BINARY_OPS:
            return tok.value, 1
        if tok.kind == "ident":
            if tok.value in WORD_OPS:
                return tok.value, 1
            if tok.value == "not" and self.peek(1).is_ident("in"):
                return "not in", 2
        return None, 0

    def _parse_unary(self) -> Node:
        tok = self.peek()
        if (tok.kind == "op" and tok.value in UNARY_OPS) or tok.is_ident("not"):
            self.advance()
            return UnaryOp(tok.line, tok.value, self.parse_expr(UNARY_PREC))
        if tok.is_op("&"):
            self.advance()
            nxt = self.peek()
            if nxt.kind == "number" and not nxt.space_before:
                self.advance()
                return self._parse_postfix(Literal(tok.line, "capture_arg", nxt.value))
            return self._lower_capture(tok.line, self.parse_expr(CAPTURE_PREC))
        if tok.is_op("@"):
            return self._parse_module_attr()
        return self._parse_postfix(self._parse_primary())

    def _parse_module_attr(self) -> Node:
        at = self.advance()
        name_tok = self.peek()
        if name_tok.kind != "ident":
            raise self.error(f"expected attribute name, got {_describe(name_tok)}")
        self.advance()
        value: Optional[Node] = None
        if self._starts_no_parens_arg(self.peek()):
            self._no_parens_depth += 1
            try:
                value = self.parse_expr()
            finally:
                self._no_parens_depth -= 1
        attr = ModuleAttr(at.line, name_tok.value, value)
        return self._parse_postfix(attr) if value is None else attr

    def _parse_primary(self) -> Node:
        tok = self.peek()
        kind = tok.kind
        if kind == "kw":
            return self._parse_keywords()
        self.advance()
        line = tok.line

        if kind in ("number", "char", "string", "sigil"):
            return Literal(line, kind, tok.value)
        if kind == "atom":
            return Literal(line, "atom", tok.value)
        if kind == "alias":
            return Alias(line, (tok.value,))
        if kind == "ident":
            return self._parse_identifier(tok)
        if kind == "punct":
            if tok.value == "(":
                with self._nested():
                    body = self._parse_stab_body(frozenset(), closing=")")
                self.expect_punct(")")
                if len(body) == 1 and not isinstance(body[0], Clause):
                    return body[0]
                return Block(line, body)
            if tok.value == "[":
                with self._nested():
                    items = self._parse_items("]")
                if len(items) == 1 and isinstance(items[0], KeywordList):
                    return items[0]
                return ListExpr(line, items)
            if tok.value == "{":
                with self._nested():
                    return TupleExpr(line, self._parse_items("}"))
        if kind == "op":
            if tok.value == "%":
                return self._parse_map_or_struct(tok)
            if tok.value == "<<":
                with self._nested():
                    items: List[Node] = []
                    while not self.peek().is_op(">>"):
                        items.append(self.parse_expr())
                        if not self.peek().is_punct(","):
                            break
                        self.advance()
                    self.expect_op(">>")
                return Bitstring(line, items)
            if tok.value in ("...", ".."):
                return Literal(line, "range", tok.value)
        raise self.error(f"unexpected {_describe(tok)}", tok)

    def _parse_identifier(self, tok: Token) -> Node:
        name = tok.value
        line = tok.line
        if name in ("true", "false", "nil"):
            return Literal(line, "atom", name)
        if name == "__MODULE__":
            return Alias(line, ("__MODULE__",))
        if name == "fn":
            return self._parse_fn(tok)
        if name in RESERVED:
            raise self.error(f"unexpected keyword {name!r}", tok)

        nxt = self.peek()
        if nxt.is_punct("(") and not nxt.space_before:
            args = self._parse_paren_args()
            call = Call(line, name, args, parens=True, last_line=self.last_line)
        elif self._starts_no_parens_arg(nxt):
            args = self._parse_no_parens_args()
            call = Call(line, name, args, parens=False, last_line=self.last_line)
        elif nxt.is_ident("do") and self._no_parens_depth == 0:
            call = Call(line, name, [], parens=False, last_line=line)
        else:
            return Var(line, name)
        self._maybe_do_block(call)
        return self._lower_special_form(call)

    def _parse_fn(self, tok: Token) -> Fn:
        with self._nested():
            body = self._parse_stab_body(frozenset(("end",)))
        end = self.peek()
        if not end.is_ident("end"):
            raise self.error("expected 'end' to close 'fn'", end)
        self.advance()
        return Fn(tok.line, [c for c in body if isinstance(c, Clause)])

    def _parse_map_or_struct(self, tok: Token) -> Node:
        nxt = self.peek()
        if nxt.is_punct("{"):
            self.advance()
            with self._nested():
                return MapExpr(tok.line, self._parse_items("}"))

        name: Node
        if nxt.kind == "alias" or nxt.is_ident("__MODULE__"):
            self.advance()
            parts: Tuple[str, ...] = ("__MODULE__",) if nxt.kind == "ident" else (nxt.value,)
            while self.peek().is_op(".") and self.peek(1).kind == "alias":
                self.advance()
                parts += (self.advance().value,)
            name = Alias(nxt.line, parts)
        elif nxt.kind == "ident":
            self.advance()
            name = Var(nxt.line, nxt.value)
        elif nxt.is_op("@"):
            self.advance()
            attr = self.advance()
            name = ModuleAttr(nxt.line, attr.value, None)
        else:
            raise self.error(f"invalid struct name {_describe(nxt)}", nxt)

        self.expect_punct("{")
        with self._nested():
            fields = self._parse_items("}")
        return Struct(tok.line, name, fields, last_line=self.last_line)

    def _parse_postfix(self, node: Node) -> Node:
        while True:
            tok = self.peek()
            if tok.is_op(".") and not tok.newline_before:
                nxt = self.peek(1)
                if nxt.kind == "alias" and isinstance(node, Alias):
                    self.advance()
                    self.advance()
                    node = Alias(node.line, node.parts + (nxt.value,))
                    continue
                if nxt.is_punct("{") and isinstance(node, Alias):
                    self.advance()
                    self.advance()
                    with self._nested():
                        items = self._parse_items("}")
                    node = MultiAlias(node.line, node, [i for i in items if isinstance(i, Alias)])
                    continue
                if nxt.is_punct("("):
                    self.advance()
                    node = AnonCall(node.line, node, self._parse_paren_args())
                    continue
                if nxt.kind in ("ident", "alias"):
                    self.advance()
                    node = self._parse_remote_call(node, self.advance())
                    continue
                raise self.error(f"unexpected {_describe(nxt)} after '.'", nxt)
            if tok.is_punct("[") and not tok.space_before:
                self.advance()
                with self._nested():
                    key = self.parse_expr()
                self.expect_punct("]")
                node = Access(tok.line, node, key)
                continue
            return node

    def _parse_remote_call(self, receiver: Node, name_tok: Token) -> Node:
        after = self.peek()
        if after.is_punct("(") and not after.space_before:
            args = self._parse_paren_args()
            parens = True
        elif self._starts_no_parens_arg(after):
            args = self._parse_no_parens_args()
            parens = False
        else:
            args = []
            parens = False
        call = RemoteCall(
            name_tok.line, name_tok.value, args, parens,
            last_line=self.last_line, receiver=receiver,
        )
        self._maybe_do_block(call)
        return call

    # ------------------------------------------------------------------
    # Arguments
    # ------------------------------------------------------------------

    def _starts_no_parens_arg(self, tok: Token) -> bool:
        if tok.newline_before or not tok.space_before:
            return False
        kind = tok.kind
        if kind in ("number", "char", "string", "sigil", "atom", "alias", "kw"):
            return True
        if kind == "ident":
            if tok.value == "not" and self.peek(1).is_ident("in"):
                return False
            return tok.value not in NON_ARG_IDENTS
        if kind == "punct":
            return tok.value in ("(", "[", "{")
        if kind == "op":
            if tok.value in ("%", "@", "&", "^", "!", "<<", "~~~"):
                return True
            if tok.value in ("-", "+"):
                return not self.peek(1).space_before
        return False

    def _parse_paren_args(self) -> List[Node]:
        self.expect_punct("(")
        with self._nested():
            return self._parse_items(")")

    def _parse_no_parens_args(self) -> List[Node]:
        args: List[Node] = []
        self._no_parens_depth += 1
        try:
            while True:
                if self.peek().kind == "kw":
                    args.append(self._parse_keywords())
                    break
                args.append(self.parse_expr())
                if not self.peek().is_punct(","):
                    break
                self.advance()
        finally:
            self._no_parens_depth -= 1
        return args

    def _parse_items(self, closing: str) -> List[Node]:
        """Comma separated items up to and including *closing*."""
        items: List[Node] = []
        while not self.peek().is_punct(closing):
            if self.peek().kind == "eof":
                raise self.error(f"expected {closing!r} before end of file")
            if self.peek().kind == "kw":
                items.append(self._parse_keywords())
            else:
                items.append(self.parse_expr())
            if not self.peek().is_punct(","):
                break
            self.advance()
        self.expect_punct(closing)
        return items

    def _parse_keywords(self) -> KeywordList:
        line = self.peek().line
        pairs: List[Tuple[str, Node]] = []
        while self.peek().kind == "kw":
            key = self.advance()
            pairs.append((key.value, self.parse_expr()))
            if self.peek().is_punct(",") and self.peek(1).kind == "kw":
                self.advance()
                continue
            break
        return KeywordList(line, pairs)

    def _maybe_do_block(self, call: Call) -> None:
        if self._no_parens_depth > 0 or not self.peek().is_ident("do"):
            return
        do_tok = self.advance()
        sections: List[Tuple[str, List[Node]]] = []
        section = "do"
        with self._nested():
            while True:
                body = self._parse_stab_body(BLOCK_TERMINATORS)
                sections.append((section, body))
                tok = self.peek()
                if tok.is_ident("end"):
                    self.advance()
                    break
                if tok.kind == "ident" and tok.value in BLOCK_SECTIONS:
                    self.advance()
                    section = tok.value
                    continue
                raise self.error(f"expected 'end' to close 'do' opened on line {do_tok.line}", tok)
        call.do_block = DoBlock(do_tok.line, sections)

    # ------------------------------------------------------------------
    # Lowering of special forms
    # ------------------------------------------------------------------

    @staticmethod
    def _lower_capture(line: int, operand: Node) -> Node:
        if (
            isinstance(operand, BinaryOp)
            and operand.op == "/"
            and isinstance(operand.right, Literal)
            and operand.right.kind == "number"
            and operand.right.value.isdigit()
        ):
            target = operand.left
            arity = int(operand.right.value)
            if isinstance(target, RemoteCall) and not target.parens and not target.args:
                return Capture(line, target.receiver, target.name, arity)
            if isinstance(target, Var):
                return Capture(line, None, target.name, arity)
        return UnaryOp(line, "&", operand)

    def _lower_special_form(self, call: Call) -> Node:
        name = call.name
        args = call.args
        first = args[0] if args else None

        if name == "defmodule" and isinstance(first, Alias):
            body = _block_section(call, "do")
            if body is not None:
                return ModuleDef(call.line, first, body)

        elif name in DEF_KINDS and first is not None:
            return _lower_function(call) or call

        elif name == "alias" and first is not None:
            targets: List[Alias] = []
            if isinstance(first, Alias):
                targets = [first]
            elif isinstance(first, MultiAlias):
                targets = first.expand()
            if targets:
                return AliasDecl(call.line, targets, _as_option(args))

        elif name == "import" and isinstance(first, Alias):
            decl = ImportDecl(call.line, first)
            opts = _options(args)
            if opts is not None:
                decl.only = _import_filter(opts.get("only"))
                except_ = _import_filter(opts.get("except"))
                decl.except_ = except_ if isinstance(except_, list) else []
            return decl

        elif name == "require" and isinstance(first, Alias):
            return RequireDecl(call.line, first, _as_option(args))

        elif name == "use" and isinstance(first, Alias):
            return UseDecl(call.line, first, args[1:])

        elif name == "defstruct":
            return StructDef(call.line, list(args))

        return call


def _describe(tok: Token) -> str:
    if tok.kind == "eof":
        return "end of file"
    return f"{tok.kind} {tok.value!r}" if tok.value else tok.kind


def _options(args: List[Node]) -> Optional[KeywordList]:
    if len(args) > 1 and isinstance(args[-1], KeywordList):
        return args[-1]
    return None


def _as_option(args: List[Node]) -> Optional[str]:
    opts = _options(args)
    target = opts.get("as") if opts is not None else None
    if isinstance(target, Alias) and len(target.parts) == 1:
        return target.parts[0]
    return None


def _import_filter(node: Optional[Node]) -> Optional[Union[List[Tuple[str, int]], str]]:
    if node is None:
        return None
    if isinstance(node, Literal) and node.kind == "atom" and node.value in ("functions", "macros"):
        return node.value
    pairs: List[Tuple[str, int]] = []
    if isinstance(node, KeywordList):
        for key, value in node.pairs:
            if isinstance(value, Literal) and value.kind == "number" and value.value.isdigit():
                pairs.append((key, int(value.value)))
    return pairs


def _block_section(call: Call, section: str) -> Optional[List[Node]]:
    """Body of ``section`` from a ``do`` block or a ``do:`` keyword."""
    if call.do_block is not None:
        return call.do_block.section(section)
    opts = call.args[-1] if call.args and isinstance(call.args[-1], KeywordList) else None
    if opts is not None:
        value = opts.get(section)
        if value is not None:
            return [value]
    return None


def _lower_function(call: Call) -> Optional[FunctionDef]:
    head = call.args[0]
    guard: Optional[Node] = None
    if isinstance(head, BinaryOp) and head.op == "when":
        guard = head.right
        head = head.left

    if isinstance(head, Call) and not isinstance(head, RemoteCall):
        name, params = head.name, list(head.args)
    elif isinstance(head, Var):
        name, params = head.name, []
    else:
        return None

    body: List[Node] = []
    if call.do_block is not None:
        for _, section in call.do_block.sections:
            body.extend(section)
    else:
        opts = call.args[-1] if len(call.args) > 1 else None
        if isinstance(opts, KeywordList):
            body.extend(value for _, value in opts.pairs)
    return FunctionDef(call.line, call.name, name, params, guard, body)


def parse_source(source: str, source_file: Optional[str] = None) -> Block:
    """Parse Elixir source text into a :class:`~compilegraph_cli.syntax.Block`.

    Raises:
        ParseError: the text is not valid for the supported grammar.
    """
    return _Parser(tokenize(source, source_file), source_file).parse_file()


def read_source(file_path: Union[str, Path]) -> str:
    try:
        return Path(file_path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise SourceFileNotFound(file_path) from exc


def parse_file(file_path: Union[str, Path]) -> Block:
    """Read and parse one source file.

    Raises:
        SourceFileNotFound: the file cannot be read.
        ParseError: the file content is malformed.
    """
    return parse_source(read_source(file_path), str(file_path))


def scan_module_names(source: str, source_file: Optional[str] = None) -> List[str]:
    """Full names of the ``defmodule`` blocks in ``source``, from tokens alone.

    Works on text that does not parse. Nesting follows ``do``/``fn`` against
    ``end``; an unclosed module stays open to the end of the text.

    Raises:
        ParseError: the text cannot be tokenized.
    """
    tokens = tokenize(source, source_file)
    names: List[str] = []
    open_modules: List[Tuple[str, int]] = []
    depth = 0
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.is_ident("defmodule") and tokens[i + 1].kind == "alias":
            parts = [tokens[i + 1].value]
            i += 2
            while tokens[i].is_op(".") and tokens[i + 1].kind == "alias":
                parts.append(tokens[i + 1].value)
                i += 2
            if open_modules:
                parts.insert(0, open_modules[-1][0])
            name = ".".join(parts)
            names.append(name)
            open_modules.append((name, depth))
            continue
        if tok.is_ident("do", "fn"):
            depth += 1
        elif tok.is_ident("end"):
            depth -= 1
            while open_modules and open_modules[-1][1] >= depth:
                open_modules.pop()
        i += 1
    return names
