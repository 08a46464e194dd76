"""Recursive-descent parser for rule expressions.

Precedence, lowest first: assignment, ternary/elvis, ``||``, ``&&``,
equality, relational, additive, multiplicative, unary, postfix.
"""

from functools import lru_cache
from typing import List, Tuple

from register_engine.errors import ExpressionSyntaxError
from register_engine.expressions.lexer import Token, tokenize
from register_engine.expressions.nodes import (
    Assign,
    Binary,
    Conditional,
    Elvis,
    FunctionCall,
    Index,
    ListLiteral,
    Literal,
    Logical,
    MapLiteral,
    Member,
    MethodCall,
    Name,
    Node,
    Unary,
)

BUILTIN_FUNCTIONS = {"size", "empty"}

_EQUALITY = ("==", "!=")
_RELATIONAL = ("<", "<=", ">", ">=")
_ADDITIVE = ("+", "-")
_MULTIPLICATIVE = ("*", "/", "%")


class Parser:
    """Parses one expression string into a Node tree."""

    def __init__(self, expression: str):
        self.expression = expression
        self.tokens: List[Token] = tokenize(expression)
        self.pos = 0

    # Token helpers

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def _peek(self, offset: int = 1) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _advance(self) -> Token:
        token = self.current
        if token.kind != "EOF":
            self.pos += 1
        return token

    def _is_op(self, *ops: str) -> bool:
        return self.current.kind == "OP" and self.current.value in ops

    def _expect_op(self, op: str) -> Token:
        if not self._is_op(op):
            self._error(f"Expected '{op}'")
        return self._advance()

    def _expect_identifier(self) -> str:
        token = self.current
        # Keyword operators and literals are valid member names (e.g. ".not", ".null").
        if token.kind in ("NAME", "OP", "LITERAL"):
            text = self.expression[token.start:token.end]
            if text.isidentifier():
                self._advance()
                return text
        self._error("Expected identifier")

    def _error(self, message: str):
        raise ExpressionSyntaxError(message, self.expression, self.current.start)

    # Grammar

    def parse(self) -> Node:
        if self.current.kind == "EOF":
            self._error("Empty expression")
        node = self._assignment()
        if self.current.kind != "EOF":
            self._error(f"Unexpected token '{self.expression[self.current.start:self.current.end]}'")
        return node

    def _assignment(self) -> Node:
        if (
            self.current.kind == "NAME"
            and self._peek().kind == "OP"
            and self._peek().value == "="
        ):
            name = self._advance().value
            self._advance()
            return Assign(name, self._assignment())
        return self._ternary()

    def _ternary(self) -> Node:
        node = self._or()
        if self._is_op("?"):
            self._advance()
            then = self._assignment()
            self._expect_op(":")
            otherwise = self._assignment()
            return Conditional(node, then, otherwise)
        if self._is_op("?:"):
            self._advance()
            return Elvis(node, self._assignment())
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._is_op("||"):
            self._advance()
            node = Logical("||", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._equality()
        while self._is_op("&&"):
            self._advance()
            node = Logical("&&", node, self._equality())
        return node

    def _equality(self) -> Node:
        node = self._relational()
        while self._is_op(*_EQUALITY):
            op = self._advance().value
            node = Binary(op, node, self._relational())
        return node

    def _relational(self) -> Node:
        node = self._additive()
        while self._is_op(*_RELATIONAL):
            op = self._advance().value
            node = Binary(op, node, self._additive())
        return node

    def _additive(self) -> Node:
        node = self._multiplicative()
        while self._is_op(*_ADDITIVE):
            op = self._advance().value
            node = Binary(op, node, self._multiplicative())
        return node

    def _multiplicative(self) -> Node:
        node = self._unary()
        while self._is_op(*_MULTIPLICATIVE):
            op = self._advance().value
            node = Binary(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if self._is_op("!", "-"):
            op = self._advance().value
            return Unary(op, self._unary())
        return self._postfix()

    def _postfix(self) -> Node:
        node = self._primary()
        while True:
            if self._is_op(".", "?."):
                safe = self._advance().value == "?."
                name = self._expect_identifier()
                if self._is_op("("):
                    node = MethodCall(node, name, self._arguments(), safe)
                else:
                    node = Member(node, name, safe)
            elif self._is_op("["):
                self._advance()
                index = self._assignment()
                self._expect_op("]")
                node = Index(node, index)
            elif self._is_namespace_call(node):
                self._advance()
                name = self._expect_identifier()
                node = MethodCall(node, name, self._arguments())
            else:
                return node

    def _is_namespace_call(self, node: Node) -> bool:
        """``ns:fn(`` written without spaces, distinct from a ternary ``:``."""
        if not (isinstance(node, Name) and self._is_op(":")):
            return False
        colon = self.current
        previous = self.tokens[self.pos - 1]
        following = self._peek()
        after = self._peek(2)
        return (
            previous.end == colon.start
            and following.kind == "NAME"
            and following.start == colon.end
            and after.kind == "OP"
            and after.value == "("
        )

    def _arguments(self) -> Tuple[Node, ...]:
        self._expect_op("(")
        args: List[Node] = []
        if not self._is_op(")"):
            args.append(self._assignment())
            while self._is_op(","):
                self._advance()
                args.append(self._assignment())
        self._expect_op(")")
        return tuple(args)

    def _primary(self) -> Node:
        token = self.current

        if token.kind in ("NUMBER", "STRING", "LITERAL"):
            self._advance()
            return Literal(token.value)

        if token.kind == "NAME":
            self._advance()
            if token.value in BUILTIN_FUNCTIONS and self._is_op("("):
                return FunctionCall(token.value, self._arguments())
            return Name(token.value)

        if self._is_op("("):
            self._advance()
            node = self._assignment()
            self._expect_op(")")
            return node

        if self._is_op("["):
            self._advance()
            items: List[Node] = []
            if not self._is_op("]"):
                items.append(self._assignment())
                while self._is_op(","):
                    self._advance()
                    items.append(self._assignment())
            self._expect_op("]")
            return ListLiteral(tuple(items))

        if self._is_op("{"):
            self._advance()
            entries: List[Tuple[Node, Node]] = []
            if not self._is_op("}"):
                entries.append(self._map_entry())
                while self._is_op(","):
                    self._advance()
                    entries.append(self._map_entry())
            self._expect_op("}")
            return MapLiteral(tuple(entries))

        if token.kind == "EOF":
            self._error("Unexpected end of expression")
        self._error(f"Unexpected token '{self.expression[token.start:token.end]}'")

    def _map_entry(self) -> Tuple[Node, Node]:
        key = self._ternary()
        self._expect_op(":")
        return key, self._assignment()


@lru_cache(maxsize=1024)
def parse(expression: str) -> Node:
    """Parse an expression, caching the tree per distinct string.

    Raises:
        ExpressionSyntaxError: If the expression is malformed.
    """
    return Parser(expression).parse()
