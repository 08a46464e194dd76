"""Syntax tree of rule expressions."""

from dataclasses import dataclass
from typing import Any, Optional, Tuple


class Node:
    """Base class for expression nodes."""

    __slots__ = ()


@dataclass(frozen=True)
class Literal(Node):
    value: Any


@dataclass(frozen=True)
class Name(Node):
    name: str


@dataclass(frozen=True)
class ListLiteral(Node):
    items: Tuple[Node, ...]


@dataclass(frozen=True)
class MapLiteral(Node):
    entries: Tuple[Tuple[Node, Node], ...]


@dataclass(frozen=True)
class Member(Node):
    target: Node
    name: str
    safe: bool = False


@dataclass(frozen=True)
class Index(Node):
    target: Node
    index: Node


@dataclass(frozen=True)
class MethodCall(Node):
    """``target.name(args)``; ``ns:name(args)`` parses to the same node."""

    target: Node
    name: str
    args: Tuple[Node, ...]
    safe: bool = False


@dataclass(frozen=True)
class FunctionCall(Node):
    """Top-level builtin call such as ``size(x)`` or ``empty(x)``."""

    name: str
    args: Tuple[Node, ...]


@dataclass(frozen=True)
class Unary(Node):
    op: str
    operand: Node


@dataclass(frozen=True)
class Binary(Node):
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class Logical(Node):
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class Conditional(Node):
    condition: Node
    then: Node
    otherwise: Node


@dataclass(frozen=True)
class Elvis(Node):
    left: Node
    right: Node


@dataclass(frozen=True)
class Assign(Node):
    name: str
    value: Node


def is_side_effect(node: Optional[Node]) -> bool:
    """True for assignments and ``data.put(...)`` calls.

    Rule actions with a side effect write the output map themselves; the
    value of any other action is stored under the rule name.
    """
    if isinstance(node, Assign):
        return True
    return (
        isinstance(node, MethodCall)
        and isinstance(node.target, Name)
        and node.target.name == "data"
        and node.name in ("put", "putAll", "remove")
    )
