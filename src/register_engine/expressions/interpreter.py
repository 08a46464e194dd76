"""Tree-walking interpreter for rule expressions.

Values are limited to null, booleans, numbers, strings, lists, dicts
(FHIR JSON resources included) and helper objects that publish an
``EXPOSED`` table mapping expression method names to Python methods.
Nothing else on a host object is reachable from an expression.
"""

import logging
import re
from typing import Any, Callable, Dict, Protocol, Tuple

from register_engine.errors import MissingBindingError, RuleEvaluationError, RulesEngineError
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
from register_engine.expressions.parser import parse

logger = logging.getLogger(__name__)


class Bindings(Protocol):
    """Name resolution used by the interpreter."""

    def lookup(self, name: str) -> Any:
        """Return the value bound to name.

        Raises:
            MissingBindingError: If nothing is bound to name.
        """
        ...

    def assign(self, name: str, value: Any) -> None:
        """Write a computed value."""
        ...


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    return type(value).__name__


def _require_hashable(key: Any) -> None:
    try:
        hash(key)
    except TypeError:
        raise RuleEvaluationError(f"Cannot use {_type_name(key)} as a key")


def is_truthy(value: Any) -> bool:
    """Truthiness: null is false, empty strings and collections are false."""
    if value is None:
        return False
    return bool(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _list_get(items: list, index: int) -> Any:
    if not isinstance(index, int) or not 0 <= index < len(items):
        raise RuleEvaluationError(f"Index {index} out of bounds for list of size {len(items)}")
    return items[index]


def _substring(text: str, start: int, end: Any = None) -> str:
    if end is None:
        end = len(text)
    if not 0 <= start <= end <= len(text):
        raise RuleEvaluationError(f"substring({start}, {end}) out of range for length {len(text)}")
    return text[start:end]


LIST_METHODS: Dict[str, Callable[..., Any]] = {
    "size": lambda items: len(items),
    "isEmpty": lambda items: not items,
    "get": _list_get,
    "contains": lambda items, value: value in items,
    "indexOf": lambda items, value: items.index(value) if value in items else -1,
    "subList": lambda items, start, end: items[start:end],
}

DICT_METHODS: Dict[str, Callable[..., Any]] = {
    "get": lambda mapping, key: mapping.get(key),
    "containsKey": lambda mapping, key: key in mapping,
    "keySet": lambda mapping: list(mapping.keys()),
    "values": lambda mapping: list(mapping.values()),
    "size": lambda mapping: len(mapping),
    "isEmpty": lambda mapping: not mapping,
}

STRING_METHODS: Dict[str, Callable[..., Any]] = {
    "length": lambda s: len(s),
    "size": lambda s: len(s),
    "isEmpty": lambda s: s == "",
    "isBlank": lambda s: not s.strip(),
    "contains": lambda s, sub: _to_text(sub) in s,
    "startsWith": lambda s, prefix: s.startswith(_to_text(prefix)),
    "endsWith": lambda s, suffix: s.endswith(_to_text(suffix)),
    "equals": lambda s, other: s == other,
    "equalsIgnoreCase": lambda s, other: other is not None and s.lower() == str(other).lower(),
    "toUpperCase": lambda s: s.upper(),
    "toLowerCase": lambda s: s.lower(),
    "trim": lambda s: s.strip(),
    "substring": _substring,
    "indexOf": lambda s, sub: s.find(_to_text(sub)),
    "replace": lambda s, old, new: s.replace(_to_text(old), _to_text(new)),
    "split": lambda s, pattern: re.split(pattern, s),
    "concat": lambda s, other: s + _to_text(other),
    "charAt": lambda s, index: _substring(s, index, index + 1),
    "toString": lambda s: s,
}

NUMBER_METHODS: Dict[str, Callable[..., Any]] = {
    "intValue": lambda n: int(n),
    "doubleValue": lambda n: float(n),
    "toString": lambda n: str(n),
}

BOOLEAN_METHODS: Dict[str, Callable[..., Any]] = {
    "toString": lambda b: "true" if b else "false",
}


class Interpreter:
    """Evaluates parsed expressions against a Bindings environment."""

    def __init__(self) -> None:
        self._dispatch: Dict[type, Callable[[Any, Bindings], Any]] = {
            Literal: self._literal,
            Name: self._name,
            ListLiteral: self._list,
            MapLiteral: self._map,
            Member: self._member,
            Index: self._index,
            MethodCall: self._method_call,
            FunctionCall: self._function_call,
            Unary: self._unary,
            Binary: self._binary,
            Logical: self._logical,
            Conditional: self._conditional,
            Elvis: self._elvis,
            Assign: self._assign,
        }

    def evaluate(self, expression: str, bindings: Bindings) -> Any:
        """Parse (cached) and evaluate an expression string."""
        return self.eval_node(parse(expression), bindings)

    def eval_node(self, node: Node, bindings: Bindings) -> Any:
        handler = self._dispatch.get(type(node))
        if handler is None:
            raise RuleEvaluationError(f"Unsupported node {type(node).__name__}")
        return handler(node, bindings)

    def _eval_or_null(self, node: Node, bindings: Bindings) -> Any:
        """Evaluate, reading a missing top-level name as null."""
        if isinstance(node, Name):
            try:
                return bindings.lookup(node.name)
            except MissingBindingError:
                return None
        return self.eval_node(node, bindings)

    # Leaves

    def _literal(self, node: Literal, bindings: Bindings) -> Any:
        return node.value

    def _name(self, node: Name, bindings: Bindings) -> Any:
        return bindings.lookup(node.name)

    def _list(self, node: ListLiteral, bindings: Bindings) -> list:
        return [self.eval_node(item, bindings) for item in node.items]

    def _map(self, node: MapLiteral, bindings: Bindings) -> dict:
        result = {}
        for key_node, value_node in node.entries:
            key = self.eval_node(key_node, bindings)
            _require_hashable(key)
            result[key] = self.eval_node(value_node, bindings)
        return result

    # Access

    def _member(self, node: Member, bindings: Bindings) -> Any:
        target = self.eval_node(node.target, bindings)
        if target is None:
            return None
        if isinstance(target, dict):
            return target.get(node.name)
        if isinstance(target, list):
            # FHIR-style projection: field of each element, flattened.
            projected = []
            for item in target:
                value = item.get(node.name) if isinstance(item, dict) else None
                if isinstance(value, list):
                    projected.extend(value)
                elif value is not None:
                    projected.append(value)
            return projected
        raise RuleEvaluationError(f"Cannot read property '{node.name}' of {_type_name(target)}")

    def _index(self, node: Index, bindings: Bindings) -> Any:
        target = self.eval_node(node.target, bindings)
        index = self.eval_node(node.index, bindings)
        if target is None:
            return None
        if isinstance(target, dict):
            _require_hashable(index)
            return target.get(index)
        if isinstance(target, (list, str)):
            if not isinstance(index, int) or isinstance(index, bool):
                raise RuleEvaluationError(f"Index must be an integer, got {_type_name(index)}")
            try:
                return target[index]
            except IndexError:
                raise RuleEvaluationError(f"Index {index} out of bounds")
        raise RuleEvaluationError(f"Cannot index {_type_name(target)}")

    def _method_call(self, node: MethodCall, bindings: Bindings) -> Any:
        target = self.eval_node(node.target, bindings)
        args = tuple(self.eval_node(arg, bindings) for arg in node.args)
        if target is None:
            if node.safe:
                return None
            raise RuleEvaluationError(f"Cannot call {node.name}() on null")
        return self.call_method(target, node.name, args)

    def call_method(self, target: Any, name: str, args: Tuple[Any, ...]) -> Any:
        """Dispatch a method over the closed set of supported value types."""
        exposed = getattr(type(target), "EXPOSED", None)
        if isinstance(exposed, dict):
            attr = exposed.get(name)
            if attr is None:
                raise RuleEvaluationError(f"Unknown method {name}() on {type(target).__name__}")
            return self._invoke(getattr(target, attr), name, args)

        if isinstance(target, bool):
            table = BOOLEAN_METHODS
        elif _is_number(target):
            table = NUMBER_METHODS
        elif isinstance(target, str):
            table = STRING_METHODS
        elif isinstance(target, list):
            table = LIST_METHODS
        elif isinstance(target, dict):
            table = DICT_METHODS
        else:
            raise RuleEvaluationError(f"Cannot call {name}() on {_type_name(target)}")

        method = table.get(name)
        if method is None:
            raise RuleEvaluationError(f"Unknown method {name}() on {_type_name(target)}")
        return self._invoke(method, name, (target,) + args)

    def _invoke(self, fn: Callable[..., Any], name: str, args: Tuple[Any, ...]) -> Any:
        try:
            return fn(*args)
        except RulesEngineError:
            raise
        except Exception as e:
            # Bad regex, overflow and the like are expression errors, not engine faults.
            raise RuleEvaluationError(f"{name}() failed: {e}") from e

    def _function_call(self, node: FunctionCall, bindings: Bindings) -> Any:
        if len(node.args) != 1:
            raise RuleEvaluationError(f"{node.name}() takes exactly one argument")
        value = self._eval_or_null(node.args[0], bindings)
        if node.name == "empty":
            if value is None:
                return True
            if isinstance(value, (str, list, dict)):
                return len(value) == 0
            return False
        if value is None:
            return 0
        if isinstance(value, (str, list, dict)):
            return len(value)
        raise RuleEvaluationError(f"size() not supported for {_type_name(value)}")

    # Operators

    def _unary(self, node: Unary, bindings: Bindings) -> Any:
        value = self.eval_node(node.operand, bindings)
        if node.op == "!":
            return not is_truthy(value)
        if not _is_number(value):
            raise RuleEvaluationError(f"Cannot negate {_type_name(value)}")
        return -value

    def _binary(self, node: Binary, bindings: Bindings) -> Any:
        if node.op in ("==", "!="):
            left = self._eval_or_null(node.left, bindings)
            right = self._eval_or_null(node.right, bindings)
            equal = left == right
            return equal if node.op == "==" else not equal

        left = self.eval_node(node.left, bindings)
        right = self.eval_node(node.right, bindings)

        if node.op in ("<", "<=", ">", ">="):
            return self._compare(node.op, left, right)
        try:
            if node.op == "+":
                return self._add(left, right)
            return self._arithmetic(node.op, left, right)
        except (OverflowError, ValueError) as e:
            raise RuleEvaluationError(f"'{node.op}' failed: {e}") from e

    def _compare(self, op: str, left: Any, right: Any) -> bool:
        comparable = (_is_number(left) and _is_number(right)) or (
            isinstance(left, str) and isinstance(right, str)
        )
        if not comparable:
            raise RuleEvaluationError(
                f"Cannot compare {_type_name(left)} {op} {_type_name(right)}"
            )
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right

    def _add(self, left: Any, right: Any) -> Any:
        if isinstance(left, str) or isinstance(right, str):
            if left is None or right is None:
                raise RuleEvaluationError("Cannot concatenate null")
            return _to_text(left) + _to_text(right)
        if isinstance(left, list) and isinstance(right, list):
            return left + right
        if _is_number(left) and _is_number(right):
            return left + right
        raise RuleEvaluationError(f"Cannot add {_type_name(left)} and {_type_name(right)}")

    def _arithmetic(self, op: str, left: Any, right: Any) -> Any:
        if not (_is_number(left) and _is_number(right)):
            raise RuleEvaluationError(
                f"Cannot apply '{op}' to {_type_name(left)} and {_type_name(right)}"
            )
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        if right == 0:
            raise RuleEvaluationError("Division by zero")
        if op == "/":
            if isinstance(left, int) and isinstance(right, int):
                # Integer division truncates toward zero.
                quotient = abs(left) // abs(right)
                return quotient if (left >= 0) == (right >= 0) else -quotient
            return left / right
        if isinstance(left, int) and isinstance(right, int):
            return int(abs(left) % abs(right)) * (1 if left >= 0 else -1)
        return left % right

    def _logical(self, node: Logical, bindings: Bindings) -> bool:
        left = is_truthy(self.eval_node(node.left, bindings))
        if node.op == "&&":
            return left and is_truthy(self.eval_node(node.right, bindings))
        return left or is_truthy(self.eval_node(node.right, bindings))

    def _conditional(self, node: Conditional, bindings: Bindings) -> Any:
        if is_truthy(self.eval_node(node.condition, bindings)):
            return self.eval_node(node.then, bindings)
        return self.eval_node(node.otherwise, bindings)

    def _elvis(self, node: Elvis, bindings: Bindings) -> Any:
        left = self._eval_or_null(node.left, bindings)
        if is_truthy(left):
            return left
        return self.eval_node(node.right, bindings)

    def _assign(self, node: Assign, bindings: Bindings) -> Any:
        value = self.eval_node(node.value, bindings)
        bindings.assign(node.name, value)
        return value


default_interpreter = Interpreter()


def evaluate(expression: str, bindings: Bindings) -> Any:
    """Evaluate an expression string with the shared interpreter."""
    return default_interpreter.evaluate(expression, bindings)
