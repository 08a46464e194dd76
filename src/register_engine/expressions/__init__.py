"""Embedded expression language used by rule conditions and actions."""

from register_engine.expressions.interpreter import (
    Bindings,
    Interpreter,
    default_interpreter,
    evaluate,
    is_truthy,
)
from register_engine.expressions.namespaces import MathUtils, StringUtils
from register_engine.expressions.nodes import is_side_effect
from register_engine.expressions.parser import parse

__all__ = [
    "Bindings",
    "Interpreter",
    "MathUtils",
    "StringUtils",
    "default_interpreter",
    "evaluate",
    "is_side_effect",
    "is_truthy",
    "parse",
]
