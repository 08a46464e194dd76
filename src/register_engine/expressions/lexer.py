"""Tokenizer for rule expressions."""

from dataclasses import dataclass
from typing import List

from register_engine.errors import ExpressionSyntaxError

# Longest operators first so "==" wins over "=".
OPERATORS = (
    "||", "&&", "==", "!=", "<=", ">=", "?.", "?:",
    "<", ">", "+", "-", "*", "/", "%", "!", "=",
    "(", ")", "[", "]", "{", "}", ",", ".", "?", ":",
)

KEYWORD_OPERATORS = {
    "and": "&&",
    "or": "||",
    "not": "!",
    "eq": "==",
    "ne": "!=",
    "lt": "<",
    "le": "<=",
    "gt": ">",
    "ge": ">=",
}

LITERAL_KEYWORDS = {"true": True, "false": False, "null": None}

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}


@dataclass(frozen=True)
class Token:
    kind: str  # NUMBER, STRING, NAME, LITERAL, OP, EOF
    value: object
    start: int
    end: int


def tokenize(expression: str) -> List[Token]:
    """Split an expression into tokens.

    Raises:
        ExpressionSyntaxError: On an unterminated string or unknown character.
    """
    tokens: List[Token] = []
    i = 0
    length = len(expression)

    while i < length:
        ch = expression[i]

        if ch.isspace():
            i += 1
            continue

        if ch.isdigit():
            start = i
            while i < length and expression[i].isdigit():
                i += 1
            is_float = False
            if i + 1 < length and expression[i] == "." and expression[i + 1].isdigit():
                is_float = True
                i += 1
                while i < length and expression[i].isdigit():
                    i += 1
            text = expression[start:i]
            value = float(text) if is_float else int(text)
            tokens.append(Token("NUMBER", value, start, i))
            continue

        if ch in ("'", '"'):
            start = i
            quote = ch
            i += 1
            chars: List[str] = []
            while True:
                if i >= length:
                    raise ExpressionSyntaxError("Unterminated string", expression, start)
                c = expression[i]
                if c == "\\" and i + 1 < length:
                    chars.append(_ESCAPES.get(expression[i + 1], expression[i + 1]))
                    i += 2
                    continue
                if c == quote:
                    i += 1
                    break
                chars.append(c)
                i += 1
            tokens.append(Token("STRING", "".join(chars), start, i))
            continue

        if ch.isalpha() or ch in "_$":
            start = i
            while i < length and (expression[i].isalnum() or expression[i] in "_$"):
                i += 1
            word = expression[start:i]
            if word in LITERAL_KEYWORDS:
                tokens.append(Token("LITERAL", LITERAL_KEYWORDS[word], start, i))
            elif word in KEYWORD_OPERATORS:
                tokens.append(Token("OP", KEYWORD_OPERATORS[word], start, i))
            else:
                tokens.append(Token("NAME", word, start, i))
            continue

        for op in OPERATORS:
            if expression.startswith(op, i):
                tokens.append(Token("OP", op, i, i + len(op)))
                i += len(op)
                break
        else:
            raise ExpressionSyntaxError(f"Unexpected character '{ch}'", expression, i)

    tokens.append(Token("EOF", None, length, length))
    return tokens
