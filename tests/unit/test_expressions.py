"""Tests for the rule expression lexer, parser and interpreter."""

import pytest

from register_engine.errors import ExpressionSyntaxError, MissingBindingError, RuleEvaluationError
from register_engine.expressions import evaluate, is_side_effect, is_truthy, parse
from register_engine.expressions.lexer import tokenize
from register_engine.expressions.namespaces import math_utils, string_utils
from register_engine.expressions.nodes import (
    Assign,
    Binary,
    Conditional,
    Elvis,
    FunctionCall,
    Literal,
    Logical,
    Member,
    MethodCall,
    Name,
)


class DictBindings:
    """Minimal Bindings over a dict; assignments land in ``written``."""

    def __init__(self, **values):
        self.values = dict(values)
        self.written = {}

    def lookup(self, name):
        if name in self.values:
            return self.values[name]
        if name in self.written:
            return self.written[name]
        raise MissingBindingError(name)

    def assign(self, name, value):
        self.written[name] = value


def ev(expression, **values):
    return evaluate(expression, DictBindings(**values))


# =============================================================================
# Lexer
# =============================================================================


class TestLexer:
    def test_numbers_strings_and_names(self):
        kinds = [(t.kind, t.value) for t in tokenize("x + 12 * 1.5 - 'a b'")]
        assert kinds == [
            ("NAME", "x"),
            ("OP", "+"),
            ("NUMBER", 12),
            ("OP", "*"),
            ("NUMBER", 1.5),
            ("OP", "-"),
            ("STRING", "a b"),
            ("EOF", None),
        ]

    def test_keyword_operators_map_to_symbols(self):
        ops = [t.value for t in tokenize("a and b or not c eq d") if t.kind == "OP"]
        assert ops == ["&&", "||", "!", "=="]

    def test_literal_keywords(self):
        values = [t.value for t in tokenize("true false null") if t.kind == "LITERAL"]
        assert values == [True, False, None]

    def test_longest_operator_wins(self):
        ops = [t.value for t in tokenize("a >= b ?: c?.d") if t.kind == "OP"]
        assert ops == [">=", "?:", "?."]

    def test_string_escapes(self):
        tokens = tokenize(r"'it\'s' + " + '"tab\\there"')
        assert tokens[0].value == "it's"
        assert tokens[2].value == "tab\there"

    def test_unterminated_string(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            tokenize("'open")
        assert exc_info.value.position == 0

    def test_unknown_character(self):
        with pytest.raises(ExpressionSyntaxError, match="Unexpected character '#'"):
            tokenize("a # b")


# =============================================================================
# Parser
# =============================================================================


class TestParser:
    def test_precedence(self):
        node = parse("1 + 2 * 3")
        assert node == Binary("+", Literal(1), Binary("*", Literal(2), Literal(3)))

    def test_logical_binds_looser_than_comparison(self):
        node = parse("a > 1 && b")
        assert isinstance(node, Logical)
        assert node.left == Binary(">", Name("a"), Literal(1))

    def test_ternary_and_elvis(self):
        assert isinstance(parse("a ? 1 : 2"), Conditional)
        assert parse("a ?: 'x'") == Elvis(Name("a"), Literal("x"))

    def test_assignment_is_right_associative(self):
        assert parse("x = y = 1") == Assign("x", Assign("y", Literal(1)))

    def test_member_and_safe_member(self):
        assert parse("a.b") == Member(Name("a"), "b")
        assert parse("a?.b") == Member(Name("a"), "b", safe=True)

    def test_namespace_call_same_as_method_call(self):
        assert parse("StringUtils:isBlank(x)") == parse("StringUtils.isBlank(x)")

    def test_colon_with_spaces_stays_ternary(self):
        node = parse("a ? b : c")
        assert isinstance(node, Conditional)

    def test_builtin_functions(self):
        assert parse("size(items)") == FunctionCall("size", (Name("items"),))
        assert parse("empty(items)") == FunctionCall("empty", (Name("items"),))

    def test_keyword_is_valid_member_name(self):
        node = parse("data.not")
        assert node == Member(Name("data"), "not")

    @pytest.mark.parametrize("expression", ["", "1 +", "(1", "a b", "[1, 2", "f(,)"])
    def test_syntax_errors(self, expression):
        with pytest.raises(ExpressionSyntaxError):
            parse(expression)

    def test_parse_is_cached(self):
        assert parse("x * 2") is parse("x * 2")

    def test_side_effect_detection(self):
        assert is_side_effect(parse("x = 1"))
        assert is_side_effect(parse("data.put('x', 1)"))
        assert not is_side_effect(parse("data.get('x')"))
        assert not is_side_effect(parse("x + 1"))
        assert isinstance(parse("data.put('x', 1)"), MethodCall)


# =============================================================================
# Interpreter
# =============================================================================


class TestInterpreterOperators:
    def test_arithmetic(self):
        assert ev("1 + 2 * 3") == 7
        assert ev("(1 + 2) * 3") == 9
        assert ev("10 - 4 - 3") == 3
        assert ev("7 / 2") == 3
        assert ev("7.0 / 2") == 3.5

    def test_integer_division_truncates_toward_zero(self):
        assert ev("-7 / 2") == -3
        assert ev("-7 % 3") == -1
        assert ev("7 % -3") == 1

    def test_division_by_zero(self):
        with pytest.raises(RuleEvaluationError, match="Division by zero"):
            ev("1 / 0")

    def test_string_concatenation(self):
        assert ev("'count: ' + n", n=3) == "count: 3"
        assert ev("'flag ' + f", f=True) == "flag true"

    def test_concatenating_null_fails(self):
        with pytest.raises(RuleEvaluationError):
            ev("'a' + x", x=None)

    def test_arithmetic_on_null_fails(self):
        with pytest.raises(RuleEvaluationError, match="Cannot apply"):
            ev("x * 2", x=None)

    def test_comparisons(self):
        assert ev("2 > 1") is True
        assert ev("2 le 1") is False
        assert ev("'b' > 'a'") is True

    def test_comparing_mixed_types_fails(self):
        with pytest.raises(RuleEvaluationError, match="Cannot compare"):
            ev("1 < 'a'")

    def test_logical_short_circuit(self):
        # The right side would raise on a missing name if it were evaluated.
        assert ev("false && missing") is False
        assert ev("true || missing") is True

    def test_not(self):
        assert ev("!x", x=None) is True
        assert ev("not true") is False

    def test_ternary(self):
        assert ev("x > 1 ? 'big' : 'small'", x=5) == "big"

    def test_elvis(self):
        assert ev("x ?: 'fallback'", x=None) == "fallback"
        assert ev("x ?: 'fallback'", x="set") == "set"
        assert ev("missing ?: 'fallback'") == "fallback"

    def test_negation(self):
        assert ev("-x", x=4) == -4
        with pytest.raises(RuleEvaluationError):
            ev("-x", x="a")


class TestInterpreterNames:
    def test_missing_name_raises(self):
        with pytest.raises(MissingBindingError) as exc_info:
            ev("missing + 1")
        assert exc_info.value.name == "missing"
        assert str(exc_info.value) == "undefined variable missing"

    def test_null_checks_tolerate_missing_name(self):
        assert ev("missing == null") is True
        assert ev("missing != null") is False
        assert ev("empty(missing)") is True
        assert ev("size(missing)") == 0

    def test_assignment_writes_bindings(self):
        bindings = DictBindings()
        assert evaluate("x = 2 * 3", bindings) == 6
        assert bindings.written == {"x": 6}
        assert evaluate("x + 1", bindings) == 7


class TestInterpreterValues:
    def test_member_access_on_resources(self, patient):
        assert ev("Patient.gender", Patient=patient) == "female"
        assert ev("Patient.missingField", Patient=patient) is None

    def test_member_access_on_null_is_null(self):
        assert ev("x.y", x=None) is None
        assert ev("x?.y", x=None) is None

    def test_member_projection_over_list(self, patient):
        assert ev("Patient.name.given", Patient=patient) == ["Jane"]

    def test_member_access_on_scalar_fails(self):
        with pytest.raises(RuleEvaluationError, match="Cannot read property"):
            ev("x.y", x=5)

    def test_indexing(self):
        assert ev("items[1]", items=["a", "b"]) == "b"
        assert ev("m['k']", m={"k": 1}) == 1
        with pytest.raises(RuleEvaluationError, match="out of bounds"):
            ev("items[5]", items=[])

    def test_list_and_map_literals(self):
        assert ev("[1, 'a', null]") == [1, "a", None]
        assert ev("{'a': 1, 'b': x}", x=2) == {"a": 1, "b": 2}

    def test_unhashable_keys(self):
        with pytest.raises(RuleEvaluationError, match="Cannot use list as a key"):
            ev("m[[1]]", m={"k": 1})
        with pytest.raises(RuleEvaluationError, match="Cannot use list as a key"):
            ev("{[1]: 2}")

    def test_bad_split_pattern(self):
        with pytest.raises(RuleEvaluationError, match="split"):
            ev("s.split('(')", s="x")

    def test_list_methods(self):
        items = ["a", "b", "c"]
        assert ev("items.size()", items=items) == 3
        assert ev("items.isEmpty()", items=items) is False
        assert ev("items.get(0)", items=items) == "a"
        assert ev("items.contains('c')", items=items) is True
        assert ev("items.indexOf('z')", items=items) == -1

    def test_dict_methods(self):
        mapping = {"k": 1}
        assert ev("m.containsKey('k')", m=mapping) is True
        assert ev("m.keySet()", m=mapping) == ["k"]

    def test_string_methods(self):
        assert ev("s.toUpperCase()", s="abc") == "ABC"
        assert ev("s.substring(1, 3)", s="abcd") == "bc"
        assert ev("s.startsWith('ab')", s="abc") is True
        assert ev("s.equalsIgnoreCase('ABC')", s="abc") is True
        assert ev("s.split(',')", s="a,b") == ["a", "b"]

    def test_substring_out_of_range(self):
        with pytest.raises(RuleEvaluationError, match="out of range"):
            ev("s.substring(2, 9)", s="abc")

    def test_unknown_method(self):
        with pytest.raises(RuleEvaluationError, match="Unknown method"):
            ev("s.reverse()", s="abc")

    def test_method_on_null(self):
        with pytest.raises(RuleEvaluationError, match="on null"):
            ev("x.size()", x=None)
        assert ev("x?.size()", x=None) is None

    def test_host_attributes_are_not_reachable(self):
        with pytest.raises(RuleEvaluationError):
            ev("s.__class__()", s="abc")
        with pytest.raises(RuleEvaluationError, match="Unknown method"):
            ev("StringUtils.__init__()", StringUtils=string_utils)

    def test_truthiness(self):
        assert is_truthy(None) is False
        assert is_truthy("") is False
        assert is_truthy([]) is False
        assert is_truthy(0) is False
        assert is_truthy("x") is True


class TestNamespaces:
    def test_string_utils(self):
        assert ev("StringUtils:isBlank(x)", StringUtils=string_utils, x="  ") is True
        assert ev("StringUtils:isNotBlank(x)", StringUtils=string_utils, x=None) is False
        assert ev("StringUtils.capitalize('jane')", StringUtils=string_utils) == "Jane"
        assert ev("StringUtils.join(items, ', ')", StringUtils=string_utils, items=["a", None, 1]) == "a, , 1"
        assert ev("StringUtils.abbreviate('abcdefgh', 6)", StringUtils=string_utils) == "abc..."

    def test_abbreviate_width_too_small(self):
        with pytest.raises(RuleEvaluationError, match="abbreviate"):
            ev("StringUtils.abbreviate('abcdefgh', 3)", StringUtils=string_utils)

    def test_math(self):
        assert ev("Math.round(2.5)", Math=math_utils) == 3
        assert ev("Math.round(-2.5)", Math=math_utils) == -2
        assert ev("Math.max(a, b)", Math=math_utils, a=3, b=7) == 7
        assert ev("Math.floor(2.7)", Math=math_utils) == 2.0
        assert ev("Math.pow(2, 3)", Math=math_utils) == 8.0

    def test_math_overflow(self):
        with pytest.raises(RuleEvaluationError, match="pow"):
            ev("Math.pow(10, 400)", Math=math_utils)
        with pytest.raises(RuleEvaluationError, match="round"):
            ev("Math.round(x)", Math=math_utils, x=float("inf"))
