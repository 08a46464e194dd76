"""Rule engine: compiles rule configs and fires them against a Session.

Rules fire in ascending priority, declaration order within a priority.
For each rule:
1. The condition is evaluated; false (or failing) skips the rule.
2. Actions run in order. An assignment or ``data.put(...)`` writes the
   output map itself; the value of any other action is stored under the
   rule name.
3. A failing action stops the rest of that rule's actions. Effects of
   earlier actions are kept and later rules still fire.

Compiled RuleSets are immutable and shared across concurrent evaluations;
each evaluation brings its own Session.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from register_engine.errors import (
    ExpressionSyntaxError,
    MissingBindingError,
    RuleEvaluationError,
)
from register_engine.expressions.interpreter import Interpreter, default_interpreter, is_truthy
from register_engine.expressions.nodes import Node, is_side_effect
from register_engine.expressions.parser import parse
from register_engine.rules.session import Session
from register_engine.rules.trace import RuleOutcome, RuleTrace
from register_engine.schemas.rule_config import RuleConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledRule:
    """A parsed rule ready to fire."""

    name: str
    priority: int
    index: int
    condition: Optional[Node]
    actions: Tuple[Node, ...]
    sources: Tuple[str, ...]
    compile_error: Optional[str] = None


@dataclass(frozen=True)
class RuleSet:
    """Immutable, ordered collection of compiled rules."""

    rules: Tuple[CompiledRule, ...]

    def __iter__(self) -> Iterator[CompiledRule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    @property
    def names(self) -> List[str]:
        return [rule.name for rule in self.rules]


def _compile_rule(config: RuleConfig, index: int) -> CompiledRule:
    sources = (config.condition,) + tuple(config.actions)
    try:
        condition = parse(config.condition)
        actions = tuple(parse(action) for action in config.actions)
    except ExpressionSyntaxError as e:
        logger.error(f"Rule '{config.name}' does not compile: {e}")
        return CompiledRule(
            name=config.name,
            priority=config.priority,
            index=index,
            condition=None,
            actions=(),
            sources=sources,
            compile_error=str(e),
        )
    return CompiledRule(
        name=config.name,
        priority=config.priority,
        index=index,
        condition=condition,
        actions=actions,
        sources=sources,
    )


@lru_cache(maxsize=256)
def _compile_cached(rule_configs: Tuple[RuleConfig, ...]) -> RuleSet:
    by_name: Dict[str, CompiledRule] = {}
    for index, config in enumerate(rule_configs):
        if config.name in by_name:
            logger.warning(
                f"Duplicate rule name '{config.name}': the later declaration replaces the earlier one"
            )
        by_name[config.name] = _compile_rule(config, index)
    ordered = sorted(by_name.values(), key=lambda rule: (rule.priority, rule.index))
    return RuleSet(rules=tuple(ordered))


class RuleEngine:
    """Compiles and fires rule sets."""

    def __init__(self, interpreter: Optional[Interpreter] = None):
        self.interpreter = interpreter or default_interpreter

    def compile(self, rule_configs: Sequence[RuleConfig]) -> RuleSet:
        """Compile rule configs into an immutable RuleSet.

        Compilation is cached per distinct sequence of configs. A rule with a
        syntax error is kept as a failing rule so the rest of the set fires.
        """
        return _compile_cached(tuple(rule_configs))

    def fire(
        self,
        rule_set: RuleSet,
        session: Session,
        trace: Optional[RuleTrace] = None,
    ) -> Dict[str, object]:
        """Fire every rule against the session.

        Args:
            rule_set: Compiled rules.
            session: Fresh session; it is consumed by this call.
            trace: Optional collector of per-rule outcomes.

        Returns:
            Copy of the computed values written by the rules.

        Raises:
            SessionReuseError: If the session was already fired or belongs
                to another thread.
        """
        session.begin_firing()

        for rule in rule_set:
            if rule.compile_error is not None:
                logger.error(f"Rule '{rule.name}' skipped: {rule.compile_error}")
                self._record(trace, rule, RuleOutcome.FAILED, rule.compile_error)
                continue

            try:
                holds = is_truthy(self.interpreter.eval_node(rule.condition, session))
            except MissingBindingError as e:
                self._log_missing(rule, e)
                self._record(trace, rule, RuleOutcome.MISSING_BINDING, str(e))
                continue
            except RuleEvaluationError as e:
                logger.error(f"Rule '{rule.name}' condition failed: {e}")
                self._record(trace, rule, RuleOutcome.FAILED, str(e))
                continue

            if not holds:
                self._record(trace, rule, RuleOutcome.SKIPPED)
                continue

            self._run_actions(rule, session, trace)

        return session.output.snapshot()

    def _run_actions(self, rule: CompiledRule, session: Session, trace: Optional[RuleTrace]) -> None:
        for position, action in enumerate(rule.actions):
            try:
                value = self.interpreter.eval_node(action, session)
            except MissingBindingError as e:
                self._log_missing(rule, e)
                self._record(trace, rule, RuleOutcome.MISSING_BINDING, str(e), position)
                return
            except RuleEvaluationError as e:
                logger.error(f"Rule '{rule.name}' action {position + 1} failed: {e}")
                self._record(trace, rule, RuleOutcome.FAILED, str(e), position)
                return
            if not is_side_effect(action):
                session.output.put(rule.name, value)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Rule executed: {rule.name} -> {session.output.get(rule.name)!r}")
        self._record(trace, rule, RuleOutcome.FIRED, actions_run=len(rule.actions))

    @staticmethod
    def _log_missing(rule: CompiledRule, error: MissingBindingError) -> None:
        logger.debug(
            f"Rule '{rule.name}': {error}, consider checking for null before usage: "
            f"e.g {error.name} != null"
        )

    @staticmethod
    def _record(
        trace: Optional[RuleTrace],
        rule: CompiledRule,
        outcome: RuleOutcome,
        detail: Optional[str] = None,
        actions_run: int = 0,
    ) -> None:
        if trace is not None:
            trace.add(rule.name, outcome, detail, actions_run)


def clear_compile_cache() -> None:
    """Drop cached RuleSets (configuration reload)."""
    _compile_cached.cache_clear()
