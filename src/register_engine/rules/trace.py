"""Trace of rule outcomes for one firing pass.

Accumulates RuleTraceStep records so the CLI (and tests) can show why a
computed value is present or missing.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RuleOutcome(str, Enum):
    """What happened to a rule during firing."""

    FIRED = "fired"
    SKIPPED = "skipped"
    FAILED = "failed"
    MISSING_BINDING = "missing_binding"


class RuleTraceStep(BaseModel):
    """One rule's outcome."""

    rule: str = Field(..., description="Rule name")
    outcome: RuleOutcome = Field(..., description="Outcome of the rule")
    detail: Optional[str] = Field(default=None, description="Failure message, if any")
    actions_run: int = Field(default=0, description="Actions completed before stopping")


class RuleTrace:
    """Accumulates trace steps for a single firing."""

    def __init__(self) -> None:
        self._steps: List[RuleTraceStep] = []

    def add(
        self,
        rule: str,
        outcome: RuleOutcome,
        detail: Optional[str] = None,
        actions_run: int = 0,
    ) -> "RuleTrace":
        """Append a trace step."""
        self._steps.append(
            RuleTraceStep(rule=rule, outcome=outcome, detail=detail, actions_run=actions_run)
        )
        return self

    def build(self) -> List[RuleTraceStep]:
        """Return the accumulated trace steps."""
        return list(self._steps)

    def summary(self) -> Dict[str, Any]:
        counts = {outcome.value: 0 for outcome in RuleOutcome}
        for step in self._steps:
            counts[step.outcome.value] += 1
        return counts
