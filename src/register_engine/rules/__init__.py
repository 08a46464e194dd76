"""Rule firing: sessions, the engine and helper services."""

from register_engine.rules.date_service import DateService
from register_engine.rules.engine import CompiledRule, RuleEngine, RuleSet, clear_compile_cache
from register_engine.rules.service import RulesEngineService
from register_engine.rules.session import OutputMap, Session, new_session
from register_engine.rules.trace import RuleOutcome, RuleTrace, RuleTraceStep

__all__ = [
    "CompiledRule",
    "DateService",
    "OutputMap",
    "RuleEngine",
    "RuleOutcome",
    "RuleSet",
    "RuleTrace",
    "RuleTraceStep",
    "RulesEngineService",
    "Session",
    "clear_compile_cache",
    "new_session",
]
