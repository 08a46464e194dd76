"""Exception hierarchy for the rules engine.

Per-relation and per-rule failures are isolated by the engine and only
logged; store unavailability and cancellation abort the current unit of work.
"""

from typing import Optional


class RulesEngineError(Exception):
    """Base exception for rules engine errors."""

    pass


class RelationFetchError(RulesEngineError):
    """Raised when the query for a single relation fails.

    The fetcher catches it, logs it and leaves the relation key empty.
    """

    def __init__(self, relation_key: str, message: str):
        self.relation_key = relation_key
        super().__init__(f"Relation '{relation_key}': {message}")


class StoreUnavailableError(RulesEngineError):
    """Raised when the resource store cannot serve any query (closed, timed out)."""

    pass


class ResourceNotFoundError(RulesEngineError):
    """Raised when a resource looked up by type and id does not exist."""

    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type}/{resource_id} not found")


class RuleEvaluationError(RulesEngineError):
    """Raised for type, syntax or dispatch errors while evaluating an expression."""

    pass


class ExpressionSyntaxError(RuleEvaluationError):
    """Raised when an expression cannot be parsed."""

    def __init__(self, message: str, expression: str, position: Optional[int] = None):
        self.expression = expression
        self.position = position
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"{message}{where} in expression: {expression}")


class MissingBindingError(RulesEngineError):
    """Raised when an expression references a fact that is not bound.

    Usually optional clinical data that is simply absent, so it is logged
    at debug level only.
    """

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"undefined variable {name}")


class SessionReuseError(RulesEngineError):
    """Raised when a session is fired twice or used from another thread."""

    pass


class EvaluationCancelledError(RulesEngineError):
    """Raised when a fetch or list walk observes its cancel event."""

    pass
