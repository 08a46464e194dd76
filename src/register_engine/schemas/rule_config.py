"""Rule configuration."""

from typing import Optional, Tuple

from pydantic import Field, field_validator

from register_engine.schemas.resource_config import ConfigModel


class RuleConfig(ConfigModel):
    """A named rule: a condition and the actions run when it holds.

    Attributes:
        name: Unique name; non side-effecting action values are stored under it.
        condition: Boolean expression, "true" when omitted or blank.
        actions: Expressions run in order when the condition holds.
        priority: Lower values fire earlier; ties keep declaration order.
        description: Optional human-readable description.
    """

    name: str = Field(..., description="Unique rule name", min_length=1)
    condition: str = Field(default="true", description="Boolean condition expression")
    actions: Tuple[str, ...] = Field(default=(), description="Ordered action expressions")
    priority: int = Field(default=1, description="Execution priority, ascending")
    description: Optional[str] = Field(default=None, description="Human-readable description")

    @field_validator("condition", mode="before")
    @classmethod
    def default_blank_condition(cls, v: Optional[str]) -> str:
        """Treat a missing or blank condition as always true."""
        if v is None or not str(v).strip():
            return "true"
        return v
