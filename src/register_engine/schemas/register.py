"""Register and profile configuration."""

from typing import List, Optional

from pydantic import Field

from register_engine.schemas.resource_config import ConfigModel, FhirResourceConfig
from register_engine.schemas.rule_config import RuleConfig
from register_engine.schemas.views import RegisterCardConfig, ViewProperties


class RegisterConfiguration(ConfigModel):
    """A paged register of base resources, one card per row.

    Attributes:
        id: Register identifier.
        fhir_resource: Base resource and relations fetched for each row.
        register_card: Rules and views evaluated for each row.
        page_size: Rows per page; falls back to the engine settings.
    """

    id: str = Field(..., min_length=1)
    fhir_resource: FhirResourceConfig
    register_card: RegisterCardConfig = Field(default_factory=RegisterCardConfig)
    page_size: Optional[int] = Field(default=None, gt=0)


class ProfileConfiguration(ConfigModel):
    """A single-resource profile screen.

    Attributes:
        id: Profile identifier.
        fhir_resource: Root resource and relations.
        secondary_resources: Independent graphs loaded alongside the root.
        rules: Rules evaluated against the profile data.
        views: Views, searched for list sections.
    """

    id: str = Field(..., min_length=1)
    fhir_resource: FhirResourceConfig
    secondary_resources: List[FhirResourceConfig] = Field(default_factory=list)
    rules: List[RuleConfig] = Field(default_factory=list)
    views: List[ViewProperties] = Field(default_factory=list)
