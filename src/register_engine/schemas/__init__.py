"""Configuration and result models for the rules engine."""

from register_engine.schemas.register import ProfileConfiguration, RegisterConfiguration
from register_engine.schemas.resource_config import (
    CountResultConfig,
    FhirResourceConfig,
    ResourceConfig,
    SortConfig,
    SortDataType,
    SortDirection,
)
from register_engine.schemas.resource_data import (
    RelatedResourceCount,
    RepositoryResourceData,
    Resource,
    ResourceData,
)
from register_engine.schemas.rule_config import RuleConfig
from register_engine.schemas.views import (
    CardView,
    ColumnView,
    ListProperties,
    ListResource,
    RegisterCardConfig,
    RowView,
    TabContent,
    TabsView,
    TextView,
    ViewProperties,
)

__all__ = [
    # Resource configuration
    "CountResultConfig",
    "FhirResourceConfig",
    "ResourceConfig",
    "SortConfig",
    "SortDataType",
    "SortDirection",
    # Rules
    "RuleConfig",
    # Results
    "RelatedResourceCount",
    "RepositoryResourceData",
    "Resource",
    "ResourceData",
    # Views
    "CardView",
    "ColumnView",
    "ListProperties",
    "ListResource",
    "RegisterCardConfig",
    "RowView",
    "TabContent",
    "TabsView",
    "TextView",
    "ViewProperties",
    # Screens
    "ProfileConfiguration",
    "RegisterConfiguration",
]
