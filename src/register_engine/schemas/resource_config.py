"""Resource relationship configuration.

A FhirResourceConfig describes the tree of relations walked around a root
resource. Models are frozen and accept both the camelCase keys used in
register configuration files and the snake_case field names.
"""

from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ConfigModel(BaseModel):
    """Base for immutable configuration models with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class SortDirection(str, Enum):
    """Sort order for related resources."""

    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"


class SortDataType(str, Enum):
    """How a sort key extracted with FHIRPath is compared."""

    STRING = "STRING"
    INTEGER = "INTEGER"
    DECIMAL = "DECIMAL"
    DATE = "DATE"
    DATETIME = "DATETIME"
    BOOLEAN = "BOOLEAN"


class SortConfig(ConfigModel):
    """Sort key for a relation, evaluated per resource."""

    fhir_path_expression: str = Field(
        ...,
        description="FHIRPath expression producing the sort key",
        min_length=1,
    )
    data_type: SortDataType = Field(
        default=SortDataType.STRING,
        description="Type used when comparing extracted keys",
    )
    order: SortDirection = Field(
        default=SortDirection.ASCENDING,
        description="Ascending or descending order",
    )


class CountResultConfig(ConfigModel):
    """Options for count-only relations."""

    sum_counts: bool = Field(
        default=True,
        description="Merge all counts under one key into a single summed entry",
    )


class ResourceConfig(ConfigModel):
    """One node of the relation tree.

    Attributes:
        resource_type: FHIR resource type fetched by this relation.
        id: Optional relation key; defaults to the resource type.
        search_parameter: Reference search parameter on the target type used
            for reverse includes, or the reference field on the parent for
            forward references when no FHIRPath expression is given.
        fhir_path_expression: FHIRPath expression yielding references. Evaluated
            on the parent for forward references and on each candidate for
            reverse includes (instead of the search parameter).
        is_rev_include: True to search resources pointing at the parent.
        related_resources: Nested relations, resolved against each result.
        sort_configs: Sort keys applied to the results of this relation.
        conditional_fhir_path_expression: FHIRPath boolean filter applied
            per candidate; computed values are available as %name.
        result_as_count: Report only a count instead of the resources.
        count_result_config: Options for count-only relations.
    """

    resource_type: str = Field(
        ...,
        description="FHIR resource type",
        min_length=1,
        validation_alias=AliasChoices("resourceType", "resource", "resource_type"),
    )
    id: Optional[str] = Field(default=None, description="Relation key")
    search_parameter: Optional[str] = Field(
        default=None,
        description="Reference search parameter (reverse include) or reference field",
    )
    fhir_path_expression: Optional[str] = Field(
        default=None,
        description="FHIRPath to the reference(s) linking parent and candidate",
    )
    is_rev_include: bool = Field(
        default=True,
        description="Search resources that reference the parent",
    )
    related_resources: List["ResourceConfig"] = Field(
        default_factory=list,
        description="Nested relations resolved from each result",
    )
    sort_configs: List[SortConfig] = Field(
        default_factory=list,
        description="Sort keys applied in order",
    )
    conditional_fhir_path_expression: Optional[str] = Field(
        default=None,
        description="FHIRPath boolean filter applied per candidate",
    )
    result_as_count: bool = Field(
        default=False,
        description="Only count matching resources",
    )
    count_result_config: CountResultConfig = Field(
        default_factory=CountResultConfig,
        description="Count aggregation options",
    )

    @property
    def relation_key(self) -> str:
        """Key under which results are stored in the relation maps."""
        return self.id or self.resource_type


class FhirResourceConfig(ConfigModel):
    """Root resource configuration plus its relation tree."""

    base_resource: ResourceConfig = Field(..., description="Root resource configuration")
    related_resources: List[ResourceConfig] = Field(
        default_factory=list,
        description="Relations resolved from the root resource",
    )


ResourceConfig.model_rebuild()
