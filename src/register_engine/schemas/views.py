"""View configuration tree.

Only the structure the list materializer needs is modelled: container nodes
and list nodes with their resources and register card. Rendering properties
are accepted and ignored.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import AliasChoices, ConfigDict, Field

from register_engine.schemas.resource_config import ConfigModel, ResourceConfig, SortConfig
from register_engine.schemas.rule_config import RuleConfig


class ViewModel(ConfigModel):
    """Base for view nodes; unknown rendering keys are ignored."""

    model_config = ConfigDict(extra="ignore")


class TextView(ViewModel):
    view_type: Literal["TEXT"] = "TEXT"
    content: str = ""


class ColumnView(ViewModel):
    view_type: Literal["COLUMN"] = "COLUMN"
    children: List["ViewProperties"] = Field(default_factory=list)


class RowView(ViewModel):
    view_type: Literal["ROW"] = "ROW"
    children: List["ViewProperties"] = Field(default_factory=list)


class CardView(ViewModel):
    view_type: Literal["CARD"] = "CARD"
    content: List["ViewProperties"] = Field(default_factory=list)


class TabContent(ViewModel):
    title: str = ""
    content: List["ViewProperties"] = Field(default_factory=list)


class TabsView(ViewModel):
    view_type: Literal["TABS"] = "TABS"
    tabs: List[TabContent] = Field(default_factory=list)


class ListResource(ConfigModel):
    """Source of list items, selected from the parent's relation map.

    Attributes:
        id: Identifier of this list resource entry.
        resource_type: Type of the items.
        related_resource_id: Relation key in the parent map; defaults to
            the resource type.
        conditional_fhir_path_expression: FHIRPath boolean filter per item.
        sort_configs: Sort keys applied to the selected items.
        related_resources: Relations resolved around each item.
    """

    id: Optional[str] = None
    resource_type: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("resourceType", "resource", "resource_type"),
    )
    related_resource_id: Optional[str] = None
    conditional_fhir_path_expression: Optional[str] = None
    sort_configs: List[SortConfig] = Field(default_factory=list)
    related_resources: List[ResourceConfig] = Field(default_factory=list)

    @property
    def relation_key(self) -> str:
        return self.related_resource_id or self.resource_type


class RegisterCardConfig(ConfigModel):
    """Rules and views rendered for each row or list item."""

    rules: List[RuleConfig] = Field(default_factory=list)
    views: List["ViewProperties"] = Field(default_factory=list)


class ListProperties(ViewModel):
    """A list section; each item is rendered with the register card."""

    view_type: Literal["LIST"] = "LIST"
    id: str = Field(..., min_length=1)
    resources: List[ListResource] = Field(default_factory=list)
    register_card: RegisterCardConfig = Field(default_factory=RegisterCardConfig)


ViewProperties = Annotated[
    Union[TextView, ColumnView, RowView, CardView, TabsView, ListProperties],
    Field(discriminator="view_type"),
]

for _model in (ColumnView, RowView, CardView, TabContent, TabsView, RegisterCardConfig, ListProperties):
    _model.model_rebuild()
