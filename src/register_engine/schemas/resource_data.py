"""Data produced by the graph fetcher and the rules executor."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

Resource = Dict[str, Any]


@dataclass(frozen=True)
class RelatedResourceCount:
    """Count of related resources of one type under one parent."""

    resource_type: str
    parent_resource_id: Optional[str]
    count: int

    def to_dict(self) -> Dict[str, Any]:
        """Expression-friendly view bound into rule sessions."""
        return {
            "resourceType": self.resource_type,
            "parentResourceId": self.parent_resource_id,
            "count": self.count,
        }


@dataclass
class RepositoryResourceData:
    """A root resource with the relations fetched around it.

    Attributes:
        resource: The root resource.
        related_resources_map: Relation key to resources, flattened across
            parents and nesting depth.
        related_resources_count_map: Relation key to counts for count-only
            relations.
        secondary_repository_resource_data: Independent graphs loaded
            alongside the root (profile screens).
    """

    resource: Resource
    related_resources_map: Dict[str, List[Resource]] = field(default_factory=dict)
    related_resources_count_map: Dict[str, List[RelatedResourceCount]] = field(
        default_factory=dict
    )
    secondary_repository_resource_data: List["RepositoryResourceData"] = field(
        default_factory=list
    )

    @property
    def resource_type(self) -> str:
        return self.resource.get("resourceType", "")

    @property
    def resource_id(self) -> str:
        return self.resource.get("id", "")


@dataclass(frozen=True)
class ResourceData:
    """Display-ready values computed for one root resource.

    The computed map is read-only once handed out. Missing keys read as None.
    """

    base_resource_id: str
    base_resource_type: str
    computed_values_map: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({})
    )
    list_resource_data_map: Optional[Mapping[str, Iterable["ResourceData"]]] = None

    def __post_init__(self) -> None:
        if not isinstance(self.computed_values_map, MappingProxyType):
            object.__setattr__(
                self,
                "computed_values_map",
                MappingProxyType(dict(self.computed_values_map)),
            )
        if self.list_resource_data_map is not None and not isinstance(
            self.list_resource_data_map, MappingProxyType
        ):
            object.__setattr__(
                self,
                "list_resource_data_map",
                MappingProxyType(dict(self.list_resource_data_map)),
            )

    def get(self, name: str, default: Any = None) -> Any:
        """Return a computed value, or default when it was not computed."""
        return self.computed_values_map.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize, materializing list sections."""
        result: Dict[str, Any] = {
            "baseResourceId": self.base_resource_id,
            "baseResourceType": self.base_resource_type,
            "computedValuesMap": dict(self.computed_values_map),
        }
        if self.list_resource_data_map:
            result["listResourceDataMap"] = {
                list_id: [item.to_dict() for item in items]
                for list_id, items in self.list_resource_data_map.items()
            }
        return result
