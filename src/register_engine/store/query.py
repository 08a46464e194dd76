"""Queries issued by the engine against a resource store."""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class ResourceQuery:
    """Search for resources of one type.

    Attributes:
        resource_type: Type searched.
        reference_param: Reference search parameter matched against
            reference_value (reverse includes).
        reference_value: Relative reference "Type/id" the parameter must hold.
        reference_path: FHIRPath on candidates yielding the reference, used
            instead of the parameter name when set.
        ids: Restrict results to these logical ids.
        filter_expression: FHIRPath boolean filter applied by the store.
        offset: Results skipped (paging).
        limit: Maximum results returned; None for all.
    """

    resource_type: str
    reference_param: Optional[str] = None
    reference_value: Optional[str] = None
    reference_path: Optional[str] = None
    ids: Optional[Tuple[str, ...]] = None
    filter_expression: Optional[str] = None
    offset: int = 0
    limit: Optional[int] = None

    @classmethod
    def by_reference(
        cls,
        resource_type: str,
        reference_param: Optional[str],
        reference_value: str,
        reference_path: Optional[str] = None,
    ) -> "ResourceQuery":
        """Reverse-include query: resources of resource_type pointing at reference_value."""
        return cls(
            resource_type=resource_type,
            reference_param=reference_param,
            reference_value=reference_value,
            reference_path=reference_path,
        )

    def page(self, page: int, page_size: int) -> "ResourceQuery":
        """Return this query restricted to one zero-based page."""
        return ResourceQuery(
            resource_type=self.resource_type,
            reference_param=self.reference_param,
            reference_value=self.reference_value,
            reference_path=self.reference_path,
            ids=self.ids,
            filter_expression=self.filter_expression,
            offset=page * page_size,
            limit=page_size,
        )
