"""List view materialization.

Finds LIST nodes anywhere in a view tree and turns each into a lazy,
restartable sequence of ResourceData. Items come from the parent's
already-fetched relations; per-item relations are resolved against a
snapshot of those relations, never against the live store.
"""

import logging
import threading
from collections import deque
from typing import TYPE_CHECKING, Any, Deque, Dict, Iterator, List, Mapping, Optional, Sequence

from register_engine.errors import EvaluationCancelledError
from register_engine.fetcher.graph_fetcher import ResourceGraphFetcher
from register_engine.fhirpath.extractor import FhirPathDataExtractor, default_extractor, extract_logical_id_uuid
from register_engine.fhirpath.sorting import filter_resources, sort_resources
from register_engine.schemas.resource_data import RepositoryResourceData, Resource, ResourceData
from register_engine.schemas.views import (
    CardView,
    ColumnView,
    ListProperties,
    RowView,
    TabsView,
    ViewProperties,
)
from register_engine.store.memory import InMemoryResourceStore

if TYPE_CHECKING:
    from register_engine.executor import ResourceDataRulesExecutor

logger = logging.getLogger(__name__)


class ListResourceDataSequence:
    """Lazy, restartable sequence of list items.

    Nothing is computed until iteration; every new iteration recomputes
    from the captured inputs, one item at a time.
    """

    def __init__(
        self,
        materializer: "ListMaterializer",
        list_properties: ListProperties,
        related_resources_map: Mapping[str, List[Resource]],
        computed_values_map: Mapping[str, Any],
        cancel_event: Optional[threading.Event] = None,
    ):
        self._materializer = materializer
        self.list_properties = list_properties
        self._related_resources_map = {key: list(items) for key, items in related_resources_map.items()}
        self._computed_values_map = dict(computed_values_map)
        self._cancel_event = cancel_event

    @property
    def id(self) -> str:
        return self.list_properties.id

    def __iter__(self) -> Iterator[ResourceData]:
        return self._materializer.process_list_resource_data(
            self.list_properties,
            self._related_resources_map,
            self._computed_values_map,
            self._cancel_event,
        )

    def __repr__(self) -> str:
        return f"ListResourceDataSequence(id={self.id!r})"


class ListMaterializer:
    """Materializes list sections through the rules executor."""

    def __init__(
        self,
        executor: "ResourceDataRulesExecutor",
        extractor: Optional[FhirPathDataExtractor] = None,
    ):
        self.executor = executor
        self.extractor = extractor or default_extractor

    def retrieve_list_properties(
        self,
        views: Sequence[ViewProperties],
        cancel_event: Optional[threading.Event] = None,
    ) -> List[ListProperties]:
        """Return every list node in the view tree, breadth first.

        Lists nested in columns, rows, cards, tabs and in a list's own
        register card views are included.
        """
        found: List[ListProperties] = []
        pending: Deque[ViewProperties] = deque(views)
        while pending:
            if cancel_event is not None and cancel_event.is_set():
                raise EvaluationCancelledError("List discovery cancelled")
            view = pending.popleft()
            if isinstance(view, ListProperties):
                found.append(view)
                pending.extend(view.register_card.views)
            elif isinstance(view, (ColumnView, RowView)):
                pending.extend(view.children)
            elif isinstance(view, CardView):
                pending.extend(view.content)
            elif isinstance(view, TabsView):
                for tab in view.tabs:
                    pending.extend(tab.content)
        return found

    def materialize(
        self,
        views: Sequence[ViewProperties],
        repository_resource_data: RepositoryResourceData,
        computed_values_map: Mapping[str, Any],
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, ListResourceDataSequence]:
        """Map each list id in the views to its lazy item sequence."""
        sequences: Dict[str, ListResourceDataSequence] = {}
        for list_properties in self.retrieve_list_properties(views, cancel_event):
            if list_properties.id in sequences:
                logger.warning(f"Duplicate list id '{list_properties.id}': the later list replaces the earlier one")
            sequences[list_properties.id] = ListResourceDataSequence(
                self,
                list_properties,
                repository_resource_data.related_resources_map,
                computed_values_map,
                cancel_event,
            )
        return sequences

    def process_list_resource_data(
        self,
        list_properties: ListProperties,
        related_resources_map: Mapping[str, List[Resource]],
        computed_values_map: Mapping[str, Any],
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[ResourceData]:
        """Yield one ResourceData per list item.

        Items of every list resource are selected from related_resources_map
        by relation key, filtered and sorted. Each item's own relations are
        fetched from a snapshot of the parent map, its rules fired, and its
        output laid over the parent's computed values.
        """
        snapshot: Optional[InMemoryResourceStore] = None
        rules = list_properties.register_card.rules

        for list_resource in list_properties.resources:
            items = related_resources_map.get(list_resource.relation_key, [])
            items = filter_resources(
                items,
                list_resource.conditional_fhir_path_expression,
                computed_values_map,
                self.extractor,
            )
            if list_resource.sort_configs:
                items = sort_resources(items, list_resource.sort_configs, self.extractor)

            for item in items:
                if cancel_event is not None and cancel_event.is_set():
                    raise EvaluationCancelledError(f"List '{list_properties.id}' cancelled")

                if list_resource.related_resources:
                    if snapshot is None:
                        snapshot = _snapshot_store(related_resources_map)
                    item_data = ResourceGraphFetcher(snapshot, self.extractor).fetch_related(
                        item, list_resource.related_resources, computed_values_map, cancel_event
                    )
                else:
                    item_data = RepositoryResourceData(resource=item)

                item_values = self.executor.compute_resource_data_rules(rules, item_data)
                yield ResourceData(
                    base_resource_id=extract_logical_id_uuid(item.get("id")),
                    base_resource_type=item.get("resourceType", ""),
                    computed_values_map={**computed_values_map, **item_values},
                )


def _snapshot_store(related_resources_map: Mapping[str, List[Resource]]) -> InMemoryResourceStore:
    """Read-only store over resources that were already fetched."""
    store = InMemoryResourceStore()
    for key, resources in related_resources_map.items():
        for resource in resources:
            try:
                store.add(resource)
            except ValueError as e:
                logger.warning(f"Resource under '{key}' left out of list snapshot: {e}")
    return store
