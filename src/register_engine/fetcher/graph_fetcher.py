"""Resource graph fetcher.

Walks a relation configuration tree breadth first around a root resource
and returns the flattened relation and count maps. Query failures are
isolated per relation; only an unavailable store aborts the walk.
"""

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Sequence, Set, Tuple, TypeVar

from register_engine.errors import (
    EvaluationCancelledError,
    RelationFetchError,
    ResourceNotFoundError,
    RulesEngineError,
    StoreUnavailableError,
)
from register_engine.fhirpath.extractor import (
    FhirPathDataExtractor,
    default_extractor,
    extract_logical_id_uuid,
    reference_of,
    split_reference,
)
from register_engine.fhirpath.sorting import filter_resources, sort_resources
from register_engine.schemas.resource_config import FhirResourceConfig, ResourceConfig
from register_engine.schemas.resource_data import RelatedResourceCount, RepositoryResourceData, Resource
from register_engine.store.protocol import ResourceStore
from register_engine.store.query import ResourceQuery

logger = logging.getLogger(__name__)

T = TypeVar("T")

WorkItem = Tuple[Resource, Tuple[ResourceConfig, ...]]


class ResourceGraphFetcher:
    """Fetches the relation graph around root resources from a store."""

    def __init__(self, store: ResourceStore, extractor: Optional[FhirPathDataExtractor] = None):
        self.store = store
        self.extractor = extractor or default_extractor

    def fetch_graph(
        self,
        root: Resource,
        config: FhirResourceConfig,
        computed_values: Optional[Mapping[str, Any]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RepositoryResourceData:
        """Fetch every relation declared in config around root.

        Args:
            root: Root resource.
            config: Relation tree; its base resource describes root.
            computed_values: Values available to conditional filters as %name.
            cancel_event: Set to abandon the walk between work items.

        Returns:
            RepositoryResourceData with every declared relation key present.

        Raises:
            StoreUnavailableError: If the store cannot serve queries.
            EvaluationCancelledError: If cancel_event was set.
        """
        return self.fetch_related(root, config.related_resources, computed_values, cancel_event)

    def fetch_related(
        self,
        root: Resource,
        related_configs: Sequence[ResourceConfig],
        computed_values: Optional[Mapping[str, Any]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RepositoryResourceData:
        """Same as fetch_graph for a bare list of relation configs."""
        related_map, count_map = _declared_keys(related_configs)
        visited: Dict[str, Set[str]] = {}
        summed: Dict[str, RelatedResourceCount] = {}
        values = dict(computed_values or {})

        queue: Deque[WorkItem] = deque([(root, tuple(related_configs))])
        while queue:
            _check_cancelled(cancel_event)
            resource, child_configs = queue.popleft()

            for child in child_configs:
                _check_cancelled(cancel_event)
                key = child.relation_key
                try:
                    if child.result_as_count:
                        self._count_relation(resource, child, values, count_map, summed)
                        continue
                    candidates = self._candidates(resource, child)
                except RelationFetchError as e:
                    logger.warning(f"{e}; leaving relation empty for {reference_of(resource)}")
                    continue

                candidates = filter_resources(
                    candidates, child.conditional_fhir_path_expression, values, self.extractor
                )
                if child.sort_configs:
                    candidates = sort_resources(candidates, child.sort_configs, self.extractor)

                seen = visited.setdefault(key, set())
                for candidate in candidates:
                    related_map[key].append(candidate)
                    candidate_id = extract_logical_id_uuid(candidate.get("id"))
                    if candidate_id in seen:
                        continue
                    seen.add(candidate_id)
                    if child.related_resources:
                        queue.append((candidate, tuple(child.related_resources)))

        for key, entry in summed.items():
            count_map[key] = [entry]

        logger.debug(
            f"Fetched graph for {reference_of(root)}: "
            f"{ {key: len(items) for key, items in related_map.items()} }"
        )
        return RepositoryResourceData(
            resource=root,
            related_resources_map=related_map,
            related_resources_count_map=count_map,
        )

    def _candidates(self, resource: Resource, config: ResourceConfig) -> List[Resource]:
        key = config.relation_key
        if config.is_rev_include:
            if not config.search_parameter and not config.fhir_path_expression:
                raise RelationFetchError(key, "reverse include needs a search parameter")
            query = self._rev_include_query(resource, config)
            return self._guarded(key, lambda: self.store.search(query))

        resources: List[Resource] = []
        for target_id in self._forward_reference_ids(resource, config):
            try:
                resources.append(
                    self._guarded(key, lambda: self.store.get(config.resource_type, target_id))
                )
            except RelationFetchError as e:
                if isinstance(e.__cause__, ResourceNotFoundError):
                    logger.debug(f"{e}; skipping missing {config.resource_type}/{target_id}")
                    continue
                raise
        return resources

    def _rev_include_query(self, resource: Resource, config: ResourceConfig) -> ResourceQuery:
        return ResourceQuery.by_reference(
            resource_type=config.resource_type,
            reference_param=config.search_parameter,
            reference_value=reference_of(resource),
            reference_path=config.fhir_path_expression,
        )

    def _forward_reference_ids(self, resource: Resource, config: ResourceConfig) -> List[str]:
        """Logical ids referenced by resource that point at config's resource type."""
        if config.fhir_path_expression:
            try:
                values = self.extractor.extract_data(resource, config.fhir_path_expression)
            except RulesEngineError as e:
                raise RelationFetchError(config.relation_key, str(e)) from e
        elif config.search_parameter:
            values = [resource.get(config.search_parameter)]
        else:
            raise RelationFetchError(config.relation_key, "forward reference needs a path or field")

        ids: List[str] = []
        for value in _flatten(values):
            reference = value.get("reference") if isinstance(value, dict) else value
            if not isinstance(reference, str) or not reference:
                continue
            reference_type, target_id = split_reference(reference)
            if reference_type is not None and reference_type != config.resource_type:
                continue
            if target_id and target_id not in ids:
                ids.append(target_id)
        return ids

    def _count_relation(
        self,
        resource: Resource,
        config: ResourceConfig,
        computed_values: Mapping[str, Any],
        count_map: Dict[str, List[RelatedResourceCount]],
        summed: Dict[str, RelatedResourceCount],
    ) -> None:
        key = config.relation_key
        if config.is_rev_include and not config.conditional_fhir_path_expression:
            query = self._rev_include_query(resource, config)
            count = self._guarded(key, lambda: self.store.count(query))
        else:
            candidates = filter_resources(
                self._candidates(resource, config),
                config.conditional_fhir_path_expression,
                computed_values,
                self.extractor,
            )
            count = len(candidates)

        if config.count_result_config.sum_counts:
            previous = summed.get(key)
            total = count + (previous.count if previous else 0)
            summed[key] = RelatedResourceCount(config.resource_type, None, total)
        else:
            count_map[key].append(
                RelatedResourceCount(
                    config.resource_type,
                    extract_logical_id_uuid(resource.get("id")),
                    count,
                )
            )

    def _guarded(self, key: str, call: Callable[[], T]) -> T:
        """Run a store call, turning per-query failures into RelationFetchError."""
        try:
            return call()
        except (StoreUnavailableError, EvaluationCancelledError):
            raise
        except Exception as e:
            raise RelationFetchError(key, f"query failed: {e}") from e


def _declared_keys(
    configs: Sequence[ResourceConfig],
) -> Tuple[Dict[str, List[Resource]], Dict[str, List[RelatedResourceCount]]]:
    """Empty relation and count maps holding every key declared in the tree."""
    related_map: Dict[str, List[Resource]] = {}
    count_map: Dict[str, List[RelatedResourceCount]] = {}
    pending = deque(configs)
    while pending:
        config = pending.popleft()
        if config.result_as_count:
            count_map.setdefault(config.relation_key, [])
        else:
            related_map.setdefault(config.relation_key, [])
            pending.extend(config.related_resources)
    return related_map, count_map


def _flatten(values: Sequence[Any]) -> List[Any]:
    flat: List[Any] = []
    for value in values:
        if isinstance(value, list):
            flat.extend(value)
        elif value is not None:
            flat.append(value)
    return flat


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise EvaluationCancelledError("Graph fetch cancelled")


def fetch_graph(
    root: Resource,
    config: FhirResourceConfig,
    store: ResourceStore,
    computed_values: Optional[Mapping[str, Any]] = None,
) -> RepositoryResourceData:
    """Fetch the relation graph around root with a one-off fetcher."""
    return ResourceGraphFetcher(store).fetch_graph(root, config, computed_values)
