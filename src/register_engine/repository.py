"""Register and profile loading.

A register page is a page of base resources; each row is fetched and its
rules fired concurrently on a thread pool. A profile is one resource plus
optional secondary graphs.
"""

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Dict, List, Mapping, Optional

from register_engine.config.settings import EngineSettings, get_settings
from register_engine.errors import EvaluationCancelledError
from register_engine.executor import ResourceDataRulesExecutor
from register_engine.fetcher.graph_fetcher import ResourceGraphFetcher
from register_engine.fhirpath.sorting import sort_resources
from register_engine.rules.trace import RuleTrace
from register_engine.schemas.register import ProfileConfiguration, RegisterConfiguration
from register_engine.schemas.resource_config import FhirResourceConfig, ResourceConfig
from register_engine.schemas.resource_data import RepositoryResourceData, Resource, ResourceData
from register_engine.store.protocol import ResourceStore
from register_engine.store.query import ResourceQuery

logger = logging.getLogger(__name__)


class RegisterRepository:
    """Loads register pages, register counts and profiles from a store."""

    def __init__(
        self,
        store: ResourceStore,
        executor: Optional[ResourceDataRulesExecutor] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.store = store
        self.executor = executor or ResourceDataRulesExecutor()
        self.settings = settings or get_settings()
        self.fetcher = ResourceGraphFetcher(store)

    def _base_query(self, base: ResourceConfig) -> ResourceQuery:
        return ResourceQuery(
            resource_type=base.resource_type,
            filter_expression=base.conditional_fhir_path_expression,
        )

    def _search_base_page(self, base: ResourceConfig, page: int, page_size: int) -> List[Resource]:
        query = self._base_query(base)
        if not base.sort_configs:
            return self.store.search(query.page(page, page_size))
        # Sorted registers page over the sorted result, not store order.
        ordered = sort_resources(self.store.search(query), base.sort_configs)
        start = page * page_size
        return ordered[start:start + page_size]

    def count_register_data(self, register_configuration: RegisterConfiguration) -> int:
        """Number of base resources in the register."""
        base = register_configuration.fhir_resource.base_resource
        return self.store.count(self._base_query(base))

    def load_register_data(
        self,
        register_configuration: RegisterConfiguration,
        current_page: int = 0,
        params: Optional[Mapping[str, Any]] = None,
        traces: Optional[Dict[str, RuleTrace]] = None,
    ) -> List[ResourceData]:
        """Load one page of register rows.

        Rows are evaluated concurrently and returned in store order. If the
        store becomes unavailable, the remaining rows are cancelled and the
        error propagates: no partial page is returned.

        Args:
            register_configuration: Register to load.
            current_page: Zero-based page number.
            params: Caller overrides applied to every row.
            traces: When given, filled with one RuleTrace per row id.
        """
        fhir_resource = register_configuration.fhir_resource
        page_size = register_configuration.page_size or self.settings.page_size
        base_resources = self._search_base_page(fhir_resource.base_resource, current_page, page_size)
        if not base_resources:
            return []

        card = register_configuration.register_card
        cancel_event = threading.Event()

        def load_row(resource: Resource) -> ResourceData:
            trace = RuleTrace() if traces is not None else None
            repository_data = self.fetcher.fetch_graph(
                resource, fhir_resource, params, cancel_event
            )
            row = self.executor.process_resource_data(
                repository_data, card.rules, params, card.views, trace
            )
            if traces is not None:
                traces[row.base_resource_id] = trace
            return row

        logger.info(
            f"Loading register '{register_configuration.id}' page {current_page}: "
            f"{len(base_resources)} rows with {self.settings.max_workers} workers"
        )
        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as pool:
            futures = [pool.submit(load_row, resource) for resource in base_resources]
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future in done and future.exception() is not None:
                    cancel_event.set()
                    for pending in futures:
                        pending.cancel()
                    error = future.exception()
                    if not isinstance(error, EvaluationCancelledError):
                        logger.error(f"Register '{register_configuration.id}' page {current_page} aborted: {error}")
                    raise error

        return [future.result() for future in futures]

    def load_profile_data(
        self,
        profile_configuration: ProfileConfiguration,
        resource_id: str,
        params: Optional[Mapping[str, Any]] = None,
        trace: Optional[RuleTrace] = None,
    ) -> ResourceData:
        """Load a profile: root resource, relations, secondary graphs and lists.

        Raises:
            ResourceNotFoundError: If the root resource does not exist.
            StoreUnavailableError: If the store cannot serve queries.
        """
        fhir_resource = profile_configuration.fhir_resource
        root = self.store.get(fhir_resource.base_resource.resource_type, resource_id)
        repository_data = self.fetcher.fetch_graph(root, fhir_resource, params)
        repository_data.secondary_repository_resource_data.extend(
            self._load_secondary(profile_configuration.secondary_resources, params)
        )
        return self.executor.process_resource_data(
            repository_data,
            profile_configuration.rules,
            params,
            profile_configuration.views,
            trace,
        )

    def _load_secondary(
        self,
        configs: List[FhirResourceConfig],
        params: Optional[Mapping[str, Any]],
    ) -> List[RepositoryResourceData]:
        secondary: List[RepositoryResourceData] = []
        for config in configs:
            for resource in self.store.search(self._base_query(config.base_resource)):
                secondary.append(self.fetcher.fetch_graph(resource, config, params))
        logger.debug(f"Loaded {len(secondary)} secondary graphs")
        return secondary
