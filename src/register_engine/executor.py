"""Resource data rules executor.

Combines fetched relation data with a compiled rule set to produce one
ResourceData per root resource.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from register_engine.fhirpath.extractor import extract_logical_id_uuid
from register_engine.list_materializer import ListMaterializer
from register_engine.rules.engine import RuleEngine
from register_engine.rules.session import Session
from register_engine.rules.trace import RuleTrace
from register_engine.schemas.resource_data import RepositoryResourceData, ResourceData
from register_engine.schemas.rule_config import RuleConfig
from register_engine.schemas.views import ViewProperties

logger = logging.getLogger(__name__)


class ResourceDataRulesExecutor:
    """Fires rules over repository data and builds ResourceData.

    Safe to share across threads: each call builds its own Session and the
    compiled rule sets it reuses are immutable.
    """

    def __init__(self, rule_engine: Optional[RuleEngine] = None):
        self.rule_engine = rule_engine or RuleEngine()
        self.list_materializer = ListMaterializer(self)

    def compute_resource_data_rules(
        self,
        rule_configs: Sequence[RuleConfig],
        repository_resource_data: Optional[RepositoryResourceData],
        params: Optional[Mapping[str, Any]] = None,
        trace: Optional[RuleTrace] = None,
    ) -> Dict[str, Any]:
        """Fire rules in a fresh session and return the rule output.

        The output is keyed by rule name (or by the keys written with
        ``data.put``); params are bound as facts but not copied into it.
        """
        rule_set = self.rule_engine.compile(rule_configs)
        session = Session(repository_resource_data, params)
        return self.rule_engine.fire(rule_set, session, trace)

    def process_resource_data(
        self,
        repository_resource_data: RepositoryResourceData,
        rule_configs: Sequence[RuleConfig],
        params: Optional[Mapping[str, Any]] = None,
        views: Optional[List[ViewProperties]] = None,
        trace: Optional[RuleTrace] = None,
    ) -> ResourceData:
        """Compute ResourceData for one root resource.

        Args:
            repository_resource_data: Root resource with its fetched relations.
            rule_configs: Rules to fire.
            params: Caller overrides (e.g. navigation arguments); they win
                over rule output on key collisions.
            views: When given, list sections found in them are attached as
                lazy sequences.
            trace: Optional collector of per-rule outcomes.
        """
        params = dict(params or {})
        computed = self.compute_resource_data_rules(
            rule_configs, repository_resource_data, params, trace
        )
        computed.update(params)

        list_map = None
        if views:
            list_map = self.list_materializer.materialize(views, repository_resource_data, computed)

        resource = repository_resource_data.resource
        logger.debug(
            f"Computed {len(computed)} values for {resource.get('resourceType')}/{resource.get('id')}"
            f" with {len(list_map or {})} list sections"
        )
        return ResourceData(
            base_resource_id=extract_logical_id_uuid(resource.get("id")),
            base_resource_type=resource.get("resourceType", ""),
            computed_values_map=computed,
            list_resource_data_map=list_map,
        )
