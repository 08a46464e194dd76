"""
Register Engine - computes register rows and profiles from FHIR resources.

A register configuration names a base resource, the relations to fetch for
it, and a list of rules whose expressions compute display values. This
package fetches the resource graph from a store, fires the rules, and
returns ResourceData rows with lazily materialized list sections.
"""

__version__ = "0.1.0"

from register_engine.executor import ResourceDataRulesExecutor
from register_engine.fetcher import ResourceGraphFetcher
from register_engine.repository import RegisterRepository
from register_engine.schemas import RepositoryResourceData, ResourceData, RuleConfig

__all__ = [
    "RegisterRepository",
    "RepositoryResourceData",
    "ResourceData",
    "ResourceDataRulesExecutor",
    "ResourceGraphFetcher",
    "RuleConfig",
]
