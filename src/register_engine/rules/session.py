"""Per-evaluation working memory ("facts") for rule firing.

A Session is built from one RepositoryResourceData, fired once, and then
discarded. It is bound to the thread that created it and cannot be copied
or pickled, so it cannot leak into another concurrent evaluation.
"""

import logging
import threading
from typing import Any, Dict, Iterator, List, Mapping, Optional

from register_engine.errors import MissingBindingError, RuleEvaluationError, SessionReuseError
from register_engine.expressions.namespaces import math_utils, string_utils
from register_engine.fhirpath.extractor import FhirPathDataExtractor, default_extractor
from register_engine.rules.date_service import DateService
from register_engine.rules.service import RulesEngineService
from register_engine.schemas.resource_data import RepositoryResourceData

logger = logging.getLogger(__name__)

DATA = "data"
FHIR_PATH = "fhirPath"
SERVICE = "service"
DATE_SERVICE = "dateService"
STRING_UTILS = "StringUtils"
MATH = "Math"

RESERVED_NAMES = frozenset({DATA, FHIR_PATH, SERVICE, DATE_SERVICE, STRING_UTILS, MATH})


class OutputMap:
    """Computed values written by rules, exposed to expressions as ``data``."""

    EXPOSED = {
        "put": "put",
        "putAll": "put_all",
        "get": "get",
        "getOrDefault": "get_or_default",
        "containsKey": "contains_key",
        "remove": "remove",
        "size": "size",
        "isEmpty": "is_empty",
    }

    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}

    def put(self, key: str, value: Any) -> Any:
        previous = self._values.get(key)
        self._values[str(key)] = value
        return previous

    def put_all(self, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            self.put(key, value)

    def get(self, key: str) -> Any:
        return self._values.get(key)

    def get_or_default(self, key: str, default: Any) -> Any:
        return self._values.get(key, default)

    def contains_key(self, key: str) -> bool:
        return key in self._values

    def remove(self, key: str) -> Any:
        return self._values.pop(key, None)

    def size(self) -> int:
        return len(self._values)

    def is_empty(self) -> bool:
        return not self._values

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._values)


class Session:
    """Facts for a single rule-firing pass.

    Bindings:
        - the root resource under its resource type (e.g. ``Patient``)
        - every relation key to its list of resources
        - every count key to a list of {resourceType, parentResourceId, count}
        - secondary repository data, merged under the same conventions
        - ``data``, ``fhirPath``, ``service``, ``dateService``, ``StringUtils``, ``Math``
        - caller params as top-level names

    Names not bound as facts fall back to values already written to
    ``data``, so later rules can read earlier outputs directly.
    """

    def __init__(
        self,
        repository_resource_data: Optional[RepositoryResourceData],
        params: Optional[Mapping[str, Any]] = None,
        extractor: Optional[FhirPathDataExtractor] = None,
        date_service: Optional[DateService] = None,
    ):
        self._owner = threading.get_ident()
        self._fired = False
        self.output = OutputMap()
        self.extractor = extractor or default_extractor
        self.date_service = date_service or DateService()
        self.params: Dict[str, Any] = dict(params or {})
        self._facts: Dict[str, Any] = {}

        if repository_resource_data is not None:
            self._bind_repository_data(repository_resource_data, primary=True)
            for secondary in repository_resource_data.secondary_repository_resource_data:
                self._bind_repository_data(secondary, primary=False)

        for key, value in self.params.items():
            if key in RESERVED_NAMES:
                logger.warning(f"Ignoring param '{key}': name is reserved for rule helpers")
                continue
            self._facts[key] = value

        self._facts[DATA] = self.output
        self._facts[FHIR_PATH] = self.extractor
        self._facts[SERVICE] = RulesEngineService(self)
        self._facts[DATE_SERVICE] = self.date_service
        self._facts[STRING_UTILS] = string_utils
        self._facts[MATH] = math_utils

    def _bind_repository_data(self, data: RepositoryResourceData, primary: bool) -> None:
        resource_type = data.resource_type
        if resource_type and (primary or resource_type not in self._facts):
            self._facts[resource_type] = data.resource

        for key, resources in data.related_resources_map.items():
            existing = self._facts.get(key)
            if primary or not isinstance(existing, list):
                self._facts[key] = list(resources)
            else:
                existing.extend(resources)

        for key, counts in data.related_resources_count_map.items():
            entries = [count.to_dict() for count in counts]
            existing = self._facts.get(key)
            if primary or not isinstance(existing, list):
                self._facts[key] = entries
            else:
                existing.extend(entries)

    def _check_thread(self) -> None:
        if threading.get_ident() != self._owner:
            raise SessionReuseError("Session used from a thread other than the one that created it")

    def begin_firing(self) -> None:
        """Mark the session as fired; a session can be fired only once."""
        self._check_thread()
        if self._fired:
            raise SessionReuseError("Session has already been fired; create a new session")
        self._fired = True

    @property
    def fired(self) -> bool:
        return self._fired

    def facts(self) -> Mapping[str, Any]:
        """Read-only view of bound facts (helpers included)."""
        return dict(self._facts)

    def related_resources(self, key: str) -> List[Dict[str, Any]]:
        """Return the resource list bound under key, or an empty list."""
        value = self._facts.get(key)
        return value if isinstance(value, list) else []

    # Bindings protocol

    def lookup(self, name: str) -> Any:
        self._check_thread()
        if name in self._facts:
            return self._facts[name]
        if name in self.output:
            return self.output.get(name)
        raise MissingBindingError(name)

    def assign(self, name: str, value: Any) -> None:
        self._check_thread()
        if name in RESERVED_NAMES:
            raise RuleEvaluationError(f"Cannot assign to reserved name '{name}'")
        self.output.put(name, value)

    # A session is never shared: refuse copies and pickling.

    def __copy__(self):
        raise TypeError("Session cannot be copied; create a new session per evaluation")

    def __deepcopy__(self, memo):
        raise TypeError("Session cannot be copied; create a new session per evaluation")

    def __reduce_ex__(self, protocol):
        raise TypeError("Session cannot be pickled")


def new_session(
    repository_resource_data: Optional[RepositoryResourceData],
    params: Optional[Mapping[str, Any]] = None,
) -> Session:
    """Create a fresh session for one evaluation."""
    return Session(repository_resource_data, params)
