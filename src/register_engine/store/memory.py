"""In-memory resource store backed by FHIR JSON resources.

Used by the CLI (bundles loaded from disk), by list materialization
(snapshot of already-fetched resources) and by tests.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from register_engine.errors import ResourceNotFoundError, StoreUnavailableError
from register_engine.fhirpath.extractor import (
    FhirPathDataExtractor,
    default_extractor,
    extract_logical_id_uuid,
)
from register_engine.store.query import ResourceQuery

logger = logging.getLogger(__name__)


def _reference_strings(value: Any) -> List[str]:
    """Flatten a Reference, a list of References or a plain string."""
    if value is None:
        return []
    if isinstance(value, list):
        found: List[str] = []
        for item in value:
            found.extend(_reference_strings(item))
        return found
    if isinstance(value, dict):
        reference = value.get("reference")
        return [reference] if isinstance(reference, str) else []
    if isinstance(value, str):
        return [value]
    return []


def _same_reference(candidate: str, target: str) -> bool:
    """Compare "Type/id" references, tolerating absolute and versioned forms."""
    target_type, _, target_id = target.partition("/")
    parts = candidate.rstrip("/").split("/")
    if "_history" in parts:
        parts = parts[: parts.index("_history")]
    if len(parts) >= 2:
        return parts[-2] == target_type and parts[-1] == target_id
    return parts[-1] == target_id


class InMemoryResourceStore:
    """Thread-safe, read-mostly store of resources keyed by type and id."""

    def __init__(
        self,
        resources: Optional[Iterable[Dict[str, Any]]] = None,
        extractor: Optional[FhirPathDataExtractor] = None,
    ):
        self._lock = threading.RLock()
        self._by_type: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._closed = False
        self._extractor = extractor or default_extractor
        for resource in resources or []:
            self.add(resource)

    @classmethod
    def from_resources(cls, resources: Iterable[Dict[str, Any]]) -> "InMemoryResourceStore":
        return cls(resources)

    @classmethod
    def from_bundle(cls, bundle: Dict[str, Any]) -> "InMemoryResourceStore":
        """Build a store from a FHIR Bundle's entries."""
        if bundle.get("resourceType") != "Bundle":
            raise ValueError(f"Expected a Bundle, got {bundle.get('resourceType')!r}")
        resources = [
            entry["resource"]
            for entry in bundle.get("entry", [])
            if isinstance(entry, dict) and isinstance(entry.get("resource"), dict)
        ]
        logger.debug(f"Loaded {len(resources)} resources from bundle")
        return cls(resources)

    @classmethod
    def from_file(cls, path: Path) -> "InMemoryResourceStore":
        """Load a Bundle (or a JSON array of resources) from disk."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, list):
            return cls(data)
        return cls.from_bundle(data)

    def add(self, resource: Dict[str, Any]) -> None:
        resource_type = resource.get("resourceType")
        resource_id = extract_logical_id_uuid(resource.get("id"))
        if not resource_type or not resource_id:
            raise ValueError("Resources need a resourceType and an id")
        with self._lock:
            self._by_type.setdefault(resource_type, {})[resource_id] = resource

    def close(self) -> None:
        """Close the store; every later call raises StoreUnavailableError."""
        with self._lock:
            self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise StoreUnavailableError("Resource store is closed")

    def _matching(self, query: ResourceQuery) -> List[Dict[str, Any]]:
        with self._lock:
            self._check_open()
            candidates = list(self._by_type.get(query.resource_type, {}).values())

        if query.ids is not None:
            wanted = set(query.ids)
            candidates = [r for r in candidates if extract_logical_id_uuid(r.get("id")) in wanted]

        if query.reference_value is not None:
            candidates = [
                r for r in candidates
                if any(_same_reference(ref, query.reference_value) for ref in self._references(r, query))
            ]

        if query.filter_expression:
            candidates = [
                r for r in candidates
                if self._extractor.evaluate_to_boolean(r, query.filter_expression)
            ]
        return candidates

    def _references(self, resource: Dict[str, Any], query: ResourceQuery) -> List[str]:
        if query.reference_path:
            return _reference_strings(self._extractor.extract_data(resource, query.reference_path))
        if query.reference_param:
            # Search parameters map to elements of the same name ("subject", "part-of" -> partOf).
            element = query.reference_param
            if "-" in element:
                head, *rest = element.split("-")
                element = head + "".join(word.capitalize() for word in rest)
            return _reference_strings(resource.get(element))
        return []

    def count(self, query: ResourceQuery) -> int:
        return len(self._matching(query))

    def search(self, query: ResourceQuery) -> List[Dict[str, Any]]:
        results = self._matching(query)
        end = None if query.limit is None else query.offset + query.limit
        return results[query.offset:end]

    def get(self, resource_type: str, resource_id: str) -> Dict[str, Any]:
        logical_id = extract_logical_id_uuid(resource_id)
        with self._lock:
            self._check_open()
            resource = self._by_type.get(resource_type, {}).get(logical_id)
        if resource is None:
            raise ResourceNotFoundError(resource_type, logical_id)
        return resource

    def __len__(self) -> int:
        with self._lock:
            return sum(len(resources) for resources in self._by_type.values())
