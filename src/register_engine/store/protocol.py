"""Resource store protocol.

The engine builds queries; the store only executes them. Implementations
must be safe for concurrent reads because one store is shared by every
row evaluated for a register page.
"""

from typing import Any, Dict, List, Protocol, runtime_checkable

from register_engine.store.query import ResourceQuery


@runtime_checkable
class ResourceStore(Protocol):
    """Read access to FHIR resources."""

    def count(self, query: ResourceQuery) -> int:
        """Count resources matching a query (offset and limit ignored).

        Raises:
            StoreUnavailableError: If the store cannot serve queries.
        """
        ...

    def search(self, query: ResourceQuery) -> List[Dict[str, Any]]:
        """Return resources matching a query, in store order.

        Raises:
            StoreUnavailableError: If the store cannot serve queries.
        """
        ...

    def get(self, resource_type: str, resource_id: str) -> Dict[str, Any]:
        """Return one resource by type and logical id.

        Raises:
            ResourceNotFoundError: If no such resource exists.
            StoreUnavailableError: If the store cannot serve queries.
        """
        ...
