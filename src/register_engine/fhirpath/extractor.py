"""FHIRPath extraction over FHIR JSON resources.

Thin wrapper around fhirpathpy used by relation filters, sort keys,
forward references and the ``fhirPath`` rule helper.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from fhirpathpy import evaluate

from register_engine.errors import RuleEvaluationError

logger = logging.getLogger(__name__)


def split_reference(reference: str) -> Tuple[Optional[str], str]:
    """Split "Type/id", "Type/id/_history/v" or an absolute URL into type and id."""
    parts = [part for part in reference.split("/") if part]
    if "_history" in parts:
        parts = parts[: parts.index("_history")]
    if not parts:
        return None, ""
    if len(parts) == 1:
        return None, parts[0]
    return parts[-2], parts[-1]


def extract_logical_id_uuid(reference: Optional[str]) -> str:
    """Return the logical id from a reference or versioned id.

    "Patient/1/_history/2", "Patient/1" and "http://h/fhir/Patient/1" give
    "1"; a bare "1" is unchanged.
    """
    if not reference:
        return ""
    return split_reference(reference)[1]


def reference_of(resource: Dict[str, Any]) -> str:
    """Return the relative reference "Type/id" for a resource."""
    return f"{resource.get('resourceType', '')}/{extract_logical_id_uuid(resource.get('id'))}"


def _primitive_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return ""
    return str(value)


class FhirPathDataExtractor:
    """Evaluates FHIRPath expressions against resources.

    Exposed to rules as ``fhirPath`` with the camelCase methods listed in
    EXPOSED.
    """

    EXPOSED = {
        "extractValue": "extract_value",
        "extractData": "extract_data",
        "evaluateToBoolean": "evaluate_to_boolean",
        "extractLogicalIdUuid": "extract_logical_id_uuid",
    }

    def extract_data(
        self,
        resource: Any,
        expression: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> List[Any]:
        """Evaluate an expression and return all result items.

        Args:
            resource: Resource (or any JSON value) the path is evaluated on.
            expression: FHIRPath expression.
            variables: Environment variables, referenced as %name.

        Returns:
            List of results; empty when the resource is None or nothing matches.

        Raises:
            RuleEvaluationError: If the expression is invalid.
        """
        if resource is None or not expression:
            return []
        try:
            return list(evaluate(resource, expression, context=dict(variables or {})))
        except Exception as e:
            raise RuleEvaluationError(f"FHIRPath '{expression}' failed: {e}") from e

    def extract_value(self, resource: Any, expression: str) -> str:
        """Return the first result as a primitive string, or "" when empty."""
        results = self.extract_data(resource, expression)
        if not results:
            return ""
        return _primitive_string(results[0])

    def evaluate_to_boolean(
        self,
        resource: Any,
        expression: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Evaluate an expression as a boolean.

        An empty result is false, a single boolean is its own value, any other
        non-empty result is true unless it holds a false item.
        """
        results = self.extract_data(resource, expression, variables)
        if not results:
            return False
        if len(results) == 1 and isinstance(results[0], bool):
            return results[0]
        return all(item is not False for item in results)

    def extract_logical_id_uuid(self, reference: Optional[str]) -> str:
        return extract_logical_id_uuid(reference)

    def extract_references(self, resource: Dict[str, Any], expression: str) -> List[str]:
        """Return logical ids of references found with an expression.

        Accepts Reference elements ({"reference": "Type/id"}) and plain strings.
        """
        ids: List[str] = []
        for item in self.extract_data(resource, expression):
            if isinstance(item, dict):
                item = item.get("reference")
            if isinstance(item, str) and item:
                ids.append(extract_logical_id_uuid(item))
        return ids


default_extractor = FhirPathDataExtractor()
