"""Filtering and sorting resources with FHIRPath expressions."""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from register_engine.errors import RuleEvaluationError
from register_engine.fhirpath.extractor import FhirPathDataExtractor, default_extractor
from register_engine.schemas.resource_config import SortConfig, SortDataType, SortDirection
from register_engine.utils.date_parsing import parse_fhir_date, parse_fhir_datetime, to_naive_utc

logger = logging.getLogger(__name__)


def _to_decimal(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_integer(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_boolean(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    return None


def _to_datetime(value: Any):
    parsed = parse_fhir_datetime(value)
    return to_naive_utc(parsed) if parsed else None


_CONVERTERS: Dict[SortDataType, Callable[[Any], Any]] = {
    SortDataType.STRING: lambda v: None if v is None else str(v),
    SortDataType.INTEGER: _to_integer,
    SortDataType.DECIMAL: _to_decimal,
    SortDataType.DATE: parse_fhir_date,
    SortDataType.DATETIME: _to_datetime,
    SortDataType.BOOLEAN: _to_boolean,
}


def sort_resources(
    resources: Sequence[Dict[str, Any]],
    sort_configs: Sequence[SortConfig],
    extractor: Optional[FhirPathDataExtractor] = None,
) -> List[Dict[str, Any]]:
    """Sort resources by one or more FHIRPath keys.

    The first config is the primary key. Resources whose key is missing or
    cannot be converted sort last in either direction. The sort is stable.
    """
    extractor = extractor or default_extractor
    ordered = list(resources)
    for config in reversed(list(sort_configs)):
        convert = _CONVERTERS[config.data_type]
        keyed = []
        for resource in ordered:
            try:
                values = extractor.extract_data(resource, config.fhir_path_expression)
            except RuleEvaluationError as e:
                logger.warning(f"Sort key '{config.fhir_path_expression}' failed: {e}")
                values = []
            keyed.append((convert(values[0]) if values else None, resource))

        present = [item for item in keyed if item[0] is not None]
        missing = [item for item in keyed if item[0] is None]
        present.sort(
            key=lambda item: item[0],
            reverse=config.order == SortDirection.DESCENDING,
        )
        ordered = [resource for _, resource in present + missing]
    return ordered


def filter_resources(
    resources: Sequence[Dict[str, Any]],
    expression: Optional[str],
    variables: Optional[Mapping[str, Any]] = None,
    extractor: Optional[FhirPathDataExtractor] = None,
) -> List[Dict[str, Any]]:
    """Keep resources for which a FHIRPath boolean expression holds.

    A resource whose evaluation fails is dropped and the failure logged.
    """
    if not expression:
        return list(resources)
    extractor = extractor or default_extractor
    env = _fhirpath_variables(variables)
    kept = []
    for resource in resources:
        try:
            if extractor.evaluate_to_boolean(resource, expression, env):
                kept.append(resource)
        except RuleEvaluationError as e:
            logger.warning(f"Filter '{expression}' failed for {resource.get('resourceType')}/{resource.get('id')}: {e}")
    return kept


def _fhirpath_variables(values: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Computed values usable as %name: primitives and JSON containers only."""
    env: Dict[str, Any] = {}
    for key, value in (values or {}).items():
        if value is None or isinstance(value, (str, int, float, bool, list, dict)):
            env[key] = value
    return env
