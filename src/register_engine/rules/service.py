"""Helper functions exposed to rules as ``service``.

Each instance is bound to one Session so relation lookups read that
session's facts only.
"""

import logging
from datetime import date
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from register_engine.errors import RuleEvaluationError
from register_engine.fhirpath.extractor import extract_logical_id_uuid
from register_engine.fhirpath.sorting import filter_resources, sort_resources
from register_engine.rules.date_service import DEFAULT_DISPLAY_FORMAT
from register_engine.schemas.resource_config import SortConfig
from register_engine.utils.date_parsing import parse_fhir_date

if TYPE_CHECKING:
    from register_engine.rules.session import Session

logger = logging.getLogger(__name__)

GENDER_LABELS = {
    "male": "Male",
    "female": "Female",
    "other": "Other",
    "unknown": "Unknown",
}


class RulesEngineService:
    """Resource helpers callable from rule expressions."""

    EXPOSED = {
        "retrieveRelatedResources": "retrieve_related_resources",
        "retrieveParentResource": "retrieve_parent_resource",
        "evaluateToBoolean": "evaluate_to_boolean",
        "mapResourcesToLabeledCSV": "map_resources_to_labeled_csv",
        "mapResourceToLabeledCSV": "map_resource_to_labeled_csv",
        "filterResources": "filter_resources",
        "sortResources": "sort_resources",
        "extractAge": "extract_age",
        "extractGender": "extract_gender",
        "extractDOB": "extract_dob",
        "convertDateForDifference": "convert_date_for_difference",
        "formatDate": "format_date",
    }

    def __init__(self, session: "Session"):
        self._session = session

    @property
    def _extractor(self):
        return self._session.extractor

    def retrieve_related_resources(
        self,
        resource: Dict[str, Any],
        related_resource_key: str,
        reference_fhir_path_expression: str,
    ) -> List[Dict[str, Any]]:
        """Return resources under a relation key that reference resource.

        Relations are flattened across parents, so this is how a rule
        recovers the children of one particular parent.
        """
        resource_id = extract_logical_id_uuid(resource.get("id"))
        return [
            candidate
            for candidate in self._session.related_resources(related_resource_key)
            if extract_logical_id_uuid(
                self._extractor.extract_value(candidate, reference_fhir_path_expression)
            ) == resource_id
        ]

    def retrieve_parent_resource(
        self,
        child_resource: Dict[str, Any],
        parent_resource_key: str,
        fhir_path_expression: str,
    ) -> Optional[Dict[str, Any]]:
        """Return the resource under parent_resource_key that child references."""
        parent_id = extract_logical_id_uuid(
            self._extractor.extract_value(child_resource, fhir_path_expression)
        )
        for candidate in self._session.related_resources(parent_resource_key):
            if extract_logical_id_uuid(candidate.get("id")) == parent_id:
                return candidate
        return None

    def evaluate_to_boolean(
        self,
        resources: Optional[List[Dict[str, Any]]],
        fhir_path_expression: str,
        match_all: bool = False,
    ) -> bool:
        """True if any (or, with match_all, every) resource satisfies the expression."""
        if resources is None:
            return False
        results = (self._matches(resource, fhir_path_expression) for resource in resources)
        return all(results) if match_all else any(results)

    def _matches(self, resource: Dict[str, Any], expression: str) -> bool:
        return any(
            value is True or (isinstance(value, str) and value.lower() == "true")
            for value in self._extractor.extract_data(resource, expression)
        )

    def map_resources_to_labeled_csv(
        self,
        resources: Optional[List[Dict[str, Any]]],
        fhir_path_expression: str,
        label: str,
    ) -> Optional[str]:
        """Comma-separated label, once per resource satisfying the expression."""
        if resources is None:
            return None
        return ",".join(
            label for resource in resources if self._matches(resource, fhir_path_expression)
        )

    def map_resource_to_labeled_csv(
        self,
        resource: Dict[str, Any],
        fhir_path_expression: str,
        label: str,
    ) -> Optional[str]:
        return self.map_resources_to_labeled_csv([resource], fhir_path_expression, label)

    def filter_resources(
        self,
        resources: Optional[List[Dict[str, Any]]],
        conditional_fhir_path_expression: str,
    ) -> List[Dict[str, Any]]:
        return filter_resources(
            resources or [],
            conditional_fhir_path_expression,
            self._session.output.snapshot(),
            self._extractor,
        )

    def sort_resources(
        self,
        resources: Optional[List[Dict[str, Any]]],
        fhir_path_expression: str,
        data_type: str = "STRING",
        order: str = "ASCENDING",
    ) -> List[Dict[str, Any]]:
        config = SortConfig(
            fhir_path_expression=fhir_path_expression,
            data_type=data_type.upper(),
            order=order.upper(),
        )
        return sort_resources(resources or [], [config], self._extractor)

    def extract_age(self, patient: Dict[str, Any]) -> str:
        """Age from birthDate: "34y", "5m", "3w" or "2d"; "" when unknown."""
        birth_date = parse_fhir_date(patient.get("birthDate"))
        if birth_date is None:
            return ""
        today = self._session.date_service.now().date()
        return _format_age(birth_date, today)

    def extract_gender(self, patient: Dict[str, Any]) -> str:
        return GENDER_LABELS.get(str(patient.get("gender") or "").lower(), "")

    def extract_dob(self, patient: Dict[str, Any], date_format: str = "dd/MM/yyyy") -> str:
        birth_date = patient.get("birthDate")
        if not birth_date:
            return ""
        return self._session.date_service.format_date(birth_date, None, date_format)

    def convert_date_for_difference(self, value: Any) -> str:
        """Relative description of a date, e.g. "2 days ago"."""
        return self._session.date_service.prettify_date(value)

    def format_date(
        self,
        value: Any,
        input_format: Optional[str] = None,
        expected_format: str = DEFAULT_DISPLAY_FORMAT,
    ) -> str:
        if value is None:
            raise RuleEvaluationError("Cannot format a null date")
        return self._session.date_service.format_date(value, input_format, expected_format)


def _format_age(birth_date: date, today: date) -> str:
    years = today.year - birth_date.year - ((today.month, today.day) < (birth_date.month, birth_date.day))
    if years > 0:
        return f"{years}y"
    months = (today.year - birth_date.year) * 12 + today.month - birth_date.month
    if today.day < birth_date.day:
        months -= 1
    if months > 0:
        return f"{months}m"
    days = (today - birth_date).days
    if days >= 7:
        return f"{days // 7}w"
    return f"{max(days, 0)}d"
