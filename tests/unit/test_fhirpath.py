"""Tests for FHIRPath extraction, filtering and sorting."""

import pytest

from register_engine.errors import RuleEvaluationError
from register_engine.fhirpath import (
    FhirPathDataExtractor,
    extract_logical_id_uuid,
    filter_resources,
    reference_of,
    sort_resources,
)
from register_engine.schemas.resource_config import SortConfig, SortDataType, SortDirection


@pytest.fixture
def extractor():
    return FhirPathDataExtractor()


class TestLogicalIds:
    @pytest.mark.parametrize(
        "reference,expected",
        [
            ("Patient/1", "1"),
            ("Patient/1/_history/2", "1"),
            ("http://h/fhir/Patient/1", "1"),
            ("http://h/fhir/Patient/1/_history/3", "1"),
            ("1", "1"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_extract_logical_id_uuid(self, reference, expected):
        assert extract_logical_id_uuid(reference) == expected

    def test_reference_of(self, patient):
        assert reference_of(patient) == "Patient/p1"


class TestExtractor:
    def test_extract_data(self, extractor, patient):
        assert extractor.extract_data(patient, "name.given") == ["Jane"]

    def test_extract_data_none_resource(self, extractor):
        assert extractor.extract_data(None, "name") == []

    def test_extract_value_primitive(self, extractor, patient):
        assert extractor.extract_value(patient, "gender") == "female"
        assert extractor.extract_value(patient, "deceasedBoolean") == ""

    def test_extract_value_complex_is_blank(self, extractor, patient):
        assert extractor.extract_value(patient, "name") == ""

    def test_variables(self, extractor, care_plans):
        assert extractor.evaluate_to_boolean(care_plans[0], "status = %wanted", {"wanted": "active"}) is True
        assert extractor.evaluate_to_boolean(care_plans[1], "status = %wanted", {"wanted": "active"}) is False

    def test_evaluate_to_boolean_empty(self, extractor, patient):
        assert extractor.evaluate_to_boolean(patient, "deceasedBoolean") is False

    def test_invalid_expression(self, extractor, patient):
        with pytest.raises(RuleEvaluationError, match="FHIRPath"):
            extractor.extract_data(patient, "name.where(")

    def test_extract_references(self, extractor, tasks):
        assert extractor.extract_references(tasks[0], "basedOn") == ["cp1"]
        assert extractor.extract_references(tasks[0], "basedOn.reference") == ["cp1"]


class TestFilterResources:
    def test_no_expression_keeps_all(self, care_plans):
        assert filter_resources(care_plans, None) == care_plans

    def test_filter(self, care_plans):
        kept = filter_resources(care_plans, "status = 'active'")
        assert [r["id"] for r in kept] == ["cp1"]

    def test_computed_values_as_variables(self, care_plans):
        kept = filter_resources(care_plans, "title = %wantedTitle", {"wantedTitle": "Immunization", "obj": object()})
        assert [r["id"] for r in kept] == ["cp2"]

    def test_failing_filter_drops_resource(self, care_plans, caplog):
        kept = filter_resources(care_plans, "status.where(")
        assert kept == []
        assert "failed" in caplog.text


class TestSortResources:
    def test_string_ascending(self, care_plans):
        config = SortConfig(fhir_path_expression="title")
        assert [r["id"] for r in sort_resources(list(reversed(care_plans)), [config])] == ["cp1", "cp2"]

    def test_date_descending(self, care_plans):
        config = SortConfig(
            fhir_path_expression="period.start",
            data_type=SortDataType.DATE,
            order=SortDirection.DESCENDING,
        )
        assert [r["id"] for r in sort_resources(care_plans, [config])] == ["cp1", "cp2"]

    def test_missing_keys_sort_last(self):
        resources = [
            {"resourceType": "Observation", "id": "none"},
            {"resourceType": "Observation", "id": "b", "valueInteger": 2},
            {"resourceType": "Observation", "id": "a", "valueInteger": 10},
        ]
        for order in SortDirection:
            config = SortConfig(fhir_path_expression="valueInteger", data_type="INTEGER", order=order)
            assert sort_resources(resources, [config])[-1]["id"] == "none"

    def test_integer_sort_is_numeric(self):
        resources = [
            {"resourceType": "Observation", "id": "ten", "valueInteger": 10},
            {"resourceType": "Observation", "id": "two", "valueInteger": 2},
        ]
        config = SortConfig(fhir_path_expression="valueInteger", data_type="INTEGER")
        assert [r["id"] for r in sort_resources(resources, [config])] == ["two", "ten"]

    def test_secondary_key_breaks_ties(self, tasks):
        configs = [
            SortConfig(fhir_path_expression="status"),
            SortConfig(fhir_path_expression="id", order="DESCENDING"),
        ]
        ordered = [r["id"] for r in sort_resources(tasks, configs)]
        assert ordered == [
            "cp2-t3", "cp2-t1", "cp1-t1",
            "cp2-t2", "cp2-t0", "cp1-t2", "cp1-t0",
        ]

    def test_camel_case_config(self):
        config = SortConfig.model_validate(
            {"fhirPathExpression": "valueInteger", "dataType": "INTEGER", "order": "DESCENDING"}
        )
        assert config.data_type == SortDataType.INTEGER
        assert config.order == SortDirection.DESCENDING
