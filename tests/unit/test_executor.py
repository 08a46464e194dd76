"""Tests for the resource data rules executor and ResourceData."""

import pytest

from register_engine.executor import ResourceDataRulesExecutor
from register_engine.rules.trace import RuleTrace
from register_engine.schemas.resource_data import RepositoryResourceData, ResourceData
from register_engine.schemas.rule_config import RuleConfig
from register_engine.schemas.views import ListProperties


@pytest.fixture
def executor():
    return ResourceDataRulesExecutor()


@pytest.fixture
def repository_data(patient, care_plans):
    return RepositoryResourceData(
        resource=patient,
        related_resources_map={"carePlans": list(care_plans)},
    )


RULES = [
    RuleConfig(name="carePlanCount", actions=("carePlans.size()",)),
    RuleConfig(name="label", actions=("'computed'",)),
]


class TestComputeResourceDataRules:
    def test_returns_bare_output(self, executor, repository_data):
        output = executor.compute_resource_data_rules(RULES, repository_data, {"extra": 1})
        assert output == {"carePlanCount": 2, "label": "computed"}

    def test_without_repository_data(self, executor):
        output = executor.compute_resource_data_rules(
            [RuleConfig(name="n", actions=("x * 2",))], None, {"x": 4}
        )
        assert output == {"n": 8}


class TestProcessResourceData:
    def test_end_to_end(self, executor, repository_data):
        result = executor.process_resource_data(repository_data, RULES)
        assert result.base_resource_id == "p1"
        assert result.base_resource_type == "Patient"
        assert result.get("carePlanCount") == 2
        assert result.list_resource_data_map is None

    def test_params_win(self, executor, repository_data):
        result = executor.process_resource_data(repository_data, RULES, {"label": "override", "tab": "home"})
        assert result.get("label") == "override"
        assert result.get("tab") == "home"

    def test_missing_value_reads_none(self, executor, repository_data):
        result = executor.process_resource_data(repository_data, RULES)
        assert result.get("nothing") is None
        assert result.get("nothing", "-") == "-"

    def test_versioned_id(self, executor, patient):
        versioned = {**patient, "id": "Patient/p1/_history/4"}
        result = executor.process_resource_data(RepositoryResourceData(resource=versioned), [])
        assert result.base_resource_id == "p1"

    def test_trace_collected(self, executor, repository_data):
        trace = RuleTrace()
        executor.process_resource_data(repository_data, RULES, trace=trace)
        assert [step.rule for step in trace.build()] == ["carePlanCount", "label"]

    def test_views_attach_lists(self, executor, repository_data):
        views = [
            ListProperties.model_validate({
                "viewType": "LIST",
                "id": "plans",
                "resources": [{"resource": "CarePlan", "relatedResourceId": "carePlans"}],
            })
        ]
        result = executor.process_resource_data(repository_data, RULES, views=views)
        assert list(result.list_resource_data_map) == ["plans"]
        assert len(list(result.list_resource_data_map["plans"])) == 2


class TestResourceData:
    def test_computed_map_is_read_only(self):
        data = ResourceData("p1", "Patient", {"a": 1})
        with pytest.raises(TypeError):
            data.computed_values_map["a"] = 2

    def test_source_dict_not_shared(self):
        source = {"a": 1}
        data = ResourceData("p1", "Patient", source)
        source["a"] = 2
        assert data.get("a") == 1

    def test_to_dict(self):
        item = ResourceData("cp1", "CarePlan", {"title": "Antenatal"})
        data = ResourceData("p1", "Patient", {"a": 1}, {"plans": [item]})
        assert data.to_dict() == {
            "baseResourceId": "p1",
            "baseResourceType": "Patient",
            "computedValuesMap": {"a": 1},
            "listResourceDataMap": {
                "plans": [
                    {
                        "baseResourceId": "cp1",
                        "baseResourceType": "CarePlan",
                        "computedValuesMap": {"title": "Antenatal"},
                    }
                ]
            },
        }
