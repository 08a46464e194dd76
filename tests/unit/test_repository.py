"""Tests for register and profile loading."""

import pytest

from register_engine.config.settings import EngineSettings
from register_engine.errors import ResourceNotFoundError, StoreUnavailableError
from register_engine.repository import RegisterRepository
from register_engine.rules.trace import RuleOutcome
from register_engine.schemas.register import ProfileConfiguration, RegisterConfiguration
from register_engine.store import InMemoryResourceStore


REGISTER = {
    "id": "householdRegister",
    "fhirResource": {
        "baseResource": {"resource": "Patient"},
        "relatedResources": [
            {
                "resource": "CarePlan",
                "id": "carePlans",
                "searchParameter": "subject",
                "relatedResources": [
                    {
                        "resource": "Task",
                        "searchParameter": "based-on",
                        "resultAsCount": True,
                    }
                ],
            }
        ],
    },
    "registerCard": {
        "rules": [
            {"name": "patientId", "actions": ["Patient.id"]},
            {"name": "carePlanCount", "actions": ["carePlans.size()"]},
            {"name": "taskCount", "condition": "Task.size() > 0", "actions": ["Task.get(0).count"]},
        ]
    },
}


class UnavailableForType:
    """Store that becomes unavailable when one resource type is queried."""

    def __init__(self, store, resource_type):
        self.store = store
        self.resource_type = resource_type

    def count(self, query):
        return self.store.count(query)

    def search(self, query):
        if query.resource_type == self.resource_type:
            raise StoreUnavailableError("database is locked")
        return self.store.search(query)

    def get(self, resource_type, resource_id):
        return self.store.get(resource_type, resource_id)


@pytest.fixture
def settings():
    return EngineSettings(max_workers=3, page_size=20)


@pytest.fixture
def register():
    return RegisterConfiguration.model_validate(REGISTER)


@pytest.fixture
def many_patients_store():
    return InMemoryResourceStore([
        {"resourceType": "Patient", "id": f"p{n:02d}", "gender": "male" if n % 2 else "female"}
        for n in range(12)
    ])


class TestRegister:
    def test_rows(self, store, register, settings):
        rows = RegisterRepository(store, settings=settings).load_register_data(register)
        assert [row.base_resource_id for row in rows] == ["p1", "p2"]
        first, second = rows
        assert first.get("carePlanCount") == 2
        assert first.get("taskCount") == 7
        assert second.get("carePlanCount") == 0
        assert second.get("taskCount") is None

    def test_rows_in_store_order(self, many_patients_store, register, settings):
        rows = RegisterRepository(many_patients_store, settings=settings).load_register_data(register)
        assert [row.get("patientId") for row in rows] == [f"p{n:02d}" for n in range(12)]

    def test_paging(self, many_patients_store, settings):
        register = RegisterConfiguration.model_validate({**REGISTER, "pageSize": 5})
        repository = RegisterRepository(many_patients_store, settings=settings)
        pages = [
            [row.base_resource_id for row in repository.load_register_data(register, page)]
            for page in range(4)
        ]
        assert [len(p) for p in pages] == [5, 5, 2, 0]
        assert pages[1][0] == "p05"

    def test_settings_page_size(self, many_patients_store, register):
        repository = RegisterRepository(many_patients_store, settings=EngineSettings(page_size=4))
        assert len(repository.load_register_data(register)) == 4

    def test_sorted_base(self, many_patients_store, settings):
        config = {
            **REGISTER,
            "fhirResource": {
                "baseResource": {
                    "resource": "Patient",
                    "sortConfigs": [{"fhirPathExpression": "id", "order": "DESCENDING"}],
                },
            },
            "pageSize": 3,
        }
        register = RegisterConfiguration.model_validate(config)
        rows = RegisterRepository(many_patients_store, settings=settings).load_register_data(register)
        assert [row.base_resource_id for row in rows] == ["p11", "p10", "p09"]

    def test_filtered_base_and_count(self, many_patients_store, settings):
        config = {
            **REGISTER,
            "fhirResource": {
                "baseResource": {"resource": "Patient", "conditionalFhirPathExpression": "gender = 'male'"},
            },
        }
        register = RegisterConfiguration.model_validate(config)
        repository = RegisterRepository(many_patients_store, settings=settings)
        assert repository.count_register_data(register) == 6
        assert len(repository.load_register_data(register)) == 6

    def test_params_applied_to_every_row(self, store, register, settings):
        rows = RegisterRepository(store, settings=settings).load_register_data(register, params={"screen": "home"})
        assert all(row.get("screen") == "home" for row in rows)

    def test_traces(self, store, register, settings):
        traces = {}
        RegisterRepository(store, settings=settings).load_register_data(register, traces=traces)
        assert set(traces) == {"p1", "p2"}
        outcomes = {step.rule: step.outcome for step in traces["p2"].build()}
        assert outcomes["taskCount"] == RuleOutcome.SKIPPED

    def test_empty_page(self, store, register, settings):
        assert RegisterRepository(store, settings=settings).load_register_data(register, 3) == []

    def test_store_failure_aborts_page(self, store, register, settings):
        repository = RegisterRepository(UnavailableForType(store, "CarePlan"), settings=settings)
        with pytest.raises(StoreUnavailableError, match="database is locked"):
            repository.load_register_data(register)

    def test_closed_store(self, store, register, settings):
        store.close()
        with pytest.raises(StoreUnavailableError):
            RegisterRepository(store, settings=settings).load_register_data(register)


PROFILE = {
    "id": "patientProfile",
    "fhirResource": {
        "baseResource": {"resource": "Patient"},
        "relatedResources": [
            {
                "resource": "CarePlan",
                "id": "carePlans",
                "searchParameter": "subject",
                "relatedResources": [{"resource": "Task", "searchParameter": "based-on"}],
            }
        ],
    },
    "secondaryResources": [
        {"baseResource": {"resource": "Group"}, "relatedResources": []},
    ],
    "rules": [
        {"name": "patientName", "actions": ["Patient.name.get(0).given.get(0)"]},
        {"name": "groupName", "condition": "Group != null", "actions": ["Group.name"]},
        {
            "name": "firstPlanTasks",
            "actions": ["service.retrieveRelatedResources(carePlans.get(0), 'Task', 'basedOn.reference').size()"],
        },
    ],
    "views": [
        {
            "viewType": "CARD",
            "content": [
                {
                    "viewType": "LIST",
                    "id": "carePlanList",
                    "resources": [{"resource": "CarePlan", "relatedResourceId": "carePlans"}],
                    "registerCard": {
                        "rules": [
                            {"name": "title", "actions": ["CarePlan.title"]},
                        ]
                    },
                }
            ],
        }
    ],
}


class TestProfile:
    def test_profile(self, store, settings):
        store.add({"resourceType": "Group", "id": "g1", "name": "Doe household"})
        profile = ProfileConfiguration.model_validate(PROFILE)
        result = RegisterRepository(store, settings=settings).load_profile_data(profile, "p1")
        assert result.get("patientName") == "Jane"
        assert result.get("groupName") == "Doe household"
        assert result.get("firstPlanTasks") == 3
        items = list(result.list_resource_data_map["carePlanList"])
        assert [item.get("title") for item in items] == ["Antenatal", "Immunization"]
        assert [item.get("patientName") for item in items] == ["Jane", "Jane"]

    def test_profile_without_secondary_match(self, store, settings):
        profile = ProfileConfiguration.model_validate(PROFILE)
        result = RegisterRepository(store, settings=settings).load_profile_data(profile, "p1")
        assert result.get("groupName") is None

    def test_missing_profile_resource(self, store, settings):
        profile = ProfileConfiguration.model_validate(PROFILE)
        with pytest.raises(ResourceNotFoundError):
            RegisterRepository(store, settings=settings).load_profile_data(profile, "nobody")
