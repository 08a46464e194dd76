"""Tests for rule sessions (facts) and the output map."""

import copy
import pickle
import threading

import pytest

from register_engine.errors import MissingBindingError, RuleEvaluationError, SessionReuseError
from register_engine.expressions import evaluate
from register_engine.rules.session import OutputMap, Session, new_session
from register_engine.schemas.resource_data import RelatedResourceCount, RepositoryResourceData


@pytest.fixture
def repository_data(patient, care_plans):
    return RepositoryResourceData(
        resource=patient,
        related_resources_map={"carePlans": list(care_plans)},
        related_resources_count_map={
            "Task": [RelatedResourceCount("Task", None, 7)],
        },
    )


class TestOutputMap:
    def test_put_returns_previous(self):
        output = OutputMap()
        assert output.put("a", 1) is None
        assert output.put("a", 2) == 1
        assert output.get("a") == 2

    def test_put_all_and_remove(self):
        output = OutputMap()
        output.put_all({"a": 1, "b": 2})
        assert output.size() == 2
        assert output.remove("a") == 1
        assert output.contains_key("a") is False
        assert output.get_or_default("a", "x") == "x"

    def test_snapshot_is_a_copy(self):
        output = OutputMap()
        output.put("a", 1)
        snapshot = output.snapshot()
        snapshot["a"] = 99
        assert output.get("a") == 1


class TestSessionBindings:
    def test_root_bound_under_type(self, repository_data, patient):
        session = Session(repository_data)
        assert session.lookup("Patient") is patient

    def test_relations_and_counts_bound(self, repository_data):
        session = Session(repository_data)
        assert len(session.lookup("carePlans")) == 2
        assert session.lookup("Task") == [
            {"resourceType": "Task", "parentResourceId": None, "count": 7}
        ]

    def test_helpers_bound(self, repository_data):
        session = Session(repository_data)
        facts = session.facts()
        for name in ("data", "fhirPath", "service", "dateService", "StringUtils", "Math"):
            assert name in facts

    def test_params_bound_as_names(self, repository_data):
        session = Session(repository_data, {"practitionerId": "pr-1"})
        assert session.lookup("practitionerId") == "pr-1"

    def test_params_cannot_shadow_helpers(self, repository_data, caplog):
        session = Session(repository_data, {"data": "oops"})
        assert isinstance(session.lookup("data"), OutputMap)
        assert "reserved" in caplog.text

    def test_missing_name(self, repository_data):
        session = Session(repository_data)
        with pytest.raises(MissingBindingError):
            session.lookup("Encounter")

    def test_output_readable_after_write(self, repository_data):
        session = Session(repository_data)
        evaluate("data.put('x', 5)", session)
        assert session.lookup("x") == 5

    def test_assignment_writes_output(self, repository_data):
        session = Session(repository_data)
        evaluate("total = 2 + 3", session)
        assert session.output.get("total") == 5

    def test_assigning_reserved_name_fails(self, repository_data):
        session = Session(repository_data)
        with pytest.raises(RuleEvaluationError, match="reserved"):
            evaluate("service = 1", session)

    def test_no_repository_data(self):
        session = new_session(None, {"a": 1})
        assert session.lookup("a") == 1
        assert session.related_resources("carePlans") == []

    def test_secondary_data_merged(self, repository_data, other_patient):
        secondary = RepositoryResourceData(
            resource={"resourceType": "Group", "id": "g1"},
            related_resources_map={
                "carePlans": [{"resourceType": "CarePlan", "id": "cp9"}],
                "members": [other_patient],
            },
        )
        repository_data.secondary_repository_resource_data.append(secondary)
        session = Session(repository_data)
        assert session.lookup("Group")["id"] == "g1"
        assert [r["id"] for r in session.lookup("carePlans")] == ["cp1", "cp2", "cp9"]
        assert session.lookup("members") == [other_patient]

    def test_secondary_root_does_not_replace_primary(self, repository_data, other_patient):
        repository_data.secondary_repository_resource_data.append(
            RepositoryResourceData(resource=other_patient)
        )
        session = Session(repository_data)
        assert session.lookup("Patient")["id"] == "p1"


class TestSessionLifecycle:
    def test_fire_only_once(self, repository_data):
        session = Session(repository_data)
        session.begin_firing()
        assert session.fired
        with pytest.raises(SessionReuseError):
            session.begin_firing()

    def test_bound_to_creating_thread(self, repository_data):
        session = Session(repository_data)
        errors = []

        def use():
            try:
                session.lookup("Patient")
            except SessionReuseError as e:
                errors.append(e)

        worker = threading.Thread(target=use)
        worker.start()
        worker.join()
        assert len(errors) == 1

    def test_cannot_copy_or_pickle(self, repository_data):
        session = Session(repository_data)
        with pytest.raises(TypeError):
            copy.copy(session)
        with pytest.raises(TypeError):
            copy.deepcopy(session)
        with pytest.raises(TypeError):
            pickle.dumps(session)
