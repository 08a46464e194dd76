"""
Pytest fixtures for register_engine tests.
Provides a small FHIR resource graph and store shared across test modules.
"""

from datetime import datetime

import pytest

from register_engine.config.settings import reset_settings_cache
from register_engine.rules.date_service import DateService
from register_engine.startup import reset_for_testing
from register_engine.store.memory import InMemoryResourceStore

FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep settings and .env state from leaking between tests."""
    for name in (
        "REGISTER_ENGINE_CONFIG",
        "REGISTER_ENGINE_MAX_WORKERS",
        "REGISTER_ENGINE_PAGE_SIZE",
        "REGISTER_ENGINE_LOG_LEVEL",
        "REGISTER_ENGINE_TRACE_RULES",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("REGISTER_ENGINE_CONFIG", str(tmp_path / "no-engine.yaml"))
    reset_settings_cache()
    reset_for_testing()
    yield
    reset_settings_cache()
    reset_for_testing()


@pytest.fixture
def fixed_date_service():
    """DateService pinned to 2024-06-15 12:00."""
    return DateService(clock=lambda: FIXED_NOW)


@pytest.fixture
def patient():
    return {
        "resourceType": "Patient",
        "id": "p1",
        "gender": "female",
        "birthDate": "1990-03-04",
        "name": [{"given": ["Jane"], "family": "Doe"}],
    }


@pytest.fixture
def care_plans():
    return [
        {
            "resourceType": "CarePlan",
            "id": "cp1",
            "status": "active",
            "title": "Antenatal",
            "subject": {"reference": "Patient/p1"},
            "period": {"start": "2024-01-10"},
        },
        {
            "resourceType": "CarePlan",
            "id": "cp2",
            "status": "completed",
            "title": "Immunization",
            "subject": {"reference": "Patient/p1"},
            "period": {"start": "2023-05-02"},
        },
    ]


@pytest.fixture
def tasks():
    """Three tasks based on cp1 and four based on cp2."""
    made = []
    for plan_id, count in (("cp1", 3), ("cp2", 4)):
        for n in range(count):
            made.append(
                {
                    "resourceType": "Task",
                    "id": f"{plan_id}-t{n}",
                    "status": "ready" if n % 2 == 0 else "completed",
                    "basedOn": [{"reference": f"CarePlan/{plan_id}"}],
                    "for": {"reference": "Patient/p1"},
                }
            )
    return made


@pytest.fixture
def other_patient():
    return {
        "resourceType": "Patient",
        "id": "p2",
        "gender": "male",
        "birthDate": "1985-11-20",
        "name": [{"given": ["John"], "family": "Roe"}],
    }


@pytest.fixture
def store(patient, other_patient, care_plans, tasks):
    """In-memory store holding both patients, two care plans and seven tasks."""
    return InMemoryResourceStore([patient, other_patient, *care_plans, *tasks])


@pytest.fixture
def bundle(patient, other_patient, care_plans, tasks):
    """The store's resources as a FHIR Bundle."""
    return {
        "resourceType": "Bundle",
        "type": "collection",
        "entry": [
            {"resource": resource}
            for resource in [patient, other_patient, *care_plans, *tasks]
        ],
    }
