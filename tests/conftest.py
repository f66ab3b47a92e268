import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import references
from schemas import Department, Doctor, Patient


@pytest.fixture
def mongo():
    """Point the persistence layer at a fresh in-memory MongoDB."""
    previous = database.db()
    test_db = mongomock.MongoClient()["meditrack_test"]
    database.set_db(test_db)
    database.ensure_indexes()
    yield test_db
    database.set_db(previous)


@pytest.fixture
def patient(mongo):
    return references.create_patient(Patient(firstName="Asha", lastName="Rao", phone="9876543210"))


@pytest.fixture
def other_patient(mongo):
    return references.create_patient(Patient(firstName="Vikram", lastName="Iyer", phone="9123456780"))


@pytest.fixture
def department(mongo):
    return references.create_department(Department(name="Cardiology"))


@pytest.fixture
def doctor(mongo, department):
    return references.create_doctor(
        Doctor(
            firstName="Meera",
            lastName="Nair",
            email="meera.nair@example.com",
            specialization="Cardiologist",
            department=department["_id"],
        )
    )


@pytest.fixture
def client(mongo):
    from main import app

    with TestClient(app) as c:
        yield c
