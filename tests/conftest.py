"""Shared fixtures: an in-memory MongoDB and an API client with a registered admin."""
import os

import mongomock
import pytest
from fastapi.testclient import TestClient

os.environ["BCRYPT_ROUNDS"] = "4"

import database
import main


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient()["member_portal_test"]
    monkeypatch.setattr(database, "db", mock_db)
    database.ensure_indexes()
    return mock_db


@pytest.fixture
def client(db):
    with TestClient(main.app) as c:
        yield c


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {user_id}"}


@pytest.fixture
def admin(client) -> dict:
    resp = client.post("/auth/register", json={
        "email": "admin@example.com",
        "password": "admin-pass",
        "first_name": "Ada",
        "last_name": "Admin",
    })
    assert resp.status_code == 200, resp.text
    return auth(resp.json()["user_id"])


def create_company(client, headers, **fields) -> str:
    payload = {"name": "Acme Corp", "region": "East", "branch": "Accra"}
    payload.update(fields)
    resp = client.post("/companies", json=payload, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()["id"]


def create_member(client, headers, company_id, **fields) -> dict:
    payload = {
        "company_id": company_id,
        "first_name": "Jane",
        "last_name": "Doe",
        "email": "jane@example.com",
        "gender": "female",
    }
    payload.update(fields)
    resp = client.post("/members", json=payload, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


@pytest.fixture
def company_id(client, admin) -> str:
    return create_company(client, admin)


@pytest.fixture
def member(client, admin, company_id) -> dict:
    return create_member(client, admin, company_id)
