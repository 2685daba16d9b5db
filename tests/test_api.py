import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
from models import PlanningEntry, PlanningStatus


@pytest.fixture()
def factory():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def client(factory):
    def override():
        db = factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override
    yield TestClient(app)
    app.dependency_overrides.clear()


BILL = {
    "description": "Notebook",
    "amount": 1200,
    "category": "Eletrônicos",
    "due_date": "2025-01-15",
    "installments": 3,
}


def test_requires_user_header(client):
    assert client.get("/api/plannings").status_code == 422


def test_create_pay_and_reverse(client):
    headers = {"X-User-Id": "1"}
    resp = client.post("/api/plannings", json=BILL, headers=headers)
    assert resp.status_code == 201
    rows = resp.json()["data"]
    assert [r["amount_cents"] for r in rows] == [40000, 40000, 40000]
    head_id = rows[0]["id"]
    assert all(r["parent_planning_id"] == head_id for r in rows[1:])

    paid = client.post(f"/api/plannings/{head_id}/pay", headers=headers).json()["data"]
    assert paid["status"] == "paid"
    assert paid["transaction_id"] is not None

    txns = client.get("/api/transactions", headers=headers).json()["data"]
    assert [t["origin_planning_id"] for t in txns] == [head_id]

    reversed_ = client.post(f"/api/plannings/{head_id}/reverse", headers=headers).json()
    assert reversed_["data"]["transaction_id"] is None
    assert client.get("/api/transactions", headers=headers).json()["data"] == []


def test_error_codes_map_to_status(client, factory):
    headers = {"X-User-Id": "1"}
    missing = client.post("/api/plannings/999/pay", headers=headers)
    assert missing.status_code == 404
    assert missing.json() == {
        "ok": False,
        "error": "Planning entry not found",
        "code": "not_found",
    }

    goal = {"name": "Viagem", "target_amount": 0, "target_date": "2025-12-31"}
    assert client.post("/api/goals", json=goal, headers=headers).status_code == 400

    head_id = client.post("/api/plannings", json=BILL, headers=headers).json()["data"][0]["id"]
    with factory() as db:
        db.get(PlanningEntry, head_id).status = PlanningStatus.paid
        db.commit()
    conflict = client.post(f"/api/plannings/{head_id}/pay", headers=headers)
    assert conflict.status_code == 409
    assert conflict.json()["code"] == "consistency_error"


def test_couple_members_share_plannings(client):
    couple = client.post("/api/couples", json={"name": "Casa"}, headers={"X-User-Id": "1"})
    couple_id = couple.json()["data"]["id"]
    client.post(f"/api/couples/{couple_id}/join", headers={"X-User-Id": "2"})
    client.post("/api/plannings", json=BILL, headers={"X-User-Id": "1"})

    me = client.get("/api/me", headers={"X-User-Id": "2"}).json()["data"]
    assert me["visible_user_ids"] == [1, 2]
    shared = client.get("/api/plannings", headers={"X-User-Id": "2"}).json()["data"]
    assert len(shared) == 3
    assert client.get("/api/plannings", headers={"X-User-Id": "3"}).json()["data"] == []


def test_transaction_summary_for_month(client):
    headers = {"X-User-Id": "1"}
    for payload in (
        {"type": "income", "amount": 5500, "description": "Salário", "category": "Salário"},
        {"type": "expense", "amount": 450.5, "description": "Mercado", "category": "Alimentação"},
    ):
        client.post("/api/transactions", json={**payload, "due_date": "2025-01-05"}, headers=headers)

    summary = client.get(
        "/api/transactions/summary",
        params={"period": "month", "month": "2025-01"},
        headers=headers,
    ).json()["data"]
    assert summary["balance_cents"] == 504950
    assert summary["by_category"] == {"Alimentação": 45050}

    recent = client.get(
        "/api/transactions/recent", params={"limit": 1}, headers=headers
    ).json()["data"]
    assert len(recent) == 1

    bad = client.get("/api/transactions", params={"period": "nope"}, headers=headers)
    assert bad.status_code == 400
