"""
Tests for the HTTP surface.
"""

import pytest
from fastapi.testclient import TestClient

from growthcore.api.app import create_app
from growthcore.models import RewardItem, Student


@pytest.fixture
def client(core):
    """Test client over a temporary store (runs lifespan for app.state)."""
    core.register_student(Student(id="s1", name="Alex", gender="male"))
    core.register_student(Student(id="s2", name="Sam", gender="female"))
    core.market.save_reward(RewardItem(id="r1", name="Sticker", cost_score=5, stock=1))
    with TestClient(create_app(core)) as tc:
        yield tc


def test_health_returns_correct_structure(client):
    """GET /health reports store status and uptime."""
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["store_ok"] is True
    assert data["students"] == 2
    assert isinstance(data["uptime_seconds"], (int, float))


def test_cors_headers_present(client):
    response = client.get("/health", headers={"Origin": "http://localhost:5173"})
    assert response.headers.get("access-control-allow-origin") == "http://localhost:5173"


def test_award_points_and_balance(client):
    first = client.post("/students/s1/points", json={"session_id": "x", "type": "attendance", "points": 2})
    second = client.post("/students/s1/points", json={"session_id": "x", "type": "excellent", "points": 9})

    assert first.json() == {"applied": 2}
    assert second.json() == {"applied": 8}

    balance = client.get("/students/s1/balance").json()
    assert balance["score_balance"] == 10
    assert balance["total_earned"] == 10


def test_grant_energy_idempotent_over_http(client):
    body = {"amount": 10, "source": "mission", "ref": ["mission", "m1"]}

    assert client.post("/students/s1/energy", json=body).json() == {"granted": True}
    assert client.post("/students/s1/energy", json=body).json() == {"granted": False}

    status = client.get("/students/s1/energy").json()
    assert status["energy"] == 10
    assert status["level"] == 1
    assert len(client.get("/students/s1/energy/logs").json()) == 1


def test_unknown_student_is_404(client):
    response = client.post("/students/ghost/points", json={"session_id": "x", "type": "pr", "points": 1})
    assert response.status_code == 404


def test_invalid_energy_source_is_422(client):
    response = client.post("/students/s1/energy", json={"amount": 1, "source": "lottery"})
    assert response.status_code == 422


def test_squad_progress_flow(client):
    squad = client.post("/squads", json={"name": "Comets", "member_ids": ["s1", "s2"]}).json()
    challenge = client.post(f"/squads/{squad['id']}/challenges", json={"title": "Skips", "target": 100}).json()

    updated = client.post(f"/squads/challenges/{challenge['id']}/progress", json={"value": 100})

    assert updated.status_code == 200
    assert updated.json()["status"] == "done"
    assert updated.json()["milestone_level"] == 10
    assert client.get("/students/s2/energy").json()["energy"] == 10 * 5 + 20
    assert len(client.get(f"/squads/challenges/{challenge['id']}/progress").json()) == 1


def test_empty_squad_is_400(client):
    response = client.post("/squads", json={"name": "Nobody", "member_ids": []})
    assert response.status_code == 400


def test_redeem_success_then_refusal(client):
    client.post("/students/s1/points", json={"session_id": "x", "type": "pr", "points": 10})

    first = client.post("/market/redeem", json={"student_id": "s1", "reward_id": "r1"})
    second = client.post("/market/redeem", json={"student_id": "s1", "reward_id": "r1"})

    assert first.json()["ok"] is True
    assert first.json()["balance"]["score_balance"] == 5
    assert second.status_code == 200
    assert second.json()["ok"] is False

    exchanges = client.get("/market/exchanges/s1").json()
    patched = client.patch(f"/market/exchanges/{exchanges[0]['id']}", json={"status": "delivered"})
    assert patched.json()["status"] == "delivered"


def test_score_assessment_endpoint(client):
    response = client.post("/assessments/score", json={
        "measurements": {"run50m": 7.0},
        "gender": "male",
        "age": 10,
    })

    assert response.status_code == 200
    assert response.json()["scores"]["speed"]["score"] == 100
    assert response.json()["tier"]["title"] == "Champion"


def test_negative_energy_grant_is_rejected(client):
    response = client.post("/students/s1/energy", json={"amount": -50, "source": "mission", "ref": ["m-neg"]})

    assert response.status_code == 422
    assert client.get("/students/s1/energy").json()["energy"] == 0


def test_energy_history_endpoint(client):
    client.post("/students/s1/energy", json={"amount": 10, "source": "manual", "ref": ["a"]})
    client.post("/students/s1/energy", json={"amount": 5, "source": "manual", "ref": ["b"]})

    history = client.get("/students/s1/energy/history").json()
    assert len(history) == 2
    assert history[-1]["total"] == 15
    assert client.get("/students/ghost/energy/history").status_code == 404


def test_benchmark_endpoints_without_rows(client):
    scored = client.post("/assessments/benchmarks/score", json={"value": 42, "quality": "speed", "age": 10})
    assert scored.json() == {"score": 42.0, "benchmark": None}

    gaps = client.get("/assessments/benchmarks/gaps", params={"quality": "speed", "min_age": 8, "max_age": 10})
    assert gaps.json() == [8, 9, 10]


def test_height_curve_endpoint(client):
    points = client.get("/assessments/height-curve/female", params={"min_age": 10, "max_age": 11, "step": 1}).json()

    assert [p["age"] for p in points] == [10, 11]
    assert points[0]["p50"] == 140.1


def test_trajectories_endpoint(client):
    response = client.post("/assessments/trajectories", json={
        "speed_sessions": [["2024-03-01", [101]]],
        "rank_sessions": [["2024-03-01", [3]], ["2024-03-08", []]],
    })

    assert response.json() == {
        "speed_rank": [{"date": "2024-03-01", "rank": 4}],
        "rank": [{"date": "2024-03-01", "rank": 3}, {"date": "2024-03-08", "rank": 3}],
    }
