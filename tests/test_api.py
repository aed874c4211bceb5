"""Tests for the FastAPI API endpoints."""

import logging
from datetime import datetime, timedelta, timezone

import pytest
import structlog
from fastapi.testclient import TestClient

from contact_kernel.api.app import create_app, create_app_from_env
from contact_kernel.core.config import KernelConfig
from contact_kernel.core.context import KernelContext
from contact_kernel.persistence.record_store import SqliteRecordStore

SENT_AT = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def context():
    """A kernel context over an in-memory SQLite record store."""
    return KernelContext(KernelConfig(), record_store=SqliteRecordStore())


@pytest.fixture
def client(context):
    return TestClient(create_app(context))


def _create_contact(client, contact_id="contact_1", email="ann@acme.io", **extra):
    payload = {
        "id": contact_id,
        "name": f"Person {contact_id}",
        "kind": "Contact",
        "observations": {
            "contact_details": {"type": "contact_details", "emails": [email]},
            "communication_metrics": {
                "type": "communication_metrics",
                "email_count": 45,
                "last_contacted_at": (datetime.now(timezone.utc) - timedelta(days=15)).isoformat(),
                "response_rate": 0.85,
                "meeting_count": 12,
            },
            "importance_metrics": {"type": "importance_metrics", "manual_priority": 9},
        },
    }
    payload.update(extra)
    response = client.post("/entities", json=payload)
    assert response.status_code == 200
    return response


class TestEntityEndpoints:
    def test_create_and_get(self, client):
        _create_contact(client)
        response = client.get("/entities/contact_1")
        assert response.status_code == 200
        data = response.json()
        assert data["kind"] == "Contact"
        assert data["observations"]["contact_details"]["emails"] == ["ann@acme.io"]

    def test_get_missing(self, client):
        response = client.get("/entities/nope")
        assert response.status_code == 404

    def test_create_with_category(self, client, context):
        _create_contact(client, category="Investors")
        assert context.store.category_of("contact_1") == "Investors"

    def test_mismatched_observation_key(self, client):
        response = client.post("/entities", json={
            "id": "contact_1",
            "name": "Ann",
            "observations": {
                "importance_metrics": {"type": "relationship_info", "notes": ""},
            },
        })
        assert response.status_code == 400

    def test_upsert_observation_merges(self, client):
        _create_contact(client)
        response = client.post(
            "/entities/contact_1/observations/communication_metrics",
            json={"meeting_count": 3},
        )
        assert response.status_code == 200
        assert response.json()["meeting_count"] == 3
        assert response.json()["email_count"] == 45

    def test_upsert_observation_missing_entity(self, client):
        response = client.post(
            "/entities/nope/observations/relationship_info", json={"notes": "x"}
        )
        assert response.status_code == 404

    def test_upsert_observation_invalid(self, client):
        _create_contact(client)
        response = client.post(
            "/entities/contact_1/observations/importance_metrics",
            json={"manual_priority": 11},
        )
        assert response.status_code == 400

    def test_upsert_observation_unknown_type(self, client):
        _create_contact(client)
        response = client.post("/entities/contact_1/observations/mood", json={"value": 1})
        assert response.status_code == 400


class TestRelationshipEndpoints:
    def test_add_and_list(self, client):
        _create_contact(client)
        client.post("/entities", json={"id": "org_acme", "name": "Acme", "kind": "Organization"})
        response = client.post(
            "/relationships", json={"from": "contact_1", "type": "works_at", "to": "org_acme"}
        )
        assert response.status_code == 200
        assert response.json() == {"from": "contact_1", "type": "works_at", "to": "org_acme"}

        listed = client.get("/entities/org_acme/relationships").json()
        assert listed["outgoing"] == []
        assert listed["incoming"][0]["from"] == "contact_1"

    def test_missing_endpoint(self, client):
        _create_contact(client)
        response = client.post(
            "/relationships", json={"from": "contact_1", "type": "works_at", "to": "org_x"}
        )
        assert response.status_code == 400

    def test_list_for_missing_entity(self, client):
        assert client.get("/entities/nope/relationships").status_code == 404


class TestScoringEndpoints:
    def test_run_and_rank(self, client):
        _create_contact(client, "contact_1")
        _create_contact(client, "contact_2", email="bo@x.com")
        client.post(
            "/entities/contact_2/observations/communication_metrics",
            json={"email_count": 0, "meeting_count": 0},
        )
        response = client.post("/scoring/run")
        assert response.status_code == 200
        assert response.json()["scored"] == 2
        assert response.json()["scores"]["contact_1"] == 84

        top = client.get("/contacts/top", params={"n": 1}).json()
        assert len(top) == 1
        assert top[0]["contact_id"] == "contact_1"
        assert top[0]["score"] == 84

    def test_rank_by_category(self, client):
        _create_contact(client, "contact_1")
        _create_contact(client, "contact_2", email="bo@x.com", category="Investors")
        top = client.get("/contacts/top", params={"n": 5, "category": "Investors"}).json()
        assert [row["contact_id"] for row in top] == ["contact_2"]

    def test_rank_rejects_non_positive_n(self, client):
        assert client.get("/contacts/top", params={"n": 0}).status_code == 400


class TestOutreachEndpoints:
    def test_outreach_and_response(self, client):
        _create_contact(client)
        sent = client.post("/outreach", json={
            "contact_id": "contact_1",
            "sent_at": SENT_AT.isoformat(),
        })
        assert sent.status_code == 200
        signature = sent.json()["encoded_signature"]
        assert sent.json()["email"] == "ann@acme.io"

        replied = client.post("/outreach/responses", json={
            "signature_text": "Sounds great\n> " + signature,
            "responded_at": (SENT_AT + timedelta(days=3)).isoformat(),
        })
        assert replied.status_code == 200
        assert replied.json()["responded"] is True
        assert replied.json()["response_time_days"] == pytest.approx(3.0)

        status = client.get("/outreach/contact_1").json()
        assert status["status"] == "responded"
        assert status["tracking_code"]["numeric_id"] == 1

    def test_response_without_match(self, client):
        _create_contact(client)
        client.post("/outreach", json={"contact_id": "contact_1"})
        response = client.post("/outreach/responses", json={"signature_text": "hello"})
        assert response.status_code == 404
        assert response.json()["detail"] == "no match found"

    def test_outreach_overflow(self, client):
        response = client.post("/outreach", json={
            "contact_id": "contact_5000",
            "email": "far@x.com",
        })
        assert response.status_code == 400

    def test_outreach_unknown_contact_without_email(self, client):
        response = client.post("/outreach", json={"contact_id": "contact_3"})
        assert response.status_code == 404

    def test_outreach_status_missing(self, client):
        assert client.get("/outreach/contact_1").status_code == 404


class TestMetricsEndpoints:
    def test_summary_and_weekly(self, client):
        _create_contact(client, category="Investors")
        signature = client.post("/outreach", json={
            "contact_id": "contact_1",
            "sent_at": SENT_AT.isoformat(),
        }).json()["encoded_signature"]
        client.post("/outreach/responses", json={
            "signature_text": signature,
            "responded_at": (SENT_AT + timedelta(days=1)).isoformat(),
        })

        summary = client.get("/metrics/summary").json()
        assert summary["overall"]["total_sent"] == 1
        assert summary["overall"]["response_rate"] == 1.0
        assert summary["categories"][0]["category"] == "Investors"
        assert summary["quickest_responders"][0]["contact_id"] == "contact_1"

        weekly = client.get("/metrics/weekly").json()
        assert [(w["iso_year"], w["iso_week"]) for w in weekly] == [(2025, 2)]


class TestPersistenceEndpoint:
    def test_flush(self, client, context):
        _create_contact(client)
        response = client.post("/persistence/flush")
        assert response.status_code == 200
        assert context.record_store.read("entities")[0]["id"] == "contact_1"

    def test_flush_without_record_store(self):
        client = TestClient(create_app())
        assert client.post("/persistence/flush").status_code == 400


class TestAppFromEnv:
    @pytest.fixture(autouse=True)
    def reset_logging(self):
        root_handlers = list(logging.getLogger().handlers)
        yield
        structlog.reset_defaults()
        logging.getLogger().handlers = root_handlers

    def test_serves_the_persisted_kernel(self, tmp_path, monkeypatch):
        for name in ["DATA_DIR", "BACKEND", "LOG_LEVEL"]:
            monkeypatch.delenv(f"CONTACT_KERNEL_{name}", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text(
            f"CONTACT_KERNEL_DATA_DIR={tmp_path / 'data'}\n"
            "CONTACT_KERNEL_BACKEND=sqlite\n"
        )

        first = TestClient(create_app_from_env(env_file))
        _create_contact(first)
        assert first.post("/persistence/flush").status_code == 200

        second = TestClient(create_app_from_env(env_file))
        response = second.get("/entities/contact_1")
        assert response.status_code == 200
        assert response.json()["name"] == "Person contact_1"
