from fastapi.testclient import TestClient

from hirebit.api.app import create_app
from hirebit.core.inbound import dedup_key
from hirebit.db.repositories import Repository
from hirebit.types import Decision, InboundApplication


def _client() -> TestClient:
    return TestClient(create_app())


def test_replayed_external_id_returns_existing_application(db, make_job) -> None:
    job = make_job()
    client = _client()
    body = {"email": "Sam@Example.com", "candidate_name": "Sam", "external_id": "abc", "score": 86, "status": "shortlist"}

    first = client.post(f"/inbound/applications/{job.id}", json=body, headers={"x-webhook-secret": "s3cret"})
    second = client.post(f"/inbound/applications/{job.id}", json=body, headers={"x-webhook-secret": "s3cret"})

    assert first.status_code == 201
    assert first.json()["success"] is True
    assert first.json()["created"] is True
    assert second.status_code == 201
    assert second.json()["created"] is False
    assert second.json()["application_id"] == first.json()["application_id"]

    applications = Repository(db).list_applications(job.id)
    assert len(applications) == 1
    assert applications[0].email == "sam@example.com"
    assert applications[0].ai_status == Decision.SHORTLIST
    assert applications[0].external_id == "abc"


def test_secret_can_be_passed_as_query_parameter(make_job) -> None:
    job = make_job()
    response = _client().post(f"/inbound/applications/{job.id}?secret=s3cret", json={"email": "q@example.com"})

    assert response.status_code == 201
    assert response.json()["created"] is True


def test_same_email_with_new_external_id_is_still_one_application(db, make_job) -> None:
    job = make_job()
    client = _client()
    headers = {"x-webhook-secret": "s3cret"}

    first = client.post(f"/inbound/applications/{job.id}", json={"email": "a@example.com", "external_id": "one"}, headers=headers)
    second = client.post(f"/inbound/applications/{job.id}", json={"email": "a@example.com", "external_id": "two"}, headers=headers)

    assert second.json()["created"] is False
    assert second.json()["application_id"] == first.json()["application_id"]


def test_score_without_status_derives_the_decision(db, make_job) -> None:
    job = make_job()
    response = _client().post(
        f"/inbound/applications/{job.id}",
        json={"email": "mid@example.com", "score": 65},
        headers={"x-webhook-secret": "s3cret"},
    )

    application = Repository(db).get_application(response.json()["application_id"])
    assert application.ai_status == Decision.FLAG
    assert application.reasoning == "Scored by upstream system"
    assert application.scored_at is not None


def test_auth_and_lookup_failures(make_job) -> None:
    job = make_job()
    client = _client()

    missing = client.post(f"/inbound/applications/{job.id}", json={"email": "a@example.com"})
    wrong = client.post(f"/inbound/applications/{job.id}", json={"email": "a@example.com"}, headers={"x-webhook-secret": "nope"})
    unknown = client.post("/inbound/applications/unknown-job", json={"email": "a@example.com"}, headers={"x-webhook-secret": "s3cret"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert unknown.status_code == 404


def test_job_without_secret_rejects_every_caller(make_job) -> None:
    job = make_job(webhook_secret="")
    response = _client().post(f"/inbound/applications/{job.id}", json={"email": "a@example.com"}, headers={"x-webhook-secret": "anything"})

    assert response.status_code == 401


def test_validation_failures_return_400(make_job) -> None:
    job = make_job()
    client = _client()
    headers = {"x-webhook-secret": "s3cret"}
    url = f"/inbound/applications/{job.id}"

    for body in (
        {"candidate_name": "No Email"},
        {"email": "not-an-email"},
        {"email": "a@example.com", "status": "MAYBE"},
        {"email": "a@example.com", "score": 140},
        {"email": "a@example.com", "score": "high"},
        {"email": "a@example.com", "score": True},
        ["not", "an", "object"],
    ):
        response = client.post(url, json=body, headers=headers)
        assert response.status_code == 400, body
        assert response.json()["detail"]


def test_dedup_key_falls_back_to_message_id_then_content_hash() -> None:
    with_message = InboundApplication(email="a@example.com", message_id="<m1@x>")
    assert dedup_key(with_message, company_id="c1", job_id="j1") == "<m1@x>"

    bare = InboundApplication(email="a@example.com", subject="Hi", received_at="2024-01-01T00:00:00Z")
    first = dedup_key(bare, company_id="c1", job_id="j1")
    assert first == dedup_key(bare, company_id="c1", job_id="j1")
    assert first != dedup_key(bare, company_id="c1", job_id="j2")
    assert len(first) == 64


def test_health_reports_schema_and_ingestion_state() -> None:
    with TestClient(create_app()) as client:
        payload = client.get("/health").json()

    assert payload["status"] == "ok"
    assert payload["webhook_supported"] is True
    assert payload["features"]["application_interview"] is True
    assert payload["features"]["job_responsibilities"] is True
    assert "enabled" in payload["ingestion"]
