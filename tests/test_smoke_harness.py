from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

pytestmark = [pytest.mark.integration, pytest.mark.smoke]


def test_smoke_job_application_lifecycle(client: TestClient) -> None:
    health = client.get("/health")
    job = client.post(
        "/jobs",
        json={"hr_email": "hr@example.com", "title": "Backend Engineer", "company": "Acme Labs"},
    )
    job_id = job.json()["insertedId"]
    application = client.post(
        "/job-applications",
        json={"job_id": job_id, "applicant_email": "ada@example.com"},
    )
    application_id = application.json()["insertedId"]
    token = client.post("/jwt", json={"email": "ada@example.com"})
    listed = client.get("/job-application", params={"email": "ada@example.com"})
    patched = client.patch(f"/job-applications/{application_id}", json={"status": "accepted"})
    deleted = client.delete(f"/job-application/{application_id}")
    logout = client.post("/logout")
    after_logout = client.get("/job-application", params={"email": "ada@example.com"})

    assert health.status_code == 200
    assert job.status_code == 200
    assert application.status_code == 200
    assert token.status_code == 200
    assert listed.status_code == 200
    assert listed.json()[0]["title"] == "Backend Engineer"
    assert patched.json()["modifiedCount"] == 1
    assert deleted.json()["deletedCount"] == 1
    assert logout.status_code == 200
    assert after_logout.status_code == 401


def test_smoke_module_app_is_importable() -> None:
    from jobportal.main import app

    assert app.title == "Job Portal API"
