"""Integration tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from conftest import PEOPLE_CSV, RUNNER_TOKEN
from tabletasks.main import create_app

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}
RUNNER = {"X-Internal-Runner-Token": RUNNER_TOKEN}


@pytest.fixture
def client(runtime):
    return TestClient(create_app(runtime))


def _upload(client, headers=ALICE, name="people.csv", data=PEOPLE_CSV, content_type="text/csv"):
    response = client.post("/api/v1/upload", headers=headers, files={"files": (name, data, content_type)})
    assert response.status_code == 201, response.text
    return response.json()["files"][0]


class TestAPIIntegration:
    """End-to-end flow: upload, create job, run batch, download result."""

    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert "X-Request-Id" in response.headers

    def test_list_apps(self, client):
        apps = client.get("/api/v1/apps").json()["apps"]

        assert [a["id"] for a in apps] == ["csv_profiler"]
        assert "text/csv" in apps[0]["acceptedMimeTypes"]
        assert "removeDuplicateRows" in apps[0]["optionsSchema"]["properties"]

    def test_upload_requires_identity(self, client):
        response = client.post("/api/v1/upload", files={"files": ("a.csv", b"a\n1\n", "text/csv")})

        assert response.status_code == 401
        assert response.headers["content-type"].startswith("application/problem+json")

    def test_upload_hides_storage_key(self, client):
        record = _upload(client)

        assert record["filename"] == "people.csv"
        assert record["size_bytes"] == len(PEOPLE_CSV)
        assert record["source"] == "upload"
        assert "storage_key" not in record

    def test_upload_resolves_generic_content_type(self, client):
        record = _upload(client, name="people.csv", content_type="application/octet-stream")
        assert record["content_type"] == "text/csv"

    def test_upload_rejects_unsupported_type(self, client):
        response = client.post(
            "/api/v1/upload", headers=ALICE, files={"files": ("doc.pdf", b"%PDF-1.4", "application/pdf")}
        )
        assert response.status_code == 415

    def test_upload_rejects_oversized_file(self, runtime):
        runtime.settings.MAX_UPLOAD_MB = 0
        client = TestClient(create_app(runtime))

        response = client.post("/api/v1/upload", headers=ALICE, files={"files": ("a.csv", b"a\n1\n", "text/csv")})
        assert response.status_code == 413

    def test_full_job_flow(self, client):
        record = _upload(client)

        created = client.post(
            "/api/v1/jobs",
            headers=ALICE,
            json={"app_id": "csv_profiler", "input_file_id": record["id"], "options": {"removeDuplicateRows": True}},
        )
        assert created.status_code == 202
        job = created.json()["job"]
        assert job["status"] == "queued"

        run = client.post("/api/v1/internal/jobs/run", headers=RUNNER, json={"limit": 5})
        assert run.status_code == 200
        assert run.json() == {
            "processed": 1,
            "outcomes": [{"jobId": job["id"], "status": "completed", "error": None}],
        }

        done = client.get(f"/api/v1/jobs/{job['id']}", headers=ALICE).json()["job"]
        assert done["status"] == "completed"
        assert done["progress"] == 100
        assert done["result"]["summary"]["cleanedRowCount"] == 2

        download = client.get(f"/api/v1/files/{done['result_file_id']}/download", headers=ALICE)
        assert download.status_code == 200
        assert download.headers["content-type"].startswith("text/csv")
        assert 'filename="people-cleaned.csv"' in download.headers["content-disposition"]
        assert download.content == b"Name,Age\r\nAnn,30\r\nBob,\r\n"

        listed = client.get("/api/v1/jobs", headers=ALICE).json()["jobs"]
        assert [j["id"] for j in listed] == [job["id"]]

    def test_run_with_empty_body_uses_default_limit(self, client):
        record = _upload(client)
        for _ in range(2):
            client.post("/api/v1/jobs", headers=ALICE, json={"app_id": "csv_profiler", "input_file_id": record["id"]})

        response = client.post("/api/v1/internal/jobs/run", headers=RUNNER)
        assert response.json()["processed"] == 1

    def test_other_users_cannot_see_jobs_or_files(self, client):
        record = _upload(client)
        job = client.post(
            "/api/v1/jobs", headers=ALICE, json={"app_id": "csv_profiler", "input_file_id": record["id"]}
        ).json()["job"]

        assert client.get(f"/api/v1/jobs/{job['id']}", headers=BOB).status_code == 404
        assert client.get(f"/api/v1/files/{record['id']}/download", headers=BOB).status_code == 404
        denied = client.post(
            "/api/v1/jobs", headers=BOB, json={"app_id": "csv_profiler", "input_file_id": record["id"]}
        )
        assert denied.status_code == 404

    def test_unknown_app_problem(self, client):
        record = _upload(client)
        response = client.post("/api/v1/jobs", headers=ALICE, json={"app_id": "nope", "input_file_id": record["id"]})

        assert response.status_code == 400
        problem = response.json()
        assert problem["type"].endswith("/unknown-app")
        assert problem["detail"] == "App 'nope' is not registered."
        assert problem["request_id"] == response.headers["X-Request-Id"]

    def test_invalid_options_problem(self, client):
        record = _upload(client)
        response = client.post(
            "/api/v1/jobs",
            headers=ALICE,
            json={"app_id": "csv_profiler", "input_file_id": record["id"], "options": {"removeDuplicateRows": "yes"}},
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["path"] == "removeDuplicateRows"

    def test_job_creation_is_rate_limited_per_user(self, runtime, client):
        runtime.settings.RATE_LIMIT_PER_MINUTE = 2
        record = _upload(client)
        body = {"app_id": "csv_profiler", "input_file_id": record["id"]}

        statuses = [client.post("/api/v1/jobs", headers=ALICE, json=body).status_code for _ in range(3)]
        assert statuses == [202, 202, 429]

        limited = client.post("/api/v1/jobs", headers=ALICE, json=body)
        assert limited.headers["content-type"].startswith("application/problem+json")
        assert limited.json()["type"].endswith("/rate-limit")
        assert len(runtime.jobs.list_recent_jobs("alice", 10)) == 2

    def test_upload_is_rate_limited_per_user(self, runtime, client):
        runtime.settings.RATE_LIMIT_PER_MINUTE = 1
        _upload(client)

        response = client.post("/api/v1/upload", headers=ALICE, files={"files": ("a.csv", b"a\n1\n", "text/csv")})
        assert response.status_code == 429
        assert _upload(client, headers=BOB)["filename"] == "people.csv"

    @pytest.mark.parametrize("headers", [{}, {"X-Internal-Runner-Token": "wrong"}])
    def test_runner_endpoint_requires_token(self, client, headers):
        assert client.post("/api/v1/internal/jobs/run", headers=headers, json={"limit": 1}).status_code == 403

    @pytest.mark.parametrize("limit", [0, 11])
    def test_runner_limit_bounds(self, client, limit):
        response = client.post("/api/v1/internal/jobs/run", headers=RUNNER, json={"limit": limit})
        assert response.status_code == 422

    def test_metrics_endpoint(self, client):
        record = _upload(client)
        client.post("/api/v1/jobs", headers=ALICE, json={"app_id": "csv_profiler", "input_file_id": record["id"]})
        client.post("/api/v1/internal/jobs/run", headers=RUNNER)

        body = client.get("/metrics").text
        assert "tabletasks_jobs_claimed_total" in body
        assert 'tabletasks_jobs_finished_total{status="completed"}' in body
