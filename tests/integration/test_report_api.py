"""
Report API Tests

Read-only HTTP view over an output directory produced by the pipeline.
"""

import pytest
from fastapi.testclient import TestClient

from scriptrecon.api.server import create_app
from scriptrecon.emission import FileSystemSink
from scriptrecon.engine import ReconstructionPipeline
from scriptrecon.forensic import OUTPUT_DIR_ENV

from ..fixtures import CID_A, CID_B, CID_C, fragment_record, start_record, three_part_script


@pytest.fixture
def output_dir(tmp_path):
    records = three_part_script(CID_A) + [
        fragment_record(2, 2, "Get-Service\n", CID_B),
        start_record(CID_C),
    ]
    ReconstructionPipeline(FileSystemSink(str(tmp_path))).process_records(records, name="host-01")
    return tmp_path


@pytest.fixture
def client(output_dir):
    return TestClient(create_app(str(output_dir)))


def test_health(client, output_dir):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "online"
    assert response.json()["output_dir"] == str(output_dir)


def test_health_without_directory(tmp_path):
    client = TestClient(create_app(str(tmp_path / "absent")))

    assert client.get("/health").status_code == 503


def test_output_dir_from_environment(monkeypatch, output_dir):
    monkeypatch.setenv(OUTPUT_DIR_ENV, str(output_dir))
    client = TestClient(create_app())

    assert client.get("/api/v1/artifacts").json()["total"] == 3


def test_list_artifacts(client):
    body = client.get("/api/v1/artifacts").json()

    assert body["total"] == 3
    states = {e["correlation_id"]: e["state"] for e in body["entries"]}
    assert states == {CID_A: "reconstructed", CID_B: "reconstructed", CID_C: "skipped"}


def test_list_pagination(client):
    body = client.get("/api/v1/artifacts", params={"limit": 1, "offset": 1}).json()

    assert body["total"] == 3
    assert [e["correlation_id"] for e in body["entries"]] == [CID_B]


def test_list_completeness_filter(client):
    body = client.get("/api/v1/artifacts", params={"completeness": "incomplete"}).json()

    assert body["total"] == 1
    entry = body["entries"][0]
    assert entry["correlation_id"] == CID_B
    assert entry["missing_indices"] == [1]


def test_list_rejects_bad_limit(client):
    assert client.get("/api/v1/artifacts", params={"limit": 0}).status_code == 422


def test_get_artifact(client, output_dir):
    identifier = f"{CID_A}_deploy.ps1"
    response = client.get(f"/api/v1/artifacts/{identifier}")

    assert response.status_code == 200
    body = response.json()
    assert body["entry"]["identifier"] == identifier
    assert body["text"] == (output_dir / identifier).read_text(encoding='utf-8')


def test_get_unknown_artifact(client):
    assert client.get("/api/v1/artifacts/nothing.ps1").status_code == 404


def test_get_rejects_unsafe_identifier(client):
    assert client.get("/api/v1/artifacts/a:b.ps1").status_code == 400


def test_get_artifact_missing_on_disk(client, output_dir):
    identifier = f"{CID_A}_deploy.ps1"
    (output_dir / identifier).unlink()

    assert client.get(f"/api/v1/artifacts/{identifier}").status_code == 410


def test_api_is_read_only(client):
    assert client.post("/api/v1/artifacts").status_code == 405
    assert client.delete(f"/api/v1/artifacts/{CID_A}_deploy.ps1").status_code == 405
