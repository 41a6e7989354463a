import json

from fastapi.testclient import TestClient

from gallery.app.api import app
from gallery.security.problem_details import PROBLEM_MEDIA_TYPE, problem_response


def test_problem_response_payload_and_header():
    response = problem_response(
        status=413,
        title="Invalid upload",
        detail="Too large",
        code="payload_too_large",
        instance="/upload",
        correlation_id="abc123",
        extras={"limit": 10, "status": 200},
    )

    payload = json.loads(response.body)
    assert response.status_code == 413
    assert response.media_type == PROBLEM_MEDIA_TYPE
    assert payload["type"] == "about:blank"
    assert payload["code"] == "payload_too_large"
    assert payload["instance"] == "/upload"
    assert payload["limit"] == 10
    # extras never override the core members
    assert payload["status"] == 413
    assert response.headers["X-Correlation-ID"] == "abc123"


def test_generated_correlation_ids_are_unique():
    first = json.loads(problem_response(status=400, title="t", detail="d", code="c").body)
    second = json.loads(problem_response(status=400, title="t", detail="d", code="c").body)
    assert first["correlation_id"] != second["correlation_id"]


def test_malformed_upload_field_returns_problem_details(gallery_settings):
    with TestClient(app) as client:
        response = client.post("/upload", data={"images": "not a file"})
    assert response.status_code == 400

    payload = response.json()
    assert payload["code"] == "validation_error"
    assert payload["title"] == "Invalid request"
    assert payload["status"] == 400
    assert response.headers["X-Correlation-ID"] == payload["correlation_id"]
