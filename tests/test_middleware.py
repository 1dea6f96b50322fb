import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from talent_match.middleware.error_handlers import (
    ExceptionHandlerMiddleware,
    PerformanceMiddleware,
    RequestLoggingMiddleware,
)
from talent_match.utils.exceptions import (
    AIResponseError,
    AuthenticationError,
    DatabaseError,
    ExceptionContext,
    ModelError,
    NotFoundError,
    RateLimitError,
    StorageError,
    ValidationError,
    status_code_for,
)


class Strict(BaseModel):
    count: int


@pytest.fixture
def test_app():
    app = FastAPI()
    app.add_middleware(PerformanceMiddleware, slow_request_threshold=2.0)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(ExceptionHandlerMiddleware)

    @app.get("/ok")
    async def ok():
        return {"ok": True}

    @app.post("/echo")
    async def echo(body: dict):
        return body

    @app.get("/invalid")
    async def invalid():
        raise ValidationError("Job description is required", field="jobDescription")

    @app.get("/rate-limited")
    async def rate_limited():
        raise RateLimitError("Rate limited - will retry", retry_after=12)

    @app.get("/upstream")
    async def upstream():
        raise AIResponseError("Failed to parse AI response as JSON")

    @app.get("/storage")
    async def storage():
        raise StorageError("Storage upload failed: bucket unavailable")

    @app.get("/model")
    async def model():
        Strict(count="many")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("secret internals")

    return app


@pytest.fixture
def client(test_app):
    return TestClient(test_app)


class TestExceptionHandlerMiddleware:
    """Uncaught errors become the standard JSON error body"""

    def test_success_gets_request_id_and_timing(self, client):
        response = client.get("/ok")
        assert response.status_code == 200
        assert response.headers["X-Request-ID"]
        assert float(response.headers["X-Processing-Time"]) >= 0

    def test_request_ids_are_unique(self, client):
        assert client.get("/ok").headers["X-Request-ID"] != client.get("/ok").headers["X-Request-ID"]

    @pytest.mark.parametrize("path,status", [
        ("/invalid", 400),
        ("/rate-limited", 429),
        ("/upstream", 502),
        ("/storage", 500),
    ])
    def test_domain_errors_map_to_status(self, client, path, status):
        response = client.get(path)
        body = response.json()
        assert response.status_code == status
        assert body["success"] is False
        assert body["status_code"] == status
        assert body["request_id"] == response.headers["X-Request-ID"]

    def test_validation_error_details(self, client):
        body = client.get("/invalid").json()
        assert body["message"] == "Job description is required"
        assert body["error"]["error_code"] == "VALIDATION_ERROR"
        assert body["error"]["details"]["field"] == "jobDescription"

    def test_rate_limit_sets_retry_after(self, client):
        response = client.get("/rate-limited")
        assert response.headers["Retry-After"] == "12"

    def test_model_validation_error_is_400(self, client):
        response = client.get("/model")
        assert response.status_code == 400
        assert response.json()["error"] == "Data validation failed"

    def test_unexpected_error_hides_internals(self, client):
        response = client.get("/boom")
        assert response.status_code == 500
        assert "secret internals" not in response.text
        assert response.json()["error"] == "Internal server error"

    def test_json_body_still_reaches_route(self, client):
        response = client.post("/echo", json={"jobDescription": "Python"})
        assert response.json() == {"jobDescription": "Python"}


class TestExceptionMapping:
    """Status codes and wrapping of unexpected errors"""

    @pytest.mark.parametrize("exc,status", [
        (ValidationError("bad"), 400),
        (AuthenticationError("no"), 401),
        (NotFoundError("gone"), 404),
        (RateLimitError("slow"), 429),
        (AIResponseError("bad json"), 502),
        (ModelError("model down"), 500),
        (DatabaseError("write failed"), 500),
    ])
    def test_status_code_for(self, exc, status):
        assert status_code_for(exc) == status

    def test_exception_context_wraps_unexpected_errors(self):
        with pytest.raises(DatabaseError) as exc_info:
            with ExceptionContext("list_candidates", wrap_as=DatabaseError, message="Failed to read", collection="profiles"):
                raise RuntimeError("connection reset")
        assert exc_info.value.message == "Failed to read"
        assert exc_info.value.details == {"operation": "list_candidates", "collection": "profiles"}
        assert isinstance(exc_info.value.cause, RuntimeError)

    def test_exception_context_passes_domain_errors_through(self):
        with pytest.raises(NotFoundError):
            with ExceptionContext("get_candidate", wrap_as=DatabaseError):
                raise NotFoundError("Candidate not found")
