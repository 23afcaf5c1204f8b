"""
Tests for error handler middleware and domain error translation.
"""
import pytest
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field

from campaign_engine.api.middleware.error_handler import (
    AppException,
    NotFoundException,
    BadRequestException,
    ConflictException,
    ValidationException,
    UpstreamException,
    to_app_exception,
    app_exception_handler,
    campaign_engine_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)
from campaign_engine.lib.errors import (
    AudienceResolutionError,
    CampaignEngineError,
    CampaignNotFoundError,
    CampaignValidationError,
    ExecutionError,
    InvalidTransitionError,
    LockNotAcquired,
    StaleCampaignError,
)


@pytest.mark.unit
def test_app_exception_creation():
    exc = AppException(message="Test error", status_code=500, details={"key": "value"})

    assert exc.message == "Test error"
    assert exc.status_code == 500
    assert exc.details == {"key": "value"}


@pytest.mark.unit
def test_not_found_exception():
    exc = NotFoundException("Campaign", "c1")

    assert exc.message == "Campaign with id 'c1' not found"
    assert exc.status_code == 404
    assert exc.details["resource_id"] == "c1"


@pytest.mark.unit
def test_not_found_exception_without_id():
    assert NotFoundException("Campaign").message == "Campaign not found"


@pytest.mark.unit
def test_bad_request_and_conflict_exceptions():
    assert BadRequestException("bad").status_code == 400
    assert ConflictException("conflict", {"a": 1}).details == {"a": 1}
    assert UpstreamException("down").status_code == 502


@pytest.mark.unit
def test_validation_exception():
    exc = ValidationException("Invalid campaign", {"title": "required"})

    assert exc.status_code == 422
    assert exc.details == {"errors": {"title": "required"}}


@pytest.mark.unit
@pytest.mark.parametrize("error,expected_type,expected_status", [
    (CampaignNotFoundError("c1"), NotFoundException, 404),
    (CampaignValidationError("Invalid campaign", {"title": "blank"}), ValidationException, 422),
    (InvalidTransitionError("c1", "completed", "active"), ConflictException, 409),
    (LockNotAcquired("c1", 42), ConflictException, 409),
    (StaleCampaignError("c1", None, None), ConflictException, 409),
    (AudienceResolutionError("region", "r1", RuntimeError("down")), UpstreamException, 502),
    (ExecutionError("not confirmed"), UpstreamException, 502),
    (CampaignEngineError("other"), BadRequestException, 400),
])
def test_to_app_exception(error, expected_type, expected_status):
    translated = to_app_exception(error)

    assert isinstance(translated, expected_type)
    assert translated.status_code == expected_status


@pytest.mark.unit
def test_transition_error_details():
    translated = to_app_exception(InvalidTransitionError("c1", "completed", "active"))

    assert translated.details == {"campaign_id": "c1", "current": "completed", "target": "active"}


class Item(BaseModel):
    name: str = Field(..., min_length=1)


@pytest.fixture
def test_app():
    app = FastAPI()
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(CampaignEngineError, campaign_engine_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/missing")
    def missing(request: Request):
        request.state.correlation_id = "test-correlation"
        raise CampaignNotFoundError("c404")

    @app.get("/transition")
    def transition():
        raise InvalidTransitionError("c1", "completed", "paused")

    @app.post("/items")
    def create_item(item: Item):
        return item

    @app.get("/crash")
    def crash():
        raise RuntimeError("unexpected")

    return app


@pytest.mark.unit
def test_domain_error_response_shape(test_app):
    client = TestClient(test_app)

    response = client.get("/missing")

    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "Campaign with id 'c404' not found"
    assert body["correlation_id"] == "test-correlation"
    assert body["details"]["resource_id"] == "c404"


@pytest.mark.unit
def test_transition_error_is_conflict(test_app):
    response = TestClient(test_app).get("/transition")

    assert response.status_code == 409
    assert response.json()["details"]["current"] == "completed"


@pytest.mark.unit
def test_request_validation_error(test_app):
    response = TestClient(test_app).post("/items", json={"name": ""})

    assert response.status_code == 422
    assert response.json()["error"] == "Validation error"


@pytest.mark.unit
def test_unhandled_exception(test_app):
    client = TestClient(test_app, raise_server_exceptions=False)

    response = client.get("/crash")

    assert response.status_code == 500
    assert response.json()["error"] == "Internal server error"
    assert "correlation_id" in response.json()
