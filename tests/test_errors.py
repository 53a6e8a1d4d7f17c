"""Tests for the error envelope and exception handlers."""

import json

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from ledgerly.errors import (
    AppError,
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
    app_error_handler,
    database_error_handler,
)


def _app() -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(OperationalError, database_error_handler)

    @app.get("/invalid")
    async def invalid():
        raise ValidationError("Name is required", code="MISSING_FIELDS")

    @app.get("/upstream")
    async def upstream():
        raise ExternalServiceError("Email provider down")

    @app.get("/database")
    async def database():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    return app


def test_error_defaults_and_overrides():
    assert ValidationError("bad").status_code == 400
    assert ValidationError("bad").code == "VALIDATION_ERROR"
    assert AuthorizationError("no").status_code == 403
    assert NotFoundError("gone").code == "NOT_FOUND"
    assert ConflictError("dup").status_code == 409

    error = ValidationError("Too many", code="ORG_LIMIT_REACHED", status_code=422)
    assert error.code == "ORG_LIMIT_REACHED"
    assert error.status_code == 422
    assert str(error) == "Too many"
    # Overrides stay on the instance.
    assert ValidationError.code == "VALIDATION_ERROR"


def test_to_dict_envelope():
    assert NotFoundError("Client not found").to_dict() == {
        "success": False,
        "error": {"code": "NOT_FOUND", "message": "Client not found"},
    }


def test_handlers_render_envelope():
    client = TestClient(_app(), raise_server_exceptions=False)

    response = client.get("/invalid")
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": {"code": "MISSING_FIELDS", "message": "Name is required"}}

    response = client.get("/upstream")
    assert response.status_code == 502
    assert response.json()["error"]["code"] == "UPSTREAM_ERROR"

    response = client.get("/database")
    assert response.status_code == 500
    body = json.loads(response.content)
    assert body["error"] == {"code": "DB_ERROR", "message": "A database error occurred"}
