"""
Tests for the uniform error envelope.
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import BaseModel

from app.core.errors import error_response, register_exception_handlers


class _Body(BaseModel):
    name: str


def _app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/missing")
    async def missing():
        raise HTTPException(status_code=404, detail="Thing not found")

    @app.get("/teapot")
    async def teapot():
        raise HTTPException(status_code=418, detail="Short and stout")

    @app.post("/echo")
    async def echo(body: _Body):
        return body

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    return app


@pytest.fixture
def client():
    return TestClient(_app(), raise_server_exceptions=False)


class TestErrorEnvelope:
    def test_http_exception(self, client):
        resp = client.get("/missing")
        assert resp.status_code == 404
        assert resp.json() == {"error": {"code": "NOT_FOUND", "message": "Thing not found", "status": 404}}

    def test_other_client_errors_are_bad_request(self, client):
        resp = client.get("/teapot")
        assert resp.status_code == 418
        assert resp.json()["error"]["code"] == "BAD_REQUEST"

    def test_unknown_route(self, client):
        resp = client.get("/nowhere")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    def test_validation_error_is_400(self, client):
        resp = client.post("/echo", json={})
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["message"].startswith("name:")

    def test_unhandled_error_is_500(self, client):
        resp = client.get("/boom")
        assert resp.status_code == 500
        assert resp.json() == {
            "error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "status": 500}
        }
        assert "kaboom" not in resp.text


class TestErrorResponse:
    @pytest.mark.parametrize(
        "status, code",
        [(400, "BAD_REQUEST"), (401, "NOT_AUTHENTICATED"), (403, "FORBIDDEN"), (409, "CONFLICT"), (503, "INTERNAL_ERROR")],
    )
    def test_default_codes(self, status, code):
        resp = error_response(status, "msg")
        assert resp.status_code == status
        assert code in resp.body.decode()

    def test_explicit_code_wins(self):
        resp = error_response(503, "Service not ready", code="NOT_READY")
        assert b'"code":"NOT_READY"' in resp.body
