"""Tests for the trigger endpoint and health check."""

import asyncio
import logging
from contextlib import asynccontextmanager

import pytest
from fastapi.testclient import TestClient

from wardrobe_gateway.app import GatewayConfig, create_app, log_dispatch_failure
from wardrobe_gateway.dispatcher import DispatchOutcome
from wardrobe_gateway.errors import JobConflict, JobNotFound, MissingJobId, Unauthorized
from wardrobe_gateway.jobs import JobStatus


class StubDispatcher:
    def __init__(self, outcome=None, error=None):
        self.outcome = outcome
        self.error = error
        self.calls = []

    async def dispatch(self, job_id, auth_token):
        self.calls.append((job_id, auth_token))
        if self.error is not None:
            raise self.error
        return self.outcome


def make_client(dispatcher, config=None):
    @asynccontextmanager
    async def factory():
        yield dispatcher

    return TestClient(create_app(config or GatewayConfig(), dispatcher_factory=factory))


AUTH = {"Authorization": "Bearer good-token"}


def test_missing_authorization_is_rejected_before_dispatch():
    dispatcher = StubDispatcher()
    with make_client(dispatcher) as client:
        response = client.post("/ai-job-runner", json={"job_id": "job-1"})
    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "job_id": "job-1",
        "error": "Missing or invalid authorization header",
    }
    assert dispatcher.calls == []


def test_successful_dispatch():
    outcome = DispatchOutcome(
        job_id="job-1", status=JobStatus.SUCCEEDED, result={"image_id": "img-9"}
    )
    dispatcher = StubDispatcher(outcome=outcome)
    with make_client(dispatcher) as client:
        response = client.post("/ai-job-runner", json={"job_id": "job-1"}, headers=AUTH)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["job_id"] == "job-1"
    assert body["result"] == {"image_id": "img-9"}
    assert dispatcher.calls == [("job-1", "good-token")]


def test_failed_job_returns_500_with_message():
    outcome = DispatchOutcome(job_id="job-1", status=JobStatus.FAILED, error="Generation blocked: SAFETY")
    with make_client(StubDispatcher(outcome=outcome)) as client:
        response = client.post("/ai-job-runner", json={"job_id": "job-1"}, headers=AUTH)
    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "job_id": "job-1",
        "error": "Generation blocked: SAFETY",
    }


def test_dispatch_errors_map_to_status_codes():
    cases = [
        (Unauthorized("Invalid token"), 401),
        (MissingJobId("job_id is required"), 400),
        (JobNotFound("Job not found"), 404),
        (JobConflict("Job already running"), 409),
    ]
    for error, status in cases:
        with make_client(StubDispatcher(error=error)) as client:
            response = client.post("/ai-job-runner", json={"job_id": "job-1"}, headers=AUTH)
        assert response.status_code == status
        assert response.json()["error"] == error.message


def test_body_without_job_id_still_reaches_dispatcher():
    dispatcher = StubDispatcher(error=MissingJobId("job_id is required"))
    with make_client(dispatcher) as client:
        response = client.post(
            "/ai-job-runner", content=b"not json", headers={**AUTH, "Content-Type": "application/json"}
        )
    assert response.status_code == 400
    assert dispatcher.calls == [(None, "good-token")]


def test_unexpected_error_returns_500():
    with make_client(StubDispatcher(error=RuntimeError("boom"))) as client:
        response = client.post("/ai-job-runner", json={"job_id": "job-1"}, headers=AUTH)
    assert response.status_code == 500
    assert response.json()["error"] == "boom"


def test_health_reports_configuration():
    config = GatewayConfig(
        supabase_url="https://example.supabase.co",
        supabase_service_role_key="service-key",
    )
    with make_client(StubDispatcher(), config) as client:
        response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["supabase_configured"] is True
    assert body["gemini_configured"] is False
    assert body["in_flight"] == 0
    assert body["models"]["standard"] == config.model_standard


def test_cors_preflight():
    with make_client(StubDispatcher()) as client:
        response = client.options(
            "/ai-job-runner",
            headers={
                "Origin": "https://app.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "authorization, content-type",
            },
        )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] in ("*", "https://app.example.com")


async def _finished(coro):
    task = asyncio.ensure_future(coro)
    await asyncio.gather(task, return_exceptions=True)
    return task


async def _raise(error):
    raise error


async def _succeed():
    return None


@pytest.mark.asyncio
async def test_abandoned_dispatch_failure_is_logged(caplog):
    task = await _finished(_raise(JobConflict("Job is already running")))
    with caplog.at_level(logging.INFO, logger="wardrobe_gateway.app"):
        log_dispatch_failure("job-1", task)
    assert "Dispatch of job job-1 rejected: [CONFLICT] Job is already running" in caplog.text


@pytest.mark.asyncio
async def test_abandoned_unexpected_failure_is_logged_with_traceback(caplog):
    task = await _finished(_raise(RuntimeError("boom")))
    with caplog.at_level(logging.INFO, logger="wardrobe_gateway.app"):
        log_dispatch_failure("job-1", task)
    record = caplog.records[-1]
    assert record.levelno == logging.ERROR
    assert "job-1 failed unexpectedly" in record.getMessage()
    assert record.exc_info[1].args == ("boom",)


@pytest.mark.asyncio
async def test_successful_or_cancelled_dispatch_logs_nothing(caplog):
    done = await _finished(_succeed())
    cancelled = asyncio.ensure_future(asyncio.sleep(10))
    cancelled.cancel()
    await asyncio.gather(cancelled, return_exceptions=True)
    with caplog.at_level(logging.INFO, logger="wardrobe_gateway.app"):
        log_dispatch_failure("job-1", done)
        log_dispatch_failure("job-2", cancelled)
    assert caplog.records == []
