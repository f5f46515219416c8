import json
import logging

import httpx
import pytest

from runflow.connectors.workflow_client import WorkflowClient
from runflow.errors import (
    APIError,
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    RunflowConfigError,
    ServerError,
    TransportError,
    ValidationError,
)


class Recorder:
    """httpx.MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses: httpx.Response):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last.content)


def make_client(recorder, **kwargs) -> WorkflowClient:
    kwargs.setdefault("user_id", 42)
    kwargs.setdefault("api_key", "sk-test")
    return WorkflowClient(
        base_url="https://api.example.test/",
        transport=httpx.MockTransport(recorder),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_fetch_status_path_auth_and_parsing():
    recorder = Recorder(
        httpx.Response(
            200,
            json={
                "id": 501,
                "status": "running",
                "progress": "35",
                "step_records": [{"step_number": 1, "tool": "search", "status": "completed"}],
            },
            headers={"X-Request-Id": "req-1"},
        )
    )
    async with make_client(recorder) as client:
        snapshot = await client.fetch_status("501")
        assert client.last_request_id == "req-1"

    assert recorder.last.method == "GET"
    assert recorder.last.url.path == "/api/v1/users/42/bloqs/workflow-runs/501"
    assert recorder.last.headers["Authorization"] == "Bearer sk-test"
    assert snapshot.id == "501"
    assert snapshot.progress == 35
    assert snapshot.step_records[0].name == "search"
    assert snapshot.step_records[0].identity_key == "1_completed"


@pytest.mark.asyncio
async def test_fetch_status_unwraps_data_envelope():
    recorder = Recorder(httpx.Response(200, json={"data": {"id": "r1", "status": "completed"}}))
    async with make_client(recorder) as client:
        snapshot = await client.fetch_status("r1")

    assert snapshot.status == "completed"


@pytest.mark.asyncio
async def test_resolve_human_task_posts_decision():
    recorder = Recorder(httpx.Response(200, json={"success": True}))
    async with make_client(recorder) as client:
        result = await client.resolve_human_task("77", {"approved": True, "feedback": "ok"})

    assert result is None
    assert recorder.last.method == "POST"
    assert recorder.last.url.path == "/api/v1/bloqs/workflow-human-tasks/77/complete"
    assert recorder.last_json() == {"approved": True, "feedback": "ok"}


@pytest.mark.asyncio
async def test_continue_run_wraps_decision_in_input():
    recorder = Recorder(httpx.Response(200, json={"id": "r1", "status": "running"}))
    async with make_client(recorder) as client:
        snapshot = await client.continue_run("r1", {"approved": False, "feedback": None})

    assert recorder.last.url.path == "/api/v1/bloqs/workflow-runs/r1/continue"
    assert recorder.last_json() == {"input": {"approved": False, "feedback": None}}
    assert snapshot.model_fields_set == {"id", "status"}


@pytest.mark.asyncio
async def test_continue_run_with_empty_body_gives_sparse_snapshot():
    recorder = Recorder(httpx.Response(204))
    async with make_client(recorder) as client:
        snapshot = await client.continue_run("r1")

    assert recorder.last_json() == {"input": {}}
    assert snapshot.model_fields_set == set()


@pytest.mark.asyncio
async def test_start_run_and_listing():
    recorder = Recorder(
        httpx.Response(201, json={"id": 9, "status": "pending", "workflow_id": 3}),
        httpx.Response(200, json={"data": [{"id": 9, "status": "running"}, {"id": 8, "status": "completed"}]}),
    )
    async with make_client(recorder) as client:
        started = await client.start_run({"query": "hello", "agent_id": 1})
        runs = await client.list_runs(status="running", page=None)

    assert recorder.requests[0].url.path == "/api/v1/users/42/bloqs/workflow-runs"
    assert json.loads(recorder.requests[0].content) == {"query": "hello", "agent_id": 1}
    assert started.id == "9"
    assert started.workflow_id == 3
    assert dict(recorder.last.url.params) == {"status": "running"}
    assert [run.id for run in runs] == ["9", "8"]


@pytest.mark.asyncio
async def test_get_task_and_logs():
    recorder = Recorder(
        httpx.Response(200, json={"id": 5, "type": "approval", "message": "Check it", "status": "pending"}),
        httpx.Response(200, json={"data": [{"level": "info", "message": "started"}]}),
    )
    async with make_client(recorder) as client:
        human_task = await client.get_task("5")
        logs = await client.get_logs("r1")

    assert human_task.id == "5"
    assert human_task.prompt == "Check it"
    assert human_task.is_pending()
    assert recorder.last.url.path == "/api/v1/users/42/bloqs/workflow-runs/r1/logs"
    assert logs == [{"level": "info", "message": "started"}]


@pytest.mark.asyncio
async def test_user_scoped_calls_require_user_id(monkeypatch):
    recorder = Recorder(httpx.Response(200, json={}))
    async with make_client(recorder, user_id=None) as client:
        monkeypatch.setattr(client, "user_id", None)
        with pytest.raises(RunflowConfigError, match="RUNFLOW_USER_ID"):
            await client.fetch_status("r1")

    assert recorder.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "error_type"),
    [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (404, NotFoundError),
        (409, APIError),
        (500, ServerError),
        (503, ServerError),
    ],
)
async def test_status_codes_map_to_errors(status_code, error_type):
    recorder = Recorder(
        httpx.Response(status_code, json={"message": "nope"}, headers={"X-Request-Id": "req-9"})
    )
    async with make_client(recorder) as client:
        with pytest.raises(error_type) as exc_info:
            await client.fetch_status("r1")

    assert type(exc_info.value) is error_type
    assert exc_info.value.status_code == status_code
    assert exc_info.value.request_id == "req-9"
    assert "nope" in exc_info.value.message


@pytest.mark.asyncio
async def test_validation_error_carries_field_errors():
    recorder = Recorder(
        httpx.Response(422, json={"message": "Invalid input", "errors": {"query": ["The query field is required."]}})
    )
    async with make_client(recorder) as client:
        with pytest.raises(ValidationError) as exc_info:
            await client.start_run({"query": ""})

    assert exc_info.value.field_errors("query") == ["The query field is required."]
    assert exc_info.value.field_errors("agent_id") == []
    assert "Errors:" in exc_info.value.format_message()


@pytest.mark.asyncio
async def test_rate_limit_reads_retry_after():
    recorder = Recorder(httpx.Response(429, json={"message": "Slow down"}, headers={"Retry-After": "12"}))
    async with make_client(recorder) as client:
        with pytest.raises(RateLimitError) as exc_info:
            await client.fetch_status("r1")

    assert exc_info.value.retry_after == 12
    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_non_json_body_is_an_api_error():
    recorder = Recorder(httpx.Response(200, text="<html>maintenance</html>"))
    async with make_client(recorder) as client:
        with pytest.raises(APIError, match="non-JSON"):
            await client.fetch_status("r1")


@pytest.mark.asyncio
async def test_connection_failure_becomes_transport_error():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    client = WorkflowClient(
        base_url="https://api.example.test",
        user_id=42,
        transport=httpx.MockTransport(refuse),
    )
    try:
        with pytest.raises(TransportError) as exc_info:
            await client.fetch_status("r1")
    finally:
        await client.close()

    assert isinstance(exc_info.value, APIError)
    assert exc_info.value.status_code is None
    assert "Connection refused" in exc_info.value.message


@pytest.mark.asyncio
async def test_debug_logging_redacts_secrets(caplog):
    caplog.set_level(logging.DEBUG, logger="runflow.connectors.workflow")
    recorder = Recorder(httpx.Response(200, json={"success": True}))
    async with make_client(recorder, debug=True) as client:
        await client.resolve_human_task("77", {"approved": True, "api_token": "tok-secret"})

    text = caplog.text
    assert "Request: POST" in text
    assert "Response: POST" in text
    assert "sk-test" not in text
    assert "tok-secret" not in text
    assert "***REDACTED***" in text


@pytest.mark.asyncio
async def test_no_request_logging_without_debug(caplog):
    caplog.set_level(logging.DEBUG, logger="runflow.connectors.workflow")
    recorder = Recorder(httpx.Response(200, json={"id": "r1", "status": "running"}))
    async with make_client(recorder, debug=False) as client:
        await client.fetch_status("r1")

    assert "Request:" not in caplog.text
