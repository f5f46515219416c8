"""Workflow-run HTTP client connector.

Implements the status provider consumed by the polling engine plus the
run-level calls that surround it.

Protocol contract (JSON both ways, bearer auth):
  GET  /api/v1/users/{user_id}/bloqs/workflow-runs/{run_id}         → snapshot
  POST /api/v1/users/{user_id}/bloqs/workflow-runs                  → snapshot
  POST /api/v1/bloqs/workflow-runs/{run_id}/continue  {"input": …}  → snapshot
  POST /api/v1/bloqs/workflow-human-tasks/{task_id}/complete  {…}   → ignored
  GET  /api/v1/bloqs/workflow-human-tasks/{task_id}                 → task
  GET  /api/v1/users/{user_id}/bloqs/workflow-runs/{run_id}/logs    → [entries]

Connection failures are retried by the httpx transport (``HTTP_RETRIES``);
anything that still fails is mapped to an :class:`~runflow.errors.APIError`
subclass and propagates.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from runflow.config import settings
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
from runflow.schemas.runs import HumanTask, StatusSnapshot
from runflow.utils.redaction import redact_headers, redact_sensitive_data

logger = logging.getLogger("runflow.connectors.workflow")


class WorkflowClient:
    """Async client for the workflow-run endpoints.

    Use as an async context manager, or call :meth:`close` when done.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        user_id: int | None = None,
        timeout: float | None = None,
        retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        debug: bool | None = None,
    ):
        self.base_url = (base_url or settings.RUNFLOW_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.RUNFLOW_API_KEY
        self.user_id = user_id if user_id is not None else settings.RUNFLOW_USER_ID
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self.debug = settings.DEBUG if debug is None else debug
        self.last_request_id: str | None = None

        if transport is None:
            transport = httpx.AsyncHTTPTransport(
                retries=settings.HTTP_RETRIES if retries is None else retries
            )

        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        event_hooks: dict[str, list] = {"request": [], "response": []}
        if self.debug:
            event_hooks["request"].append(self._log_request)
            event_hooks["response"].append(self._log_response)

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=transport,
            event_hooks=event_hooks,
        )

    async def __aenter__(self) -> "WorkflowClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ── Status provider ─────────────────────────────────────────

    async def fetch_status(self, run_id: str) -> StatusSnapshot:
        data = await self._request("GET", f"{self._user_prefix()}/bloqs/workflow-runs/{run_id}")
        return StatusSnapshot.model_validate(_unwrap(data))

    async def resolve_human_task(self, task_id: str, decision: dict[str, Any]) -> None:
        await self._request(
            "POST", f"/api/v1/bloqs/workflow-human-tasks/{task_id}/complete", body=decision
        )

    async def continue_run(self, run_id: str, decision: dict[str, Any] | None = None) -> StatusSnapshot:
        data = await self._request(
            "POST",
            f"/api/v1/bloqs/workflow-runs/{run_id}/continue",
            body={"input": decision or {}},
        )
        return StatusSnapshot.model_validate(_unwrap(data))

    # ── Run-level calls ─────────────────────────────────────────

    async def start_run(self, payload: dict[str, Any]) -> StatusSnapshot:
        data = await self._request("POST", f"{self._user_prefix()}/bloqs/workflow-runs", body=payload)
        return StatusSnapshot.model_validate(_unwrap(data))

    async def get_task(self, task_id: str) -> HumanTask:
        data = await self._request("GET", f"/api/v1/bloqs/workflow-human-tasks/{task_id}")
        return HumanTask.model_validate(_unwrap(data))

    async def get_logs(self, run_id: str) -> list[dict[str, Any]]:
        data = await self._request("GET", f"{self._user_prefix()}/bloqs/workflow-runs/{run_id}/logs")
        if isinstance(data, dict):
            data = data.get("data", data.get("logs", []))
        return list(data or [])

    async def list_runs(self, **filters: Any) -> list[StatusSnapshot]:
        params = {k: v for k, v in filters.items() if v is not None}
        data = await self._request("GET", f"{self._user_prefix()}/bloqs/workflow-runs", params=params)
        items = data.get("data", []) if isinstance(data, dict) else data
        return [StatusSnapshot.model_validate(item) for item in items or []]

    # ── Internals ───────────────────────────────────────────────

    def _user_prefix(self) -> str:
        if self.user_id is None:
            raise RunflowConfigError(
                "RUNFLOW_USER_ID is not configured; it is required for workflow-run endpoints"
            )
        return f"/api/v1/users/{self.user_id}"

    async def _request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            resp = await self._client.request(method, path, json=body, params=params)
            self.last_request_id = resp.headers.get("X-Request-Id") or None
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise _map_status_error(exc.response) from exc
        except httpx.RequestError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise APIError(
                f"{method} {path} returned a non-JSON body",
                status_code=resp.status_code,
                request_id=self.last_request_id,
            ) from exc

    async def _log_request(self, request: httpx.Request) -> None:
        body: Any = None
        if request.content:
            try:
                body = redact_sensitive_data(json.loads(request.content))
            except ValueError:
                body = f"<{len(request.content)} bytes>"
        logger.debug(
            "Request: %s %s headers=%s body=%s",
            request.method,
            request.url,
            redact_headers(request.headers),
            body,
        )

    async def _log_response(self, response: httpx.Response) -> None:
        logger.debug(
            "Response: %s %s -> %s",
            response.request.method,
            response.request.url,
            response.status_code,
        )


def _unwrap(data: Any) -> Any:
    """Some endpoints wrap the resource in ``{"data": {...}}``."""
    if isinstance(data, dict) and isinstance(data.get("data"), dict) and "status" not in data:
        return data["data"]
    return data


def _map_status_error(resp: httpx.Response) -> APIError:
    request_id = resp.headers.get("X-Request-Id") or None
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("message") or body.get("error") or resp.reason_phrase or "Request failed"
    errors = body.get("errors")
    code = resp.status_code

    if code in (401, 403):
        return AuthenticationError(message, status_code=code, request_id=request_id, errors=errors)
    if code == 404:
        return NotFoundError(message, status_code=code, request_id=request_id, errors=errors)
    if code == 422:
        return ValidationError(message, status_code=code, request_id=request_id, errors=errors)
    if code == 429:
        try:
            retry_after = int(resp.headers.get("Retry-After", 60))
        except ValueError:
            retry_after = 60
        return RateLimitError(message, retry_after=retry_after, request_id=request_id, errors=errors)
    if code >= 500:
        return ServerError(f"Server error: {message}", status_code=code, request_id=request_id)
    return APIError(message, status_code=code, request_id=request_id, errors=errors)
