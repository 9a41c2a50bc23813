"""Shared fixtures: a fake pair of backends behind httpx.MockTransport."""
from __future__ import annotations

import asyncio
import copy
import json
from typing import Any, Dict, List, Optional, Set

import httpx
import pytest

from nowandlater.auth.session import MemorySessionStore, Session
from nowandlater.client import build_access_layer
from nowandlater.config import Settings

LEGACY_URL = "https://legacy.test/macros/exec"
API_BASE_URL = "https://api.test/api"
NOW = 1_700_000_000.0


SEED_TASKS: List[Dict[str, Any]] = [
    {
        "id": "1",
        "title": "Buy paint",
        "projectId": "10",
        "isCompleted": False,
        "sortOrder": 2,
    },
    {
        "id": "2",
        "title": "Call plumber",
        "projectId": "10",
        "isCompleted": False,
        "sortOrder": 1,
    },
    {
        "id": "3",
        "title": "Read book",
        "projectId": None,
        "isCompleted": False,
        "sortOrder": 3,
    },
]


class FakeBackend:
    """Answers refresh, legacy and REST requests and records every call.

    ``accepted_tokens`` of ``None`` accepts any bearer token; otherwise
    requests carrying any other token get a 401.
    """

    def __init__(self) -> None:
        self.tasks: List[Dict[str, Any]] = copy.deepcopy(SEED_TASKS)
        self.legacy_calls: List[Dict[str, Any]] = []
        self.modern_calls: List[Dict[str, Any]] = []
        self.invalidations: List[List[str]] = []
        self.refresh_calls: List[Dict[str, Any]] = []
        self.accepted_tokens: Optional[Set[str]] = None
        self.modern_down = False
        self.legacy_down = False
        self.legacy_broken = False
        self.invalidation_down = False
        self.invalidation_rejects = False
        self.refresh_ok = True
        self.refresh_delay = 0.0
        self.legacy_failures: Dict[str, str] = {}
        self.modern_failures: Dict[str, str] = {}
        self.legacy_payloads: Dict[str, Any] = {}
        self.modern_payloads: Dict[str, Any] = {}
        self._next_id = 100
        self._issued = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.url.host == "api.test" and path == "/api/auth/manage":
            return await self._refresh(request)
        if request.url.host == "api.test" and path == "/api/cache/invalidate":
            return self._invalidate(request)
        if request.url.host == "api.test":
            return self._modern(request)
        return self._legacy(request)

    # ------------------------------------------------------------------
    def _bearer(self, request: httpx.Request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        return header[len("Bearer "):] if header.startswith("Bearer ") else None

    def _rejected(self, request: httpx.Request) -> bool:
        if self.accepted_tokens is None:
            return False
        return self._bearer(request) not in self.accepted_tokens

    def _new_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    async def _refresh(self, request: httpx.Request) -> httpx.Response:
        self.refresh_calls.append(json.loads(request.content))
        if self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)
        if not self.refresh_ok:
            return httpx.Response(401, json={"success": False, "error": "invalid_grant"})
        self._issued += 1
        token = f"fresh-token-{self._issued}"
        if self.accepted_tokens is not None:
            self.accepted_tokens.add(token)
        return httpx.Response(
            200,
            json={
                "success": True,
                "tokens": {"access_token": token, "expires_in": 3600, "token_type": "Bearer"},
            },
        )

    def _invalidate(self, request: httpx.Request) -> httpx.Response:
        if self.invalidation_rejects:
            return httpx.Response(401, json={"success": False, "error": "Unauthorized"})
        if self.invalidation_down:
            return httpx.Response(500, json={"success": False, "error": "cache offline"})
        self.invalidations.append(json.loads(request.content)["cacheKeys"])
        return httpx.Response(200, json={"success": True})

    # ------------------------------------------------------------------
    def _legacy(self, request: httpx.Request) -> httpx.Response:
        if self.legacy_down:
            raise httpx.ConnectError("legacy endpoint unreachable", request=request)
        if request.method == "GET":
            action = request.url.params.get("function")
            parameters = json.loads(request.url.params.get("parameters") or "[]")
            token = request.url.params.get("token")
        else:
            body = json.loads(request.content)
            action = body.get("action")
            parameters = body.get("parameters") or []
            token = body.get("token")
        if action == "healthCheck":
            return httpx.Response(200, json={"success": True, "version": "2.4"})
        self.legacy_calls.append(
            {"action": action, "parameters": parameters, "token": token, "method": request.method}
        )
        if self.legacy_broken:
            return httpx.Response(502, text="<html>Bad gateway</html>")
        if self._rejected(request):
            return httpx.Response(401, json={"success": False, "message": "Unauthorized"})
        if action in self.legacy_payloads:
            return httpx.Response(200, json={"success": True, "data": self.legacy_payloads[action]})
        if action in self.legacy_failures:
            return httpx.Response(200, json={"success": False, "message": self.legacy_failures[action]})
        handler = getattr(self, f"_legacy_{action}", None)
        if handler is None:
            return httpx.Response(200, json={"success": False, "message": f"Unknown action: {action}"})
        return httpx.Response(200, json={"success": True, "data": handler(*parameters)})

    def _legacy_getTasks(self, project_id=None, view=None):
        return copy.deepcopy(self.tasks)

    def _legacy_loadAppData(self):
        return {
            "areas": [{"id": "a1", "name": "Work"}],
            "projects": [{"id": "10", "name": "Renovation", "areaId": "a1"}],
            "tasks": copy.deepcopy(self.tasks),
        }

    def _legacy_createTask(self, title, description="", project_id=None, context="", due_date=None, attachments=None):
        return self._create_task(title, description, project_id, context, due_date)

    def _legacy_updateTask(self, task_id, title, description="", project_id=None, context="", due_date=None):
        return self._update_task(task_id, title=title, description=description, projectId=project_id, context=context, dueDate=due_date)

    def _legacy_updateTaskCompletion(self, task_id, is_completed):
        self._update_task(task_id, isCompleted=is_completed)
        return None

    def _legacy_deleteTask(self, task_id):
        self.tasks = [row for row in self.tasks if row["id"] != task_id]
        return None

    def _legacy_updateProjectStatus(self, project_id, status):
        return None

    def _legacy_updateProjectArea(self, project_id, area_id):
        return None

    def _legacy_reorderTasks(self, task_ids):
        for position, task_id in enumerate(task_ids, start=1):
            self._update_task(task_id, sortOrder=position)
        return None

    # ------------------------------------------------------------------
    def _modern(self, request: httpx.Request) -> httpx.Response:
        if self.modern_down:
            raise httpx.ConnectError("REST backend unreachable", request=request)
        path = request.url.path[len("/api"):]
        body = json.loads(request.content) if request.content else None
        self.modern_calls.append(
            {
                "method": request.method,
                "path": path,
                "params": dict(request.url.params),
                "body": body,
                "token": self._bearer(request),
            }
        )
        if self._rejected(request):
            return httpx.Response(401, json={"success": False, "error": "Unauthorized"})
        if path in self.modern_payloads:
            return httpx.Response(200, json={"success": True, "data": self.modern_payloads[path]})
        if path in self.modern_failures:
            return httpx.Response(200, json={"success": False, "error": self.modern_failures[path]})
        if path == "/tasks/manage":
            return self._modern_tasks(request.method, body)
        if path == "/app/load-data":
            return httpx.Response(200, json={"success": True, "data": self._legacy_loadAppData()})
        if path == "/gmail/messages" and request.method == "POST":
            task = self._create_task(
                body.get("customTitle") or "Email task", body.get("customDescription"),
                body.get("projectId"), body.get("context"), None,
            )
            return httpx.Response(200, json={"success": True, "data": task})
        if path == "/drive/files":
            files = [{"id": "f1", "name": "Plan.pdf", "mimeType": "application/pdf"}]
            return httpx.Response(200, json={"success": True, "data": {"files": files}})
        return httpx.Response(404, json={"success": False, "error": f"No route for {path}"})

    def _modern_tasks(self, method: str, body: Optional[Dict[str, Any]]) -> httpx.Response:
        if method == "GET":
            return httpx.Response(200, json={"success": True, "data": {"tasks": copy.deepcopy(self.tasks)}})
        if method == "POST":
            task = self._create_task(
                body["title"], body.get("description"), body.get("projectId"),
                body.get("context"), body.get("dueDate"),
            )
            return httpx.Response(201, json={"success": True, "data": task})
        if method == "PUT":
            fields = {k: v for k, v in body.items() if k != "taskId" and v is not None}
            self._update_task(body["taskId"], **fields)
            row_number = next(i for i, row in enumerate(self.tasks, start=2) if row["id"] == body["taskId"])
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "data": {"taskId": body["taskId"], "updatedFields": list(fields), "rowNumber": row_number},
                },
            )
        if method == "DELETE":
            self._legacy_deleteTask(body["taskId"])
            return httpx.Response(200, json={"success": True})
        return httpx.Response(405, json={"success": False, "error": "method not allowed"})

    # ------------------------------------------------------------------
    def _create_task(self, title, description, project_id, context, due_date) -> Dict[str, Any]:
        task = {
            "id": self._new_id(),
            "title": title,
            "description": description or "",
            "projectId": project_id,
            "context": context or "",
            "dueDate": due_date,
            "isCompleted": False,
            "sortOrder": len(self.tasks) + 1,
            "createdAt": "2024-05-01T09:00:00",
        }
        self.tasks.append(task)
        return copy.deepcopy(task)

    def _update_task(self, task_id: str, **fields: Any) -> Dict[str, Any]:
        for row in self.tasks:
            if row["id"] == task_id:
                row.update(fields)
                return copy.deepcopy(row)
        raise KeyError(task_id)


class RecordingListener:
    """Auth listener that records what it was told."""

    def __init__(self) -> None:
        self.refreshed: List[str] = []
        self.logouts: List[str] = []

    def on_token_refreshed(self, session: Session) -> None:
        self.refreshed.append(session.access_token)

    def on_logged_out(self, reason: str) -> None:
        self.logouts.append(reason)


class Clock:
    """Controllable time source."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_session(
    *,
    age: float = 10,
    expires_in: int = 3600,
    refresh_token: Optional[str] = "refresh-1",
    access_token: str = "token-1",
) -> Session:
    return Session(
        user_id="u-1",
        email="dana@example.com",
        access_token=access_token,
        refresh_token=refresh_token,
        token_issued_at=NOW - age,
        expires_in_seconds=expires_in,
    )


@pytest.fixture
def settings(tmp_path):
    """Settings pointing both backends at the fake hosts."""
    return Settings(
        legacy_url=LEGACY_URL,
        api_base_url=API_BASE_URL,
        use_modern=False,
        enable_fallback=True,
        request_timeout_seconds=5,
        session_path=tmp_path / "session.json",
        environment="test",
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def make_layer(settings, backend, clock, listener):
    """Factory building an access layer wired to the fake backends."""

    def factory(session: Optional[Session] = None, **overrides: Any):
        layer_settings = settings
        if overrides:
            layer_settings = Settings(**{**{f: getattr(settings, f) for f in (
                "legacy_url", "api_base_url", "use_modern", "enable_fallback",
                "request_timeout_seconds", "session_path", "environment",
            )}, **overrides})
        store = MemorySessionStore(session if session is not None else make_session())
        layer = build_access_layer(
            layer_settings,
            store=store,
            transport=httpx.MockTransport(backend),
            listeners=[listener],
            clock=clock,
        )
        layer.store = store
        return layer

    return factory


def run_layer(layer, action):
    """Run ``action(layer)`` on a fresh event loop and close the layer."""

    async def runner():
        async with layer:
            return await action(layer)

    return asyncio.run(runner())
