"""Assembly of the access layer and the optimistic task flows built on it."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Sequence

import httpx

from .auth.session import FileSessionStore, SessionStore
from .auth.tokens import AuthListener, TokenLifecycleManager
from .config import Settings
from .errors import ValidationFailure
from .http import build_async_client
from .invoker import DualBackendInvoker
from .models import AppData, Task
from .optimistic import LocalState, OptimisticCoordinator, new_temp_id
from .services import DriveService, MailCalendarBridge, ProjectService, TaskService
from .substitutes import SubstituteData
from .transport.executor import AuthenticatedExecutor
from .transport.legacy import LegacyTransport
from .transport.modern import ModernTransport

logger = logging.getLogger(__name__)


@dataclass
class AccessLayer:
    """Every collaborator of the data-access layer, wired once per process."""

    settings: Settings
    http: httpx.AsyncClient
    tokens: TokenLifecycleManager
    executor: AuthenticatedExecutor
    invoker: DualBackendInvoker
    tasks: TaskService
    projects: ProjectService
    drive: DriveService
    mail: MailCalendarBridge
    coordinator: OptimisticCoordinator

    @property
    def state(self) -> LocalState:
        return self.coordinator.state

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "AccessLayer":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Optimistic flows
    # ------------------------------------------------------------------
    async def load(self) -> AppData:
        data = await self.projects.load_app_data()
        self.state.load(data)
        self.state.clear_error()
        return data

    async def add_task(
        self,
        title: str,
        *,
        description: str = "",
        project_id: Optional[str] = None,
        context: str = "",
        due_date: Optional[str] = None,
    ) -> Task:
        provisional = Task(
            id=new_temp_id("task"),
            title=title,
            description=description,
            project_id=project_id,
            context=context,
            due_date=due_date,
            sort_order=len(self.state.tasks) + 1,
            created_at=datetime.now().isoformat(),
        )
        return await self.coordinator.create(
            "task",
            provisional,
            lambda: self.tasks.create_task(title, description, project_id, context, due_date),
        )

    async def edit_task(
        self,
        task_id: str,
        *,
        title: str,
        description: str = "",
        project_id: Optional[str] = None,
        context: str = "",
        due_date: Optional[str] = None,
        wait_for_creation: bool = False,
    ) -> Task:
        current = self._current_task(task_id)
        proposed = replace(
            current,
            title=title,
            description=description,
            project_id=project_id,
            context=context,
            due_date=due_date,
        )
        return await self.coordinator.update(
            "task",
            task_id,
            proposed,
            lambda real_id: self.tasks.update_task(
                real_id, title, description, project_id, context, due_date
            ),
            wait_for_creation=wait_for_creation,
        )

    async def complete_task(
        self, task_id: str, is_completed: bool = True, *, wait_for_creation: bool = False
    ) -> None:
        current = self._current_task(task_id)
        await self.coordinator.update(
            "task",
            task_id,
            replace(current, is_completed=is_completed),
            lambda real_id: self.tasks.set_completion(real_id, is_completed),
            wait_for_creation=wait_for_creation,
        )

    async def remove_task(self, task_id: str, *, wait_for_creation: bool = False) -> None:
        await self.coordinator.delete(
            "task", task_id, self.tasks.delete_task, wait_for_creation=wait_for_creation
        )

    async def reorder_tasks(self, task_ids: Sequence[str], *, wait_for_creation: bool = False) -> None:
        await self.coordinator.reorder(
            task_ids, self.tasks.reorder_tasks, wait_for_creation=wait_for_creation
        )

    def _current_task(self, task_id: str) -> Task:
        task = self.state.get("task", task_id)
        if task is None:
            resolved = self.coordinator.resolved_id("task", task_id)
            task = self.state.get("task", resolved) if resolved else None
        if task is None:
            raise ValidationFailure(f"Unknown task {task_id}")
        return task


def build_access_layer(
    settings: Settings,
    *,
    store: Optional[SessionStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    listeners: Iterable[AuthListener] = (),
    clock: Callable[[], float] = time.time,
) -> AccessLayer:
    """Wire the layer bottom-up: session, tokens, executor, transports, services."""
    http = build_async_client(settings, transport=transport)
    tokens = TokenLifecycleManager(
        store or FileSessionStore(settings.session_path),
        http,
        settings.refresh_url,
        listeners=listeners,
        clock=clock,
    )
    executor = AuthenticatedExecutor(http, tokens, timeout_seconds=settings.request_timeout_seconds)
    state = LocalState()
    invoker = DualBackendInvoker(
        ModernTransport(settings.api_base_url, executor),
        LegacyTransport(settings.legacy_url, executor),
        prefer_modern=settings.use_modern,
        enable_fallback=settings.enable_fallback,
        substitutes=SubstituteData(clock=clock),
        listeners=[state],
        clock=clock,
    )
    logger.debug(
        "Access layer ready (modern=%s, fallback=%s, env=%s)",
        settings.use_modern,
        settings.enable_fallback,
        settings.environment,
    )
    return AccessLayer(
        settings=settings,
        http=http,
        tokens=tokens,
        executor=executor,
        invoker=invoker,
        tasks=TaskService(invoker, tokens),
        projects=ProjectService(invoker, tokens),
        drive=DriveService(invoker, tokens),
        mail=MailCalendarBridge(invoker, tokens),
        coordinator=OptimisticCoordinator(state),
    )
