"""Task operations."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from ..errors import ValidationFailure
from ..invoker import Operation
from ..models import TASK_VIEWS, Task, TaskAttachment
from ..substitutes import filter_task_rows
from ..transport.modern import ModernRoute
from .base import DomainService, arg, entity, nothing, require_id, require_text

logger = logging.getLogger(__name__)


def _rows(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, dict):
        data = data.get("tasks")
    rows = [row for row in data or [] if isinstance(row, dict)]
    for row in rows:
        if row.get("id") in (None, ""):
            raise ValueError(f"task row without an id: {row!r}")
    return rows


def _task_body(args: Sequence[Any]) -> Dict[str, Any]:
    return {
        "title": arg(args, 0),
        "description": arg(args, 1),
        "projectId": arg(args, 2),
        "context": arg(args, 3),
        "dueDate": arg(args, 4),
        "attachments": arg(args, 5),
    }


LIST_TASKS = Operation(
    action="getTasks",
    parse=_rows,
    legacy_method="GET",
    modern=ModernRoute(
        "GET",
        "/tasks/manage",
        params=lambda args: {"projectId": arg(args, 0), "view": arg(args, 1)},
    ),
)

CREATE_TASK = Operation(
    action="createTask",
    parse=entity(Task, "create task"),
    modern=ModernRoute("POST", "/tasks/manage", body=_task_body),
    invalidates=("tasks",),
)

# REST PUT answers {taskId, updatedFields, rowNumber} only; edits use the
# legacy action, which answers with the stored task.
UPDATE_TASK = Operation(
    action="updateTask",
    parse=entity(Task, "update task"),
    invalidates=("tasks",),
)

SET_COMPLETION = Operation(
    action="updateTaskCompletion",
    parse=nothing,
    modern=ModernRoute(
        "PUT",
        "/tasks/manage",
        body=lambda args: {"taskId": arg(args, 0), "isCompleted": arg(args, 1)},
    ),
    invalidates=("tasks",),
)

DELETE_TASK = Operation(
    action="deleteTask",
    parse=nothing,
    modern=ModernRoute("DELETE", "/tasks/manage", body=lambda args: {"taskId": arg(args, 0)}),
    invalidates=("tasks",),
)

REORDER_TASKS = Operation(
    action="reorderTasks",
    parse=nothing,
    invalidates=("tasks",),
)


def _due_date(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10]).isoformat()
    except ValueError as exc:
        raise ValidationFailure(f"Invalid due date {value!r}; expected YYYY-MM-DD") from exc


class TaskService(DomainService):
    """Tasks: listing by project or view, create, edit, complete, delete, reorder."""

    async def list_tasks(
        self, project_id: Optional[str] = None, view: Optional[str] = None
    ) -> List[Task]:
        """Return the tasks of a project, or of a sidebar view when no project is given.

        The same filter is applied to every backend's answer so both return
        the same rows for the same query.
        """
        if view is not None and view not in TASK_VIEWS:
            raise ValidationFailure(
                f"Unknown view {view!r}; expected one of {', '.join(TASK_VIEWS)}"
            )
        rows = await self._call(LIST_TASKS, project_id, view)
        rows = filter_task_rows(rows, project_id, view, date.today())
        tasks = [Task.from_dict(row) for row in rows]
        tasks.sort(key=lambda task: task.sort_order)
        return tasks

    async def create_task(
        self,
        title: str,
        description: str = "",
        project_id: Optional[str] = None,
        context: str = "",
        due_date: Optional[str] = None,
        attachments: Optional[Sequence[TaskAttachment]] = None,
    ) -> Task:
        title = require_text(title, "Task title")
        if project_id:
            project_id = require_id(project_id, "Project id", "project")
        return await self._call(
            CREATE_TASK,
            title,
            description or "",
            project_id or None,
            context or "",
            _due_date(due_date),
            [a.to_dict() for a in attachments or []],
        )

    async def update_task(
        self,
        task_id: str,
        title: str,
        description: str = "",
        project_id: Optional[str] = None,
        context: str = "",
        due_date: Optional[str] = None,
    ) -> Task:
        task_id = require_id(task_id, "Task id", "task")
        title = require_text(title, "Task title")
        return await self._call(
            UPDATE_TASK,
            task_id,
            title,
            description or "",
            project_id or None,
            context or "",
            _due_date(due_date),
        )

    async def set_completion(self, task_id: str, is_completed: bool) -> None:
        task_id = require_id(task_id, "Task id", "task")
        logger.info("Marking task %s %s", task_id, "complete" if is_completed else "open")
        await self._call(SET_COMPLETION, task_id, bool(is_completed))

    async def delete_task(self, task_id: str) -> None:
        task_id = require_id(task_id, "Task id", "task")
        await self._call(DELETE_TASK, task_id)

    async def reorder_tasks(self, task_ids: Sequence[str]) -> None:
        """Persist a new manual order; the first id gets sort order 1."""
        if not task_ids:
            raise ValidationFailure("Reorder requires at least one task id")
        ids = [require_id(task_id, "Task id", "task") for task_id in task_ids]
        if len(set(ids)) != len(ids):
            raise ValidationFailure("Reorder list contains duplicate task ids")
        await self._call(REORDER_TASKS, ids)
