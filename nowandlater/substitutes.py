"""Deterministic placeholder data served while no backend is reachable."""
from __future__ import annotations

import copy
import logging
import time
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


def filter_task_rows(
    rows: Sequence[Dict[str, Any]],
    project_id: Optional[str],
    view: Optional[str],
    today: date,
) -> List[Dict[str, Any]]:
    """Apply the sidebar view rules to raw task rows.

    A project filter wins over a view. Due dates compare by calendar day so
    anything due today or earlier belongs to ``today``.
    """
    if project_id:
        return [row for row in rows if row.get("projectId") == project_id]
    if not view:
        return list(rows)

    def due(row: Dict[str, Any]) -> Optional[date]:
        raw = row.get("dueDate")
        if not raw:
            return None
        try:
            return date.fromisoformat(str(raw)[:10])
        except ValueError:
            return None

    open_rows = [row for row in rows if not _completed(row)]
    if view == "inbox":
        return [row for row in open_rows if not row.get("projectId")]
    if view == "today":
        return [row for row in open_rows if due(row) is not None and due(row) <= today]
    if view == "upcoming":
        return [row for row in open_rows if due(row) is not None and due(row) > today]
    if view == "anytime":
        return [row for row in open_rows if due(row) is None]
    if view == "logbook":
        return [row for row in rows if _completed(row)]
    return list(rows)


def _completed(row: Dict[str, Any]) -> bool:
    value = row.get("isCompleted")
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


class SubstituteData:
    """In-memory stand-in for the legacy backend.

    Reads return a fixed sample of areas, projects and tasks. Writes echo
    their input as a locally fabricated entity with ids from a counter, so
    repeated runs with the same clock produce the same data.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._counter = 0
        self.areas: List[Dict[str, Any]] = []
        self.projects: List[Dict[str, Any]] = []
        self.tasks: List[Dict[str, Any]] = []
        self.project_files: Dict[str, List[Dict[str, Any]]] = {}
        self.master_folder_id: Optional[str] = None
        self.reset()

    # ------------------------------------------------------------------
    def reset(self) -> None:
        now = self._now()
        today = now.date()
        stamp = now.isoformat()
        self._counter = 0
        self.master_folder_id = None
        self.areas = [
            {"id": "1", "name": "Personal", "description": "Personal tasks and projects", "createdAt": stamp},
            {"id": "2", "name": "Work", "description": "Work-related items", "createdAt": stamp},
        ]
        self.projects = [
            {
                "id": "1",
                "name": "Home Renovation",
                "description": "Kitchen and bathroom updates",
                "areaId": "1",
                "status": "Active",
                "createdAt": stamp,
            },
            {
                "id": "2",
                "name": "Q4 Planning",
                "description": "Strategic planning for Q4",
                "areaId": "2",
                "status": "Active",
                "createdAt": stamp,
            },
        ]
        self.tasks = [
            self._task("1", "Research contractors", "Find 3 quotes for kitchen renovation",
                       "1", "@research", (today + timedelta(days=7)).isoformat(), 1, stamp),
            self._task("2", "Review budget", "Check Q3 expenses",
                       "2", "@computer", today.isoformat(), 1, stamp),
            self._task("3", "Quick inbox task", "Something without a project",
                       None, "@errands", None, 1, stamp),
            self._task("4", "Outline renovation scope", "List every room and the work it needs",
                       "1", "@computer", None, 2, stamp),
            self._task("5", "Short task", "Simple task with short description",
                       "2", "@office", None, 1, stamp),
            self._task("6", "Compare vendor pricing", "Research vendors and get three quotes",
                       None, "@research", (today + timedelta(days=3)).isoformat(), 1, stamp),
            self._task("7", "Collect reference photos", "Gather sample images for the contractor",
                       "1", "@computer", None, 3, stamp),
        ]
        self.project_files = {
            "1": [
                {
                    "id": "file_1",
                    "name": "Kitchen_Plans.pdf",
                    "mimeType": "application/pdf",
                    "size": 2048000,
                    "url": "https://drive.google.com/file/d/example1/view",
                    "createdAt": (now - timedelta(days=3)).isoformat(),
                    "modifiedAt": (now - timedelta(days=1)).isoformat(),
                },
            ],
            "2": [
                {
                    "id": "file_3",
                    "name": "Q4_Strategy.pptx",
                    "mimeType": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
                    "size": 4096000,
                    "url": "https://drive.google.com/file/d/example3/view",
                    "createdAt": (now - timedelta(days=7)).isoformat(),
                    "modifiedAt": (now - timedelta(days=1)).isoformat(),
                },
            ],
        }

    @staticmethod
    def _task(
        task_id: str,
        title: str,
        description: str,
        project_id: Optional[str],
        context: str,
        due_date: Optional[str],
        sort_order: int,
        stamp: str,
    ) -> Dict[str, Any]:
        return {
            "id": task_id,
            "title": title,
            "description": description,
            "projectId": project_id,
            "context": context,
            "dueDate": due_date,
            "isCompleted": False,
            "sortOrder": sort_order,
            "createdAt": stamp,
            "attachments": [],
        }

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock())

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"local_{prefix}_{self._counter}"

    # ------------------------------------------------------------------
    def respond(self, action: str, args: Sequence[Any]) -> Any:
        """Return the raw ``data`` the legacy backend would have sent for ``action``."""
        handler = getattr(self, f"_on_{action}", None)
        if handler is None:
            logger.debug("No substitute for %s; returning empty data", action)
            return None
        return copy.deepcopy(handler(*args))

    def _on_getAreas(self) -> Any:
        return self.areas

    def _on_getProjects(self, area_id: Optional[str] = None) -> Any:
        if area_id:
            return [p for p in self.projects if p.get("areaId") == area_id]
        return self.projects

    def _on_getTasks(self, project_id: Optional[str] = None, view: Optional[str] = None) -> Any:
        return filter_task_rows(self.tasks, project_id, view, self._now().date())

    def _on_loadAppData(self) -> Any:
        return {"areas": self.areas, "projects": self.projects, "tasks": self.tasks}

    def _on_createArea(self, name: str, description: str = "") -> Any:
        area = {
            "id": self._next_id("area"),
            "name": name,
            "description": description or "",
            "createdAt": self._now().isoformat(),
        }
        self.areas.append(area)
        return area

    def _on_deleteArea(self, area_id: str) -> Any:
        self.areas = [a for a in self.areas if a["id"] != area_id]
        return None

    def _on_createProject(self, name: str, description: str = "", area_id: Optional[str] = None) -> Any:
        project = {
            "id": self._next_id("project"),
            "name": name,
            "description": description or "",
            "areaId": area_id or None,
            "status": "Active",
            "createdAt": self._now().isoformat(),
        }
        self.projects.append(project)
        return project

    def _on_deleteProject(self, project_id: str) -> Any:
        self.projects = [p for p in self.projects if p["id"] != project_id]
        return None

    def _find_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        return next((p for p in self.projects if p["id"] == project_id), None)

    def _on_updateProjectStatus(self, project_id: str, status: str) -> Any:
        project = self._find_project(project_id)
        if project is not None:
            project["status"] = status
        return None

    def _on_updateProjectArea(self, project_id: str, area_id: Optional[str]) -> Any:
        project = self._find_project(project_id)
        if project is not None:
            project["areaId"] = area_id
        return None

    def _on_updateProjectName(self, project_id: str, name: str) -> Any:
        project = self._find_project(project_id)
        if project is None:
            project = {"id": project_id, "name": name, "status": "Active"}
        project["name"] = name
        return project

    def _on_createTask(
        self,
        title: str,
        description: str = "",
        project_id: Optional[str] = None,
        context: Optional[str] = None,
        due_date: Optional[str] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> Any:
        task = {
            "id": self._next_id("task"),
            "title": title,
            "description": description or "",
            "projectId": project_id or None,
            "context": context or "",
            "dueDate": due_date or None,
            "isCompleted": False,
            "sortOrder": len(self.tasks) + 1,
            "createdAt": self._now().isoformat(),
            "attachments": list(attachments or []),
        }
        self.tasks.append(task)
        return task

    def _find_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        return next((t for t in self.tasks if t["id"] == task_id), None)

    def _on_updateTask(
        self,
        task_id: str,
        title: str,
        description: str = "",
        project_id: Optional[str] = None,
        context: Optional[str] = None,
        due_date: Optional[str] = None,
    ) -> Any:
        task = self._find_task(task_id)
        if task is None:
            task = self._task(task_id, title, "", None, "", None, len(self.tasks) + 1,
                              self._now().isoformat())
            self.tasks.append(task)
        task.update(
            {
                "title": title,
                "description": description or "",
                "projectId": project_id or None,
                "context": context or "",
                "dueDate": due_date or None,
            }
        )
        return task

    def _on_updateTaskCompletion(self, task_id: str, is_completed: bool) -> Any:
        task = self._find_task(task_id)
        if task is not None:
            task["isCompleted"] = bool(is_completed)
        return None

    def _on_deleteTask(self, task_id: str) -> Any:
        self.tasks = [t for t in self.tasks if t["id"] != task_id]
        return None

    def _on_reorderTasks(self, task_ids: Sequence[str]) -> Any:
        for position, task_id in enumerate(task_ids, start=1):
            task = self._find_task(task_id)
            if task is not None:
                task["sortOrder"] = position
        return None

    def _on_getProjectFiles(self, project_id: str, *_: Any) -> Any:
        return self.project_files.get(project_id, [])

    def _on_deleteProjectFile(self, project_id: str, file_id: str) -> Any:
        files = self.project_files.get(project_id)
        if files is not None:
            self.project_files[project_id] = [f for f in files if f["id"] != file_id]
        return None

    def _folder(self, prefix: str, name: str, parent: Optional[str]) -> Dict[str, Any]:
        folder_id = self._next_id(prefix)
        stamp = self._now().isoformat()
        return {
            "id": folder_id,
            "name": name,
            "webViewLink": f"https://drive.google.com/drive/folders/{folder_id}",
            "parentFolderId": parent,
            "createdTime": stamp,
            "modifiedTime": stamp,
        }

    def _on_createMasterFolder(self, name: str) -> Any:
        folder = self._folder("master", name, None)
        self.master_folder_id = folder["id"]
        return folder

    def _on_getDriveStructure(self) -> Any:
        return {
            "masterFolderId": self.master_folder_id or "master_folder_id",
            "masterFolderName": "Productivity App",
            "areas": {},
            "projects": {},
        }

    def _on_createAreaFolder(self, area_id: str, area_name: str, master_folder_id: Optional[str] = None) -> Any:
        return self._folder("area_folder", area_name, master_folder_id)

    def _on_createProjectFolder(
        self, project_id: str, project_name: str, area_folder_id: Optional[str] = None
    ) -> Any:
        return self._folder("project_folder", project_name, area_folder_id)

    def _on_getFolderFiles(self, folder_id: str) -> Any:
        return []

    def _on_setMasterFolder(self, folder_id: str) -> Any:
        self.master_folder_id = folder_id
        return None

    def _on_listDriveFiles(self, *_: Any) -> Any:
        return []

    def _on_searchDriveFiles(self, *_: Any) -> Any:
        return []

    def _on_getFilePath(self, *_: Any) -> Any:
        return []

    def _on_getContacts(self) -> Any:
        return []
