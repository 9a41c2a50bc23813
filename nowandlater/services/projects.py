"""Areas, projects and the startup data bundle."""
from __future__ import annotations

import logging
from typing import Any, List, Optional

from ..errors import BusinessFailure, ValidationFailure
from ..invoker import Operation
from ..models import PROJECT_STATUSES, AppData, Area, Project
from ..transport.modern import ModernRoute
from .base import DomainService, arg, entity, entity_list, nothing, require_id, require_text

logger = logging.getLogger(__name__)


def _app_data(data: Any) -> AppData:
    if not isinstance(data, dict):
        raise BusinessFailure("Failed to load app data: backend returned no data")
    return AppData.from_dict(data)


LOAD_APP_DATA = Operation(
    action="loadAppData",
    parse=_app_data,
    legacy_method="GET",
    modern=ModernRoute("GET", "/app/load-data"),
)

LIST_AREAS = Operation(action="getAreas", parse=entity_list(Area), legacy_method="GET")

CREATE_AREA = Operation(
    action="createArea",
    parse=entity(Area, "create area"),
    invalidates=("areas",),
)

DELETE_AREA = Operation(action="deleteArea", parse=nothing, invalidates=("areas",))

LIST_PROJECTS = Operation(action="getProjects", parse=entity_list(Project), legacy_method="GET")

CREATE_PROJECT = Operation(
    action="createProject",
    parse=entity(Project, "create project"),
    modern=ModernRoute(
        "POST",
        "/projects/manage",
        body=lambda args: {
            "name": arg(args, 0),
            "description": arg(args, 1),
            "areaId": arg(args, 2),
        },
    ),
    invalidates=("projects",),
)

DELETE_PROJECT = Operation(
    action="deleteProject",
    parse=nothing,
    modern=ModernRoute("DELETE", "/projects/manage", body=lambda args: {"projectId": arg(args, 0)}),
    invalidates=("projects",),
)

UPDATE_PROJECT_STATUS = Operation(
    action="updateProjectStatus", parse=nothing, invalidates=("projects",)
)

UPDATE_PROJECT_AREA = Operation(
    action="updateProjectArea", parse=nothing, invalidates=("projects",)
)

RENAME_PROJECT = Operation(
    action="updateProjectName",
    parse=entity(Project, "rename project"),
    modern=ModernRoute(
        "PUT",
        "/projects/manage",
        body=lambda args: {"projectId": arg(args, 0), "name": arg(args, 1)},
    ),
    invalidates=("projects",),
)


class ProjectService(DomainService):
    """Areas and projects, plus the combined startup load."""

    async def load_app_data(self) -> AppData:
        return await self._call(LOAD_APP_DATA)

    async def list_areas(self) -> List[Area]:
        return await self._call(LIST_AREAS)

    async def create_area(self, name: str, description: str = "") -> Area:
        return await self._call(CREATE_AREA, require_text(name, "Area name"), (description or "").strip())

    async def delete_area(self, area_id: str) -> None:
        await self._call(DELETE_AREA, require_id(area_id, "Area id", "area"))

    async def list_projects(self, area_id: Optional[str] = None) -> List[Project]:
        projects = await self._call(LIST_PROJECTS, area_id)
        if area_id:
            projects = [p for p in projects if p.area_id == area_id]
        return projects

    async def create_project(
        self, name: str, description: str = "", area_id: Optional[str] = None
    ) -> Project:
        if area_id:
            area_id = require_id(area_id, "Area id", "area")
        return await self._call(
            CREATE_PROJECT,
            require_text(name, "Project name"),
            (description or "").strip(),
            area_id or None,
        )

    async def delete_project(self, project_id: str) -> None:
        await self._call(DELETE_PROJECT, require_id(project_id, "Project id", "project"))

    async def update_project_status(self, project_id: str, status: str) -> None:
        project_id = require_id(project_id, "Project id", "project")
        if status not in PROJECT_STATUSES:
            raise ValidationFailure(
                f"Invalid project status {status!r}; expected one of {', '.join(PROJECT_STATUSES)}"
            )
        await self._call(UPDATE_PROJECT_STATUS, project_id, status)

    async def update_project_area(self, project_id: str, area_id: Optional[str]) -> None:
        project_id = require_id(project_id, "Project id", "project")
        if area_id:
            area_id = require_id(area_id, "Area id", "area")
        await self._call(UPDATE_PROJECT_AREA, project_id, area_id or None)

    async def rename_project(self, project_id: str, new_name: str) -> Project:
        project_id = require_id(project_id, "Project id", "project")
        name = require_text(new_name, "Project name")
        logger.info("Renaming project %s to %r", project_id, name)
        return await self._call(RENAME_PROJECT, project_id, name)
