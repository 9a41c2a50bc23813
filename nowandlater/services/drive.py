"""Project files and the Drive folder hierarchy."""
from __future__ import annotations

from typing import Any, List, Optional

from ..errors import ValidationFailure
from ..invoker import Operation
from ..models import DriveFolder, DriveStructure, ProjectFile
from ..transport.modern import ModernRoute
from .base import DomainService, arg, entity, entity_list, nothing, require_id, require_text

MIN_SEARCH_LENGTH = 3


def _structure(data: Any) -> DriveStructure:
    return DriveStructure.from_dict(data if isinstance(data, dict) else {})


LIST_PROJECT_FILES = Operation(
    action="getProjectFiles",
    parse=entity_list(ProjectFile, "files"),
    legacy_method="GET",
    modern=ModernRoute(
        "GET",
        "/projects/files",
        params=lambda args: {"projectId": arg(args, 0), "folderId": arg(args, 1)},
    ),
)

DELETE_PROJECT_FILE = Operation(action="deleteProjectFile", parse=nothing, invalidates=("files",))

CREATE_MASTER_FOLDER = Operation(
    action="createMasterFolder",
    parse=entity(DriveFolder, "create master folder"),
    invalidates=("files",),
)

GET_DRIVE_STRUCTURE = Operation(action="getDriveStructure", parse=_structure, legacy_method="GET")

CREATE_AREA_FOLDER = Operation(
    action="createAreaFolder",
    parse=entity(DriveFolder, "create area folder"),
    invalidates=("files", "areas"),
)

CREATE_PROJECT_FOLDER = Operation(
    action="createProjectFolder",
    parse=entity(DriveFolder, "create project folder"),
    invalidates=("files", "projects"),
)

GET_FOLDER_FILES = Operation(
    action="getFolderFiles", parse=entity_list(ProjectFile, "files"), legacy_method="GET"
)

SET_MASTER_FOLDER = Operation(action="setMasterFolder", parse=nothing, invalidates=("files",))

LIST_DRIVE_FILES = Operation(
    action="listDriveFiles",
    parse=entity_list(ProjectFile, "files"),
    legacy_method="GET",
    modern=ModernRoute(
        "GET", "/drive/list-files", params=lambda args: {"folderId": arg(args, 0, "root")}
    ),
)

SEARCH_DRIVE_FILES = Operation(
    action="searchDriveFiles",
    parse=entity_list(ProjectFile, "files"),
    legacy_method="GET",
    modern=ModernRoute(
        "GET",
        "/drive/files",
        params=lambda args: {"search": arg(args, 0), "limit": arg(args, 1)},
    ),
)

RECENT_FILES = Operation(
    action=None,
    name="getRecentFiles",
    parse=entity_list(ProjectFile, "files"),
    degradable=False,
    modern=ModernRoute(
        "GET",
        "/drive/files",
        params=lambda args: {"scope": "recent", "days": arg(args, 0), "limit": arg(args, 1)},
    ),
)

SHARED_FILES = Operation(
    action=None,
    name="getSharedFiles",
    parse=entity_list(ProjectFile, "files"),
    degradable=False,
    modern=ModernRoute("GET", "/drive/files", params=lambda args: {"scope": "shared"}),
)

FILE_PATH = Operation(
    action="getFilePath",
    parse=entity_list(DriveFolder, "path"),
    legacy_method="GET",
    modern=ModernRoute("GET", "/drive/files", params=lambda args: {"pathFor": arg(args, 0)}),
)


class DriveService(DomainService):
    """Files attached to projects and the master/area/project folder tree."""

    async def list_project_files(
        self, project_id: str, drive_folder_id: Optional[str] = None
    ) -> List[ProjectFile]:
        """List a project's files; a known folder id skips the sheet lookup server-side."""
        project_id = require_id(project_id, "Project id", "project")
        return await self._call(LIST_PROJECT_FILES, project_id, drive_folder_id)

    async def delete_project_file(self, project_id: str, file_id: str) -> None:
        await self._call(
            DELETE_PROJECT_FILE,
            require_id(project_id, "Project id", "project"),
            require_text(file_id, "File id"),
        )

    async def create_master_folder(self, folder_name: str) -> DriveFolder:
        return await self._call(CREATE_MASTER_FOLDER, require_text(folder_name, "Folder name"))

    async def get_drive_structure(self) -> DriveStructure:
        return await self._call(GET_DRIVE_STRUCTURE)

    async def create_area_folder(
        self, area_id: str, area_name: str, master_folder_id: Optional[str] = None
    ) -> DriveFolder:
        return await self._call(
            CREATE_AREA_FOLDER,
            require_id(area_id, "Area id", "area"),
            require_text(area_name, "Area name"),
            master_folder_id,
        )

    async def create_project_folder(
        self, project_id: str, project_name: str, area_folder_id: Optional[str] = None
    ) -> DriveFolder:
        return await self._call(
            CREATE_PROJECT_FOLDER,
            require_id(project_id, "Project id", "project"),
            require_text(project_name, "Project name"),
            area_folder_id,
        )

    async def get_folder_files(self, folder_id: str) -> List[ProjectFile]:
        return await self._call(GET_FOLDER_FILES, require_text(folder_id, "Folder id"))

    async def set_master_folder(self, folder_id: str) -> None:
        await self._call(SET_MASTER_FOLDER, require_text(folder_id, "Folder id"))

    async def list_drive_files(self, folder_id: str = "root") -> List[ProjectFile]:
        return await self._call(LIST_DRIVE_FILES, folder_id or "root")

    async def search_drive_files(self, query: str, limit: Optional[int] = None) -> List[ProjectFile]:
        query = require_text(query, "Search query")
        if len(query) < MIN_SEARCH_LENGTH:
            raise ValidationFailure(
                f"Search query must be at least {MIN_SEARCH_LENGTH} characters"
            )
        return await self._call(SEARCH_DRIVE_FILES, query, limit)

    async def get_recent_files(self, days: int = 7, limit: int = 50) -> List[ProjectFile]:
        if days <= 0 or limit <= 0:
            raise ValidationFailure("days and limit must be positive")
        return await self._call(RECENT_FILES, days, limit)

    async def get_shared_files(self) -> List[ProjectFile]:
        return await self._call(SHARED_FILES)

    async def get_file_path(self, file_id: str) -> List[DriveFolder]:
        """Return the folders from the Drive root down to ``file_id``."""
        return await self._call(FILE_PATH, require_text(file_id, "File id"))
