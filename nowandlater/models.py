"""Domain entities returned by the domain services.

Every service method hands back one of these types regardless of which
backend served the call. Wire payloads use camelCase keys; ``from_dict``
accepts them and ``to_dict`` produces them again.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

ProjectStatus = Literal["Active", "Paused", "Completed", "Archive"]
PROJECT_STATUSES = ("Active", "Paused", "Completed", "Archive")
TASK_VIEWS = ("inbox", "today", "upcoming", "anytime", "logbook")


@dataclass(slots=True)
class Area:
    id: str
    name: str
    description: str = ""
    drive_folder_id: Optional[str] = None
    drive_folder_url: Optional[str] = None
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "driveFolderId": self.drive_folder_id,
            "driveFolderUrl": self.drive_folder_url,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Area":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            description=data.get("description") or "",
            drive_folder_id=data.get("driveFolderId"),
            drive_folder_url=data.get("driveFolderUrl"),
            created_at=data.get("createdAt") or "",
        )


@dataclass(slots=True)
class Project:
    id: str
    name: str
    description: str = ""
    area_id: Optional[str] = None
    status: str = "Active"
    drive_folder_id: Optional[str] = None
    drive_folder_url: Optional[str] = None
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "areaId": self.area_id,
            "status": self.status,
            "driveFolderId": self.drive_folder_id,
            "driveFolderUrl": self.drive_folder_url,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            description=data.get("description") or "",
            area_id=data.get("areaId") or None,
            status=data.get("status") or "Active",
            drive_folder_id=data.get("driveFolderId"),
            drive_folder_url=data.get("driveFolderUrl"),
            created_at=data.get("createdAt") or "",
        )


@dataclass(slots=True)
class TaskAttachment:
    id: str
    name: str
    mime_type: str
    size: int
    url: str
    uploaded_at: str = ""
    thumbnail_url: Optional[str] = None
    drive_file_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "mimeType": self.mime_type,
            "size": self.size,
            "url": self.url,
            "thumbnailUrl": self.thumbnail_url,
            "driveFileId": self.drive_file_id,
            "uploadedAt": self.uploaded_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskAttachment":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            mime_type=data.get("mimeType") or "application/octet-stream",
            size=int(data.get("size") or 0),
            url=data.get("url") or "",
            uploaded_at=data.get("uploadedAt") or "",
            thumbnail_url=data.get("thumbnailUrl"),
            drive_file_id=data.get("driveFileId"),
        )


@dataclass(slots=True)
class Task:
    """A task row from the Tasks sheet."""

    id: str
    title: str
    description: str = ""
    project_id: Optional[str] = None
    context: str = ""
    due_date: Optional[str] = None  # ISO date, YYYY-MM-DD
    is_completed: bool = False
    sort_order: int = 0
    created_at: str = ""
    attachments: List[TaskAttachment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "projectId": self.project_id,
            "context": self.context,
            "dueDate": self.due_date,
            "isCompleted": self.is_completed,
            "sortOrder": self.sort_order,
            "createdAt": self.created_at,
            "attachments": [a.to_dict() for a in self.attachments],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        completed = data.get("isCompleted")
        if isinstance(completed, str):
            completed = completed.lower() == "true"
        try:
            sort_order = int(data.get("sortOrder") or 0)
        except (TypeError, ValueError):
            sort_order = 0
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            description=data.get("description") or "",
            project_id=data.get("projectId") or None,
            context=data.get("context") or "",
            due_date=data.get("dueDate") or None,
            is_completed=bool(completed),
            sort_order=sort_order,
            created_at=data.get("createdAt") or "",
            attachments=[
                TaskAttachment.from_dict(item) for item in data.get("attachments") or []
            ],
        )


@dataclass(slots=True)
class ProjectFile:
    id: str
    name: str
    mime_type: str
    size: int
    url: str
    created_at: str = ""
    modified_at: str = ""
    thumbnail_url: Optional[str] = None
    drive_file_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "mimeType": self.mime_type,
            "size": self.size,
            "url": self.url,
            "thumbnailUrl": self.thumbnail_url,
            "driveFileId": self.drive_file_id,
            "createdAt": self.created_at,
            "modifiedAt": self.modified_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectFile":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            mime_type=data.get("mimeType") or "application/octet-stream",
            size=int(data.get("size") or 0),
            url=data.get("url") or data.get("webViewLink") or "",
            created_at=data.get("createdAt") or data.get("createdTime") or "",
            modified_at=data.get("modifiedAt") or data.get("modifiedTime") or "",
            thumbnail_url=data.get("thumbnailUrl") or data.get("thumbnailLink"),
            drive_file_id=data.get("driveFileId"),
        )


@dataclass(slots=True)
class DriveFolder:
    id: str
    name: str
    web_view_link: str = ""
    parent_folder_id: Optional[str] = None
    created_time: str = ""
    modified_time: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "webViewLink": self.web_view_link,
            "parentFolderId": self.parent_folder_id,
            "createdTime": self.created_time,
            "modifiedTime": self.modified_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DriveFolder":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            web_view_link=data.get("webViewLink") or "",
            parent_folder_id=data.get("parentFolderId"),
            created_time=data.get("createdTime") or "",
            modified_time=data.get("modifiedTime") or "",
        )


@dataclass(slots=True)
class DriveStructure:
    master_folder_id: Optional[str] = None
    master_folder_name: Optional[str] = None
    areas: Dict[str, DriveFolder] = field(default_factory=dict)
    projects: Dict[str, DriveFolder] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DriveStructure":
        return cls(
            master_folder_id=data.get("masterFolderId"),
            master_folder_name=data.get("masterFolderName"),
            areas={k: DriveFolder.from_dict(v) for k, v in (data.get("areas") or {}).items()},
            projects={
                k: DriveFolder.from_dict(v) for k, v in (data.get("projects") or {}).items()
            },
        )


@dataclass(slots=True)
class Contact:
    name: str
    email: str
    resource_name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Contact":
        return cls(
            name=data.get("name") or "",
            email=data.get("email") or "",
            resource_name=data.get("resourceName") or "",
        )


@dataclass(slots=True)
class Document:
    document_id: str
    document_url: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        return cls(
            document_id=str(data.get("documentId") or ""),
            document_url=data.get("documentUrl") or "",
        )


@dataclass(slots=True)
class EmailMessage:
    """Summary of a mailbox message as listed by the mail bridge."""

    id: str
    thread_id: str = ""
    subject: str = ""
    sender: str = ""
    snippet: str = ""
    date: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmailMessage":
        return cls(
            id=str(data["id"]),
            thread_id=data.get("threadId") or "",
            subject=data.get("subject") or "",
            sender=data.get("from") or data.get("sender") or "",
            snippet=data.get("snippet") or "",
            date=data.get("date") or "",
        )


@dataclass(slots=True)
class CalendarSyncResult:
    synced: int = 0
    created: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalendarSyncResult":
        return cls(
            synced=int(data.get("synced") or 0),
            created=int(data.get("created") or 0),
            updated=int(data.get("updated") or 0),
            errors=list(data.get("errors") or []),
        )


@dataclass(slots=True)
class AppData:
    """Initial bundle loaded at startup."""

    areas: List[Area] = field(default_factory=list)
    projects: List[Project] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppData":
        return cls(
            areas=[Area.from_dict(a) for a in data.get("areas") or []],
            projects=[Project.from_dict(p) for p in data.get("projects") or []],
            tasks=[Task.from_dict(t) for t in data.get("tasks") or []],
        )
