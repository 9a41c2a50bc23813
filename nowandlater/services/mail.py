"""Mail, calendar, contacts and document bridges."""
from __future__ import annotations

import logging
from typing import Any, List, Optional

from ..errors import ValidationFailure
from ..invoker import Operation
from ..models import CalendarSyncResult, Contact, Document, EmailMessage, Task
from ..transport.modern import ModernRoute
from .base import DomainService, arg, entity, entity_list, require_id, require_text

logger = logging.getLogger(__name__)

DOCUMENT_TEMPLATES = ("project-notes", "meeting-notes", "project-plan")


def _sync_result(data: Any) -> CalendarSyncResult:
    return CalendarSyncResult.from_dict(data if isinstance(data, dict) else {})


SEARCH_MESSAGES = Operation(
    action=None,
    name="searchGmailMessages",
    parse=entity_list(EmailMessage, "messages"),
    degradable=False,
    modern=ModernRoute(
        "GET",
        "/gmail/messages",
        params=lambda args: {"query": arg(args, 0) or None, "maxResults": arg(args, 1)},
    ),
)

CONVERT_EMAIL = Operation(
    action=None,
    name="convertEmailToTask",
    parse=entity(Task, "convert email to task"),
    modern=ModernRoute(
        "POST",
        "/gmail/messages",
        params=lambda args: {"action": "convert-to-task"},
        body=lambda args: {
            "messageId": arg(args, 0),
            "projectId": arg(args, 1),
            "context": arg(args, 2),
            "customTitle": arg(args, 3),
            "customDescription": arg(args, 4),
        },
    ),
    invalidates=("tasks",),
    degradable=False,
)

SYNC_CALENDAR = Operation(
    action="syncTasksWithCalendar", parse=_sync_result, degradable=False
)

GET_CONTACTS = Operation(action="getContacts", parse=entity_list(Contact), legacy_method="GET")

CREATE_DOCUMENT = Operation(
    action="createProjectDocument",
    parse=entity(Document, "create project document"),
    invalidates=("files",),
    degradable=False,
)


class MailCalendarBridge(DomainService):
    """Gateways to mailbox, calendar, contacts and document generation."""

    async def search_messages(self, query: str = "", max_results: int = 10) -> List[EmailMessage]:
        if max_results <= 0:
            raise ValidationFailure("max_results must be positive")
        return await self._call(SEARCH_MESSAGES, (query or "").strip(), max_results)

    async def convert_email_to_task(
        self,
        message_id: str,
        *,
        project_id: Optional[str] = None,
        context: Optional[str] = None,
        custom_title: Optional[str] = None,
        custom_description: Optional[str] = None,
    ) -> Task:
        """Create a task from a mail message; the tasks cache is invalidated afterwards."""
        message_id = require_text(message_id, "Message id")
        if project_id:
            project_id = require_id(project_id, "Project id", "project")
        logger.info("Converting message %s to a task", message_id)
        return await self._call(
            CONVERT_EMAIL, message_id, project_id, context, custom_title, custom_description
        )

    async def sync_tasks_with_calendar(self) -> CalendarSyncResult:
        return await self._call(SYNC_CALENDAR)

    async def get_contacts(self) -> List[Contact]:
        return await self._call(GET_CONTACTS)

    async def create_project_document(
        self, project_id: str, project_name: str, template_type: str = "project-notes"
    ) -> Document:
        project_id = require_id(project_id, "Project id", "project")
        if template_type not in DOCUMENT_TEMPLATES:
            raise ValidationFailure(
                f"Unknown template {template_type!r}; expected one of {', '.join(DOCUMENT_TEMPLATES)}"
            )
        return await self._call(
            CREATE_DOCUMENT, project_id, require_text(project_name, "Project name"), template_type
        )
