"""Domain services: one method per business operation."""

from .drive import DriveService
from .mail import MailCalendarBridge
from .projects import ProjectService
from .tasks import TaskService

__all__ = ["DriveService", "MailCalendarBridge", "ProjectService", "TaskService"]
