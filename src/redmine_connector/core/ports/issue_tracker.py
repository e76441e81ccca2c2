"""
Issue Tracker Port - Abstract interface for Redmine data access.

Every layer of the client stack (HTTP transport, caching decorator) implements
this port, so layers can be stacked freely and replaced by mocks in tests.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from ..domain.entities import (
    Attachment,
    ContextMetadata,
    CustomFieldDefinition,
    SimpleEntity,
    Task,
    TimeEntry,
    Version,
    WikiPage,
    WikiVersion,
)


# =============================================================================
# Exceptions
# =============================================================================


class IssueTrackerError(Exception):
    """Base exception for issue tracker errors."""

    def __init__(
        self,
        message: str,
        issue_key: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.issue_key = issue_key
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class AuthenticationError(IssueTrackerError):
    """Authentication failed (invalid or missing API key)."""


class PermissionError(IssueTrackerError):
    """The API key is valid but not allowed to perform the operation."""


class NotFoundError(IssueTrackerError):
    """Resource not found."""


class ValidationError(IssueTrackerError):
    """
    The server rejected the payload (HTTP 422).

    Carries the server's error messages verbatim, e.g. a disallowed status
    transition or a missing required custom field.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[list[str]] = None,
        issue_key: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, issue_key=issue_key, cause=cause)
        self.errors = errors or []


class TransientError(IssueTrackerError):
    """Connection failure, timeout or gateway error; the call may succeed later."""


class RateLimitError(TransientError):
    """The server asked us to slow down (HTTP 429)."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        issue_key: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, issue_key=issue_key, cause=cause)
        self.retry_after = retry_after


# =============================================================================
# Port
# =============================================================================


class IssueTrackerPort(ABC):
    """
    Abstract interface for a Redmine data service.

    Implementations must be safe to call from several threads at once; the
    async facade runs operations on a worker pool.

    ``project_id`` arguments accept either the numeric id or the project
    identifier. Dates are ``YYYY-MM-DD`` strings.
    """

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    @abstractmethod
    def fetch_tasks(self, project_id: str, closed: bool, limit: int) -> list[Task]:
        """
        Fetch tasks of a project, newest first.

        Args:
            project_id: Project id or identifier
            closed: Include closed tasks when True, only open tasks otherwise
            limit: Maximum number of tasks (<= 0 for no limit)
        """
        ...

    @abstractmethod
    def fetch_task_details(self, task_id: int) -> Task:
        """Fetch one task including journals, changesets and custom fields."""
        ...

    @abstractmethod
    def create_task(self, project_id: str, task: Task) -> int:
        """Create a task and return its new id."""
        ...

    @abstractmethod
    def update_task(self, task: Task) -> None:
        """Update a task; ``task.notes`` is added as a journal note."""
        ...

    @abstractmethod
    def fetch_tasks_by_ids(self, ids: list[int]) -> list[Task]:
        """Bulk fetch tasks by id; ids that are missing are omitted."""
        ...

    @abstractmethod
    def fetch_tasks_by_version(self, project_id: str, version_id: int) -> list[Task]:
        """Fetch the tasks that target a version."""
        ...

    @abstractmethod
    def fetch_closed_tasks(self, project_id: str, date_from: str, date_to: str) -> list[Task]:
        """Fetch tasks closed within a date range (inclusive)."""
        ...

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    @abstractmethod
    def fetch_metadata(self, meta_type: str, project_id: Optional[str]) -> list[SimpleEntity]:
        """
        Fetch reference data.

        Args:
            meta_type: One of users, trackers, categories, priorities,
                statuses, versions, activities. Unknown types yield [].
            project_id: Project scope for project-specific types
        """
        ...

    @abstractmethod
    def fetch_custom_field_definitions(self) -> list[CustomFieldDefinition]:
        """Fetch all custom field definitions with tracker/project associations."""
        ...

    @abstractmethod
    def fetch_allowed_statuses(
        self, project_id: str, tracker_id: int, issue_id: int
    ) -> list[SimpleEntity]:
        """Statuses a task may move to (issue_id 0 for a new task)."""
        ...

    @abstractmethod
    def fetch_current_user(self) -> SimpleEntity:
        """The user owning the API key."""
        ...

    @abstractmethod
    def fetch_project(self, identifier: str) -> SimpleEntity:
        """Project id and name by identifier."""
        ...

    @abstractmethod
    def fetch_context_metadata(
        self, project_id: str, tracker_id: int, issue_id: int
    ) -> ContextMetadata:
        """Allowed statuses and available custom fields for a tracker/project."""
        ...

    # -------------------------------------------------------------------------
    # Attachments
    # -------------------------------------------------------------------------

    @abstractmethod
    def upload_file(self, data: bytes, content_type: str) -> str:
        """Upload raw bytes; returns the token to attach on a later update."""
        ...

    @abstractmethod
    def download_attachment(self, attachment: Attachment) -> bytes:
        """Download an attachment by content URL, or by id when there is none."""
        ...

    # -------------------------------------------------------------------------
    # Time tracking
    # -------------------------------------------------------------------------

    @abstractmethod
    def log_time(
        self,
        issue_id: int,
        date: str,
        hours: float,
        user_id: int,
        activity_id: int,
        comment: Optional[str] = None,
    ) -> None:
        """Log hours against a task."""
        ...

    @abstractmethod
    def fetch_time_entries(
        self, project_id: Optional[str], date_from: str, date_to: str
    ) -> list[TimeEntry]:
        """Time entries in a date range, across all projects if project_id is blank."""
        ...

    # -------------------------------------------------------------------------
    # Versions
    # -------------------------------------------------------------------------

    @abstractmethod
    def fetch_versions_full(self, project_id: str) -> list[Version]:
        """All versions of a project with status and dates."""
        ...

    @abstractmethod
    def create_version(
        self,
        project_id: str,
        name: str,
        status: str,
        start_date: Optional[str] = None,
        due_date: Optional[str] = None,
    ) -> None:
        ...

    @abstractmethod
    def update_version(
        self,
        version_id: int,
        name: str,
        status: str,
        start_date: Optional[str] = None,
        due_date: Optional[str] = None,
    ) -> None:
        ...

    @abstractmethod
    def delete_version(self, version_id: int) -> None:
        ...

    # -------------------------------------------------------------------------
    # Wiki
    # -------------------------------------------------------------------------

    @abstractmethod
    def fetch_wiki_pages(self, project_id: str) -> list[WikiPage]:
        """Wiki index of a project (titles and versions only)."""
        ...

    @abstractmethod
    def fetch_wiki_page_content(
        self, project_id: str, title: str, version: Optional[int] = None
    ) -> WikiPage:
        """Full page text and attachments, optionally at a past version."""
        ...

    @abstractmethod
    def fetch_wiki_history(self, project_id: str, title: str) -> list[WikiVersion]:
        ...

    @abstractmethod
    def create_or_update_wiki_page(
        self, project_id: str, title: str, content: str, comment: Optional[str] = None
    ) -> None:
        ...

    @abstractmethod
    def revert_wiki_page(self, project_id: str, title: str, version: int) -> None:
        """Write the text of a past version back as a new revision."""
        ...

    @abstractmethod
    def delete_wiki_page(self, project_id: str, title: str) -> None:
        ...

    @abstractmethod
    def upload_wiki_attachment(
        self,
        project_id: str,
        title: str,
        token: str,
        filename: str,
        content_type: str,
        current_text: str,
        version: int,
    ) -> None:
        """
        Attach an uploaded file to a wiki page.

        The current text and version must be sent back; the server rejects a
        blank text and uses the version for optimistic locking.
        """
        ...

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def shutdown(self) -> None:
        """Release resources (connection pools, cache persistence)."""
        pass

    def describe(self) -> dict[str, Any]:
        """Short description of the service stack, for diagnostics."""
        return {"service": self.__class__.__name__}
