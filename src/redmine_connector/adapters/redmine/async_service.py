"""
Async Data Service - Runs IssueTrackerPort operations on a worker pool.

Every operation of the wrapped service has an ``*_async`` counterpart that
returns a ``concurrent.futures.Future``. Failures surface as
AsyncOperationError with the original exception chained as its cause.

Cancellation: a future cancelled before a worker picks it up is skipped.
Once the call has started it runs to completion (HTTP calls are not
interruptible), and ``cancel()`` returns False.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from ...core.domain.entities import (
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
from ...core.ports.issue_tracker import IssueTrackerError, IssueTrackerPort


class AsyncOperationError(IssueTrackerError):
    """An operation run by AsyncDataService failed."""


class AsyncDataService:
    """
    Thread-pool facade over an IssueTrackerPort.
    """

    def __init__(
        self,
        delegate: IssueTrackerPort,
        max_workers: int = 8,
        thread_name_prefix: str = "redmine-async",
    ):
        """
        Initialize the facade.

        Args:
            delegate: Service the operations are forwarded to
            max_workers: Upper bound of worker threads
            thread_name_prefix: Prefix of worker thread names
        """
        self.delegate = delegate
        self.max_workers = max(1, max_workers)
        self.logger = logging.getLogger("AsyncDataService")

        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix=thread_name_prefix,
        )
        self._lock = threading.Lock()
        self._shutdown = False

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    def fetch_tasks_async(self, project_id: str, closed: bool, limit: int) -> "Future[list[Task]]":
        return self._submit(
            "Error fetching tasks",
            self.delegate.fetch_tasks, project_id, closed, limit,
        )

    def fetch_task_details_async(self, task_id: int) -> "Future[Task]":
        return self._submit(
            f"Error fetching details for task #{task_id}",
            self.delegate.fetch_task_details, task_id,
        )

    def create_task_async(self, project_id: str, task: Task) -> "Future[int]":
        return self._submit(
            f"Error creating task '{task.subject}'",
            self.delegate.create_task, project_id, task,
        )

    def update_task_async(self, task: Task) -> "Future[None]":
        return self._submit(
            f"Error updating task #{task.id}",
            self.delegate.update_task, task,
        )

    def fetch_tasks_by_ids_async(self, ids: list[int]) -> "Future[list[Task]]":
        return self._submit(
            f"Error fetching {len(ids)} tasks by id",
            self.delegate.fetch_tasks_by_ids, list(ids),
        )

    def fetch_tasks_by_version_async(self, project_id: str, version_id: int) -> "Future[list[Task]]":
        return self._submit(
            f"Error fetching tasks for version #{version_id}",
            self.delegate.fetch_tasks_by_version, project_id, version_id,
        )

    def fetch_closed_tasks_async(
        self, project_id: str, date_from: str, date_to: str
    ) -> "Future[list[Task]]":
        return self._submit(
            f"Error fetching tasks closed between {date_from} and {date_to}",
            self.delegate.fetch_closed_tasks, project_id, date_from, date_to,
        )

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    def fetch_metadata_async(
        self, meta_type: str, project_id: Optional[str]
    ) -> "Future[list[SimpleEntity]]":
        return self._submit(
            f"Error fetching metadata '{meta_type}'",
            self.delegate.fetch_metadata, meta_type, project_id,
        )

    def fetch_custom_field_definitions_async(self) -> "Future[list[CustomFieldDefinition]]":
        return self._submit(
            "Error fetching custom field definitions",
            self.delegate.fetch_custom_field_definitions,
        )

    def fetch_allowed_statuses_async(
        self, project_id: str, tracker_id: int, issue_id: int
    ) -> "Future[list[SimpleEntity]]":
        return self._submit(
            "Error fetching allowed statuses",
            self.delegate.fetch_allowed_statuses, project_id, tracker_id, issue_id,
        )

    def fetch_current_user_async(self) -> "Future[SimpleEntity]":
        return self._submit("Error fetching current user", self.delegate.fetch_current_user)

    def fetch_project_async(self, identifier: str) -> "Future[SimpleEntity]":
        return self._submit(
            f"Error fetching project '{identifier}'",
            self.delegate.fetch_project, identifier,
        )

    def fetch_context_metadata_async(
        self, project_id: str, tracker_id: int, issue_id: int
    ) -> "Future[ContextMetadata]":
        return self._submit(
            "Error fetching context metadata",
            self.delegate.fetch_context_metadata, project_id, tracker_id, issue_id,
        )

    # -------------------------------------------------------------------------
    # Attachments and time tracking
    # -------------------------------------------------------------------------

    def upload_file_async(self, data: bytes, content_type: str) -> "Future[str]":
        return self._submit("Error uploading file", self.delegate.upload_file, data, content_type)

    def download_attachment_async(self, attachment: Attachment) -> "Future[bytes]":
        label = attachment.filename or f"#{attachment.id}"
        return self._submit(
            f"Error downloading attachment {label}",
            self.delegate.download_attachment, attachment,
        )

    def log_time_async(
        self,
        issue_id: int,
        date: str,
        hours: float,
        user_id: int,
        activity_id: int,
        comment: Optional[str] = None,
    ) -> "Future[None]":
        return self._submit(
            f"Error logging time for task #{issue_id}",
            self.delegate.log_time, issue_id, date, hours, user_id, activity_id, comment,
        )

    def fetch_time_entries_async(
        self, project_id: Optional[str], date_from: str, date_to: str
    ) -> "Future[list[TimeEntry]]":
        return self._submit(
            "Error fetching time entries",
            self.delegate.fetch_time_entries, project_id, date_from, date_to,
        )

    # -------------------------------------------------------------------------
    # Versions
    # -------------------------------------------------------------------------

    def fetch_versions_full_async(self, project_id: str) -> "Future[list[Version]]":
        return self._submit(
            f"Error fetching versions of project {project_id}",
            self.delegate.fetch_versions_full, project_id,
        )

    def create_version_async(
        self,
        project_id: str,
        name: str,
        status: str,
        start_date: Optional[str] = None,
        due_date: Optional[str] = None,
    ) -> "Future[None]":
        return self._submit(
            f"Error creating version '{name}'",
            self.delegate.create_version, project_id, name, status, start_date, due_date,
        )

    def update_version_async(
        self,
        version_id: int,
        name: str,
        status: str,
        start_date: Optional[str] = None,
        due_date: Optional[str] = None,
    ) -> "Future[None]":
        return self._submit(
            f"Error updating version #{version_id}",
            self.delegate.update_version, version_id, name, status, start_date, due_date,
        )

    def delete_version_async(self, version_id: int) -> "Future[None]":
        return self._submit(
            f"Error deleting version #{version_id}",
            self.delegate.delete_version, version_id,
        )

    # -------------------------------------------------------------------------
    # Wiki
    # -------------------------------------------------------------------------

    def fetch_wiki_pages_async(self, project_id: str) -> "Future[list[WikiPage]]":
        return self._submit(
            f"Error fetching wiki pages of project {project_id}",
            self.delegate.fetch_wiki_pages, project_id,
        )

    def fetch_wiki_page_content_async(
        self, project_id: str, title: str, version: Optional[int] = None
    ) -> "Future[WikiPage]":
        return self._submit(
            f"Error fetching wiki page '{title}'",
            self.delegate.fetch_wiki_page_content, project_id, title, version,
        )

    def fetch_wiki_history_async(self, project_id: str, title: str) -> "Future[list[WikiVersion]]":
        return self._submit(
            f"Error fetching history of wiki page '{title}'",
            self.delegate.fetch_wiki_history, project_id, title,
        )

    def create_or_update_wiki_page_async(
        self, project_id: str, title: str, content: str, comment: Optional[str] = None
    ) -> "Future[None]":
        return self._submit(
            f"Error saving wiki page '{title}'",
            self.delegate.create_or_update_wiki_page, project_id, title, content, comment,
        )

    def revert_wiki_page_async(self, project_id: str, title: str, version: int) -> "Future[None]":
        return self._submit(
            f"Error reverting wiki page '{title}' to version {version}",
            self.delegate.revert_wiki_page, project_id, title, version,
        )

    def delete_wiki_page_async(self, project_id: str, title: str) -> "Future[None]":
        return self._submit(
            f"Error deleting wiki page '{title}'",
            self.delegate.delete_wiki_page, project_id, title,
        )

    def upload_wiki_attachment_async(
        self,
        project_id: str,
        title: str,
        token: str,
        filename: str,
        content_type: str,
        current_text: str,
        version: int,
    ) -> "Future[None]":
        return self._submit(
            f"Error attaching {filename} to wiki page '{title}'",
            self.delegate.upload_wiki_attachment,
            project_id, title, token, filename, content_type, current_text, version,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def shutdown(self) -> None:
        """
        Stop accepting work, wait for running and queued calls, then shut
        down the wrapped service.
        """
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True

        self._executor.shutdown(wait=True)
        self.delegate.shutdown()
        self.logger.debug("Async data service stopped")

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def describe(self) -> dict[str, Any]:
        return {
            "service": "AsyncDataService",
            "max_workers": self.max_workers,
            "delegate": self.delegate.describe(),
        }

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    def _submit(self, error_message: str, fn: Callable[..., Any], *args: Any) -> Future:
        future: Future = Future()
        with self._lock:
            if self._shutdown:
                raise RuntimeError("AsyncDataService has been shut down")
            self._executor.submit(self._run, future, error_message, fn, args)
        return future

    def _run(
        self,
        future: Future,
        error_message: str,
        fn: Callable[..., Any],
        args: tuple,
    ) -> None:
        if not future.set_running_or_notify_cancel():
            self.logger.debug("Skipping call cancelled before it started")
            return

        try:
            result = fn(*args)
        except Exception as e:
            self.logger.warning(f"{error_message}: {e}")
            future.set_exception(AsyncOperationError(error_message, cause=e))
            return

        future.set_result(result)
