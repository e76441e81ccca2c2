"""
Cached Data Service - Caching decorator for any IssueTrackerPort.

Reference data (metadata, custom field definitions, allowed statuses,
versions, wiki pages) is kept for a fixed TTL and dropped when a mutation
going through this layer changes it. Task data is never cached.

For reference data the decorator also serves stale entries when the server
cannot be reached: an expired value that has not been swept yet beats an
error for a dropdown list.
"""

import logging
from typing import Any, Callable, Optional, TypeVar

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
from ...core.domain.events import CacheFallbackUsed, CacheInvalidated, EventBus
from ...core.ports.cache import CachePort
from ...core.ports.issue_tracker import IssueTrackerError, IssueTrackerPort


T = TypeVar("T")


class CachedDataService(IssueTrackerPort):
    """
    Caching decorator around another IssueTrackerPort.

    Cache keys:
        metadata:<type>:<project|global>
        custom_fields_defs
        allowed_statuses:<project>:<tracker>:<issue>
        versions:<project>
        wiki:index:<project>
        wiki:page:<project>:<title>
    """

    CUSTOM_FIELDS_KEY = "custom_fields_defs"

    def __init__(
        self,
        delegate: IssueTrackerPort,
        cache: CachePort,
        metadata_ttl: float = 300.0,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Initialize the caching layer.

        Args:
            delegate: Service that actually fetches the data
            cache: Cache to store reference data in
            metadata_ttl: Lifetime of cached entries in seconds
            event_bus: Receives CacheFallbackUsed and CacheInvalidated events
        """
        self.delegate = delegate
        self.cache = cache
        self.metadata_ttl = metadata_ttl
        self.event_bus = event_bus
        self.logger = logging.getLogger("CachedDataService")

    # -------------------------------------------------------------------------
    # Tasks (pass-through, mutations invalidate)
    # -------------------------------------------------------------------------

    def fetch_tasks(self, project_id: str, closed: bool, limit: int) -> list[Task]:
        return self.delegate.fetch_tasks(project_id, closed, limit)

    def fetch_task_details(self, task_id: int) -> Task:
        return self.delegate.fetch_task_details(task_id)

    def create_task(self, project_id: str, task: Task) -> int:
        task_id = self.delegate.create_task(project_id, task)
        # A new task can bring new categories, versions or assignees into use
        self._invalidate_pattern(f"metadata:*:{project_id}", "create_task")
        return task_id

    def update_task(self, task: Task) -> None:
        self.delegate.update_task(task)
        self._invalidate_pattern(f"allowed_statuses:*:*:{task.id}", "update_task")

    def fetch_tasks_by_ids(self, ids: list[int]) -> list[Task]:
        return self.delegate.fetch_tasks_by_ids(ids)

    def fetch_tasks_by_version(self, project_id: str, version_id: int) -> list[Task]:
        return self.delegate.fetch_tasks_by_version(project_id, version_id)

    def fetch_closed_tasks(self, project_id: str, date_from: str, date_to: str) -> list[Task]:
        return self.delegate.fetch_closed_tasks(project_id, date_from, date_to)

    # -------------------------------------------------------------------------
    # Metadata (cached, stale-if-error)
    # -------------------------------------------------------------------------

    def fetch_metadata(self, meta_type: str, project_id: Optional[str]) -> list[SimpleEntity]:
        scope = project_id.strip() if project_id and project_id.strip() else "global"
        return self._cached(
            f"metadata:{meta_type}:{scope}",
            lambda: self.delegate.fetch_metadata(meta_type, project_id),
            stale_if_error=True,
        )

    def fetch_custom_field_definitions(self) -> list[CustomFieldDefinition]:
        return self._cached(
            self.CUSTOM_FIELDS_KEY,
            self.delegate.fetch_custom_field_definitions,
            stale_if_error=True,
        )

    def fetch_allowed_statuses(
        self, project_id: str, tracker_id: int, issue_id: int
    ) -> list[SimpleEntity]:
        return self._cached(
            f"allowed_statuses:{project_id}:{tracker_id}:{issue_id}",
            lambda: self.delegate.fetch_allowed_statuses(project_id, tracker_id, issue_id),
            stale_if_error=True,
        )

    def fetch_current_user(self) -> SimpleEntity:
        return self.delegate.fetch_current_user()

    def fetch_project(self, identifier: str) -> SimpleEntity:
        return self.delegate.fetch_project(identifier)

    def fetch_context_metadata(
        self, project_id: str, tracker_id: int, issue_id: int
    ) -> ContextMetadata:
        return self.delegate.fetch_context_metadata(project_id, tracker_id, issue_id)

    # -------------------------------------------------------------------------
    # Attachments and time tracking (pass-through)
    # -------------------------------------------------------------------------

    def upload_file(self, data: bytes, content_type: str) -> str:
        return self.delegate.upload_file(data, content_type)

    def download_attachment(self, attachment: Attachment) -> bytes:
        return self.delegate.download_attachment(attachment)

    def log_time(
        self,
        issue_id: int,
        date: str,
        hours: float,
        user_id: int,
        activity_id: int,
        comment: Optional[str] = None,
    ) -> None:
        self.delegate.log_time(issue_id, date, hours, user_id, activity_id, comment)

    def fetch_time_entries(
        self, project_id: Optional[str], date_from: str, date_to: str
    ) -> list[TimeEntry]:
        return self.delegate.fetch_time_entries(project_id, date_from, date_to)

    # -------------------------------------------------------------------------
    # Versions
    # -------------------------------------------------------------------------

    def fetch_versions_full(self, project_id: str) -> list[Version]:
        return self._cached(
            f"versions:{project_id}",
            lambda: self.delegate.fetch_versions_full(project_id),
        )

    def create_version(
        self,
        project_id: str,
        name: str,
        status: str,
        start_date: Optional[str] = None,
        due_date: Optional[str] = None,
    ) -> None:
        self.delegate.create_version(project_id, name, status, start_date, due_date)
        self._invalidate(f"versions:{project_id}", "create_version")
        self._invalidate(f"metadata:versions:{project_id}", "create_version")

    def update_version(
        self,
        version_id: int,
        name: str,
        status: str,
        start_date: Optional[str] = None,
        due_date: Optional[str] = None,
    ) -> None:
        self.delegate.update_version(version_id, name, status, start_date, due_date)
        # The owning project is unknown here
        self._invalidate_pattern("versions:*", "update_version")
        self._invalidate_pattern("metadata:versions:*", "update_version")

    def delete_version(self, version_id: int) -> None:
        self.delegate.delete_version(version_id)
        self._invalidate_pattern("versions:*", "delete_version")
        self._invalidate_pattern("metadata:versions:*", "delete_version")

    # -------------------------------------------------------------------------
    # Wiki
    # -------------------------------------------------------------------------

    def fetch_wiki_pages(self, project_id: str) -> list[WikiPage]:
        return self._cached(
            f"wiki:index:{project_id}",
            lambda: self.delegate.fetch_wiki_pages(project_id),
        )

    def fetch_wiki_page_content(
        self, project_id: str, title: str, version: Optional[int] = None
    ) -> WikiPage:
        if version:
            return self.delegate.fetch_wiki_page_content(project_id, title, version)
        return self._cached(
            f"wiki:page:{project_id}:{title}",
            lambda: self.delegate.fetch_wiki_page_content(project_id, title),
        )

    def fetch_wiki_history(self, project_id: str, title: str) -> list[WikiVersion]:
        return self.delegate.fetch_wiki_history(project_id, title)

    def create_or_update_wiki_page(
        self, project_id: str, title: str, content: str, comment: Optional[str] = None
    ) -> None:
        self.delegate.create_or_update_wiki_page(project_id, title, content, comment)
        self._invalidate_wiki(project_id, title, "create_or_update_wiki_page")

    def revert_wiki_page(self, project_id: str, title: str, version: int) -> None:
        self.delegate.revert_wiki_page(project_id, title, version)
        self._invalidate_wiki(project_id, title, "revert_wiki_page")

    def delete_wiki_page(self, project_id: str, title: str) -> None:
        self.delegate.delete_wiki_page(project_id, title)
        self._invalidate_wiki(project_id, title, "delete_wiki_page")

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
        self.delegate.upload_wiki_attachment(
            project_id, title, token, filename, content_type, current_text, version
        )
        self._invalidate(f"wiki:page:{project_id}:{title}", "upload_wiki_attachment")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def shutdown(self) -> None:
        try:
            self.cache.shutdown()
        finally:
            self.delegate.shutdown()

    def describe(self) -> dict[str, Any]:
        return {
            "service": "CachedDataService",
            "cached_entries": self.cache.size(),
            "delegate": self.delegate.describe(),
        }

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    def _cached(self, key: str, loader: Callable[[], T], stale_if_error: bool = False) -> T:
        # get() drops an expired entry, so look for a stale one first
        stale, has_stale = self.cache.peek(key) if stale_if_error else (None, False)

        value, found = self.cache.get(key)
        if found:
            self.logger.debug(f"Cache hit: {key}")
            return self._copy(value)

        try:
            value = loader()
        except IssueTrackerError as e:
            if not has_stale:
                raise
            self.logger.warning(f"Serving stale '{key}' after fetch failed: {e}")
            if self.event_bus is not None:
                self.event_bus.publish(CacheFallbackUsed(cache_key=key, error=str(e)))
            # get() dropped the expired entry; keep the value for the next failure
            self.cache.put(key, stale, self.metadata_ttl)
            return self._copy(stale)

        self.cache.put(key, value, self.metadata_ttl)
        return self._copy(value)

    def _copy(self, value: Any) -> Any:
        # Callers may sort or filter returned lists; keep the cached one intact
        return list(value) if isinstance(value, list) else value

    def _invalidate(self, key: str, reason: str) -> None:
        self.cache.invalidate(key)
        self._announce(key, reason)

    def _invalidate_pattern(self, pattern: str, reason: str) -> None:
        removed = self.cache.invalidate_pattern(pattern)
        self.logger.debug(f"{reason}: dropped {removed} entries matching '{pattern}'")
        self._announce(pattern, reason)

    def _invalidate_wiki(self, project_id: str, title: str, reason: str) -> None:
        self._invalidate(f"wiki:page:{project_id}:{title}", reason)
        self._invalidate(f"wiki:index:{project_id}", reason)

    def _announce(self, pattern: str, reason: str) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(CacheInvalidated(pattern=pattern, reason=reason))
