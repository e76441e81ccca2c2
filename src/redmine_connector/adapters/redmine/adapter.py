"""
Redmine Adapter - Implements IssueTrackerPort over the Redmine REST API.

This is the bottom layer of the service stack: every call goes to the
server. Caching and asynchronous execution are layered on top of it.
"""

import logging
from typing import Any, Callable, Optional
from urllib.parse import quote

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
from ...core.domain.events import EventBus, TasksFetched
from ...core.ports.config_provider import TrackerConfig, TransportConfig
from ...core.ports.issue_tracker import (
    IssueTrackerError,
    IssueTrackerPort,
    NotFoundError,
)
from .client import RedmineApiClient
from .codec import RedmineJsonCodec


class RedmineDataService(IssueTrackerPort):
    """
    Redmine implementation of the IssueTrackerPort.

    Translates between domain entities and Redmine's API. List endpoints are
    read page by page, strictly in order; bulk lookups are split into
    batches.
    """

    METADATA_TYPES = (
        "users",
        "trackers",
        "categories",
        "priorities",
        "statuses",
        "versions",
        "activities",
    )

    def __init__(
        self,
        config: TrackerConfig,
        transport: Optional[TransportConfig] = None,
        client: Optional[RedmineApiClient] = None,
        codec: Optional[RedmineJsonCodec] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Initialize the Redmine adapter.

        Args:
            config: Tracker configuration (URL and API key)
            transport: Page sizes, timeouts and retry settings
            client: Optional pre-built API client
            codec: Optional custom JSON codec
            event_bus: Receives a TasksFetched event after each task fetch
        """
        self.config = config
        self.transport = transport or TransportConfig()
        self.codec = codec or RedmineJsonCodec()
        self.event_bus = event_bus
        self.logger = logging.getLogger("RedmineDataService")

        self._client = client or RedmineApiClient(
            base_url=config.url,
            api_key=config.api_key,
            timeout=self.transport.timeout,
            max_retry_attempts=self.transport.max_retry_attempts,
            retry_delay=self.transport.retry_delay,
            user_agent=self.transport.user_agent,
        )

    @property
    def instance_key(self) -> str:
        return self.config.instance_key

    # -------------------------------------------------------------------------
    # IssueTrackerPort Implementation - Tasks
    # -------------------------------------------------------------------------

    def fetch_tasks(self, project_id: str, closed: bool, limit: int) -> list[Task]:
        tasks = self._paginate(
            "issues.json",
            {
                "project_id": project_id,
                "status_id": "*" if closed else "open",
                "sort": "id:desc",
                "include": "attachments",
            },
            self.codec.decode_tasks,
            "issues",
            limit=limit,
        )
        return self._finish_tasks("fetch_tasks", tasks)

    def fetch_task_details(self, task_id: int) -> Task:
        body = self._client.get(
            f"issues/{task_id}.json",
            params={"include": "attachments,journals,changesets,custom_fields"},
        )
        task = self.codec.decode_task(body)
        if task is None:
            raise NotFoundError(f"Task #{task_id} not found", issue_key=str(task_id))

        task.is_full_details = True
        return self._finish_tasks("fetch_task_details", [task])[0]

    def create_task(self, project_id: str, task: Task) -> int:
        body = self.codec.encode_task_for_create(project_id, task)
        response = self._client.post("issues.json", body)

        task_id = self.codec.extract_id(response)
        if task_id <= 0:
            raise IssueTrackerError(
                f"Server did not return an id for new task '{task.subject}'",
                issue_key=project_id,
            )

        self.logger.info(f"Created task #{task_id} in project {project_id}")
        return task_id

    def update_task(self, task: Task) -> None:
        if task.id <= 0:
            raise IssueTrackerError("Cannot update a task that has no id")

        self._client.put(f"issues/{task.id}.json", self.codec.encode_task_for_update(task))
        self.logger.info(f"Updated task #{task.id}")

    def fetch_tasks_by_ids(self, ids: list[int]) -> list[Task]:
        if not ids:
            return []

        batch_size = max(1, self.transport.max_bulk_batch_size)
        tasks: list[Task] = []
        for start in range(0, len(ids), batch_size):
            chunk = ids[start:start + batch_size]
            body = self._client.get(
                "issues.json",
                params={
                    "issue_id": ",".join(str(i) for i in chunk),
                    "status_id": "*",
                    "limit": len(chunk),
                },
            )
            tasks.extend(self.codec.decode_tasks(body))

        return self._finish_tasks("fetch_tasks_by_ids", tasks)

    def fetch_tasks_by_version(self, project_id: str, version_id: int) -> list[Task]:
        tasks = self._paginate(
            "issues.json",
            {
                "project_id": project_id,
                "fixed_version_id": version_id,
                "status_id": "*",
                "sort": "id:desc",
            },
            self.codec.decode_tasks,
            "issues",
        )
        return self._finish_tasks("fetch_tasks_by_version", tasks)

    def fetch_closed_tasks(self, project_id: str, date_from: str, date_to: str) -> list[Task]:
        tasks = self._paginate(
            "issues.json",
            {
                "project_id": project_id,
                "status_id": "closed",
                "closed_on": f"><{date_from}|{date_to}",
                "sort": "id:desc",
            },
            self.codec.decode_tasks,
            "issues",
        )
        return self._finish_tasks("fetch_closed_tasks", tasks)

    # -------------------------------------------------------------------------
    # IssueTrackerPort Implementation - Metadata
    # -------------------------------------------------------------------------

    def fetch_metadata(self, meta_type: str, project_id: Optional[str]) -> list[SimpleEntity]:
        fetchers: dict[str, Callable[[str], list[SimpleEntity]]] = {
            "users": self._fetch_users,
            "trackers": self._fetch_trackers,
            "categories": self._fetch_categories,
            "priorities": lambda _: self._fetch_global("enumerations/issue_priorities.json", "issue_priorities"),
            "statuses": lambda _: self._fetch_global("issue_statuses.json", "issue_statuses"),
            "versions": self._fetch_open_versions,
            "activities": lambda _: self._fetch_global("enumerations/time_entry_activities.json", "time_entry_activities"),
        }

        fetcher = fetchers.get(meta_type)
        if fetcher is None:
            self.logger.debug(f"Unknown metadata type '{meta_type}'")
            return []
        return fetcher((project_id or "").strip())

    def _fetch_global(self, endpoint: str, list_key: str) -> list[SimpleEntity]:
        return self.codec.decode_entities(self._client.get(endpoint), list_key)

    def _fetch_users(self, project_id: str) -> list[SimpleEntity]:
        if not project_id:
            return []
        body = self._client.get(
            f"projects/{self._segment(project_id)}/memberships.json", params={"limit": 100}
        )
        return self.codec.decode_members(body)

    def _fetch_trackers(self, project_id: str) -> list[SimpleEntity]:
        if project_id:
            body = self._client.get(
                f"projects/{self._segment(project_id)}.json", params={"include": "trackers"}
            )
            trackers = self.codec.decode_project_trackers(body)
            if trackers:
                return trackers
        return self._fetch_global("trackers.json", "trackers")

    def _fetch_categories(self, project_id: str) -> list[SimpleEntity]:
        if not project_id:
            return []
        body = self._client.get(f"projects/{self._segment(project_id)}/issue_categories.json")
        return self.codec.decode_entities(body, "issue_categories")

    def _fetch_open_versions(self, project_id: str) -> list[SimpleEntity]:
        if not project_id:
            return []
        body = self._client.get(f"projects/{self._segment(project_id)}/versions.json")
        return self.codec.decode_open_versions(body)

    def fetch_custom_field_definitions(self) -> list[CustomFieldDefinition]:
        body = self._client.get("custom_fields.json", params={"include": "trackers,projects"})
        return self.codec.decode_custom_field_definitions(body)

    def fetch_allowed_statuses(
        self, project_id: str, tracker_id: int, issue_id: int
    ) -> list[SimpleEntity]:
        if issue_id > 0:
            body = self._client.get(
                f"issues/{issue_id}.json", params={"include": "allowed_statuses"}
            )
        else:
            body = self._client.get("issues/new.json", params=self._new_issue_params(project_id, tracker_id))
        return self.codec.decode_allowed_statuses(body)

    def fetch_current_user(self) -> SimpleEntity:
        user = self.codec.decode_current_user(self._client.get("users/current.json"))
        if user is None:
            raise IssueTrackerError("Server did not identify the current user")
        return user

    def fetch_project(self, identifier: str) -> SimpleEntity:
        body = self._client.get(f"projects/{self._segment(identifier)}.json")
        project = self.codec.decode_project(body)
        if project is None:
            raise NotFoundError(f"Project '{identifier}' not found", issue_key=identifier)
        return project

    def fetch_context_metadata(
        self, project_id: str, tracker_id: int, issue_id: int
    ) -> ContextMetadata:
        params = self._new_issue_params(project_id, tracker_id)
        if issue_id > 0:
            params["issue_id"] = issue_id
        return self.codec.decode_context_metadata(self._client.get("issues/new.json", params=params))

    def _new_issue_params(self, project_id: str, tracker_id: int) -> dict[str, Any]:
        params: dict[str, Any] = {"issue[project_id]": project_id}
        if tracker_id > 0:
            params["issue[tracker_id]"] = tracker_id
        return params

    # -------------------------------------------------------------------------
    # IssueTrackerPort Implementation - Attachments
    # -------------------------------------------------------------------------

    def upload_file(self, data: bytes, content_type: str) -> str:
        token = self.codec.extract_token(self._client.post_binary("uploads.json", data))
        if not token:
            raise IssueTrackerError("Upload did not return a token")

        self.logger.info(f"Uploaded {len(data)} bytes ({content_type})")
        return token

    def download_attachment(self, attachment: Attachment) -> bytes:
        if not attachment.filename:
            attachment.filename = f"attachment_{attachment.id}.dat"

        endpoint = attachment.content_url or f"attachments/download/{attachment.id}"
        return self._client.download(endpoint)

    # -------------------------------------------------------------------------
    # IssueTrackerPort Implementation - Time Tracking
    # -------------------------------------------------------------------------

    def log_time(
        self,
        issue_id: int,
        date: str,
        hours: float,
        user_id: int,
        activity_id: int,
        comment: Optional[str] = None,
    ) -> None:
        body = self.codec.encode_time_entry(issue_id, date, hours, user_id, activity_id, comment)
        self._client.post("time_entries.json", body)
        self.logger.info(f"Logged {hours}h on task #{issue_id} for {date}")

    def fetch_time_entries(
        self, project_id: Optional[str], date_from: str, date_to: str
    ) -> list[TimeEntry]:
        params: dict[str, Any] = {"from": date_from, "to": date_to}
        if project_id and project_id.strip():
            params["project_id"] = project_id.strip()
        return self._paginate(
            "time_entries.json", params, self.codec.decode_time_entries, "time_entries"
        )

    # -------------------------------------------------------------------------
    # IssueTrackerPort Implementation - Versions
    # -------------------------------------------------------------------------

    def fetch_versions_full(self, project_id: str) -> list[Version]:
        body = self._client.get(f"projects/{self._segment(project_id)}/versions.json")
        return self.codec.decode_versions(body)

    def create_version(
        self,
        project_id: str,
        name: str,
        status: str,
        start_date: Optional[str] = None,
        due_date: Optional[str] = None,
    ) -> None:
        body = self.codec.encode_version(name, status, start_date, due_date)
        self._client.post(f"projects/{self._segment(project_id)}/versions.json", body)

    def update_version(
        self,
        version_id: int,
        name: str,
        status: str,
        start_date: Optional[str] = None,
        due_date: Optional[str] = None,
    ) -> None:
        body = self.codec.encode_version(name, status, start_date, due_date)
        self._client.put(f"versions/{version_id}.json", body)

    def delete_version(self, version_id: int) -> None:
        self._client.delete(f"versions/{version_id}.json")

    # -------------------------------------------------------------------------
    # IssueTrackerPort Implementation - Wiki
    # -------------------------------------------------------------------------

    def fetch_wiki_pages(self, project_id: str) -> list[WikiPage]:
        body = self._client.get(f"projects/{self._segment(project_id)}/wiki/index.json")
        return self.codec.decode_wiki_index(body)

    def fetch_wiki_page_content(
        self, project_id: str, title: str, version: Optional[int] = None
    ) -> WikiPage:
        path = self._wiki_path(project_id, title)
        if version:
            path = f"{path}/{version}"

        page = self.codec.decode_wiki_page(
            self._client.get(f"{path}.json", params={"include": "attachments"})
        )
        if page is None:
            raise NotFoundError(f"Wiki page '{title}' not found", issue_key=title)
        return page

    def fetch_wiki_history(self, project_id: str, title: str) -> list[WikiVersion]:
        body = self._client.get(f"{self._wiki_path(project_id, title)}/revisions.json")
        return self.codec.decode_wiki_history(body)

    def create_or_update_wiki_page(
        self, project_id: str, title: str, content: str, comment: Optional[str] = None
    ) -> None:
        body = self.codec.encode_wiki_page(content, comment)
        self._client.put(f"{self._wiki_path(project_id, title)}.json", body)

    def revert_wiki_page(self, project_id: str, title: str, version: int) -> None:
        old = self.fetch_wiki_page_content(project_id, title, version)
        self.create_or_update_wiki_page(
            project_id, title, old.text, f"Reverted to version {version}"
        )
        self.logger.info(f"Reverted wiki page '{title}' to version {version}")

    def delete_wiki_page(self, project_id: str, title: str) -> None:
        self._client.delete(f"{self._wiki_path(project_id, title)}.json")

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
        body = self.codec.encode_wiki_attachment(current_text, version, token, filename, content_type)
        self._client.put(f"{self._wiki_path(project_id, title)}.json", body)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def shutdown(self) -> None:
        self._client.close()

    def describe(self) -> dict[str, Any]:
        return {"service": "RedmineDataService", "url": self._client.base_url}

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    def _paginate(
        self,
        endpoint: str,
        params: dict[str, Any],
        decode: Callable[[Any], list],
        list_key: str,
        limit: int = 0,
    ) -> list:
        """
        Read a list endpoint page by page.

        Stops once ``limit`` items were read (``limit <= 0`` reads
        everything), or on an empty or short page. The last page only
        requests the remaining count. Offsets and the short-page check
        follow the server's item count under ``list_key``, so items the
        codec skips do not end the walk early.
        """
        page_size = max(1, self.transport.fetch_batch_size)
        items: list = []
        offset = 0

        while True:
            wanted = page_size if limit <= 0 else min(page_size, limit - len(items))
            if wanted <= 0:
                break

            body = self._client.get(endpoint, params={**params, "limit": wanted, "offset": offset})
            data = self.codec.loads(body)
            returned = self.codec.count_items(data, list_key)
            if returned == 0:
                break

            items.extend(decode(data))
            offset += returned
            if returned < wanted:
                break

        return items

    def _finish_tasks(self, operation: str, tasks: list[Task]) -> list[Task]:
        for task in tasks:
            task.web_url = f"{self._client.base_url}/issues/{task.id}"

        if self.event_bus is not None and tasks:
            self.event_bus.publish(
                TasksFetched(instance_key=self.instance_key, operation=operation, tasks=tuple(tasks))
            )
        return tasks

    def _wiki_path(self, project_id: str, title: str) -> str:
        return f"projects/{self._segment(project_id)}/wiki/{self._segment(title)}"

    def _segment(self, value: Any) -> str:
        """URL-encode one path segment (spaces become %20)."""
        return quote(str(value), safe="")
