"""
Domain Entities - Records exchanged with a Redmine server.

Entities are plain value records. They are created by the wire codec or by
callers (e.g. a new Task prior to creation) and carry no reference back to
the service or cache that produced them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class SimpleEntity:
    """
    A named reference (user, tracker, status, priority, ...).

    Equality and hashing use the id only: a renamed entity is still the
    same entity.
    """

    id: int = 0
    name: str = ""
    is_closed: bool = False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SimpleEntity):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __str__(self) -> str:
        return self.name


@dataclass
class Attachment:
    """A file attached to a task or wiki page."""

    id: int = 0
    filename: str = ""
    content_url: str = ""
    content_type: str = ""
    filesize: int = 0

    def __str__(self) -> str:
        return f"{self.filename} ({self.filesize // 1024} KB)"


@dataclass
class UploadToken:
    """A file uploaded to the server but not yet attached to anything."""

    token: str
    filename: str
    content_type: str = "application/octet-stream"


@dataclass
class Journal:
    """A history entry (note and/or field changes) on a task."""

    user: str = ""
    notes: str = ""
    created_on: str = ""


@dataclass
class Changeset:
    """A repository commit linked to a task."""

    revision: str = ""
    user: str = ""
    comments: str = ""
    committed_on: str = ""


@dataclass
class CustomField:
    """A custom field value as carried by a task."""

    id: int
    name: str = ""
    value: str = ""

    def __str__(self) -> str:
        return f"{self.name}: {self.value}"


@dataclass
class CustomFieldDefinition:
    """
    Definition of a custom field.

    possible_values, tracker_ids and project_ids behave as append-only sets:
    learning adds to them and never removes.
    """

    id: int
    name: str = ""
    type: str = "string"
    is_required: bool = False
    is_filter: bool = False
    possible_values: list[str] = field(default_factory=list)
    tracker_ids: list[int] = field(default_factory=list)
    project_ids: list[int] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.name} ({self.type})"


@dataclass
class Task:
    """
    A Redmine issue.

    Fields ending in ``_id`` are the authoritative references; the plain
    name fields are for display. ``notes`` is only sent on update.
    """

    id: int = 0
    subject: str = ""
    description: str = ""
    project_id: int = 0
    status: str = ""
    status_id: int = 0
    is_closed: bool = False
    priority: str = ""
    priority_id: int = 0
    tracker: str = ""
    tracker_id: int = 0
    assigned_to: str = ""
    assigned_to_id: int = 0
    category: str = ""
    category_id: int = 0
    author: str = ""
    author_id: int = 0
    target_version: str = ""
    target_version_id: int = 0
    parent_id: int = 0
    done_ratio: int = 0
    spent_hours: float = 0.0
    start_date: str = ""
    due_date: str = ""
    created_on: Optional[datetime] = None
    updated_on: Optional[datetime] = None
    notes: str = ""
    web_url: str = ""
    is_full_details: bool = False
    attachments: list[Attachment] = field(default_factory=list)
    journals: list[Journal] = field(default_factory=list)
    changesets: list[Changeset] = field(default_factory=list)
    custom_fields: list[CustomField] = field(default_factory=list)
    pending_uploads: list[UploadToken] = field(default_factory=list)

    def copy_as_new(self) -> "Task":
        """
        Build an unsaved copy of this task, ready to be created again.

        Identity, status, progress and history are reset; classification,
        assignment, attachments and custom field values are kept.
        """
        return Task(
            subject=self.subject,
            description=self.description,
            project_id=self.project_id,
            priority=self.priority,
            priority_id=self.priority_id,
            tracker=self.tracker,
            tracker_id=self.tracker_id,
            assigned_to=self.assigned_to,
            assigned_to_id=self.assigned_to_id,
            category=self.category,
            category_id=self.category_id,
            author=self.author,
            author_id=self.author_id,
            target_version=self.target_version,
            target_version_id=self.target_version_id,
            parent_id=self.parent_id,
            created_on=datetime.now(),
            attachments=list(self.attachments),
            custom_fields=[
                CustomField(cf.id, cf.name, cf.value) for cf in self.custom_fields
            ],
        )

    def __str__(self) -> str:
        return self.subject


@dataclass
class TimeEntry:
    """Hours logged against a task."""

    id: int = 0
    issue_id: int = 0
    issue_subject: str = ""
    user: str = ""
    activity: str = ""
    hours: float = 0.0
    spent_on: str = ""
    comment: str = ""


@dataclass
class Version:
    """A project version (milestone)."""

    id: int = 0
    name: str = ""
    status: str = ""
    start_date: str = ""
    due_date: str = ""

    def __str__(self) -> str:
        return f"{self.name} ({self.status})"


@dataclass
class WikiPage:
    """A wiki page; index entries only carry title and version."""

    title: str
    text: str = ""
    version: int = 0
    updated_on: str = ""
    author: str = ""
    parent: str = ""
    attachments: list[Attachment] = field(default_factory=list)

    def __str__(self) -> str:
        return self.title


@dataclass
class WikiVersion:
    """One revision in a wiki page's history."""

    version: int = 0
    updated_on: str = ""
    author: str = ""
    comments: str = ""

    def __str__(self) -> str:
        return f"v{self.version} - {self.updated_on} by {self.author}"


@dataclass
class ContextMetadata:
    """What the server allows for a given project/tracker/issue combination."""

    allowed_statuses: list[SimpleEntity] = field(default_factory=list)
    available_custom_field_ids: list[int] = field(default_factory=list)
    definitions: list[CustomFieldDefinition] = field(default_factory=list)
