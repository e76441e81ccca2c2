"""
Domain - Records and events shared by every layer.
"""

from .entities import (
    Attachment,
    Changeset,
    ContextMetadata,
    CustomField,
    CustomFieldDefinition,
    Journal,
    SimpleEntity,
    Task,
    TimeEntry,
    UploadToken,
    Version,
    WikiPage,
    WikiVersion,
)
from .events import (
    CacheFallbackUsed,
    CacheInvalidated,
    DomainEvent,
    EventBus,
    TasksFetched,
)

__all__ = [
    "Attachment",
    "Changeset",
    "ContextMetadata",
    "CustomField",
    "CustomFieldDefinition",
    "Journal",
    "SimpleEntity",
    "Task",
    "TimeEntry",
    "UploadToken",
    "Version",
    "WikiPage",
    "WikiVersion",
    # Events
    "CacheFallbackUsed",
    "CacheInvalidated",
    "DomainEvent",
    "EventBus",
    "TasksFetched",
]
