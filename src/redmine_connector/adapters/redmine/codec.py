"""
Redmine JSON Codec - Translates between Redmine's wire format and domain entities.

Decoding is deliberately tolerant: the server (and the plugins installed on
it) controls the payloads, so missing fields yield partially populated
records, empty or absent arrays yield empty lists, and an unparseable body
yields an empty result instead of an exception. Callers that need exactly
one object (e.g. a task detail fetch) decide themselves whether "nothing"
is an error.

Encoding emits only the fields that are actually populated.
"""

import json
import logging
from datetime import datetime
from typing import Any, Iterable, Optional, Union

from ...core.domain.entities import (
    Attachment,
    Changeset,
    ContextMetadata,
    CustomField,
    CustomFieldDefinition,
    Journal,
    SimpleEntity,
    Task,
    TimeEntry,
    Version,
    WikiPage,
    WikiVersion,
)
from ...core.ports.definition_codec import DefinitionCodecPort


logger = logging.getLogger(__name__)

Payload = Union[str, bytes, dict, list, None]


# =============================================================================
# Low-level helpers
# =============================================================================


def _first_key_wins(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    """
    Build an object keeping the first occurrence of a duplicated key.

    json.loads calls this once per object, innermost first, so an ``id`` that
    belongs to a nested custom field or attachment can never be mistaken for
    the enclosing object's own ``id``.
    """
    obj: dict[str, Any] = {}
    for key, value in pairs:
        if key not in obj:
            obj[key] = value
    return obj


def _obj(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default


def _str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        # Multi-value custom fields
        return ", ".join(_str(v) for v in value if v is not None)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _name(value: Any) -> str:
    return _str(_obj(value).get("name"))


def _ref_id(value: Any) -> int:
    return _int(_obj(value).get("id"))


def _datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _dumps(data: Any, indent: Optional[int] = None) -> str:
    if indent is None:
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    return json.dumps(data, ensure_ascii=False, indent=indent)


class RedmineJsonCodec(DefinitionCodecPort):
    """
    Decoder/encoder for Redmine REST API payloads.

    Every ``decode_*`` method accepts the raw body (str or bytes) or an
    already-parsed structure.
    """

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    def loads(self, payload: Payload) -> Any:
        """
        Parse a payload, returning None for blank or malformed input.

        Truncated or non-JSON bodies are logged and treated as "no data".
        """
        if payload is None or isinstance(payload, (dict, list)):
            return payload

        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")

        if not payload.strip():
            return None

        try:
            return json.loads(payload, object_pairs_hook=_first_key_wins)
        except ValueError as e:
            logger.warning(f"Ignoring malformed JSON payload ({len(payload)} chars): {e}")
            return None

    def get_field(self, payload: Payload, key: str) -> str:
        """Top-level string field of an object payload ("" if absent)."""
        return _str(_obj(self.loads(payload)).get(key))

    def count_items(self, payload: Payload, list_key: str) -> int:
        """Number of raw entries under ``list_key``, decodable or not."""
        return len(_list(_obj(self.loads(payload)).get(list_key)))

    def _items(self, payload: Payload, list_key: str, single_key: Optional[str] = None) -> list[dict]:
        """Objects under ``list_key`` (or the single object under ``single_key``)."""
        data = _obj(self.loads(payload))
        if isinstance(data.get(list_key), list):
            return [item for item in data[list_key] if isinstance(item, dict)]
        if single_key and isinstance(data.get(single_key), dict):
            return [data[single_key]]
        return []

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    def decode_tasks(self, payload: Payload) -> list[Task]:
        """
        Decode ``{"issues": [...]}`` or ``{"issue": {...}}`` into tasks.

        Objects without a positive id are skipped.
        """
        tasks = []
        for item in self._items(payload, "issues", "issue"):
            task = self._decode_task(item)
            if task is not None:
                tasks.append(task)
        return tasks

    def decode_task(self, payload: Payload) -> Optional[Task]:
        """Decode a single task, or None if the payload holds none."""
        tasks = self.decode_tasks(payload)
        return tasks[0] if tasks else None

    def _decode_task(self, item: dict[str, Any]) -> Optional[Task]:
        task_id = _int(item.get("id"))
        if task_id <= 0:
            return None

        status = _obj(item.get("status"))
        spent = item.get("spent_hours")
        if spent is None:
            spent = item.get("total_spent_hours")

        return Task(
            id=task_id,
            subject=_str(item.get("subject")),
            description=_str(item.get("description")),
            project_id=_ref_id(item.get("project")),
            status=_str(status.get("name")),
            status_id=_int(status.get("id")),
            is_closed=bool(status.get("is_closed", False)),
            priority=_name(item.get("priority")),
            priority_id=_ref_id(item.get("priority")),
            tracker=_name(item.get("tracker")),
            tracker_id=_ref_id(item.get("tracker")),
            assigned_to=_name(item.get("assigned_to")),
            assigned_to_id=_ref_id(item.get("assigned_to")),
            category=_name(item.get("category")),
            category_id=_ref_id(item.get("category")),
            author=_name(item.get("author")),
            author_id=_ref_id(item.get("author")),
            target_version=_name(item.get("fixed_version")),
            target_version_id=_ref_id(item.get("fixed_version")),
            parent_id=_ref_id(item.get("parent")),
            done_ratio=_int(item.get("done_ratio")),
            spent_hours=_float(spent),
            start_date=_str(item.get("start_date")),
            due_date=_str(item.get("due_date")),
            created_on=_datetime(item.get("created_on")),
            updated_on=_datetime(item.get("updated_on")),
            attachments=self._decode_attachments(item.get("attachments")),
            journals=[
                Journal(
                    user=_name(j.get("user")),
                    notes=_str(j.get("notes")),
                    created_on=_str(j.get("created_on")),
                )
                for j in _list(item.get("journals"))
                if isinstance(j, dict)
            ],
            changesets=[
                Changeset(
                    revision=_str(c.get("revision")),
                    user=_name(c.get("user")),
                    comments=_str(c.get("comments")),
                    committed_on=_str(c.get("committed_on")),
                )
                for c in _list(item.get("changesets"))
                if isinstance(c, dict)
            ],
            custom_fields=self._decode_custom_fields(item.get("custom_fields")),
        )

    def _decode_custom_fields(self, value: Any) -> list[CustomField]:
        fields = []
        for cf in _list(value):
            if not isinstance(cf, dict):
                continue
            cf_id = _int(cf.get("id"))
            if cf_id <= 0:
                continue
            fields.append(CustomField(cf_id, _str(cf.get("name")), _str(cf.get("value"))))
        return fields

    def _decode_attachments(self, value: Any) -> list[Attachment]:
        attachments = []
        for att in _list(value):
            if not isinstance(att, dict) or _int(att.get("id")) <= 0:
                continue
            attachments.append(Attachment(
                id=_int(att.get("id")),
                filename=_str(att.get("filename")),
                content_url=_str(att.get("content_url")),
                content_type=_str(att.get("content_type")),
                filesize=_int(att.get("filesize")),
            ))
        return attachments

    def extract_id(self, payload: Payload) -> int:
        """Id of the object a create call returned (0 if none)."""
        data = _obj(self.loads(payload))
        for wrapper in ("issue", "time_entry", "version", "project", "user"):
            if isinstance(data.get(wrapper), dict):
                return _int(data[wrapper].get("id"))
        return _int(data.get("id"))

    def extract_token(self, payload: Payload) -> str:
        """Token from an ``uploads.json`` response."""
        data = _obj(self.loads(payload))
        return _str(_obj(data.get("upload")).get("token"))

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    def decode_entities(self, payload: Payload, list_key: str) -> list[SimpleEntity]:
        """Decode a plain ``{"<list_key>": [{"id", "name"}, ...]}`` collection."""
        return self._entities(self._items(payload, list_key))

    def _entities(self, items: Iterable[Any]) -> list[SimpleEntity]:
        entities = []
        for item in items:
            if not isinstance(item, dict):
                continue
            entity_id = _int(item.get("id"))
            if entity_id <= 0:
                continue
            entities.append(SimpleEntity(
                entity_id,
                _str(item.get("name")),
                bool(item.get("is_closed", False)),
            ))
        return entities

    def decode_members(self, payload: Payload) -> list[SimpleEntity]:
        """Users (or groups) of project memberships, without duplicates."""
        members: list[SimpleEntity] = []
        seen: set[int] = set()
        for membership in self._items(payload, "memberships"):
            principal = membership.get("user") or membership.get("group")
            for entity in self._entities([principal]):
                if entity.id not in seen:
                    seen.add(entity.id)
                    members.append(entity)
        return members

    def decode_project_trackers(self, payload: Payload) -> list[SimpleEntity]:
        """Trackers enabled on a project (``projects/<id>.json?include=trackers``)."""
        project = _obj(_obj(self.loads(payload)).get("project"))
        return self._entities(_list(project.get("trackers")))

    def decode_open_versions(self, payload: Payload) -> list[SimpleEntity]:
        """Versions tasks can still be assigned to."""
        items = [
            v for v in self._items(payload, "versions")
            if _str(v.get("status") or "open") == "open"
        ]
        return self._entities(items)

    def decode_allowed_statuses(self, payload: Payload) -> list[SimpleEntity]:
        data = _obj(self.loads(payload))
        issue = _obj(data.get("issue"))
        statuses = issue.get("allowed_statuses", data.get("allowed_statuses"))
        return self._entities(_list(statuses))

    def decode_current_user(self, payload: Payload) -> Optional[SimpleEntity]:
        user = _obj(_obj(self.loads(payload)).get("user"))
        user_id = _int(user.get("id"))
        if user_id <= 0:
            return None
        full_name = f"{_str(user.get('firstname'))} {_str(user.get('lastname'))}".strip()
        return SimpleEntity(user_id, full_name or _str(user.get("name")) or _str(user.get("login")))

    def decode_project(self, payload: Payload) -> Optional[SimpleEntity]:
        project = _obj(_obj(self.loads(payload)).get("project"))
        project_id = _int(project.get("id"))
        if project_id <= 0:
            return None
        return SimpleEntity(project_id, _str(project.get("name")))

    def decode_context_metadata(self, payload: Payload) -> ContextMetadata:
        """Allowed statuses and custom fields from an ``issues/new.json`` form."""
        data = _obj(self.loads(payload))
        issue = _obj(data.get("issue")) or data

        definitions = []
        for cf in _list(issue.get("custom_fields")):
            if not isinstance(cf, dict) or _int(cf.get("id")) <= 0:
                continue
            definitions.append(self._decode_definition(cf))

        return ContextMetadata(
            allowed_statuses=self._entities(_list(issue.get("allowed_statuses"))),
            available_custom_field_ids=[d.id for d in definitions],
            definitions=definitions,
        )

    # -------------------------------------------------------------------------
    # Custom field definitions
    # -------------------------------------------------------------------------

    def decode_custom_field_definitions(self, payload: Payload) -> list[CustomFieldDefinition]:
        """Issue custom field definitions; other customized types are skipped."""
        definitions = []
        for item in self._items(payload, "custom_fields"):
            if _int(item.get("id")) <= 0:
                continue
            customized = item.get("customized_type")
            if customized and customized != "issue":
                continue
            definitions.append(self._decode_definition(item))
        return definitions

    def _decode_definition(self, item: dict[str, Any]) -> CustomFieldDefinition:
        possible_values = []
        for pv in _list(item.get("possible_values")):
            value = _str(pv.get("value")) if isinstance(pv, dict) else _str(pv)
            if value and value not in possible_values:
                possible_values.append(value)

        return CustomFieldDefinition(
            id=_int(item.get("id")),
            name=_str(item.get("name")),
            type=_str(item.get("field_format")) or "string",
            is_required=bool(item.get("is_required", False)),
            is_filter=bool(item.get("is_filter", False)),
            possible_values=possible_values,
            tracker_ids=self._ids(item.get("trackers")),
            project_ids=self._ids(item.get("projects")),
        )

    def _ids(self, value: Any) -> list[int]:
        ids = []
        for ref in _list(value):
            ref_id = _ref_id(ref) if isinstance(ref, dict) else _int(ref)
            if ref_id > 0 and ref_id not in ids:
                ids.append(ref_id)
        return ids

    def encode_custom_field_definitions(self, definitions: list[CustomFieldDefinition]) -> str:
        """Serialize definitions in the server's own ``custom_fields.json`` shape."""
        fields = []
        for d in definitions:
            entry: dict[str, Any] = {
                "id": d.id,
                "name": d.name,
                "field_format": d.type,
                "is_required": d.is_required,
            }
            if d.is_filter:
                entry["is_filter"] = True
            if d.possible_values:
                entry["possible_values"] = [{"value": v} for v in d.possible_values]
            if d.tracker_ids:
                entry["trackers"] = [{"id": i} for i in d.tracker_ids]
            if d.project_ids:
                entry["projects"] = [{"id": i} for i in d.project_ids]
            fields.append(entry)
        return _dumps({"custom_fields": fields}, indent=2)

    # -------------------------------------------------------------------------
    # Time entries, versions, wiki
    # -------------------------------------------------------------------------

    def decode_time_entries(self, payload: Payload) -> list[TimeEntry]:
        entries = []
        for item in self._items(payload, "time_entries"):
            issue = _obj(item.get("issue"))
            entries.append(TimeEntry(
                id=_int(item.get("id")),
                issue_id=_int(issue.get("id")),
                issue_subject=_str(issue.get("subject")),
                user=_name(item.get("user")),
                activity=_name(item.get("activity")),
                hours=_float(item.get("hours")),
                spent_on=_str(item.get("spent_on")),
                comment=_str(item.get("comments")),
            ))
        return entries

    def decode_versions(self, payload: Payload) -> list[Version]:
        versions = []
        for item in self._items(payload, "versions"):
            if _int(item.get("id")) <= 0:
                continue
            versions.append(Version(
                id=_int(item.get("id")),
                name=_str(item.get("name")),
                status=_str(item.get("status")),
                start_date=_str(item.get("start_date")),
                due_date=_str(item.get("due_date") or item.get("effective_date")),
            ))
        return versions

    def decode_wiki_index(self, payload: Payload) -> list[WikiPage]:
        pages = []
        for item in self._items(payload, "wiki_pages"):
            title = _str(item.get("title"))
            if not title:
                continue
            pages.append(WikiPage(
                title=title,
                version=_int(item.get("version")),
                updated_on=_str(item.get("updated_on")),
                parent=_str(_obj(item.get("parent")).get("title")),
            ))
        return pages

    def decode_wiki_page(self, payload: Payload) -> Optional[WikiPage]:
        page = _obj(_obj(self.loads(payload)).get("wiki_page"))
        title = _str(page.get("title"))
        if not title:
            return None
        return WikiPage(
            title=title,
            text=_str(page.get("text")),
            version=_int(page.get("version")),
            updated_on=_str(page.get("updated_on")),
            author=_name(page.get("author")),
            parent=_str(_obj(page.get("parent")).get("title")),
            attachments=self._decode_attachments(page.get("attachments")),
        )

    def decode_wiki_history(self, payload: Payload) -> list[WikiVersion]:
        data = _obj(self.loads(payload))
        page = _obj(data.get("wiki_page"))
        items = (
            _list(page.get("revisions"))
            or _list(data.get("revisions"))
            or _list(data.get("versions"))
        )
        history = []
        for item in items:
            if not isinstance(item, dict):
                continue
            history.append(WikiVersion(
                version=_int(item.get("version")),
                updated_on=_str(item.get("updated_on") or item.get("created_on")),
                author=_name(item.get("author")),
                comments=_str(item.get("comments")),
            ))
        return history

    # -------------------------------------------------------------------------
    # Encoding
    # -------------------------------------------------------------------------

    def encode_task_for_create(self, project_id: str, task: Task) -> str:
        issue: dict[str, Any] = {"project_id": project_id}
        issue.update(self._task_fields(task))
        return _dumps({"issue": issue})

    def encode_task_for_update(self, task: Task) -> str:
        issue = self._task_fields(task)
        if task.notes:
            issue["notes"] = task.notes
        return _dumps({"issue": issue})

    def _task_fields(self, task: Task) -> dict[str, Any]:
        fields: dict[str, Any] = {}

        if task.subject:
            fields["subject"] = task.subject
        if task.description:
            fields["description"] = task.description

        for key, value in (
            ("tracker_id", task.tracker_id),
            ("status_id", task.status_id),
            ("priority_id", task.priority_id),
            ("assigned_to_id", task.assigned_to_id),
            ("category_id", task.category_id),
            ("fixed_version_id", task.target_version_id),
            ("parent_issue_id", task.parent_id),
            ("done_ratio", task.done_ratio),
        ):
            if value > 0:
                fields[key] = value

        if task.start_date:
            fields["start_date"] = task.start_date
        if task.due_date:
            fields["due_date"] = task.due_date

        if task.custom_fields:
            fields["custom_fields"] = [
                {"id": cf.id, "value": cf.value or ""} for cf in task.custom_fields
            ]

        if task.pending_uploads:
            fields["uploads"] = [
                {"token": u.token, "filename": u.filename, "content_type": u.content_type}
                for u in task.pending_uploads
            ]

        return fields

    def encode_time_entry(
        self,
        issue_id: int,
        date: str,
        hours: float,
        user_id: int,
        activity_id: int,
        comment: Optional[str],
    ) -> str:
        entry: dict[str, Any] = {"issue_id": issue_id, "spent_on": date, "hours": hours}
        if activity_id > 0:
            entry["activity_id"] = activity_id
        if user_id > 0:
            entry["user_id"] = user_id
        if comment:
            entry["comments"] = comment
        return _dumps({"time_entry": entry})

    def encode_version(
        self,
        name: str,
        status: Optional[str],
        start_date: Optional[str],
        due_date: Optional[str],
    ) -> str:
        version: dict[str, Any] = {"name": name}
        if status:
            version["status"] = status
        if start_date:
            version["start_date"] = start_date
        if due_date:
            version["effective_date"] = due_date
        return _dumps({"version": version})

    def encode_wiki_page(self, text: str, comment: Optional[str] = None) -> str:
        page: dict[str, Any] = {"text": text or ""}
        if comment:
            page["comments"] = comment
        return _dumps({"wiki_page": page})

    def encode_wiki_attachment(
        self,
        current_text: Optional[str],
        version: int,
        token: str,
        filename: str,
        content_type: str,
    ) -> str:
        return _dumps({
            "wiki_page": {
                "text": current_text or "",
                "version": version,
                "uploads": [
                    {"token": token, "filename": filename, "content_type": content_type}
                ],
                "comments": f"Attached file: {filename}",
            }
        })
