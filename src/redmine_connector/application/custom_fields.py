"""
Custom Field Learning - Builds custom field definitions from observed tasks.

Reading ``custom_fields.json`` needs administrator rights, which most API
keys lack. Every fetched task still shows which custom fields exist, which
trackers and projects use them and which values they take. This cache
accumulates that knowledge per Redmine instance and keeps it on disk in the
server's own definition format, so it can stand in for the real thing.

Learning is additive: fields, trackers, projects and values are only ever
added.
"""

import hashlib
import logging
import re
import threading
from dataclasses import replace
from pathlib import Path
from typing import Iterable

from ..core.domain.entities import CustomFieldDefinition, Task
from ..core.domain.events import EventBus, TasksFetched
from ..core.ports.definition_codec import DefinitionCodecPort


DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class CustomFieldLearningCache:
    """
    Per-instance store of learned custom field definitions.

    Access to one instance key is serialized; different instances do not
    block each other.
    """

    FILE_PREFIX = "custom_fields_cache_"

    def __init__(self, codec: DefinitionCodecPort, cache_dir: Path = Path("cache")):
        """
        Args:
            codec: Reads and writes the definition files
            cache_dir: Directory holding one file per instance
        """
        self.cache_dir = Path(cache_dir)
        self.codec = codec
        self.logger = logging.getLogger("CustomFieldLearningCache")

        self._definitions: dict[str, dict[int, CustomFieldDefinition]] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def cache_file(self, instance_key: str) -> Path:
        """File holding the definitions of an instance."""
        digest = hashlib.sha256(instance_key.encode("utf-8")).hexdigest()[:16]
        return self.cache_dir / f"{self.FILE_PREFIX}{digest}.json"

    def load(self, instance_key: str) -> None:
        """(Re)load an instance's definitions from disk; failures leave it empty."""
        with self._lock_for(instance_key):
            self._definitions[instance_key] = self._read(instance_key)

    def save(self, instance_key: str) -> None:
        """Write an instance's definitions to disk."""
        with self._lock_for(instance_key):
            self._write(instance_key)

    def learn_from_tasks(self, instance_key: str, tasks: Iterable[Task]) -> bool:
        """
        Merge what the tasks reveal about custom fields.

        Args:
            instance_key: Identity of the Redmine instance
            tasks: Tasks as fetched from that instance

        Returns:
            True if anything new was learned (and saved)
        """
        with self._lock_for(instance_key):
            definitions = self._loaded(instance_key)
            changed = False

            for task in tasks:
                for cf in task.custom_fields:
                    if cf.id <= 0:
                        continue
                    if self._learn(definitions, task, cf.id, cf.name, cf.value):
                        changed = True

            if changed:
                self._write(instance_key)
            return changed

    def get_definitions(self, instance_key: str) -> list[CustomFieldDefinition]:
        """Learned definitions ordered by id; the returned objects are copies."""
        with self._lock_for(instance_key):
            definitions = self._loaded(instance_key)
            return [
                replace(
                    d,
                    possible_values=list(d.possible_values),
                    tracker_ids=list(d.tracker_ids),
                    project_ids=list(d.project_ids),
                )
                for _, d in sorted(definitions.items())
            ]

    def subscribe(self, event_bus: EventBus) -> None:
        """Learn from every TasksFetched event published on the bus."""
        event_bus.subscribe(TasksFetched, self._on_tasks_fetched)

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    def _on_tasks_fetched(self, event: TasksFetched) -> None:
        self.learn_from_tasks(event.instance_key, event.tasks)

    def _learn(
        self,
        definitions: dict[int, CustomFieldDefinition],
        task: Task,
        field_id: int,
        name: str,
        value: str,
    ) -> bool:
        changed = False

        definition = definitions.get(field_id)
        if definition is None:
            definition = CustomFieldDefinition(id=field_id, name=name, type="string")
            definitions[field_id] = definition
            self.logger.info(f"Learned custom field #{field_id} '{name}'")
            changed = True
        elif not definition.name and name:
            definition.name = name
            changed = True

        if task.tracker_id > 0 and task.tracker_id not in definition.tracker_ids:
            definition.tracker_ids.append(task.tracker_id)
            changed = True

        if task.project_id > 0 and task.project_id not in definition.project_ids:
            definition.project_ids.append(task.project_id)
            changed = True

        value = (value or "").strip()
        if value and value not in definition.possible_values:
            definition.possible_values.append(value)
            changed = True

        # Only a field whose every observed value is a date becomes one
        if (
            definition.type == "string"
            and definition.possible_values
            and all(DATE_PATTERN.match(v) for v in definition.possible_values)
        ):
            definition.type = "date"
            changed = True

        return changed

    def _lock_for(self, instance_key: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(instance_key)
            if lock is None:
                lock = threading.RLock()
                self._locks[instance_key] = lock
            return lock

    def _loaded(self, instance_key: str) -> dict[int, CustomFieldDefinition]:
        if instance_key not in self._definitions:
            self._definitions[instance_key] = self._read(instance_key)
        return self._definitions[instance_key]

    def _read(self, instance_key: str) -> dict[int, CustomFieldDefinition]:
        path = self.cache_file(instance_key)
        if not path.exists():
            return {}

        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            self.logger.error(f"Could not read custom field cache {path}: {e}")
            return {}

        definitions = {d.id: d for d in self.codec.decode_custom_field_definitions(text)}
        self.logger.debug(f"Loaded {len(definitions)} custom field definitions from {path}")
        return definitions

    def _write(self, instance_key: str) -> None:
        path = self.cache_file(instance_key)
        definitions = [d for _, d in sorted(self._loaded(instance_key).items())]

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.codec.encode_custom_field_definitions(definitions), encoding="utf-8")
        except OSError as e:
            self.logger.error(f"Could not write custom field cache {path}: {e}")
