"""Tests for custom field learning."""

import hashlib
import json
import threading
from unittest.mock import Mock

import pytest

from redmine_connector.adapters.redmine.codec import RedmineJsonCodec
from redmine_connector.application import CustomFieldLearningCache
from redmine_connector.core.domain.entities import CustomField, Task
from redmine_connector.core.domain.events import EventBus, TasksFetched
from redmine_connector.core.ports.definition_codec import DefinitionCodecPort


INSTANCE = "https://redmine.example.com"


def task(tracker_id=1, project_id=7, **values):
    fields = [CustomField(int(k[1:]), f"Field {k[1:]}", v) for k, v in values.items()]
    return Task(id=1, tracker_id=tracker_id, project_id=project_id, custom_fields=fields)


@pytest.fixture
def learning(tmp_path):
    return CustomFieldLearningCache(RedmineJsonCodec(), cache_dir=tmp_path / "cache")


class TestLearning:
    """Tests for the merge rules."""

    def test_new_field_starts_as_string(self, learning):
        assert learning.learn_from_tasks(INSTANCE, [task(f3="abc")])

        (definition,) = learning.get_definitions(INSTANCE)
        assert definition.id == 3
        assert definition.name == "Field 3"
        assert definition.type == "string"
        assert definition.tracker_ids == [1]
        assert definition.project_ids == [7]
        assert definition.possible_values == ["abc"]

    def test_merges_additively(self, learning):
        learning.learn_from_tasks(INSTANCE, [task(tracker_id=1, project_id=7, f3="a")])
        learning.learn_from_tasks(INSTANCE, [task(tracker_id=2, project_id=7, f3="b")])
        learning.learn_from_tasks(INSTANCE, [task(tracker_id=1, project_id=8, f3="a")])

        (definition,) = learning.get_definitions(INSTANCE)
        assert definition.tracker_ids == [1, 2]
        assert definition.project_ids == [7, 8]
        assert definition.possible_values == ["a", "b"]

    def test_ignores_blank_values_and_unset_ids(self, learning):
        learning.learn_from_tasks(INSTANCE, [task(tracker_id=0, project_id=0, f3="  ")])

        (definition,) = learning.get_definitions(INSTANCE)
        assert definition.tracker_ids == []
        assert definition.project_ids == []
        assert definition.possible_values == []

    def test_date_values_upgrade_type(self, learning):
        learning.learn_from_tasks(INSTANCE, [task(f4="2024-05-01")])

        assert learning.get_definitions(INSTANCE)[0].type == "date"

    def test_mixed_values_stay_string(self, learning):
        learning.learn_from_tasks(INSTANCE, [task(f4="soon"), task(f4="2024-05-01")])

        assert learning.get_definitions(INSTANCE)[0].type == "string"

    def test_nothing_new_reports_no_change(self, learning):
        learning.learn_from_tasks(INSTANCE, [task(f3="a")])

        assert not learning.learn_from_tasks(INSTANCE, [task(f3="a")])
        assert not learning.learn_from_tasks(INSTANCE, [Task(id=2)])

    def test_definitions_are_copies(self, learning):
        learning.learn_from_tasks(INSTANCE, [task(f3="a")])

        learning.get_definitions(INSTANCE)[0].possible_values.append("tampered")

        assert learning.get_definitions(INSTANCE)[0].possible_values == ["a"]

    def test_instances_are_separate(self, learning):
        learning.learn_from_tasks(INSTANCE, [task(f3="a")])

        assert learning.get_definitions("https://other.example.com") == []


class TestPersistence:
    """Tests for the on-disk format."""

    def test_file_name_and_format(self, learning, tmp_path):
        learning.learn_from_tasks(INSTANCE, [task(f3="2024-01-01")])

        digest = hashlib.sha256(INSTANCE.encode("utf-8")).hexdigest()[:16]
        path = tmp_path / "cache" / f"custom_fields_cache_{digest}.json"
        assert learning.cache_file(INSTANCE) == path

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["custom_fields"][0]["id"] == 3
        assert data["custom_fields"][0]["field_format"] == "date"
        assert data["custom_fields"][0]["possible_values"] == [{"value": "2024-01-01"}]
        assert data["custom_fields"][0]["trackers"] == [{"id": 1}]

    def test_reload_from_disk(self, learning, tmp_path):
        learning.learn_from_tasks(INSTANCE, [task(f3="a"), task(f5="b")])

        fresh = CustomFieldLearningCache(RedmineJsonCodec(), cache_dir=tmp_path / "cache")

        assert [d.id for d in fresh.get_definitions(INSTANCE)] == [3, 5]

    def test_file_format_comes_from_injected_codec(self, tmp_path):
        codec = Mock(spec=DefinitionCodecPort)
        codec.encode_custom_field_definitions.return_value = "stored"
        learning = CustomFieldLearningCache(codec, cache_dir=tmp_path)

        learning.learn_from_tasks(INSTANCE, [task(f3="a")])

        assert learning.cache_file(INSTANCE).read_text(encoding="utf-8") == "stored"
        (definitions,), _ = codec.encode_custom_field_definitions.call_args
        assert [d.id for d in definitions] == [3]

    def test_corrupt_file_degrades_to_empty(self, learning):
        path = learning.cache_file(INSTANCE)
        path.parent.mkdir(parents=True)
        path.write_text("{broken", encoding="utf-8")

        learning.load(INSTANCE)

        assert learning.get_definitions(INSTANCE) == []


class TestEvents:
    """Tests for learning from published task fetches."""

    def test_subscribe(self, learning):
        bus = EventBus()
        learning.subscribe(bus)

        bus.publish(TasksFetched(instance_key=INSTANCE, operation="fetch_tasks", tasks=(task(f9="x"),)))

        assert [d.id for d in learning.get_definitions(INSTANCE)] == [9]

    def test_concurrent_learning(self, learning):
        def worker(n):
            learning.learn_from_tasks(INSTANCE, [task(tracker_id=n, f3=f"v{n}")])

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(1, 11)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        (definition,) = learning.get_definitions(INSTANCE)
        assert sorted(definition.tracker_ids) == list(range(1, 11))
        assert len(definition.possible_values) == 10
