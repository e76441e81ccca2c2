"""Tests for assembling the service stack."""

from redmine_connector import (
    AsyncDataService,
    CachedDataService,
    CustomFieldLearningCache,
    RedmineDataService,
    RedmineJsonCodec,
    build_data_service,
)
from redmine_connector.core.domain.entities import CustomField, Task
from redmine_connector.core.domain.events import EventBus, TasksFetched
from redmine_connector.core.ports.config_provider import AppConfig, TrackerConfig


def make_config(tmp_path, persistent=False):
    config = AppConfig(tracker=TrackerConfig(url="https://redmine.example.com", api_key="k"))
    config.cache.persistent = persistent
    config.cache.snapshot_path = tmp_path / "snapshot.dat"
    config.async_.max_pool_size = 3
    return config


class TestBuildDataService:
    """Tests for build_data_service."""

    def test_layers(self, tmp_path):
        service = build_data_service(make_config(tmp_path))

        try:
            assert isinstance(service, AsyncDataService)
            assert service.max_workers == 3
            assert isinstance(service.delegate, CachedDataService)
            assert isinstance(service.delegate.delegate, RedmineDataService)
            assert service.describe()["delegate"]["delegate"]["url"] == "https://redmine.example.com"
        finally:
            service.shutdown()

    def test_persistent_cache_writes_snapshot_on_shutdown(self, tmp_path):
        service = build_data_service(make_config(tmp_path, persistent=True))
        service.delegate.cache.put("metadata:users:demo", ["x"], 60)

        service.shutdown()

        assert (tmp_path / "snapshot.dat").exists()

    def test_learning_cache_is_wired_to_the_bus(self, tmp_path):
        learning = CustomFieldLearningCache(RedmineJsonCodec(), cache_dir=tmp_path / "cf")
        bus = EventBus()

        service = build_data_service(make_config(tmp_path), event_bus=bus, learning_cache=learning)
        try:
            transport = service.delegate.delegate
            assert transport.event_bus is bus

            fetched = Task(id=1, tracker_id=2, custom_fields=[CustomField(5, "Env", "prod")])
            bus.publish(TasksFetched(instance_key=transport.instance_key, tasks=(fetched,)))

            assert [d.id for d in learning.get_definitions(transport.instance_key)] == [5]
        finally:
            service.shutdown()
