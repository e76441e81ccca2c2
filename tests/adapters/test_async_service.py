"""Tests for the async facade."""

import threading
from unittest.mock import Mock

import pytest

from redmine_connector.adapters.redmine import AsyncDataService, AsyncOperationError
from redmine_connector.core.domain.entities import Attachment, SimpleEntity, Task
from redmine_connector.core.ports.issue_tracker import IssueTrackerPort, NotFoundError


@pytest.fixture
def delegate():
    return Mock(spec=IssueTrackerPort)


@pytest.fixture
def service(delegate):
    service = AsyncDataService(delegate, max_workers=2)
    yield service
    service.shutdown()


class TestResults:
    """Tests for successful operations."""

    def test_result_is_delivered(self, service, delegate):
        delegate.fetch_tasks.return_value = [Task(id=1)]

        future = service.fetch_tasks_async("demo", False, 10)

        assert future.result(timeout=5) == [Task(id=1)]
        delegate.fetch_tasks.assert_called_once_with("demo", False, 10)

    def test_arguments_are_forwarded(self, service, delegate):
        service.log_time_async(42, "2024-03-01", 1.5, 3, 9, "Review").result(timeout=5)
        service.fetch_wiki_page_content_async("demo", "Home").result(timeout=5)

        delegate.log_time.assert_called_once_with(42, "2024-03-01", 1.5, 3, 9, "Review")
        delegate.fetch_wiki_page_content.assert_called_once_with("demo", "Home", None)

    def test_runs_on_worker_threads(self, service, delegate):
        names = []
        delegate.fetch_current_user.side_effect = lambda: (
            names.append(threading.current_thread().name) or SimpleEntity(1, "me")
        )

        service.fetch_current_user_async().result(timeout=5)

        assert names[0].startswith("redmine-async")


class TestErrors:
    """Tests for error wrapping."""

    @pytest.mark.parametrize("call,message", [
        (lambda s: s.fetch_tasks_async("demo", False, 1), "Error fetching tasks"),
        (lambda s: s.fetch_metadata_async("users", "demo"), "Error fetching metadata 'users'"),
        (lambda s: s.fetch_task_details_async(42), "Error fetching details for task #42"),
        (lambda s: s.update_task_async(Task(id=7)), "Error updating task #7"),
        (lambda s: s.download_attachment_async(Attachment(id=1, filename="a.txt")),
         "Error downloading attachment a.txt"),
        (lambda s: s.log_time_async(5, "2024-01-01", 1.0, 0, 0), "Error logging time for task #5"),
    ])
    def test_failure_is_wrapped_with_context(self, service, delegate, call, message):
        cause = NotFoundError("missing")
        for name in (
            "fetch_tasks", "fetch_metadata", "fetch_task_details",
            "update_task", "download_attachment", "log_time",
        ):
            getattr(delegate, name).side_effect = cause

        with pytest.raises(AsyncOperationError) as exc_info:
            call(service).result(timeout=5)

        assert str(exc_info.value) == message
        assert exc_info.value.__cause__ is cause


class TestCancellation:
    """Tests for cancelling queued work."""

    def test_cancelled_before_start_is_skipped(self, delegate):
        service = AsyncDataService(delegate, max_workers=1)
        started = threading.Event()
        release = threading.Event()

        def block():
            started.set()
            release.wait(5)
            return []

        delegate.fetch_tasks.side_effect = lambda *args: block()

        running = service.fetch_tasks_async("demo", False, 1)
        assert started.wait(5)
        queued = service.fetch_task_details_async(42)

        assert queued.cancel()
        assert not running.cancel()

        release.set()
        assert running.result(timeout=5) == []
        service.shutdown()

        delegate.fetch_task_details.assert_not_called()


class TestShutdown:
    """Tests for shutdown."""

    def test_shutdown_waits_and_closes_delegate(self, delegate):
        service = AsyncDataService(delegate, max_workers=1)
        delegate.fetch_tasks.return_value = []
        futures = [service.fetch_tasks_async("demo", False, 1) for _ in range(5)]

        service.shutdown()

        assert all(f.done() for f in futures)
        delegate.shutdown.assert_called_once()

    def test_submit_after_shutdown_raises(self, delegate):
        service = AsyncDataService(delegate)
        service.shutdown()

        with pytest.raises(RuntimeError):
            service.fetch_tasks_async("demo", False, 1)

    def test_shutdown_is_idempotent(self, delegate):
        service = AsyncDataService(delegate)
        service.shutdown()
        service.shutdown()

        delegate.shutdown.assert_called_once()
