"""Unit tests for the provisioning manager."""

import threading
import time

import pytest

from pyclouds.domain.base.exceptions import IllegalStateError
from pyclouds.infrastructure.concurrency.provisioning import ProvisioningJob, ProvisioningManager

WAIT = 5


@pytest.mark.unit
class TestProvisioningJob:
    def test_runs_operation(self):
        assert ProvisioningJob("web", lambda: 42)() == 42

    def test_group_required(self):
        with pytest.raises(ValueError):
            ProvisioningJob("", lambda: None)

    def test_readiness_checked_before_and_after(self):
        calls = []

        def ready(group):
            calls.append(group)
            return True

        ProvisioningJob("web", lambda: calls.append("run"), ready)()

        assert calls == ["web", "run", "web"]

    def test_group_not_ready_raises(self):
        operation_ran = []
        job = ProvisioningJob("web", lambda: operation_ran.append(True), lambda group: False)

        with pytest.raises(IllegalStateError, match="group web was not ready before"):
            job()
        assert operation_ran == []


@pytest.mark.unit
class TestProvisioningManager:
    """Test cases for ProvisioningManager."""

    def setup_method(self):
        self.manager = ProvisioningManager(max_workers=2)

    def teardown_method(self):
        self.manager.close()

    def test_jobs_in_a_group_run_in_order_one_at_a_time(self):
        order = []
        active = []
        overlap = []
        lock = threading.Lock()

        def work(n):
            def run():
                with lock:
                    active.append(n)
                    if len(active) > 1:
                        overlap.append(n)
                time.sleep(0.01)
                with lock:
                    active.remove(n)
                    order.append(n)
                return n

            return run

        futures = self.manager.provision_all(ProvisioningJob("web", work(n)) for n in range(5))

        assert [f.result(timeout=WAIT) for f in futures] == [0, 1, 2, 3, 4]
        assert order == [0, 1, 2, 3, 4]
        assert overlap == []

    def test_different_groups_run_concurrently(self):
        web_started = threading.Event()
        db_started = threading.Event()

        def web():
            web_started.set()
            return db_started.wait(WAIT)

        def db():
            db_started.set()
            return web_started.wait(WAIT)

        web_future = self.manager.provision(ProvisioningJob("web", web))
        db_future = self.manager.provision(ProvisioningJob("db", db))

        assert web_future.result(timeout=WAIT * 2) is True
        assert db_future.result(timeout=WAIT * 2) is True

    def test_failure_is_reported_on_the_future(self):
        def boom():
            raise IllegalStateError("node in ERROR")

        future = self.manager.provision(ProvisioningJob("web", boom))
        follow_up = self.manager.provision(ProvisioningJob("web", lambda: "next"))

        assert isinstance(future.exception(timeout=WAIT), IllegalStateError)
        assert follow_up.result(timeout=WAIT) == "next"

    def test_close_cancels_queued_jobs(self):
        release = threading.Event()
        started = threading.Event()

        def blocking():
            started.set()
            release.wait(WAIT)
            return "done"

        running = self.manager.provision(ProvisioningJob("web", blocking))
        queued = self.manager.provision(ProvisioningJob("web", lambda: "never"))
        assert started.wait(WAIT)

        self.manager.close()
        release.set()

        assert queued.cancelled()
        assert running.result(timeout=WAIT) == "done"
        assert self.manager.closed

    def test_submission_after_close_is_ignored(self, mock_logger):
        manager = ProvisioningManager(logger=mock_logger)
        manager.close()

        assert manager.provision(ProvisioningJob("web", lambda: 1)) is None
        mock_logger.warning.assert_called_once()

    def test_close_is_idempotent(self):
        self.manager.close()
        self.manager.close()

        assert self.manager.closed

    def test_max_workers_must_be_positive(self):
        with pytest.raises(ValueError):
            ProvisioningManager(max_workers=0)
