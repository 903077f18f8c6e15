from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fitaccounts.clock import IdGenerator
from fitaccounts.config import AppConfig
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.user import UserRecord
from fitaccounts.repositories.hybrid_store import HybridRecordStore
from fitaccounts.repositories.local_store import LocalRecordStore
from fitaccounts.repositories.remote_store import RemoteRecordStore
from fitaccounts.services.sync_coordinator import SyncCoordinator
from fitaccounts.services.sync_worker import SyncWorkerService

from .conftest import FakeDocumentAPI

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(record_id: str, email: str, full_name: str = "Sync User") -> UserRecord:
    return UserRecord(
        id=record_id,
        full_name=full_name,
        email=email,
        password_digest="d" * 64,
        registration_date=NOW,
    )


@pytest.fixture()
def coordinator(logger: StructuredLogger, ids: IdGenerator) -> SyncCoordinator:
    return SyncCoordinator(logger, ids)


@pytest.fixture()
def worker(
    coordinator: SyncCoordinator,
    hybrid_store: HybridRecordStore,
    logger: StructuredLogger,
) -> SyncWorkerService:
    config = AppConfig(SYNC_INTERVAL_S=10.0, SYNC_MAX_INTERVAL_S=100.0)
    return SyncWorkerService(coordinator, hybrid_store, config, logger)


def test_local_only_records_are_appended(
    coordinator: SyncCoordinator,
    local_store: LocalRecordStore,
    remote_store: RemoteRecordStore,
    fake_api: FakeDocumentAPI,
) -> None:
    fake_api.document = {"users": [_record("1", "remote@example.com").to_document()]}
    local_store.save_all([_record("2", "local@example.com")])

    result = coordinator.reconcile(local_store, remote_store)

    assert result.success
    assert (result.merged, result.appended) == (2, 1)
    assert fake_api.emails() == ["remote@example.com", "local@example.com"]
    appended = fake_api.document["users"][1]
    assert appended["syncedFromLocal"] is True


def test_remote_wins_for_shared_emails(
    coordinator: SyncCoordinator,
    local_store: LocalRecordStore,
    remote_store: RemoteRecordStore,
    fake_api: FakeDocumentAPI,
) -> None:
    fake_api.document = {
        "users": [_record("1", "both@example.com", full_name="Remote Name").to_document()],
    }
    local_store.save_all([_record("7", "both@example.com", full_name="Local Name")])

    result = coordinator.reconcile(local_store, remote_store)

    assert result.appended == 0
    assert [u["fullName"] for u in fake_api.document["users"]] == ["Remote Name"]
    assert local_store.get_all()[0].full_name == "Local Name"


def test_appended_ids_never_collide(
    coordinator: SyncCoordinator,
    ids: IdGenerator,
    local_store: LocalRecordStore,
    remote_store: RemoteRecordStore,
    fake_api: FakeDocumentAPI,
) -> None:
    taken = ids.new_id()
    fake_api.document = {
        "users": [
            _record(taken, "a@example.com").to_document(),
            _record(str(int(taken) + 1), "b@example.com").to_document(),
        ],
    }
    local_store.save_all([_record("x", "c@example.com")])

    coordinator.reconcile(local_store, remote_store)

    remote_ids = [u["id"] for u in fake_api.document["users"]]
    assert len(set(remote_ids)) == 3


def test_failure_is_reported_not_raised(
    coordinator: SyncCoordinator,
    local_store: LocalRecordStore,
    remote_store: RemoteRecordStore,
    fake_api: FakeDocumentAPI,
) -> None:
    local_store.save_all([_record("2", "local@example.com")])
    fake_api.fail_with = 503

    result = coordinator.reconcile(local_store, remote_store)

    assert not result.success
    assert result.error_message


def test_worker_backoff(
    worker: SyncWorkerService,
    local_store: LocalRecordStore,
    fake_api: FakeDocumentAPI,
) -> None:
    assert worker.calculate_backoff_interval() == 10.0

    fake_api.fail_with = 500
    worker.run_once()
    assert worker.consecutive_failures == 1
    assert worker.calculate_backoff_interval() == 20.0

    for _ in range(5):
        worker.run_once()
    assert worker.calculate_backoff_interval() == 100.0

    fake_api.fail_with = None
    local_store.save_all([_record("2", "local@example.com")])
    result = worker.run_once()
    assert result.success
    assert worker.consecutive_failures == 0
    assert worker.last_result == result
    assert fake_api.emails() == ["local@example.com"]


def test_worker_start_stop(worker: SyncWorkerService) -> None:
    assert not worker.is_running
    worker.start()
    worker.start()
    assert worker.is_running

    worker.stop()
    assert not worker.is_running
    worker.stop()
