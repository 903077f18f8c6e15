from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

import httpx
import pytest

from fitaccounts.clock import IdGenerator
from fitaccounts.database import DatabaseManager
from fitaccounts.hashing import CredentialHasher
from fitaccounts.logger import StructuredLogger
from fitaccounts.repositories.activity_repository import ActivityRepository
from fitaccounts.repositories.base_repository import BaseRecordStore
from fitaccounts.repositories.demo_store import DemoCloudRecordStore
from fitaccounts.repositories.hybrid_store import HybridRecordStore
from fitaccounts.repositories.local_store import LocalRecordStore
from fitaccounts.repositories.remote_store import RemoteRecordStore
from fitaccounts.repositories.session_repository import SessionRepository
from fitaccounts.schema import initialize_schema
from fitaccounts.services.account_service import AccountService
from fitaccounts.services.client_state import ClientStateCache
from fitaccounts.services.lockout import LockoutPolicy
from fitaccounts.services.session_manager import SessionManager
from fitaccounts.utils.activity import ActivityLog

SALT = "FitFindrSalt2023"
BIN_ID = "bin123"
API_BASE = "https://api.test/v3/b"


class ManualClock:
    """Clock that only moves when a test tells it to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.current = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


class FakeDocumentAPI:
    """In-memory stand-in for the remote JSON document endpoint."""

    def __init__(self) -> None:
        self.document: dict[str, Any] = {"users": [], "lastUpdated": None}
        self.fail_with: Optional[int] = None
        self.unreachable: bool = False
        self.failing_gets: int = 0
        self.puts: int = 0
        self.gets: int = 0
        self.headers_seen: list[httpx.Headers] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.headers_seen.append(request.headers)
        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"message": "unavailable"})
        if request.method == "GET" and self.failing_gets:
            self.failing_gets -= 1
            return httpx.Response(503, json={"message": "unavailable"})

        if request.method == "GET" and request.url.path == f"/v3/b/{BIN_ID}/latest":
            self.gets += 1
            return httpx.Response(200, json={"record": self.document, "metadata": {}})
        if request.method == "PUT" and request.url.path == f"/v3/b/{BIN_ID}":
            self.puts += 1
            self.document = json.loads(request.content)
            return httpx.Response(200, json={"record": self.document})
        return httpx.Response(404, json={"message": "not found"})

    def emails(self) -> list[str]:
        return [u["email"] for u in self.document["users"]]


@pytest.fixture(scope="session")
def logger(tmp_path_factory: pytest.TempPathFactory) -> StructuredLogger:
    log_file = tmp_path_factory.mktemp("logs") / "tests.log"
    return StructuredLogger(name="fitaccounts.tests", log_file=str(log_file))


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def ids(clock: ManualClock) -> IdGenerator:
    return IdGenerator(clock)


@pytest.fixture()
def fake_api() -> FakeDocumentAPI:
    return FakeDocumentAPI()


@pytest.fixture()
def db(tmp_path: Path, logger: StructuredLogger, fake_api: FakeDocumentAPI) -> Iterator[DatabaseManager]:
    manager = DatabaseManager(
        sqlite_path=tmp_path / "local.db",
        logger=logger,
        remote_base_url=API_BASE,
        remote_api_key="test-key",
        transport=httpx.MockTransport(fake_api.handler),
    )
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture()
def hasher() -> CredentialHasher:
    return CredentialHasher(SALT)


@pytest.fixture()
def local_store(db: DatabaseManager, logger: StructuredLogger) -> LocalRecordStore:
    return LocalRecordStore(db, logger)


@pytest.fixture()
def remote_store(db: DatabaseManager, logger: StructuredLogger, clock: ManualClock) -> RemoteRecordStore:
    return RemoteRecordStore(db, BIN_ID, logger, clock)


@pytest.fixture()
def hybrid_store(
    remote_store: RemoteRecordStore,
    local_store: LocalRecordStore,
    logger: StructuredLogger,
) -> HybridRecordStore:
    return HybridRecordStore(remote_store, local_store, logger)


@pytest.fixture()
def demo_store(tmp_path: Path, logger: StructuredLogger, clock: ManualClock) -> DemoCloudRecordStore:
    return DemoCloudRecordStore(tmp_path / "demo_cloud.json", logger, clock)


@pytest.fixture()
def client_state(db: DatabaseManager, logger: StructuredLogger, clock: ManualClock) -> ClientStateCache:
    return ClientStateCache(db, logger, secret="test-secret", iterations=1_000, clock=clock)


@pytest.fixture()
def activity_log(db: DatabaseManager, logger: StructuredLogger, clock: ManualClock) -> ActivityLog:
    return ActivityLog(logger, ActivityRepository(db, logger), clock)


@pytest.fixture()
def make_service(
    db: DatabaseManager,
    logger: StructuredLogger,
    clock: ManualClock,
    ids: IdGenerator,
    hasher: CredentialHasher,
    client_state: ClientStateCache,
    activity_log: ActivityLog,
) -> Callable[[BaseRecordStore], AccountService]:
    def _make(store: BaseRecordStore) -> AccountService:
        sessions = SessionManager(
            repository=SessionRepository(db, logger),
            store=store,
            logger=logger,
            client_state=client_state,
            clock=clock,
            id_generator=ids,
        )
        return AccountService(
            store=store,
            hasher=hasher,
            lockout=LockoutPolicy(),
            logger=logger,
            sessions=sessions,
            client_state=client_state,
            activity=activity_log,
            clock=clock,
            id_generator=ids,
        )

    return _make


@pytest.fixture()
def service(make_service: Callable[[BaseRecordStore], AccountService], local_store: LocalRecordStore) -> AccountService:
    return make_service(local_store)
