"""
Account Services Package.

The ``create_services()`` factory wires every record store, repository
and service together, returning a typed dict that the composition root
(and tests) can consume without knowing the internal dependency graph.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional, TypedDict

from fitaccounts.clock import Clock, IdGenerator, SystemClock
from fitaccounts.config import AppConfig
from fitaccounts.database import DatabaseManager
from fitaccounts.hashing import CredentialHasher
from fitaccounts.logger import get_logger
from fitaccounts.repositories.activity_repository import ActivityRepository
from fitaccounts.repositories.base_repository import BaseRecordStore
from fitaccounts.repositories.demo_store import DemoCloudRecordStore
from fitaccounts.repositories.hybrid_store import HybridRecordStore
from fitaccounts.repositories.local_store import LocalRecordStore
from fitaccounts.repositories.remote_store import RemoteRecordStore
from fitaccounts.repositories.session_repository import SessionRepository
from fitaccounts.services.account_service import AccountService
from fitaccounts.services.client_state import ClientStateCache
from fitaccounts.services.lockout import LockoutPolicy
from fitaccounts.services.session_manager import SessionManager
from fitaccounts.services.sync_coordinator import SyncCoordinator
from fitaccounts.services.sync_worker import SyncWorkerService
from fitaccounts.utils.activity import ActivityLog


class ServiceContainer(TypedDict, total=False):
    """Typed container for all account services.

    Entries marked ``Optional`` are ``None`` when the selected
    ``STORE_BACKEND`` does not use them.
    """

    # --- Stores ---
    store: BaseRecordStore
    local_store: LocalRecordStore
    remote_store: RemoteRecordStore
    hybrid_store: Optional[HybridRecordStore]
    demo_store: Optional[DemoCloudRecordStore]

    # --- Core (always present) ---
    account_service: AccountService
    session_manager: SessionManager
    client_state: ClientStateCache
    activity_log: ActivityLog
    sync_coordinator: SyncCoordinator

    # --- Background ---
    sync_worker: Optional[SyncWorkerService]


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    clock: Optional[Clock] = None,
    id_generator: Optional[IdGenerator] = None,
) -> ServiceContainer:
    """
    Wire all stores and services together.

    This is the single composition root for the service layer.  The
    application entry-point calls this once at startup.

    Args:
        db: Initialised DatabaseManager with SQLite ready (remote optional).
        config: Application configuration; ``STORE_BACKEND`` selects the
            record store handed to the account service.
        clock: Time source shared by every component.
        id_generator: Id source shared by every component.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("services")
    clock = clock or SystemClock()
    id_generator = id_generator or IdGenerator(clock)

    # ------------------------------------------------------------------
    # 1. Record stores
    # ------------------------------------------------------------------
    local_store = LocalRecordStore(db=db, logger=logger)
    remote_store = RemoteRecordStore(
        db=db, bin_id=config.REMOTE_BIN_ID, logger=logger, clock=clock,
    )
    hybrid_store: Optional[HybridRecordStore] = None
    demo_store: Optional[DemoCloudRecordStore] = None

    store: BaseRecordStore
    if config.STORE_BACKEND == "local":
        store = local_store
    elif config.STORE_BACKEND == "remote":
        store = remote_store
    elif config.STORE_BACKEND == "demo":
        demo_store = DemoCloudRecordStore(
            path=config.DEMO_STORE_PATH, logger=logger, clock=clock,
        )
        store = demo_store
    else:
        hybrid_store = HybridRecordStore(
            remote=remote_store, local=local_store, logger=logger,
        )
        store = hybrid_store
    logger.info("Record store backend: %s", store.NAME)

    # ------------------------------------------------------------------
    # 2. Leaf services (no service dependencies)
    # ------------------------------------------------------------------
    client_state = ClientStateCache(
        db=db,
        logger=logger,
        secret=config.CLIENT_STATE_SECRET.get_secret_value(),
        iterations=config.CLIENT_STATE_KDF_ITERATIONS,
        clock=clock,
    )
    activity_log = ActivityLog(
        logger=logger,
        repository=ActivityRepository(db=db, logger=logger),
        clock=clock,
    )
    lockout = LockoutPolicy(
        max_attempts=config.MAX_FAILED_ATTEMPTS,
        lockout_duration=timedelta(minutes=config.LOCKOUT_MINUTES),
    )
    hasher = CredentialHasher(config.PASSWORD_SALT.get_secret_value())

    session_manager = SessionManager(
        repository=SessionRepository(db=db, logger=logger),
        store=store,
        logger=logger,
        client_state=client_state,
        clock=clock,
        id_generator=id_generator,
        ttl=timedelta(hours=config.SESSION_TTL_HOURS),
    )

    # ------------------------------------------------------------------
    # 3. Orchestration services
    # ------------------------------------------------------------------
    account_service = AccountService(
        store=store,
        hasher=hasher,
        lockout=lockout,
        logger=logger,
        sessions=session_manager,
        client_state=client_state,
        activity=activity_log,
        clock=clock,
        id_generator=id_generator,
    )
    sync_coordinator = SyncCoordinator(logger=logger, id_generator=id_generator)

    sync_worker: Optional[SyncWorkerService] = None
    if hybrid_store is not None:
        sync_worker = SyncWorkerService(
            coordinator=sync_coordinator,
            hybrid=hybrid_store,
            config=config,
            logger=logger,
        )

    return ServiceContainer(
        store=store,
        local_store=local_store,
        remote_store=remote_store,
        hybrid_store=hybrid_store,
        demo_store=demo_store,
        account_service=account_service,
        session_manager=session_manager,
        client_state=client_state,
        activity_log=activity_log,
        sync_coordinator=sync_coordinator,
        sync_worker=sync_worker,
    )
