"""
FitFindr Account Core Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema, seeds the demo account, runs one local-to-remote
reconciliation, keeps the background sync worker running for the status
pass and logs a status line.  Every subsystem is wired here,
with no module-level globals.

Usage::

    python main.py
"""

from __future__ import annotations

import atexit
import sys
from typing import Optional

from fitaccounts.config import get_config
from fitaccounts.database import DatabaseManager
from fitaccounts.errors import StoreError
from fitaccounts.logger import StructuredLogger, get_logger
from fitaccounts.schema import initialize_schema
from fitaccounts.services import create_services
from fitaccounts.services.demo_seed import DEMO_EMAIL, seed_demo_account
from fitaccounts.services.sync_worker import SyncWorkerService


def main() -> int:
    """Wire dependencies, seed, reconcile and report.  Returns an exit code."""
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting FitFindr account core...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager (offline-capable: remote optional, SQLite always)
    # ------------------------------------------------------------------
    db = DatabaseManager(
        sqlite_path=config.LOCAL_DB_PATH,
        logger=StructuredLogger(name="database"),
        remote_base_url=config.REMOTE_API_BASE if config.remote_configured else "",
        remote_api_key=config.REMOTE_API_KEY.get_secret_value(),
        remote_key_header=config.REMOTE_KEY_HEADER,
        remote_timeout_s=config.REMOTE_TIMEOUT_S,
    )

    # DatabaseManager.close() is idempotent, so the atexit hook and the
    # finally block below can both call it.
    atexit.register(db.close)

    worker: Optional[SyncWorkerService] = None
    try:
        # --------------------------------------------------------------
        # 3. SQLite Schema Initialization (idempotent)
        # --------------------------------------------------------------
        initialize_schema(db.sqlite, StructuredLogger(name="schema"))

        # --------------------------------------------------------------
        # 4. Service Container (stores + services)
        # --------------------------------------------------------------
        services = create_services(db=db, config=config)
        account_service = services["account_service"]
        store = services["store"]
        worker = services.get("sync_worker")

        # --------------------------------------------------------------
        # 5. Demo account
        # --------------------------------------------------------------
        if config.SEED_DEMO_ACCOUNT:
            try:
                seeded = seed_demo_account(account_service, store)
            except StoreError as exc:
                logger.error("Demo account seeding failed: %s", exc.message)
            else:
                if not seeded.success:
                    logger.warning(
                        "Demo account %s not seeded: %s",
                        DEMO_EMAIL, seeded.error_message,
                    )

        # --------------------------------------------------------------
        # 6. One reconciliation pass (hybrid only)
        # --------------------------------------------------------------
        hybrid = services.get("hybrid_store")
        if hybrid is not None:
            result = services["sync_coordinator"].reconcile_hybrid(hybrid)
            if not result.success:
                logger.warning("Initial sync skipped: %s", result.error_message)
        if worker is not None:
            worker.start()

        # --------------------------------------------------------------
        # 7. Status line
        # --------------------------------------------------------------
        purged = services["session_manager"].clean_expired_sessions()
        listing = account_service.list_users()
        logger.info(
            "Account core ready: backend=%s users=%d degraded=%s "
            "quarantined=%d expired_sessions_purged=%d",
            store.NAME,
            len(listing.users),
            listing.degraded,
            len(store.quarantined),
            purged,
        )
        return 0 if listing.success else 1
    finally:
        if worker is not None:
            worker.stop()
        db.close()
        logger.info("FitFindr account core shut down.")


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        pass
