"""
Repository Layer Package.

Record stores and repositories over SQLite (local), the remote JSON
document API and the demo cloud file.  Services never touch
``db.sqlite`` or ``db.remote`` directly.

Usage:
    from fitaccounts.repositories import HybridRecordStore, LocalRecordStore
"""

from fitaccounts.repositories.activity_repository import ActivityRepository
from fitaccounts.repositories.base_repository import BaseRecordStore
from fitaccounts.repositories.demo_store import DemoCloudRecordStore
from fitaccounts.repositories.hybrid_store import HybridRecordStore
from fitaccounts.repositories.local_store import LocalRecordStore
from fitaccounts.repositories.remote_store import RemoteRecordStore
from fitaccounts.repositories.session_repository import SessionRepository

__all__ = [
    "ActivityRepository",
    "BaseRecordStore",
    "DemoCloudRecordStore",
    "HybridRecordStore",
    "LocalRecordStore",
    "RemoteRecordStore",
    "SessionRepository",
]
