"""
Demo account seeding.

Guarantees the walkthrough account (``john@demo.com`` / ``john123``,
premium) exists and accepts its documented password.  The check reads
the record and compares digests directly, so it never touches the
lockout counters.
"""

from __future__ import annotations

from fitaccounts.models.account_models import AccountResult
from fitaccounts.models.enums import MembershipType
from fitaccounts.repositories.base_repository import BaseRecordStore
from fitaccounts.repositories.demo_store import DemoCloudRecordStore
from fitaccounts.services.account_service import AccountService

DEMO_FULL_NAME: str = "John Smith"
DEMO_EMAIL: str = "john@demo.com"
DEMO_PASSWORD: str = "john123"
DEMO_MEMBERSHIP: MembershipType = MembershipType.PREMIUM


def demo_account_ready(service: AccountService, store: BaseRecordStore) -> bool:
    """``True`` when the demo account exists and accepts the demo password."""
    record = next((r for r in store.get_all() if r.email == DEMO_EMAIL), None)
    return (
        record is not None
        and record.is_active
        and record.membership_type == DEMO_MEMBERSHIP
        and service.hasher.verify(DEMO_PASSWORD, record.password_digest)
    )


def seed_demo_account(service: AccountService, store: BaseRecordStore) -> AccountResult:
    """Create the demo account if it is missing or unusable.

    On the demo cloud store the whole demo data set is reset first, as
    the browser demo did.  On any other store only the demo record is
    replaced.
    """
    if demo_account_ready(service, store):
        return AccountResult(success=True)

    with store.write_lock:
        if isinstance(store, DemoCloudRecordStore):
            store.reset()
        else:
            remaining = [r for r in store.get_all() if r.email != DEMO_EMAIL]
            store.save_all(remaining)

        return service.register(
            DEMO_FULL_NAME,
            DEMO_EMAIL,
            DEMO_PASSWORD,
            membership_type=DEMO_MEMBERSHIP,
            device_info="demo-seed",
        )
