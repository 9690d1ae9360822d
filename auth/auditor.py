"""
auth/auditor.py -- Best-effort access log for successful authentications.

The audit entry is not part of the security decision: a store failure here is
logged with its traceback and swallowed so the login, refresh or registration
that triggered it still succeeds.
"""

from __future__ import annotations

import logging

from auth.models import AccessRecord, RequestMeta
from auth.store import AccountStore

logger = logging.getLogger("accountguard.auth.audit")


class AccessAuditor:
    def __init__(self, store: AccountStore) -> None:
        self.store = store

    def record(self, email: str, meta: RequestMeta) -> bool:
        """Append an AccessRecord. Returns False if it could not be written."""
        record = AccessRecord(email=email, ip=meta.ip, browser=meta.browser, country=meta.country)
        try:
            self.store.add_access(record)
        except Exception:
            logger.exception("Failed to record access for %s", email)
            return False
        logger.info("Access recorded for %s from %s (%s)", email, meta.ip, meta.country)
        return True
