"""
auth/sessions.py -- Session Registry.

A session is a record of one login event. Every login appends a row; nothing
here deletes older rows as a side effect. The read and delete operations only
ever reach the most recent row for a user (UserStore.latest_session), so
older sessions are invisible through this interface. Ending the current
session exposes the previous one as "current" again. This is a simple login
ledger, not multi-device logout.
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.models import Session
from auth.store import UserStore
from core.errors import NotFoundError

logger = logging.getLogger("storekeep.auth.sessions")


class SessionRegistry:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def record_login(self, user_id: int, network_addr: Optional[str], device_info: Optional[str]) -> Session:
        session = self.store.add_session(Session(user_id=user_id, ip_address=network_addr, device_info=device_info))
        logger.info("Session %s recorded for user %s", session.id, user_id)
        return session

    def current_session(self, user_id: int) -> Session:
        session = self.store.latest_session(user_id)
        if session is None:
            raise NotFoundError("Session not found!")
        return session

    def end_current_session(self, user_id: int) -> Session:
        """Delete the most recent session and return it."""
        session = self.current_session(user_id)
        self.store.delete_session(session.id)
        logger.info("Session %s deleted for user %s", session.id, user_id)
        return session
