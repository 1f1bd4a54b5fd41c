from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime

from retail_pos.models import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthEvent:
    attempted_username: str
    success: bool
    failure_reason: str | None
    principal_id: str | None
    ip: str | None
    user_agent: str | None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class AuditEntry:
    actor_principal_id: str | None
    action: str
    ip: str | None
    meta: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)


class AuditLog:
    """Process-local record of sign-ins and privileged actions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.auth_events: list[AuthEvent] = []
        self.entries: list[AuditEntry] = []

    def log_auth_event(
        self,
        *,
        attempted_username: str,
        success: bool,
        ip: str | None,
        user_agent: str | None,
        principal_id: str | None = None,
        failure_reason: str | None = None,
    ) -> AuthEvent:
        event = AuthEvent(
            attempted_username=attempted_username,
            success=success,
            failure_reason=failure_reason,
            principal_id=principal_id,
            ip=ip,
            user_agent=user_agent,
        )
        with self._lock:
            self.auth_events.append(event)
        if success:
            logger.info('Sign-in succeeded for %s', attempted_username)
        else:
            logger.warning('Sign-in failed for %s (%s)', attempted_username, failure_reason)
        return event

    def log_audit(
        self,
        *,
        actor_principal_id: str | None,
        action: str,
        ip: str | None,
        metadata: dict | None = None,
    ) -> AuditEntry:
        entry = AuditEntry(actor_principal_id=actor_principal_id, action=action, ip=ip, meta=metadata or {})
        with self._lock:
            self.entries.append(entry)
        logger.info('Audit %s by %s', action, actor_principal_id)
        return entry

    def entries_for(self, action: str) -> list[AuditEntry]:
        with self._lock:
            return [entry for entry in self.entries if entry.action == action]

    def recent_auth_events(
        self,
        *,
        success: bool | None = None,
        username: str | None = None,
        limit: int | None = None,
    ) -> list[AuthEvent]:
        """Sign-in attempts, newest first."""
        with self._lock:
            rows = [
                event
                for event in reversed(self.auth_events)
                if (success is None or event.success == success)
                and (username is None or event.attempted_username == username)
            ]
        return rows if limit is None else rows[:limit]

    def recent_entries(
        self,
        *,
        action: str | None = None,
        actor_principal_id: str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        with self._lock:
            rows = [
                entry
                for entry in reversed(self.entries)
                if (action is None or entry.action == action)
                and (actor_principal_id is None or entry.actor_principal_id == actor_principal_id)
            ]
        return rows if limit is None else rows[:limit]

    def failed_sign_ins_since(self, since: datetime) -> int:
        with self._lock:
            return sum(1 for event in self.auth_events if not event.success and event.created_at >= since)
