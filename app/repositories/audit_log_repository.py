from typing import Any

from app.models.audit_log import AuditLog
from app.repositories.base import BaseRepository


class AuditLogRepository(BaseRepository):
    """Insert-only access to ``audit_logs``."""

    async def create(self, **kwargs: Any) -> AuditLog:
        entry = AuditLog(**kwargs)
        self._db.add(entry)
        return entry
