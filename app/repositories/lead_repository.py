from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import selectinload

from app.models.lead import Lead
from app.repositories.base import BaseRepository

_UUID_COLUMNS = frozenset({"assigned_to_id", "assigned_team_id"})


class LeadRepository(BaseRepository):
    """Encapsulates every SQL query that touches the ``leads`` table."""

    async def get_with_relations(self, lead_id: UUID) -> Optional[Lead]:
        """Return a lead with its scoring and enrichment rows eagerly loaded.

        Condition evaluation reads ``confidence``, ``companySize`` and
        ``revenue`` from those side tables, so they must be loaded before
        the lead is turned into a snapshot (no lazy IO under asyncio).
        Rows already in the session are refreshed so that earlier action
        updates are visible.
        """
        result = await self._db.execute(
            select(Lead)
            .options(selectinload(Lead.scoring_details), selectinload(Lead.enrichment))
            .where(Lead.lead_id == lead_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def exists(self, lead_id: UUID) -> bool:
        result = await self._db.execute(
            select(Lead.lead_id).where(Lead.lead_id == lead_id)
        )
        return result.scalar_one_or_none() is not None

    async def update_fields(self, lead_id: UUID, **values: Any) -> None:
        """Set one or more columns on a lead by ID.

        Assignment ids may arrive as strings from rule definitions; they
        are parsed here and a malformed id raises ``ValueError``.
        """
        for column in _UUID_COLUMNS.intersection(values):
            if values[column] is not None and not isinstance(values[column], UUID):
                values[column] = UUID(str(values[column]))
        await self._db.execute(
            update(Lead).where(Lead.lead_id == lead_id).values(**values)
        )
