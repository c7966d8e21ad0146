from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func

from app.models.business_rule import BusinessRule
from app.repositories.base import BaseRepository


class BusinessRuleRepository(BaseRepository):
    """Encapsulates queries against the ``business_rules`` table."""

    async def create(self, **kwargs: Any) -> BusinessRule:
        rule = BusinessRule(**kwargs)
        self._db.add(rule)
        await self._db.flush()
        await self._db.refresh(rule)
        return rule

    async def get_by_id(self, rule_id: UUID) -> Optional[BusinessRule]:
        result = await self._db.execute(
            select(BusinessRule).where(BusinessRule.rule_id == rule_id)
        )
        return result.scalar_one_or_none()

    async def list_rules(
        self,
        *,
        is_active: Optional[bool] = None,
        rule_type: Optional[str] = None,
        created_by_id: Optional[UUID] = None,
    ) -> List[BusinessRule]:
        """Return rules matching the filters, highest priority first.

        Ties are broken by most recently created.
        """
        query = select(BusinessRule)
        if is_active is not None:
            query = query.where(BusinessRule.is_active == is_active)
        if rule_type is not None:
            query = query.where(BusinessRule.type == rule_type)
        if created_by_id is not None:
            query = query.where(BusinessRule.created_by_id == created_by_id)
        query = query.order_by(
            BusinessRule.priority.desc(), BusinessRule.created_at.desc()
        )
        result = await self._db.execute(query)
        return list(result.scalars().all())

    async def list_active_by_types(self, rule_types: Iterable[str]) -> List[BusinessRule]:
        """Return active rules whose type is in *rule_types*, priority desc."""
        result = await self._db.execute(
            select(BusinessRule)
            .where(
                BusinessRule.is_active.is_(True),
                BusinessRule.type.in_(list(rule_types)),
            )
            .order_by(BusinessRule.priority.desc(), BusinessRule.created_at.desc())
        )
        return list(result.scalars().all())

    async def delete(self, rule: BusinessRule) -> None:
        await self._db.delete(rule)

    async def count_by_status(self) -> Tuple[int, int]:
        """Return ``(total, active)`` rule counts."""
        result = await self._db.execute(
            select(
                func.count(BusinessRule.rule_id),
                func.count(BusinessRule.rule_id).filter(
                    BusinessRule.is_active.is_(True)
                ),
            )
        )
        total, active = result.one()
        return total or 0, active or 0

    async def count_by_type(self) -> Dict[str, int]:
        result = await self._db.execute(
            select(BusinessRule.type, func.count(BusinessRule.rule_id))
            .group_by(BusinessRule.type)
            .order_by(BusinessRule.type)
        )
        return {rule_type: count for rule_type, count in result.all()}
