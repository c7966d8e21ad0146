import logging
from typing import Any, Awaitable, Callable, Dict, Mapping
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import ExecutionError
from app.repositories.lead_repository import LeadRepository
from app.schemas.common import ActionType
from app.services.collaborators import NotificationSink

logger = logging.getLogger(__name__)

# lead column written by an ``assignment`` action, keyed by target
_ASSIGNMENT_TARGETS: Dict[str, str] = {
    "user": "assigned_to_id",
    "team": "assigned_team_id",
}

ActionHandler = Callable[[UUID, Dict[str, Any]], Awaitable[None]]


def _action_dict(action: Any) -> Dict[str, Any]:
    if isinstance(action, BaseModel):
        return action.model_dump()
    if isinstance(action, Mapping):
        return dict(action)
    return {}


class ActionDispatcher:
    """Apply rule actions to a lead.

    Each ``ActionType`` maps to one handler.  Lead mutations go through
    ``LeadRepository`` on the caller's session; the caller owns the
    commit.  Notification and enrichment actions never touch the lead,
    they are handed to the ``NotificationSink``.

    An unknown action type is logged and ignored.  A database failure
    (or a value the lead column rejects) is re-raised as
    ``ExecutionError``.
    """

    def __init__(
        self,
        lead_repo: LeadRepository,
        notification_sink: NotificationSink,
    ) -> None:
        self._lead_repo = lead_repo
        self._sink = notification_sink
        self._handlers: Dict[str, ActionHandler] = {
            ActionType.assignment.value: self._apply_assignment,
            ActionType.scoring.value: self._apply_scoring,
            ActionType.status_change.value: self._apply_status_change,
            ActionType.notification.value: self._emit,
            ActionType.enrichment.value: self._emit,
        }

    @property
    def supported_types(self) -> frozenset:
        return frozenset(self._handlers)

    async def apply(self, lead_id: UUID, action: Any) -> None:
        data = _action_dict(action)
        action_type = data.get("type")
        if isinstance(action_type, ActionType):
            action_type = action_type.value

        handler = self._handlers.get(action_type)
        if handler is None:
            logger.warning("Unknown action type: %s", action_type)
            return

        try:
            await handler(lead_id, data)
        except (SQLAlchemyError, ValueError) as exc:
            logger.error(
                "Action %s failed for lead %s", action_type, lead_id, exc_info=True
            )
            raise ExecutionError(
                f"Failed to apply {action_type} action to lead {lead_id}"
            ) from exc

    async def _apply_assignment(self, lead_id: UUID, action: Dict[str, Any]) -> None:
        column = _ASSIGNMENT_TARGETS.get(action.get("target"))
        if column is None:
            logger.warning(
                "Unknown assignment target %r for lead %s", action.get("target"), lead_id
            )
            return
        await self._lead_repo.update_fields(lead_id, **{column: action.get("value")})

    async def _apply_scoring(self, lead_id: UUID, action: Dict[str, Any]) -> None:
        await self._lead_repo.update_fields(lead_id, score=action.get("value"))

    async def _apply_status_change(self, lead_id: UUID, action: Dict[str, Any]) -> None:
        await self._lead_repo.update_fields(lead_id, status=action.get("value"))

    async def _emit(self, lead_id: UUID, action: Dict[str, Any]) -> None:
        self._sink.emit(
            {
                "type": action.get("type"),
                "target": action.get("target"),
                "value": action.get("value"),
                "metadata": action.get("metadata") or {},
                "lead_id": str(lead_id),
            }
        )
