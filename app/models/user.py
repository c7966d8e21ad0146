from uuid import uuid4

from sqlalchemy import Column, String, DateTime
from sqlalchemy.dialects.postgresql import UUID
from app.models.base import Base
from sqlalchemy.sql import func


class User(Base):
    """Platform user a lead can be assigned to; owner of rules and workflows."""

    __tablename__ = "users"
    user_id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid(),
    )
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(200))
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Team(Base):
    """Sales team a lead can be assigned to."""

    __tablename__ = "teams"
    team_id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid(),
    )
    name = Column(String(100), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
