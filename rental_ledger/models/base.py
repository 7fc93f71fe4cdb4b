"""Base Models and Mixins"""

import uuid
from datetime import datetime
from sqlalchemy import Column, DateTime, UUID
from sqlalchemy.orm import declared_attr

from rental_ledger.database import Base


class BaseModel(Base):
    """
    Base model class with common fields for all models.

    Provides:
    - UUID primary key
    - creado_el / actualizado_el timestamp pair
    """
    __abstract__ = True

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    created_at = Column("creado_el", DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column("actualizado_el", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class ActorMixin:
    """
    Mixin for rows written on behalf of an authenticated user.

    Provides:
    - created_by (creado_por): id of the user in the external auth service
    """

    @declared_attr
    def created_by(cls):
        return Column("creado_por", UUID(as_uuid=True), nullable=True, index=True)
