from typing import Optional
from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import Field
from .base import Timestamped


class ApprovalDelegation(Timestamped, table=True):
    """Un aprobador cede temporalmente sus permisos de aprobación a otro usuario."""
    __tablename__ = "approval_delegation"

    id: str = Field(primary_key=True, index=True)
    organization_id: str = Field(index=True)
    delegator_id: str = Field(index=True)
    delegate_id: str = Field(index=True)
    entity_type: Optional[str] = None  # None = todos los workflows
    starts_at: datetime = Field(sa_type=DateTime)
    ends_at: datetime = Field(sa_type=DateTime)
    reason: Optional[str] = None
    active: bool = Field(default=True, index=True)

    def covers(self, at: datetime, entity_type: Optional[str] = None) -> bool:
        if not self.active or not (self.starts_at <= at <= self.ends_at):
            return False
        return self.entity_type is None or self.entity_type == entity_type
