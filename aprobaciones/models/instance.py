from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum
from sqlmodel import Field, Column
from sqlalchemy import JSON, DateTime, String
from .base import Timestamped


class InstanceState(str, Enum):
    en_progreso = "en_progreso"
    aprobado = "aprobado"
    rechazado = "rechazado"
    cancelado = "cancelado"
    expirado = "expirado"


TERMINAL_STATES = frozenset({
    InstanceState.aprobado,
    InstanceState.rechazado,
    InstanceState.cancelado,
    InstanceState.expirado,
})


def active_key_for(organization_id: str, entity_type: str, entity_id: str) -> str:
    return f"{organization_id}:{entity_type}:{entity_id}"


class WorkflowInstance(Timestamped, table=True):
    __tablename__ = "workflow_instance"

    id: str = Field(primary_key=True, index=True)
    organization_id: str = Field(index=True)
    definition_id: str = Field(foreign_key="workflow_definition.id", index=True)
    definition_version: int

    entity_type: str = Field(index=True)
    entity_id: str = Field(index=True)

    state: InstanceState = Field(default=InstanceState.en_progreso, index=True)
    current_node_id: str
    requester_id: str = Field(index=True)
    priority: int = Field(default=0)

    started_at: datetime = Field(sa_type=DateTime)
    completed_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    node_entered_at: datetime = Field(sa_type=DateTime)
    deadline_at: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime)

    # Mensaje de la acción crítica que dejó la instancia detenida
    action_error: Optional[str] = None

    # Campos de la entidad resueltos al iniciar (base de las condiciones)
    entity_snapshot: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    # Presente solo mientras la instancia no es terminal: unicidad por entidad
    active_key: Optional[str] = Field(default=None, sa_column=Column(String, unique=True, nullable=True))

    # Contador para compare-and-set
    revision: int = Field(default=0)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES
