from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum
from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON, DateTime, UniqueConstraint
from .instance import InstanceState
from ..util.clock import utc_now


class HistoryAction(str, Enum):
    iniciar = "iniciar"
    avanzar = "avanzar"
    aprobar = "aprobar"
    rechazar = "rechazar"
    expirar = "expirar"
    cancelar = "cancelar"


class HistoryEvent(SQLModel, table=True):
    """Evento append-only; nunca se actualiza ni se borra."""
    __tablename__ = "history_event"
    __table_args__ = (UniqueConstraint("instance_id", "seq", name="uq_history_seq"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    instance_id: str = Field(foreign_key="workflow_instance.id", index=True)
    organization_id: str = Field(index=True)
    seq: int

    action: HistoryAction = Field(index=True)
    actor_id: Optional[str] = Field(default=None, index=True)
    node_id: str                      # nodo donde ocurrió el evento
    target_node_id: str               # nodo donde quedó la instancia
    resulting_state: InstanceState
    comment: Optional[str] = None

    # recorrido, acciones ejecutadas, error de acción, etiqueta seguida
    data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    occurred_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)
