from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum
from sqlmodel import Field, Column
from sqlalchemy import JSON, DateTime, UniqueConstraint
from .base import Timestamped


class DefinitionStatus(str, Enum):
    draft = "draft"
    published = "published"
    archived = "archived"


class WorkflowDefinition(Timestamped, table=True):
    """
    Una versión del grafo de aprobación para (organización, tipo de entidad).
    Todas las versiones del mismo par forman un linaje; como máximo una está publicada.
    """
    __tablename__ = "workflow_definition"
    __table_args__ = (
        UniqueConstraint("organization_id", "entity_type", "version", name="uq_definition_version"),
    )

    id: str = Field(primary_key=True, index=True)
    organization_id: str = Field(index=True)
    entity_type: str = Field(index=True)
    version: int = Field(default=1)
    name: str
    description: str = ""
    status: DefinitionStatus = Field(default=DefinitionStatus.draft, index=True)

    # Nodos y aristas embebidos tal como los produce el editor
    nodes: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    edges: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Cláusulas que deciden si una entidad requiere aprobación (None = siempre)
    activation_condition: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON))
    priority: int = Field(default=0)

    checksum: Optional[str] = Field(default=None, index=True)  # sha256(nodes+edges)
    published_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
