"""
DTOs de la API HTTP.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import DefinitionStatus, HistoryAction, InstanceState


# ============================================================================
# DEFINICIONES
# ============================================================================

class DefinitionCreate(BaseModel):
    entity_type: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    edges: List[Dict[str, Any]] = Field(default_factory=list)
    activation_condition: Optional[List[Dict[str, Any]]] = None
    priority: int = 0


class DefinitionUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    nodes: Optional[List[Dict[str, Any]]] = None
    edges: Optional[List[Dict[str, Any]]] = None
    activation_condition: Optional[List[Dict[str, Any]]] = None
    priority: Optional[int] = None


class DefinitionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    entity_type: str
    version: int
    name: str
    description: str
    status: DefinitionStatus
    nodes: List[Dict[str, Any]]
    edges: List[Dict[str, Any]]
    activation_condition: Optional[List[Dict[str, Any]]] = None
    priority: int
    checksum: Optional[str] = None
    published_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# INSTANCIAS
# ============================================================================

class StartApproval(BaseModel):
    entity_type: str = Field(min_length=1)
    entity_id: str = Field(min_length=1)
    entity_snapshot: Dict[str, Any] = Field(default_factory=dict)
    priority: Optional[int] = None


class RequiresApprovalIn(BaseModel):
    entity_type: str = Field(min_length=1)
    entity_snapshot: Dict[str, Any] = Field(default_factory=dict)


class DecisionIn(BaseModel):
    comment: Optional[str] = None


class RejectIn(BaseModel):
    # La longitud mínima la valida el gateway para devolver su propio error
    motivo: str = ""


class CancelIn(BaseModel):
    motivo: Optional[str] = None


class InstanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    definition_id: str
    definition_version: int
    entity_type: str
    entity_id: str
    state: InstanceState
    current_node_id: str
    requester_id: str
    priority: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    node_entered_at: datetime
    deadline_at: Optional[datetime] = None
    action_error: Optional[str] = None
    revision: int


class HistoryEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    seq: int
    action: HistoryAction
    actor_id: Optional[str] = None
    node_id: str
    target_node_id: str
    resulting_state: InstanceState
    comment: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime


class PendingItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    instance: InstanceOut
    node_id: str
    node_name: str
    summary: Optional[Dict[str, Any]] = None
    delegated_by: Optional[str] = None
    needs_attention: bool = False


class InstanceDetailOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    instance: InstanceOut
    history: List[HistoryEventOut]
    snapshot: Dict[str, Any]
    summary: Optional[Dict[str, Any]] = None


# ============================================================================
# DELEGACIONES
# ============================================================================

class DelegationCreate(BaseModel):
    delegate_id: str = Field(min_length=1)
    starts_at: datetime
    ends_at: datetime
    entity_type: Optional[str] = None
    reason: Optional[str] = None


class DelegationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    delegator_id: str
    delegate_id: str
    entity_type: Optional[str] = None
    starts_at: datetime
    ends_at: datetime
    reason: Optional[str] = None
    active: bool
