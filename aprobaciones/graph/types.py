"""
Tipos del grafo de workflow.

El editor gráfico externo produce nodos y aristas en JSON; aquí se
representan como modelos pydantic. El ``kind`` de cada nodo es una variante
cerrada y su ``config`` se interpreta con el modelo que dicta el registro.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NodeKind(str, Enum):
    inicio = "inicio"
    aprobacion = "aprobacion"
    condicion = "condicion"
    accion = "accion"
    fin = "fin"


class EdgeLabel(str, Enum):
    siguiente = "siguiente"
    aprobar = "aprobar"
    rechazar = "rechazar"
    si = "si"
    no = "no"
    timeout = "timeout"


class ApproverType(str, Enum):
    usuario = "usuario"
    rol = "rol"
    grupo = "grupo"
    permiso = "permiso"


class ActionType(str, Enum):
    cambiar_estado = "cambiar_estado"
    notificar = "notificar"
    webhook = "webhook"


class FinalOutcome(str, Enum):
    aprobado = "aprobado"
    rechazado = "rechazado"


CONDITION_OPERATORS = frozenset({
    "=", "!=", ">", ">=", "<", "<=",
    "en", "no_en",
    "contiene", "empieza_con", "termina_con",
})


# ============================================================================
# CONFIG POR TIPO DE NODO
# ============================================================================

class InicioConfig(BaseModel):
    model_config = ConfigDict(extra="allow")


class ApproverSpec(BaseModel):
    """Quién puede aprobar: un usuario concreto, un rol, un grupo o un permiso."""
    tipo: ApproverType
    valor: str = Field(min_length=1)

    @field_validator("valor", mode="before")
    @classmethod
    def _coerce_valor(cls, v: Any) -> Any:
        # El editor a veces envía ids numéricos
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class AprobacionConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    aprobador: ApproverSpec
    timeout_horas: Optional[int] = Field(default=None, gt=0)
    permitir_autoaprobacion: bool = False


class ConditionClause(BaseModel):
    campo: str = Field(min_length=1)
    operador: str
    valor: Any = None
    valor_ref: Optional[str] = None

    @field_validator("operador")
    @classmethod
    def _operador_conocido(cls, v: str) -> str:
        if v not in CONDITION_OPERATORS:
            raise ValueError(f"operador desconocido: {v!r}")
        return v


class CondicionConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    condiciones: List[ConditionClause] = Field(min_length=1)


class AccionConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    tipo_accion: ActionType
    config_accion: Dict[str, Any] = Field(default_factory=dict)
    critica: bool = False


class FinConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    resultado: FinalOutcome


# ============================================================================
# NODOS, ARISTAS Y GRAFO
# ============================================================================

class Node(BaseModel):
    id: str = Field(min_length=1)
    kind: NodeKind
    name: str = ""
    config: Dict[str, Any] = Field(default_factory=dict)


class Edge(BaseModel):
    id: Optional[str] = None
    source: str = Field(min_length=1)
    target: str = Field(min_length=1)
    label: EdgeLabel


class WorkflowGraph:
    """
    Vista de solo lectura sobre nodos y aristas ya parseados.

    Construye la lista de adyacencia una vez; la usan el validador y el motor.
    """

    def __init__(self, nodes: List[Node], edges: List[Edge]):
        self.nodes = nodes
        self.edges = edges
        self.nodes_by_id: Dict[str, Node] = {}
        for node in nodes:
            # Con ids duplicados gana el primero; el validador lo reporta aparte
            self.nodes_by_id.setdefault(node.id, node)
        self.outgoing: Dict[str, List[Edge]] = {n.id: [] for n in nodes}
        self.incoming: Dict[str, List[Edge]] = {n.id: [] for n in nodes}
        for edge in edges:
            self.outgoing.setdefault(edge.source, []).append(edge)
            self.incoming.setdefault(edge.target, []).append(edge)

    @classmethod
    def from_payload(cls, nodes: List[Dict[str, Any]], edges: List[Dict[str, Any]]) -> "WorkflowGraph":
        return cls(
            [Node.model_validate(n) for n in nodes],
            [Edge.model_validate(e) for e in edges],
        )

    def node(self, node_id: str) -> Node:
        return self.nodes_by_id[node_id]

    def start_node(self) -> Optional[Node]:
        for node in self.nodes:
            if node.kind == NodeKind.inicio:
                return node
        return None

    def edge_for(self, node_id: str, label: EdgeLabel) -> Optional[Edge]:
        for edge in self.outgoing.get(node_id, []):
            if edge.label == label:
                return edge
        return None

    def successors(self, node_id: str) -> List[str]:
        return [e.target for e in self.outgoing.get(node_id, [])]

    def predecessors(self, node_id: str) -> List[str]:
        return [e.source for e in self.incoming.get(node_id, [])]
