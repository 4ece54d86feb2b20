"""
Registro fijo de tipos de nodo y etiquetas de arista.

Cada tipo declara su modelo de configuración, los handles de salida
permitidos con su cardinalidad y si el motor avanza automáticamente al
llegar a él.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

from .types import (
    AccionConfig,
    AprobacionConfig,
    CondicionConfig,
    EdgeLabel,
    FinConfig,
    InicioConfig,
    Node,
    NodeKind,
)


@dataclass(frozen=True)
class HandleRule:
    label: EdgeLabel
    min: int
    max: int


@dataclass(frozen=True)
class NodeType:
    kind: NodeKind
    display_name: str
    category: str
    config_model: Type[BaseModel]
    handles: Tuple[HandleRule, ...]
    auto_advance: bool

    def handle(self, label: EdgeLabel) -> Optional[HandleRule]:
        for rule in self.handles:
            if rule.label == label:
                return rule
        return None

    def parse_config(self, config: Dict[str, Any]) -> BaseModel:
        return self.config_model.model_validate(config or {})


# Aristas que el motor sigue sin intervención humana
AUTOMATIC_LABELS = frozenset({EdgeLabel.siguiente, EdgeLabel.si, EdgeLabel.no})

REGISTRY: Dict[NodeKind, NodeType] = {
    NodeKind.inicio: NodeType(
        kind=NodeKind.inicio,
        display_name="Inicio",
        category="Flujo",
        config_model=InicioConfig,
        handles=(HandleRule(EdgeLabel.siguiente, 1, 1),),
        auto_advance=True,
    ),
    NodeKind.aprobacion: NodeType(
        kind=NodeKind.aprobacion,
        display_name="Aprobación",
        category="Decisión humana",
        config_model=AprobacionConfig,
        handles=(
            HandleRule(EdgeLabel.aprobar, 1, 1),
            HandleRule(EdgeLabel.rechazar, 1, 1),
            HandleRule(EdgeLabel.timeout, 0, 1),
        ),
        auto_advance=False,
    ),
    NodeKind.condicion: NodeType(
        kind=NodeKind.condicion,
        display_name="Condición",
        category="Lógica",
        config_model=CondicionConfig,
        handles=(
            HandleRule(EdgeLabel.si, 1, 1),
            HandleRule(EdgeLabel.no, 1, 1),
        ),
        auto_advance=True,
    ),
    NodeKind.accion: NodeType(
        kind=NodeKind.accion,
        display_name="Acción",
        category="Automatización",
        config_model=AccionConfig,
        handles=(HandleRule(EdgeLabel.siguiente, 1, 1),),
        auto_advance=True,
    ),
    NodeKind.fin: NodeType(
        kind=NodeKind.fin,
        display_name="Fin",
        category="Flujo",
        config_model=FinConfig,
        handles=(),
        auto_advance=False,
    ),
}


def node_type(kind: NodeKind) -> NodeType:
    return REGISTRY[NodeKind(kind)]


def parse_config(node: Node) -> BaseModel:
    """Interpreta la config de un nodo con el modelo de su tipo (lanza pydantic.ValidationError)."""
    return node_type(node.kind).parse_config(node.config)


def catalog() -> List[Dict[str, Any]]:
    """Catálogo para el editor gráfico externo."""
    items = []
    for spec in REGISTRY.values():
        items.append({
            "type": spec.kind.value,
            "category": spec.category,
            "display": {"label": spec.display_name},
            "ports": {
                "out": [
                    {"name": rule.label.value, "min": rule.min, "max": rule.max}
                    for rule in spec.handles
                ],
            },
            "autoAdvance": spec.auto_advance,
            "configSchema": spec.config_model.model_json_schema(),
        })
    return items
