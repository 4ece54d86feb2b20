from .types import (
    NodeKind, EdgeLabel, ApproverType, ActionType, FinalOutcome,
    Node, Edge, WorkflowGraph,
    AprobacionConfig, CondicionConfig, AccionConfig, FinConfig, ConditionClause, ApproverSpec,
)
from .registry import REGISTRY, AUTOMATIC_LABELS, node_type, parse_config, catalog
from .validator import GraphValidator, ValidationReport, Violation, validate_graph

__all__ = [
    "NodeKind", "EdgeLabel", "ApproverType", "ActionType", "FinalOutcome",
    "Node", "Edge", "WorkflowGraph",
    "AprobacionConfig", "CondicionConfig", "AccionConfig", "FinConfig", "ConditionClause", "ApproverSpec",
    "REGISTRY", "AUTOMATIC_LABELS", "node_type", "parse_config", "catalog",
    "GraphValidator", "ValidationReport", "Violation", "validate_graph",
]
