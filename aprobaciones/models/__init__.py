from .base import Timestamped
from .definition import WorkflowDefinition, DefinitionStatus
from .instance import WorkflowInstance, InstanceState, TERMINAL_STATES, active_key_for
from .history import HistoryEvent, HistoryAction
from .delegation import ApprovalDelegation

__all__ = [
    "Timestamped",
    "WorkflowDefinition", "DefinitionStatus",
    "WorkflowInstance", "InstanceState", "TERMINAL_STATES", "active_key_for",
    "HistoryEvent", "HistoryAction",
    "ApprovalDelegation",
]
