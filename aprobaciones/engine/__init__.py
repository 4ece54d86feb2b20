from .actions import ActionContext, ActionExecutor, DefaultActionExecutor
from .conditions import evaluate, evaluate_clause, MODE_ALL, MODE_FIRST
from .machine import Advance, WorkflowEngine

__all__ = [
    "ActionContext", "ActionExecutor", "DefaultActionExecutor",
    "evaluate", "evaluate_clause", "MODE_ALL", "MODE_FIRST",
    "Advance", "WorkflowEngine",
]
