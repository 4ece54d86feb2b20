"""
Taxonomía de errores del motor de aprobaciones.

Cada error lleva un ``code`` estable que la capa HTTP usa para construir
el sobre ``{"error": {"code", "message", "details"}}``.
"""
from typing import Any, Dict, List, Optional


class WorkflowError(Exception):
    """Error base del motor."""

    code = "WORKFLOW_ERROR"

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class ValidationError(WorkflowError):
    """Definición estructuralmente inválida o datos de entrada rechazados."""

    code = "VALIDATION"

    def __init__(self, message: str, violations: Optional[List[Any]] = None):
        self.violations = list(violations or [])
        details = [
            v.to_dict() if hasattr(v, "to_dict") else {"msg": str(v)}
            for v in self.violations
        ]
        super().__init__(message, details)


class ConflictError(WorkflowError):
    """Ya existe una instancia no terminal para la entidad (u otro duplicado)."""

    code = "CONFLICT"


class NotFoundError(WorkflowError):
    code = "NOT_FOUND"


class StateError(WorkflowError):
    """Precondición de estado/nodo no satisfecha, incluida la pérdida de compare-and-set."""

    code = "STATE"


class AuthorizationError(WorkflowError):
    """El actor no es aprobador elegible o intenta autoaprobarse."""

    code = "FORBIDDEN"


class ActionExecutionError(WorkflowError):
    """Falló el efecto lateral de un nodo ``accion``."""

    code = "ACTION_FAILED"


class EngineError(WorkflowError):
    """Error fatal del motor (p.ej. se superó el límite de saltos de auto-avance)."""

    code = "ENGINE"
