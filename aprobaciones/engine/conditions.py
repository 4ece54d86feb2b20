"""
Evaluador de condiciones.

Función pura sobre el snapshot de la entidad: no consulta estado externo.
Cada cláusula es ``{campo, operador, valor}`` (o ``valor_ref`` para comparar
contra otro campo del snapshot). Un campo ausente hace falsa la cláusula.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..graph.types import ConditionClause

MODE_ALL = "todas"
MODE_FIRST = "primera"
MODES = (MODE_ALL, MODE_FIRST)

_MISSING = object()


def _resolve(snapshot: Mapping[str, Any], path: str) -> Any:
    """Soporta rutas con punto: ``proveedor.id``."""
    current: Any = snapshot
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _as_number(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return None
    return None


def _equals(actual: Any, expected: Any) -> bool:
    a, b = _as_number(actual), _as_number(expected)
    if a is not None and b is not None:
        return a == b
    if isinstance(actual, bool) and isinstance(expected, str):
        return str(actual).lower() == expected.strip().lower()
    return actual == expected


def _ordered(op: str, actual: Any, expected: Any) -> bool:
    a, b = _as_number(actual), _as_number(expected)
    if a is None or b is None:
        # Fechas ISO u otros textos comparables
        if isinstance(actual, str) and isinstance(expected, str):
            a, b = actual, expected
        else:
            return False
    if op == ">":
        return a > b
    if op == ">=":
        return a >= b
    if op == "<":
        return a < b
    return a <= b


def _members(expected: Any) -> Sequence[Any]:
    if isinstance(expected, str):
        return [item.strip() for item in expected.split(",")]
    if isinstance(expected, (list, tuple, set, frozenset)):
        return list(expected)
    return [expected]


def _text(value: Any) -> str:
    return str(value).casefold()


def evaluate_clause(clause: ConditionClause, snapshot: Mapping[str, Any]) -> bool:
    actual = _resolve(snapshot, clause.campo)
    if actual is _MISSING:
        return False
    if clause.valor_ref:
        expected = _resolve(snapshot, clause.valor_ref)
        if expected is _MISSING:
            return False
    else:
        expected = clause.valor

    op = clause.operador
    if op == "=":
        return _equals(actual, expected)
    if op == "!=":
        return not _equals(actual, expected)
    if op in (">", ">=", "<", "<="):
        return _ordered(op, actual, expected)
    if op == "en":
        return any(_equals(actual, item) for item in _members(expected))
    if op == "no_en":
        return not any(_equals(actual, item) for item in _members(expected))
    if op == "contiene":
        return _text(expected) in _text(actual)
    if op == "empieza_con":
        return _text(actual).startswith(_text(expected))
    if op == "termina_con":
        return _text(actual).endswith(_text(expected))
    raise ValidationError(f"Operador desconocido: {op!r}")


def evaluate(
    conditions: Sequence[Union[ConditionClause, Dict[str, Any]]],
    snapshot: Mapping[str, Any],
    mode: str = MODE_ALL,
) -> bool:
    """
    Evalúa un conjunto de cláusulas contra el snapshot.

    Args:
        conditions: cláusulas ya parseadas o dicts del editor
        snapshot: campos de la entidad resueltos al iniciar la instancia
        mode: ``todas`` (AND sobre todas las cláusulas) o ``primera``
            (comportamiento heredado: solo la primera cláusula)

    Raises:
        ValidationError: cláusulas vacías, mal formadas o modo desconocido
    """
    if mode not in MODES:
        raise ValidationError(f"Modo de evaluación desconocido: {mode!r}")
    try:
        clauses = [
            c if isinstance(c, ConditionClause) else ConditionClause.model_validate(c)
            for c in conditions or []
        ]
    except PydanticValidationError as exc:
        raise ValidationError(f"Condición mal formada: {exc.errors()[0]['msg']}") from exc
    if not clauses:
        raise ValidationError("La condición no tiene cláusulas")

    if mode == MODE_FIRST:
        return evaluate_clause(clauses[0], snapshot)
    return all(evaluate_clause(c, snapshot) for c in clauses)
