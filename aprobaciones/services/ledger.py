"""
History Ledger
Registro append-only de eventos por instancia, ordenado por ``seq``.

El estado de una instancia ``(state, current_node_id, action_error)`` es una
proyección del registro: ``project`` la reconstruye desde cero y se usa para
reconciliar filas que quedaron desalineadas.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy import Engine, func
from sqlmodel import Session, select

from ..engine.machine import Advance
from ..errors import StateError
from ..models import HistoryAction, HistoryEvent, InstanceState, TERMINAL_STATES, WorkflowInstance
from ..util.clock import utc_now


@dataclass
class Projection:
    state: InstanceState
    current_node_id: str
    action_error: Optional[str] = None
    last_seq: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class HistoryLedger:

    def __init__(self, engine: Engine):
        self.engine = engine

    def append(
        self,
        session: Session,
        instance: WorkflowInstance,
        action: HistoryAction,
        node_id: str,
        result: Advance,
        actor_id: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> HistoryEvent:
        """Agrega el evento dentro de la transacción del llamador (no hace commit)."""
        last = session.exec(
            select(func.max(HistoryEvent.seq)).where(HistoryEvent.instance_id == instance.id)
        ).one()
        event = HistoryEvent(
            instance_id=instance.id,
            organization_id=instance.organization_id,
            seq=(last or 0) + 1,
            action=action,
            actor_id=actor_id,
            node_id=node_id,
            target_node_id=result.node_id,
            resulting_state=result.state,
            comment=comment,
            data=result.to_data(),
            occurred_at=utc_now(),
        )
        session.add(event)
        return event

    def list(self, organization_id: str, instance_id: str) -> List[HistoryEvent]:
        with Session(self.engine) as session:
            return self.events(session, organization_id, instance_id)

    @staticmethod
    def events(session: Session, organization_id: str, instance_id: str) -> List[HistoryEvent]:
        return list(session.exec(
            select(HistoryEvent)
            .where(
                HistoryEvent.instance_id == instance_id,
                HistoryEvent.organization_id == organization_id,
            )
            .order_by(HistoryEvent.seq.asc())
        ).all())


def project(events: Iterable[HistoryEvent]) -> Projection:
    """
    Reproduce la secuencia de eventos desde el estado vacío.

    Raises:
        StateError: secuencia ilegal (sin ``iniciar`` inicial, huecos en ``seq``,
            eventos tras un estado terminal o desde un nodo distinto al actual)
    """
    projection: Optional[Projection] = None
    for event in events:
        action = HistoryAction(event.action)
        if projection is None:
            if action != HistoryAction.iniciar or event.seq != 1:
                raise StateError(f"El historial debe empezar con 'iniciar' (seq=1); llegó '{action.value}' seq={event.seq}")
        else:
            if event.seq != projection.last_seq + 1:
                raise StateError(f"Hueco en el historial: seq {projection.last_seq} -> {event.seq}")
            if action == HistoryAction.iniciar:
                raise StateError("'iniciar' solo puede aparecer una vez")
            if projection.is_terminal:
                raise StateError(
                    f"Evento '{action.value}' (seq={event.seq}) después del estado terminal '{projection.state.value}'"
                )
            if event.node_id != projection.current_node_id:
                raise StateError(
                    f"Evento '{action.value}' (seq={event.seq}) ocurrió en '{event.node_id}' "
                    f"pero la instancia estaba en '{projection.current_node_id}'"
                )
        data = event.data or {}
        projection = Projection(
            state=InstanceState(event.resulting_state),
            current_node_id=event.target_node_id,
            action_error=data.get("action_error"),
            last_seq=event.seq,
        )
    if projection is None:
        raise StateError("Historial vacío: no hay nada que proyectar")
    return projection
