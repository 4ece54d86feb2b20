"""
Repositorio de instancias.

Las mutaciones se hacen con compare-and-set sobre
``(state, current_node_id, revision)``: si otro proceso movió la instancia
entre la lectura y la escritura, el UPDATE no afecta filas y se lanza
``StateError``. Todas las funciones trabajan dentro de la sesión del llamador
para que instancia e historial se confirmen en la misma transacción.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..errors import ConflictError, NotFoundError, StateError
from ..models import InstanceState, WorkflowInstance, active_key_for

logger = logging.getLogger(__name__)


class InstanceRepository:

    def load(self, session: Session, organization_id: str, instance_id: str) -> WorkflowInstance:
        instance = session.get(WorkflowInstance, instance_id)
        if not instance or instance.organization_id != organization_id:
            raise NotFoundError(f"Instancia {instance_id} no encontrada")
        return instance

    def find_active(
        self, session: Session, organization_id: str, entity_type: str, entity_id: str
    ) -> Optional[WorkflowInstance]:
        return session.exec(
            select(WorkflowInstance).where(
                WorkflowInstance.active_key == active_key_for(organization_id, entity_type, entity_id)
            )
        ).first()

    def insert(self, session: Session, instance: WorkflowInstance) -> WorkflowInstance:
        """Inserta y hace flush; la restricción única de ``active_key`` se traduce a ConflictError."""
        session.add(instance)
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError(
                f"Ya existe una instancia activa para {instance.entity_type}/{instance.entity_id}"
            ) from exc
        return instance

    def claim(self, session: Session, instance: WorkflowInstance, now: datetime) -> int:
        """
        Reserva la fila antes de ejecutar acciones: sube la revisión dentro de la
        transacción del llamador. Un proceso que leyó la misma revisión pierde
        aquí, antes de producir efectos laterales. La escritura final se hace con
        ``bump=False`` para que cada transición sume una sola revisión.
        """
        return self.compare_and_set(session, instance, {"updated_at": now})

    def compare_and_set(
        self, session: Session, instance: WorkflowInstance, changes: Dict[str, Any], bump: bool = True
    ) -> int:
        """
        Aplica ``changes`` solo si la fila sigue como se leyó. Devuelve la revisión resultante.

        Raises:
            StateError: la instancia cambió de estado, de nodo o de revisión
        """
        new_revision = instance.revision + 1 if bump else instance.revision
        values = dict(changes)
        if bump:
            values["revision"] = new_revision
        stmt = (
            update(WorkflowInstance)
            .where(
                WorkflowInstance.id == instance.id,
                WorkflowInstance.state == instance.state,
                WorkflowInstance.current_node_id == instance.current_node_id,
                WorkflowInstance.revision == instance.revision,
            )
            .values(**values)
        )
        try:
            result = session.connection().execute(stmt)
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError(f"Conflicto al actualizar la instancia {instance.id}") from exc
        if result.rowcount != 1:
            session.rollback()
            raise StateError(f"La instancia {instance.id} fue modificada por otro proceso; reintente")
        # La fila cambió por debajo del ORM
        session.expire(instance)
        return new_revision

    # ------------------------------------------------------------- consultas

    def list_in_progress(
        self, session: Session, organization_id: Optional[str] = None, entity_type: Optional[str] = None
    ) -> List[WorkflowInstance]:
        """Instancias en curso por prioridad descendente y antigüedad."""
        stmt = select(WorkflowInstance).where(WorkflowInstance.state == InstanceState.en_progreso)
        if organization_id:
            stmt = stmt.where(WorkflowInstance.organization_id == organization_id)
        if entity_type:
            stmt = stmt.where(WorkflowInstance.entity_type == entity_type)
        stmt = stmt.order_by(WorkflowInstance.priority.desc(), WorkflowInstance.started_at.asc())
        return list(session.exec(stmt).all())

    def list_due(self, session: Session, now: datetime) -> List[WorkflowInstance]:
        return list(session.exec(
            select(WorkflowInstance)
            .where(
                WorkflowInstance.state == InstanceState.en_progreso,
                WorkflowInstance.deadline_at.is_not(None),
                WorkflowInstance.deadline_at <= now,
            )
            .order_by(WorkflowInstance.deadline_at.asc())
        ).all())

    def search(
        self,
        session: Session,
        organization_id: str,
        entity_type: Optional[str] = None,
        state: Optional[InstanceState] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WorkflowInstance], int]:
        conditions = [WorkflowInstance.organization_id == organization_id]
        if entity_type:
            conditions.append(WorkflowInstance.entity_type == entity_type)
        if state:
            conditions.append(WorkflowInstance.state == InstanceState(state))
        if date_from:
            conditions.append(WorkflowInstance.started_at >= date_from)
        if date_to:
            conditions.append(WorkflowInstance.started_at <= date_to)

        total = session.exec(select(func.count()).select_from(WorkflowInstance).where(*conditions)).one()
        items = session.exec(
            select(WorkflowInstance)
            .where(*conditions)
            .order_by(WorkflowInstance.started_at.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return list(items), int(total)
