"""
Approval Gateway
Punto de entrada para los módulos de negocio: iniciar instancias, aprobar,
rechazar, cancelar y consultar colas e historial.

Cada operación que muta abre una sola transacción: lee la instancia, la
reserva con compare-and-set (sube la revisión), pide la transición al motor
y guarda el resultado junto con el evento de historial antes del commit.
Las acciones del motor corren solo después de ganar la reserva.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import Engine
from sqlmodel import Session

from ..config import settings
from ..engine.actions import ActionContext, ActionExecutor
from ..engine.conditions import evaluate
from ..engine.machine import Advance, WorkflowEngine
from ..errors import AuthorizationError, ConflictError, NotFoundError, StateError, ValidationError
from ..graph.registry import parse_config
from ..graph.types import EdgeLabel, Node, NodeKind, WorkflowGraph
from ..models import (
    HistoryAction,
    HistoryEvent,
    InstanceState,
    WorkflowDefinition,
    WorkflowInstance,
    active_key_for,
)
from ..util.clock import to_naive_utc, utc_now
from ..util.ids import new_id
from ..util.pagination import clamp_limit, clamp_offset
from .collaborators import ApproverDirectory, EntityResolver, StaticDirectory, StaticEntityResolver
from .definitions import DefinitionStore, graph_of
from .delegations import DelegationService
from .instances import InstanceRepository
from .ledger import HistoryLedger, project

logger = logging.getLogger(__name__)


@dataclass
class PendingItem:
    instance: WorkflowInstance
    node_id: str
    node_name: str
    summary: Optional[Dict[str, Any]] = None
    delegated_by: Optional[str] = None  # delegante cuando el actor aprueba por delegación
    needs_attention: bool = False       # acción crítica fallida (solo administradores)


@dataclass
class InstanceDetail:
    instance: WorkflowInstance
    history: List[HistoryEvent] = field(default_factory=list)
    snapshot: Dict[str, Any] = field(default_factory=dict)
    summary: Optional[Dict[str, Any]] = None


@dataclass
class Reconciliation:
    instance_id: str
    repaired: bool
    state: InstanceState
    current_node_id: str


class ApprovalGateway:
    """
    Args:
        engine: engine SQLAlchemy compartido
        directory: ResolveApprover (usuarios, roles, grupos, permisos, admins)
        entity_resolver: ResolveEntitySummary
        action_executor: ExecuteAction para nodos ``accion``
        clock: fuente de tiempo; inyectable para el sweeper y las pruebas
    """

    def __init__(
        self,
        engine: Engine,
        directory: Optional[ApproverDirectory] = None,
        entity_resolver: Optional[EntityResolver] = None,
        action_executor: Optional[ActionExecutor] = None,
        workflow_engine: Optional[WorkflowEngine] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.engine = engine
        self.directory = directory or StaticDirectory()
        self.entity_resolver = entity_resolver or StaticEntityResolver()
        self.workflow_engine = workflow_engine or WorkflowEngine(action_executor)
        self.clock = clock
        self.definitions = DefinitionStore(engine)
        self.instances = InstanceRepository()
        self.ledger = HistoryLedger(engine)
        self.delegations = DelegationService(engine)

    # =================================================================== ciclo

    def iniciar(
        self,
        organization_id: str,
        entity_type: str,
        entity_id: str,
        requester_id: str,
        entity_snapshot: Optional[Dict[str, Any]] = None,
        priority: Optional[int] = None,
    ) -> WorkflowInstance:
        """
        Crea la instancia sobre la definición publicada y auto-avanza hasta la
        primera aprobación (o hasta un fin).

        Raises:
            NotFoundError: no hay definición publicada para el tipo de entidad
            ConflictError: ya existe una instancia no terminal para la entidad
        """
        definition = self.definitions.get_published(organization_id, entity_type)
        if definition is None:
            raise NotFoundError(f"No hay definición publicada para '{entity_type}'")
        graph = graph_of(definition)
        snapshot = dict(entity_snapshot or {})
        now = self.clock()

        with Session(self.engine) as session:
            active = self.instances.find_active(session, organization_id, entity_type, str(entity_id))
            if active is not None:
                raise ConflictError(
                    f"La entidad {entity_type}/{entity_id} ya tiene la instancia {active.id} en curso"
                )

            instance_id = new_id("wfi_")
            start_node = graph.start_node()
            # La fila se inserta antes de auto-avanzar: la entidad queda reservada
            # antes de que corra cualquier acción
            instance = WorkflowInstance(
                id=instance_id,
                organization_id=organization_id,
                definition_id=definition.id,
                definition_version=definition.version,
                entity_type=entity_type,
                entity_id=str(entity_id),
                state=InstanceState.en_progreso,
                current_node_id=start_node.id if start_node else "",
                requester_id=requester_id,
                priority=definition.priority if priority is None else priority,
                started_at=now,
                node_entered_at=now,
                entity_snapshot=snapshot,
                active_key=active_key_for(organization_id, entity_type, str(entity_id)),
            )
            self.instances.insert(session, instance)

            context = ActionContext(
                organization_id=organization_id,
                entity_type=entity_type,
                entity_id=str(entity_id),
                instance_id=instance_id,
                snapshot=snapshot,
            )
            result = self.workflow_engine.advance(graph, InstanceState.en_progreso, None, HistoryAction.iniciar, context)

            self.instances.compare_and_set(session, instance, {
                "state": result.state,
                "current_node_id": result.node_id,
                "completed_at": now if result.completed else None,
                "deadline_at": None if result.completed else self._deadline(graph, result.node_id, now),
                "action_error": result.action_error,
                "active_key": None if result.completed else instance.active_key,
            }, bump=False)
            self.ledger.append(session, instance, HistoryAction.iniciar, start_node.id, result, actor_id=requester_id)
            session.commit()
            session.refresh(instance)
            logger.info(
                "Instancia %s iniciada para %s/%s (definición %s v%s) -> %s en '%s'",
                instance.id, entity_type, entity_id, definition.id, definition.version,
                instance.state.value, instance.current_node_id,
            )
            return instance

    def aprobar(
        self, organization_id: str, instance_id: str, actor_id: str, comment: Optional[str] = None
    ) -> WorkflowInstance:
        return self._decide(organization_id, instance_id, actor_id, HistoryAction.aprobar, comment)

    def rechazar(self, organization_id: str, instance_id: str, actor_id: str, motivo: Optional[str]) -> WorkflowInstance:
        """Rechaza con motivo obligatorio; el motivo se valida antes de leer nada."""
        motivo = (motivo or "").strip()
        if len(motivo) < settings.motivo_min_length:
            raise ValidationError(
                f"El motivo de rechazo debe tener al menos {settings.motivo_min_length} caracteres"
            )
        return self._decide(organization_id, instance_id, actor_id, HistoryAction.rechazar, motivo)

    def cancelar(
        self, organization_id: str, instance_id: str, actor_id: str, motivo: Optional[str] = None
    ) -> WorkflowInstance:
        with Session(self.engine) as session:
            instance = self.instances.load(session, organization_id, instance_id)
            self._require_in_progress(instance)
            if actor_id != instance.requester_id and not self.directory.es_administrador(actor_id, organization_id):
                raise AuthorizationError("Solo el solicitante o un administrador puede cancelar")
            graph = self._graph(session, instance)
            self.instances.claim(session, instance, self.clock())
            result = self.workflow_engine.advance(
                graph, instance.state, instance.current_node_id, HistoryAction.cancelar, self._context(instance)
            )
            return self._commit(session, graph, instance, HistoryAction.cancelar, result, actor_id, motivo)

    def reintentar_accion(self, organization_id: str, instance_id: str, actor_id: str) -> WorkflowInstance:
        """Vuelve a ejecutar la acción crítica que dejó detenida la instancia (solo administradores)."""
        if not self.directory.es_administrador(actor_id, organization_id):
            raise AuthorizationError("Solo un administrador puede reintentar acciones")
        with Session(self.engine) as session:
            instance = self.instances.load(session, organization_id, instance_id)
            self._require_in_progress(instance)
            if not instance.action_error:
                raise StateError(f"La instancia {instance_id} no tiene una acción fallida pendiente")
            graph = self._graph(session, instance)
            self.instances.claim(session, instance, self.clock())
            result = self.workflow_engine.advance(
                graph, instance.state, instance.current_node_id, HistoryAction.avanzar, self._context(instance)
            )
            return self._commit(session, graph, instance, HistoryAction.avanzar, result, actor_id, "reintento")

    def expirar_por_timeout(
        self, organization_id: str, instance_id: str, now: Optional[datetime] = None
    ) -> Optional[Tuple[WorkflowInstance, HistoryAction]]:
        """
        Aplica el vencimiento de la aprobación actual: sigue la salida ``timeout``
        si existe; si no, la instancia termina ``expirado``.

        Devuelve None si ya no corresponde (otro proceso la movió o el plazo
        todavía no vence), lo que hace idempotente al sweeper.
        """
        now = now or self.clock()
        with Session(self.engine) as session:
            instance = self.instances.load(session, organization_id, instance_id)
            if instance.state != InstanceState.en_progreso or instance.deadline_at is None or instance.deadline_at > now:
                return None
            graph = self._graph(session, instance)
            node = graph.nodes_by_id.get(instance.current_node_id)
            if node is None or node.kind != NodeKind.aprobacion:
                return None
            if graph.edge_for(node.id, EdgeLabel.timeout) is not None:
                action, label = HistoryAction.avanzar, EdgeLabel.timeout
            else:
                action, label = HistoryAction.expirar, None
            self.instances.claim(session, instance, now)
            result = self.workflow_engine.advance(
                graph, instance.state, instance.current_node_id, action, self._context(instance), label=label
            )
            updated = self._commit(session, graph, instance, action, result, None, "timeout", now=now)
            return updated, action

    # ================================================================ consultas

    def obtener_pendientes(
        self,
        organization_id: str,
        actor_id: str,
        entity_type: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[PendingItem]:
        """Cola del actor: prioridad descendente y luego las más antiguas primero."""
        items = self._pending(organization_id, actor_id, entity_type)
        start = clamp_offset(offset)
        page = items[start:start + clamp_limit(limit, settings.default_page_limit, settings.max_page_limit)]
        for item in page:
            item.summary = self._summary(item.instance)
        return page

    def contar_pendientes(self, organization_id: str, actor_id: str, entity_type: Optional[str] = None) -> int:
        return len(self._pending(organization_id, actor_id, entity_type))

    def obtener_historial(
        self,
        organization_id: str,
        entity_type: Optional[str] = None,
        state: Optional[InstanceState] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Tuple[List[WorkflowInstance], int]:
        with Session(self.engine) as session:
            return self.instances.search(
                session,
                organization_id,
                entity_type=entity_type,
                state=state,
                date_from=to_naive_utc(date_from),
                date_to=to_naive_utc(date_to),
                limit=clamp_limit(limit, settings.default_page_limit, settings.max_page_limit),
                offset=clamp_offset(offset),
            )

    def obtener_instancia(self, organization_id: str, instance_id: str) -> InstanceDetail:
        with Session(self.engine) as session:
            instance = self.instances.load(session, organization_id, instance_id)
            history = self.ledger.events(session, organization_id, instance_id)
        return InstanceDetail(
            instance=instance,
            history=history,
            snapshot=dict(instance.entity_snapshot or {}),
            summary=self._summary(instance),
        )

    def requiere_aprobacion(self, organization_id: str, entity_type: str, snapshot: Dict[str, Any]) -> bool:
        """True si hay definición publicada y su condición de activación (si la tiene) se cumple."""
        definition = self.definitions.get_published(organization_id, entity_type)
        if definition is None:
            return False
        if not definition.activation_condition:
            return True
        return evaluate(definition.activation_condition, snapshot or {}, self.workflow_engine.condition_mode)

    # ============================================================ reconciliación

    def reconciliar(self, organization_id: str, instance_id: str) -> Reconciliation:
        """Reproduce el historial y corrige la fila de la instancia si quedó desalineada."""
        with Session(self.engine) as session:
            instance = self.instances.load(session, organization_id, instance_id)
            projection = project(self.ledger.events(session, organization_id, instance_id))
            drifted = (
                instance.state != projection.state
                or instance.current_node_id != projection.current_node_id
                or instance.action_error != projection.action_error
            )
            if not drifted:
                return Reconciliation(instance.id, False, instance.state, instance.current_node_id)

            logger.warning(
                "Instancia %s desalineada: fila=(%s, %s) historial=(%s, %s); se corrige",
                instance.id, instance.state.value, instance.current_node_id,
                projection.state.value, projection.current_node_id,
            )
            now = self.clock()
            changes: Dict[str, Any] = {
                "state": projection.state,
                "current_node_id": projection.current_node_id,
                "action_error": projection.action_error,
                "updated_at": now,
            }
            if projection.is_terminal:
                changes.update(active_key=None, deadline_at=None, completed_at=instance.completed_at or now)
            elif instance.current_node_id != projection.current_node_id:
                graph = self._graph(session, instance)
                changes.update(node_entered_at=now, deadline_at=self._deadline(graph, projection.current_node_id, now))
            self.instances.compare_and_set(session, instance, changes)
            session.commit()
            return Reconciliation(instance.id, True, projection.state, projection.current_node_id)

    def reconciliar_en_progreso(self, organization_id: Optional[str] = None) -> List[Reconciliation]:
        with Session(self.engine) as session:
            targets = [(i.organization_id, i.id) for i in self.instances.list_in_progress(session, organization_id)]
        results = [self.reconciliar(org, iid) for org, iid in targets]
        return [r for r in results if r.repaired]

    # ================================================================= helpers

    def _decide(
        self, organization_id: str, instance_id: str, actor_id: str, action: HistoryAction, comment: Optional[str]
    ) -> WorkflowInstance:
        with Session(self.engine) as session:
            instance = self.instances.load(session, organization_id, instance_id)
            self._require_in_progress(instance)
            graph = self._graph(session, instance)
            node = graph.nodes_by_id.get(instance.current_node_id)
            if node is None or node.kind != NodeKind.aprobacion:
                raise StateError(f"La instancia {instance_id} no está esperando una aprobación")
            config = parse_config(node)
            if self._eligibility(session, instance, config, actor_id) is None:
                raise AuthorizationError(f"El usuario {actor_id} no es aprobador de '{node.name or node.id}'")
            if actor_id == instance.requester_id and not config.permitir_autoaprobacion:
                raise AuthorizationError("El solicitante no puede aprobar su propia solicitud")

            self.instances.claim(session, instance, self.clock())
            result = self.workflow_engine.advance(
                graph, instance.state, instance.current_node_id, action, self._context(instance)
            )
            return self._commit(session, graph, instance, action, result, actor_id, comment)

    def _commit(
        self,
        session: Session,
        graph: WorkflowGraph,
        instance: WorkflowInstance,
        action: HistoryAction,
        result: Advance,
        actor_id: Optional[str],
        comment: Optional[str],
        now: Optional[datetime] = None,
    ) -> WorkflowInstance:
        now = now or self.clock()
        from_node = instance.current_node_id
        changes: Dict[str, Any] = {
            "state": result.state,
            "current_node_id": result.node_id,
            "action_error": result.action_error,
            "updated_at": now,
        }
        if result.completed:
            changes.update(completed_at=now, deadline_at=None, active_key=None)
        elif len(result.path) > 1:
            changes.update(node_entered_at=now, deadline_at=self._deadline(graph, result.node_id, now))

        self.instances.compare_and_set(session, instance, changes, bump=False)
        self.ledger.append(session, instance, action, from_node, result, actor_id=actor_id, comment=comment)
        session.commit()
        session.refresh(instance)
        logger.info(
            "Instancia %s: %s en '%s' -> %s en '%s'",
            instance.id, action.value, from_node, instance.state.value, instance.current_node_id,
        )
        return instance

    @staticmethod
    def _require_in_progress(instance: WorkflowInstance) -> None:
        if instance.state != InstanceState.en_progreso:
            raise StateError(f"La instancia {instance.id} está '{instance.state.value}'")

    @staticmethod
    def _graph(session: Session, instance: WorkflowInstance) -> WorkflowGraph:
        definition = session.get(WorkflowDefinition, instance.definition_id)
        if definition is None:
            raise NotFoundError(f"Definición {instance.definition_id} no encontrada")
        return graph_of(definition)

    @staticmethod
    def _deadline(graph: WorkflowGraph, node_id: str, now: datetime) -> Optional[datetime]:
        node = graph.nodes_by_id.get(node_id)
        if node is None or node.kind != NodeKind.aprobacion:
            return None
        hours = parse_config(node).timeout_horas
        return now + timedelta(hours=hours) if hours else None

    @staticmethod
    def _context(instance: WorkflowInstance) -> ActionContext:
        return ActionContext(
            organization_id=instance.organization_id,
            entity_type=instance.entity_type,
            entity_id=instance.entity_id,
            instance_id=instance.id,
            node_id=instance.current_node_id,
            snapshot=dict(instance.entity_snapshot or {}),
        )

    def _eligibility(self, session: Session, instance: WorkflowInstance, config, actor_id: str) -> Optional[str]:
        """
        Devuelve ``actor_id`` si puede aprobar directamente, el id del delegante
        si aprueba por delegación, o None si no es elegible.
        """
        is_approver = self.directory.resolver(config.aprobador, instance.organization_id)
        if is_approver(actor_id):
            return actor_id
        delegations = self.delegations.vigentes_para(
            session, instance.organization_id, actor_id, self.clock(), instance.entity_type
        )
        for delegation in delegations:
            if is_approver(delegation.delegator_id):
                return delegation.delegator_id
        return None

    def _pending(self, organization_id: str, actor_id: str, entity_type: Optional[str]) -> List[PendingItem]:
        is_admin = self.directory.es_administrador(actor_id, organization_id)
        graphs: Dict[str, WorkflowGraph] = {}
        items: List[PendingItem] = []
        with Session(self.engine) as session:
            for instance in self.instances.list_in_progress(session, organization_id, entity_type):
                if instance.definition_id not in graphs:
                    graphs[instance.definition_id] = self._graph(session, instance)
                node: Optional[Node] = graphs[instance.definition_id].nodes_by_id.get(instance.current_node_id)
                if node is None:
                    continue
                if instance.action_error:
                    if is_admin:
                        items.append(PendingItem(instance, node.id, node.name, needs_attention=True))
                    continue
                if node.kind != NodeKind.aprobacion:
                    continue
                config = parse_config(node)
                if actor_id == instance.requester_id and not config.permitir_autoaprobacion:
                    continue
                approver = self._eligibility(session, instance, config, actor_id)
                if approver is None:
                    continue
                items.append(PendingItem(
                    instance, node.id, node.name,
                    delegated_by=None if approver == actor_id else approver,
                ))
        return items

    def _summary(self, instance: WorkflowInstance) -> Optional[Dict[str, Any]]:
        try:
            return self.entity_resolver.resumen(instance.entity_type, instance.entity_id, instance.organization_id)
        except Exception as exc:  # colaborador externo
            logger.warning(
                "No se pudo resolver el resumen de %s/%s: %s", instance.entity_type, instance.entity_id, exc
            )
            return None
