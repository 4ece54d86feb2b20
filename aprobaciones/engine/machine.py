"""
Motor de workflow: función de transición sobre el grafo publicado.

``WorkflowEngine.advance`` calcula el resultado de aplicar un evento a una
instancia (estado + nodo actual) sin persistir nada. El gateway se encarga
de guardar la transición y el evento de historial en la misma transacción.
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from ..config import settings
from ..errors import ActionExecutionError, EngineError, StateError
from ..graph.registry import parse_config
from ..graph.types import EdgeLabel, Node, NodeKind, WorkflowGraph
from ..models.history import HistoryAction
from ..models.instance import InstanceState, TERMINAL_STATES
from .actions import ActionContext, ActionExecutor, DefaultActionExecutor
from .conditions import evaluate

logger = logging.getLogger(__name__)

_OUTCOME_STATE = {
    "aprobado": InstanceState.aprobado,
    "rechazado": InstanceState.rechazado,
}


@dataclass
class Advance:
    """Resultado de una transición."""
    state: InstanceState
    node_id: str
    path: List[str] = field(default_factory=list)
    actions: List[Dict[str, Any]] = field(default_factory=list)
    action_error: Optional[str] = None
    label: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"path": list(self.path), "actions": list(self.actions)}
        if self.label:
            data["label"] = self.label
        if self.action_error:
            data["action_error"] = self.action_error
        return data


class WorkflowEngine:
    def __init__(
        self,
        action_executor: Optional[ActionExecutor] = None,
        condition_mode: Optional[str] = None,
    ):
        self.action_executor = action_executor or DefaultActionExecutor()
        self.condition_mode = condition_mode or settings.condition_mode

    def advance(
        self,
        graph: WorkflowGraph,
        state: InstanceState,
        node_id: Optional[str],
        event: HistoryAction,
        context: ActionContext,
        label: Optional[EdgeLabel] = None,
    ) -> Advance:
        """
        Aplica ``event`` a una instancia ubicada en ``node_id``.

        Args:
            graph: grafo de la definición publicada
            state: estado actual de la instancia (ignorado en ``iniciar``)
            node_id: nodo actual (ignorado en ``iniciar``)
            event: iniciar | aprobar | rechazar | avanzar | expirar | cancelar
            context: datos para condiciones y acciones (snapshot de la entidad)
            label: en ``avanzar``, ``timeout`` para escalar; None para reintentar
                una acción crítica detenida

        Raises:
            StateError: el evento no aplica al estado o nodo actual
            EngineError: grafo incoherente o límite de saltos superado
        """
        event = HistoryAction(event)

        if event == HistoryAction.iniciar:
            start = graph.start_node()
            if start is None:
                raise EngineError("La definición no tiene nodo de inicio")
            return self._run_from(graph, start.id, context)

        if state in TERMINAL_STATES:
            raise StateError(f"La instancia ya terminó en estado '{InstanceState(state).value}'")
        node = self._node(graph, node_id)

        if event in (HistoryAction.aprobar, HistoryAction.rechazar):
            self._require_kind(node, NodeKind.aprobacion, event)
            edge_label = EdgeLabel.aprobar if event == HistoryAction.aprobar else EdgeLabel.rechazar
            return self._follow(graph, node, edge_label, context)

        if event == HistoryAction.avanzar:
            if label is not None and EdgeLabel(label) == EdgeLabel.timeout:
                self._require_kind(node, NodeKind.aprobacion, event)
                if graph.edge_for(node.id, EdgeLabel.timeout) is None:
                    raise StateError(f"El nodo '{node.id}' no tiene salida de timeout")
                return self._follow(graph, node, EdgeLabel.timeout, context)
            # Reintento: vuelve a ejecutar la acción donde quedó detenida
            self._require_kind(node, NodeKind.accion, event)
            return self._run_from(graph, node.id, context)

        if event == HistoryAction.expirar:
            self._require_kind(node, NodeKind.aprobacion, event)
            return Advance(state=InstanceState.expirado, node_id=node.id, path=[node.id])

        if event == HistoryAction.cancelar:
            return Advance(state=InstanceState.cancelado, node_id=node.id, path=[node.id])

        raise StateError(f"Evento no soportado: {event.value}")

    # ---------------------------------------------------------------- helpers

    @staticmethod
    def _node(graph: WorkflowGraph, node_id: Optional[str]) -> Node:
        if node_id is None or node_id not in graph.nodes_by_id:
            raise EngineError(f"Nodo '{node_id}' no existe en la definición")
        return graph.node(node_id)

    @staticmethod
    def _require_kind(node: Node, kind: NodeKind, event: HistoryAction) -> None:
        if node.kind != kind:
            raise StateError(
                f"'{event.value}' no aplica: la instancia está en un nodo {node.kind.value} ('{node.id}')"
            )

    def _follow(self, graph: WorkflowGraph, node: Node, label: EdgeLabel, context: ActionContext) -> Advance:
        edge = graph.edge_for(node.id, label)
        if edge is None:
            raise EngineError(f"El nodo '{node.id}' no tiene salida '{label.value}'")
        result = self._run_from(graph, edge.target, context, path=[node.id])
        result.label = label.value
        return result

    def _run_from(
        self,
        graph: WorkflowGraph,
        node_id: str,
        context: ActionContext,
        path: Optional[List[str]] = None,
    ) -> Advance:
        """Auto-avanza desde ``node_id`` hasta detenerse en una aprobación, una acción crítica fallida o un fin."""
        path = list(path or [])
        actions: List[Dict[str, Any]] = []
        max_hops = len(graph.nodes_by_id) * 2
        hops = 0
        current = node_id

        while True:
            node = self._node(graph, current)
            path.append(node.id)

            if node.kind == NodeKind.aprobacion:
                logger.info("Instancia %s detenida en aprobación '%s'", context.instance_id, node.id)
                return Advance(InstanceState.en_progreso, node.id, path, actions)

            if node.kind == NodeKind.fin:
                outcome = parse_config(node).resultado.value
                logger.info("Instancia %s finalizada en '%s' (%s)", context.instance_id, node.id, outcome)
                return Advance(_OUTCOME_STATE[outcome], node.id, path, actions)

            if node.kind == NodeKind.condicion:
                cfg = parse_config(node)
                matched = evaluate(cfg.condiciones, context.snapshot, self.condition_mode)
                next_label = EdgeLabel.si if matched else EdgeLabel.no
                logger.debug("Condición '%s' -> %s", node.id, next_label.value)
            elif node.kind == NodeKind.accion:
                error = self._execute(node, context, actions)
                if error and parse_config(node).critica:
                    logger.warning(
                        "Acción crítica '%s' falló; instancia %s detenida: %s",
                        node.id, context.instance_id, error,
                    )
                    return Advance(InstanceState.en_progreso, node.id, path, actions, action_error=error)
                next_label = EdgeLabel.siguiente
            else:
                next_label = EdgeLabel.siguiente

            edge = graph.edge_for(node.id, next_label)
            if edge is None:
                raise EngineError(f"El nodo '{node.id}' no tiene salida '{next_label.value}'")
            current = edge.target

            hops += 1
            if hops > max_hops:
                raise EngineError(
                    f"Se superó el límite de {max_hops} saltos de auto-avance (posible ciclo)"
                )

    def _execute(self, node: Node, context: ActionContext, actions: List[Dict[str, Any]]) -> Optional[str]:
        cfg = parse_config(node)
        outcome: Dict[str, Any] = {"node_id": node.id, "tipo_accion": cfg.tipo_accion.value, "critica": cfg.critica}
        try:
            result = self.action_executor.ejecutar(
                cfg.tipo_accion.value, cfg.config_accion, replace(context, node_id=node.id)
            )
        except ActionExecutionError as exc:
            return self._failed(node, cfg, outcome, actions, exc.message)
        except Exception as exc:
            # ejecutor externo
            logger.exception("Ejecutor de acciones falló en '%s'", node.id)
            return self._failed(node, cfg, outcome, actions, f"{type(exc).__name__}: {exc}")
        outcome.update(ok=True, result=result)
        actions.append(outcome)
        logger.info("Acción '%s' (%s) ejecutada", node.id, cfg.tipo_accion.value)
        return None

    @staticmethod
    def _failed(node: Node, cfg, outcome: Dict[str, Any], actions: List[Dict[str, Any]], message: str) -> str:
        outcome.update(ok=False, error=message)
        actions.append(outcome)
        if not cfg.critica:
            logger.warning("Acción '%s' falló (no crítica, se continúa): %s", node.id, message)
        return message
