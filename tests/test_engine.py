# tests/test_engine.py
"""
Función de transición del motor, sin base de datos.
"""
import pytest

from aprobaciones.engine import ActionContext, WorkflowEngine
from aprobaciones.errors import EngineError, StateError
from aprobaciones.graph import EdgeLabel, WorkflowGraph
from aprobaciones.models import HistoryAction, InstanceState

from helpers import RecordingExecutor, action_graph, condition_graph, escalation_graph, simple_graph


def graph_of(pair):
    return WorkflowGraph.from_payload(*pair)


def ctx(**snapshot):
    return ActionContext(
        organization_id="org_1",
        entity_type="orden_compra",
        entity_id="oc-1",
        instance_id="wfi_test",
        snapshot=snapshot,
    )


@pytest.fixture()
def executor():
    return RecordingExecutor()


@pytest.fixture()
def engine(executor):
    return WorkflowEngine(executor, condition_mode="todas")


def test_start_parks_on_first_approval(engine):
    result = engine.advance(graph_of(simple_graph()), InstanceState.en_progreso, None, HistoryAction.iniciar, ctx())
    assert result.state == InstanceState.en_progreso
    assert result.node_id == "ap1"
    assert result.path == ["inicio", "ap1"]
    assert not result.completed


def test_approve_reaches_fin(engine):
    result = engine.advance(graph_of(simple_graph()), InstanceState.en_progreso, "ap1", HistoryAction.aprobar, ctx())
    assert result.state == InstanceState.aprobado
    assert result.node_id == "fin_ok"
    assert result.completed
    assert result.label == "aprobar"


def test_reject_reaches_rejected_fin(engine):
    result = engine.advance(graph_of(simple_graph()), InstanceState.en_progreso, "ap1", HistoryAction.rechazar, ctx())
    assert result.state == InstanceState.rechazado
    assert result.node_id == "fin_no"


def test_condition_routes_by_snapshot(engine):
    graph = graph_of(condition_graph())
    big = engine.advance(graph, InstanceState.en_progreso, None, HistoryAction.iniciar, ctx(monto=5000))
    small = engine.advance(graph, InstanceState.en_progreso, None, HistoryAction.iniciar, ctx(monto=10))
    missing = engine.advance(graph, InstanceState.en_progreso, None, HistoryAction.iniciar, ctx())
    assert big.node_id == "ap_fin" and big.state == InstanceState.en_progreso
    assert small.state == InstanceState.aprobado and small.path == ["inicio", "monto_alto", "fin_ok"]
    assert missing.node_id == "fin_ok"


def test_action_runs_and_continues(engine, executor):
    graph = graph_of(action_graph(critica=False))
    result = engine.advance(graph, InstanceState.en_progreso, None, HistoryAction.iniciar, ctx())
    assert result.node_id == "ap1"
    assert [c[0] for c in executor.calls] == ["webhook"]
    assert executor.calls[0][2] == "sync"
    assert result.actions[0]["ok"] is True


def test_non_critical_failure_is_recorded_and_traversal_continues(engine, executor):
    executor.failing.add("webhook")
    result = engine.advance(graph_of(action_graph(critica=False)), InstanceState.en_progreso, None,
                            HistoryAction.iniciar, ctx())
    assert result.node_id == "ap1"
    assert result.action_error is None
    assert result.actions[0]["ok"] is False
    assert "no disponible" in result.actions[0]["error"]


def test_critical_failure_parks_on_action(engine, executor):
    executor.failing.add("webhook")
    graph = graph_of(action_graph(critica=True))
    result = engine.advance(graph, InstanceState.en_progreso, None, HistoryAction.iniciar, ctx())
    assert result.node_id == "sync"
    assert result.state == InstanceState.en_progreso
    assert result.action_error == "webhook no disponible"
    assert result.to_data()["action_error"] == "webhook no disponible"

    executor.failing.clear()
    retried = engine.advance(graph, InstanceState.en_progreso, "sync", HistoryAction.avanzar, ctx())
    assert retried.node_id == "ap1"
    assert retried.action_error is None
    assert len(executor.calls) == 2


def test_timeout_edge_escalates(engine, executor):
    graph = graph_of(escalation_graph())
    result = engine.advance(graph, InstanceState.en_progreso, "ap1", HistoryAction.avanzar, ctx(),
                            label=EdgeLabel.timeout)
    assert result.node_id == "ap2"
    assert result.path == ["ap1", "escalar", "ap2"]
    assert result.label == "timeout"
    assert [c[0] for c in executor.calls] == ["notificar"]


def test_timeout_without_edge_is_a_state_error(engine):
    with pytest.raises(StateError):
        engine.advance(graph_of(simple_graph()), InstanceState.en_progreso, "ap1", HistoryAction.avanzar, ctx(),
                       label=EdgeLabel.timeout)


def test_expire_and_cancel_are_terminal(engine):
    graph = graph_of(simple_graph())
    expired = engine.advance(graph, InstanceState.en_progreso, "ap1", HistoryAction.expirar, ctx())
    cancelled = engine.advance(graph, InstanceState.en_progreso, "ap1", HistoryAction.cancelar, ctx())
    assert expired.state == InstanceState.expirado and expired.node_id == "ap1"
    assert cancelled.state == InstanceState.cancelado and cancelled.completed


def test_events_on_terminal_state_are_rejected(engine):
    with pytest.raises(StateError):
        engine.advance(graph_of(simple_graph()), InstanceState.aprobado, "fin_ok", HistoryAction.aprobar, ctx())


def test_approve_outside_approval_node_is_rejected(engine):
    with pytest.raises(StateError):
        engine.advance(graph_of(action_graph()), InstanceState.en_progreso, "sync", HistoryAction.aprobar, ctx())


def test_hop_guard_stops_automatic_loops(engine):
    # Grafo no publicable (ciclo automático): el motor debe cortar igual
    nodes = [
        {"id": "inicio", "kind": "inicio"},
        {"id": "a", "kind": "accion", "config": {"tipo_accion": "notificar", "config_accion": {"destino": "x"}}},
        {"id": "b", "kind": "accion", "config": {"tipo_accion": "notificar", "config_accion": {"destino": "y"}}},
    ]
    edges = [
        {"source": "inicio", "target": "a", "label": "siguiente"},
        {"source": "a", "target": "b", "label": "siguiente"},
        {"source": "b", "target": "a", "label": "siguiente"},
    ]
    with pytest.raises(EngineError):
        engine.advance(WorkflowGraph.from_payload(nodes, edges), InstanceState.en_progreso, None,
                       HistoryAction.iniciar, ctx())


def test_unknown_node_is_an_engine_error(engine):
    with pytest.raises(EngineError):
        engine.advance(graph_of(simple_graph()), InstanceState.en_progreso, "fantasma", HistoryAction.aprobar, ctx())


class ExplodingExecutor:
    def ejecutar(self, tipo_accion, config_accion, contexto):
        raise RuntimeError("sin conexión")


def test_unexpected_executor_exception_counts_as_action_failure():
    machine = WorkflowEngine(ExplodingExecutor(), condition_mode="todas")
    lenient = machine.advance(graph_of(action_graph(critica=False)), InstanceState.en_progreso, None,
                              HistoryAction.iniciar, ctx())
    assert lenient.node_id == "ap1"
    assert lenient.action_error is None
    assert lenient.actions[0]["ok"] is False

    strict = machine.advance(graph_of(action_graph(critica=True)), InstanceState.en_progreso, None,
                             HistoryAction.iniciar, ctx())
    assert strict.node_id == "sync"
    assert strict.action_error == "RuntimeError: sin conexión"
