# tests/test_ledger.py
"""
Proyección del historial: reconstruye el estado y rechaza secuencias ilegales.
"""
import pytest

from aprobaciones.errors import StateError
from aprobaciones.models import HistoryAction, HistoryEvent, InstanceState
from aprobaciones.services.ledger import project


def event(seq, action, node_id, target, state=InstanceState.en_progreso, **data):
    return HistoryEvent(
        instance_id="wfi_1",
        organization_id="org_1",
        seq=seq,
        action=action,
        node_id=node_id,
        target_node_id=target,
        resulting_state=state,
        data=data,
    )


def test_projection_follows_the_log():
    events = [
        event(1, HistoryAction.iniciar, "inicio", "ap1"),
        event(2, HistoryAction.aprobar, "ap1", "ap2"),
        event(3, HistoryAction.rechazar, "ap2", "fin_no", InstanceState.rechazado),
    ]
    projection = project(events)
    assert projection.state == InstanceState.rechazado
    assert projection.current_node_id == "fin_no"
    assert projection.is_terminal
    assert projection.last_seq == 3


def test_projection_carries_action_error():
    events = [event(1, HistoryAction.iniciar, "inicio", "sync", action_error="timeout del ERP")]
    assert project(events).action_error == "timeout del ERP"


def test_empty_log_is_rejected():
    with pytest.raises(StateError):
        project([])


def test_log_must_start_with_iniciar():
    with pytest.raises(StateError):
        project([event(1, HistoryAction.aprobar, "ap1", "fin_ok", InstanceState.aprobado)])


def test_gaps_in_sequence_are_rejected():
    with pytest.raises(StateError):
        project([
            event(1, HistoryAction.iniciar, "inicio", "ap1"),
            event(3, HistoryAction.aprobar, "ap1", "fin_ok", InstanceState.aprobado),
        ])


def test_events_after_terminal_state_are_rejected():
    with pytest.raises(StateError):
        project([
            event(1, HistoryAction.iniciar, "inicio", "ap1"),
            event(2, HistoryAction.cancelar, "ap1", "ap1", InstanceState.cancelado),
            event(3, HistoryAction.aprobar, "ap1", "fin_ok", InstanceState.aprobado),
        ])


def test_event_from_wrong_node_is_rejected():
    with pytest.raises(StateError):
        project([
            event(1, HistoryAction.iniciar, "inicio", "ap1"),
            event(2, HistoryAction.aprobar, "ap2", "fin_ok", InstanceState.aprobado),
        ])


def test_second_iniciar_is_rejected():
    with pytest.raises(StateError):
        project([
            event(1, HistoryAction.iniciar, "inicio", "ap1"),
            event(2, HistoryAction.iniciar, "inicio", "ap1"),
        ])
