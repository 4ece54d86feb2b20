# tests/helpers.py
"""Grafos de ejemplo y utilidades compartidas por las pruebas."""
from datetime import datetime, timedelta

from aprobaciones.errors import ActionExecutionError

ORG = "org_1"
ENTITY = "orden_compra"


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingExecutor:
    """Registra cada acción ejecutada; los tipos en ``failing`` lanzan ActionExecutionError."""

    def __init__(self):
        self.calls = []
        self.failing = set()

    def ejecutar(self, tipo_accion, config_accion, contexto):
        self.calls.append((tipo_accion, dict(config_accion), contexto.node_id, contexto.instance_id))
        if tipo_accion in self.failing:
            raise ActionExecutionError(f"{tipo_accion} no disponible")
        return {"ok": True}


def headers_for(user_id, organization_id=ORG):
    return {
        "Authorization": "Bearer mock-test",
        "X-Actor-Id": user_id,
        "X-Organization-Id": organization_id,
    }


# ============================================================================
# GRAFOS DE EJEMPLO
# ============================================================================

def approval_node(node_id, valor="jefe_compras", tipo="rol", **config):
    return {
        "id": node_id,
        "kind": "aprobacion",
        "name": f"Aprobación {node_id}",
        "config": {"aprobador": {"tipo": tipo, "valor": valor}, **config},
    }


def simple_graph(**approval_config):
    """inicio -> aprobacion -> fin (aprobado | rechazado)"""
    nodes = [
        {"id": "inicio", "kind": "inicio", "name": "Inicio"},
        approval_node("ap1", **approval_config),
        {"id": "fin_ok", "kind": "fin", "name": "Aprobada", "config": {"resultado": "aprobado"}},
        {"id": "fin_no", "kind": "fin", "name": "Rechazada", "config": {"resultado": "rechazado"}},
    ]
    edges = [
        {"id": "e1", "source": "inicio", "target": "ap1", "label": "siguiente"},
        {"id": "e2", "source": "ap1", "target": "fin_ok", "label": "aprobar"},
        {"id": "e3", "source": "ap1", "target": "fin_no", "label": "rechazar"},
    ]
    return nodes, edges


def escalation_graph():
    """ap1 vence a las 24h -> notificar -> ap2 (finanzas)"""
    nodes = [
        {"id": "inicio", "kind": "inicio"},
        approval_node("ap1", timeout_horas=24),
        {
            "id": "escalar",
            "kind": "accion",
            "name": "Avisar a finanzas",
            "config": {"tipo_accion": "notificar", "config_accion": {"destino": "finanzas", "titulo": "Escalada"}},
        },
        approval_node("ap2", valor="finanzas"),
        {"id": "fin_ok", "kind": "fin", "config": {"resultado": "aprobado"}},
        {"id": "fin_no", "kind": "fin", "config": {"resultado": "rechazado"}},
    ]
    edges = [
        {"source": "inicio", "target": "ap1", "label": "siguiente"},
        {"source": "ap1", "target": "fin_ok", "label": "aprobar"},
        {"source": "ap1", "target": "fin_no", "label": "rechazar"},
        {"source": "ap1", "target": "escalar", "label": "timeout"},
        {"source": "escalar", "target": "ap2", "label": "siguiente"},
        {"source": "ap2", "target": "fin_ok", "label": "aprobar"},
        {"source": "ap2", "target": "fin_no", "label": "rechazar"},
    ]
    return nodes, edges


def condition_graph(operator=">", value=1000):
    """Montos grandes pasan por finanzas; el resto se aprueba automáticamente."""
    nodes = [
        {"id": "inicio", "kind": "inicio"},
        {
            "id": "monto_alto",
            "kind": "condicion",
            "config": {"condiciones": [{"campo": "monto", "operador": operator, "valor": value}]},
        },
        approval_node("ap_fin", valor="finanzas"),
        {"id": "fin_ok", "kind": "fin", "config": {"resultado": "aprobado"}},
        {"id": "fin_no", "kind": "fin", "config": {"resultado": "rechazado"}},
    ]
    edges = [
        {"source": "inicio", "target": "monto_alto", "label": "siguiente"},
        {"source": "monto_alto", "target": "ap_fin", "label": "si"},
        {"source": "monto_alto", "target": "fin_ok", "label": "no"},
        {"source": "ap_fin", "target": "fin_ok", "label": "aprobar"},
        {"source": "ap_fin", "target": "fin_no", "label": "rechazar"},
    ]
    return nodes, edges


def action_graph(critica=True, tipo_accion="webhook", config_accion=None):
    """inicio -> accion -> aprobacion -> fin"""
    nodes, edges = simple_graph()
    nodes.append({
        "id": "sync",
        "kind": "accion",
        "name": "Sincronizar ERP",
        "config": {
            "tipo_accion": tipo_accion,
            "config_accion": config_accion or {"url": "https://erp.example.com/hook"},
            "critica": critica,
        },
    })
    edges[0] = {"id": "e1", "source": "inicio", "target": "sync", "label": "siguiente"}
    edges.append({"id": "e4", "source": "sync", "target": "ap1", "label": "siguiente"})
    return nodes, edges
