# tests/conftest.py
"""
Fixtures compartidas: SQLite en memoria, directorio de aprobadores en memoria,
reloj controlable y un ejecutor de acciones que registra las llamadas.
"""
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from aprobaciones.services.collaborators import StaticDirectory, StaticEntityResolver
from aprobaciones.services.gateway import ApprovalGateway

from helpers import ENTITY, ORG, FakeClock, RecordingExecutor, headers_for


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture()
def engine():
    # "sqlite://" con StaticPool mantiene UNA conexión viva compartida entre hilos
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    SQLModel.metadata.create_all(eng)
    return eng


@pytest.fixture()
def clock():
    return FakeClock(datetime(2024, 3, 4, 9, 0, 0))


@pytest.fixture()
def executor():
    return RecordingExecutor()


@pytest.fixture()
def directory():
    d = StaticDirectory()
    d.add_user("ana", roles=["jefe_compras"])
    d.add_user("beto", roles=["jefe_compras"], grupos=["comite"])
    d.add_user("carla", roles=["finanzas"], permisos=["ordenes.aprobar"])
    d.add_user("root", roles=["admin"])
    d.add_user("solicitante")
    return d


@pytest.fixture()
def resolver():
    r = StaticEntityResolver()
    r.register(ENTITY, "oc-1", {"folio": "OC-0001", "monto": 1500})
    return r


@pytest.fixture()
def gateway(engine, directory, resolver, executor, clock):
    return ApprovalGateway(
        engine,
        directory=directory,
        entity_resolver=resolver,
        action_executor=executor,
        clock=clock,
    )


@pytest.fixture()
def store(gateway):
    return gateway.definitions


@pytest.fixture()
def publish(store):
    """Crea y publica una definición; devuelve la definición publicada."""
    def _publish(graph, entity_type=ENTITY, organization_id=ORG, **kwargs):
        nodes, edges = graph
        draft = store.create_draft(organization_id, entity_type, "Flujo de compras", nodes, edges, **kwargs)
        return store.publish(organization_id, draft.id)
    return _publish


@pytest.fixture()
def client(gateway):
    """Cliente HTTP con el gateway de pruebas inyectado."""
    from aprobaciones.deps import get_gateway
    from aprobaciones.main import app

    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    return headers_for("solicitante")
