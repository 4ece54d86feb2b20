# tests/test_definitions.py
"""
Ciclo de vida de definiciones: borrador editable, publicación validada,
inmutabilidad y linaje de versiones por (organización, tipo de entidad).
"""
import pytest

from aprobaciones.errors import NotFoundError, StateError, ValidationError
from aprobaciones.models import DefinitionStatus
from aprobaciones.services.definitions import graph_checksum

from helpers import ENTITY, ORG, escalation_graph, simple_graph


def test_create_draft(store):
    draft = store.create_draft(ORG, ENTITY, "Compras", *simple_graph(), description="OC > 0")
    assert draft.id.startswith("def_")
    assert draft.status == DefinitionStatus.draft
    assert draft.version == 1
    assert draft.checksum is None
    assert store.get(ORG, draft.id).nodes == simple_graph()[0]


def test_update_draft_changes_graph(store):
    draft = store.create_draft(ORG, ENTITY, "Compras")
    nodes, edges = simple_graph()
    updated = store.update_draft(ORG, draft.id, {"nodes": nodes, "edges": edges, "name": "Compras v1", "status": "published"})
    assert updated.name == "Compras v1"
    assert len(updated.nodes) == 4
    # status no es editable por esta vía
    assert updated.status == DefinitionStatus.draft


def test_publish_sets_checksum_and_freezes(store):
    draft = store.create_draft(ORG, ENTITY, "Compras", *simple_graph())
    published = store.publish(ORG, draft.id)
    assert published.status == DefinitionStatus.published
    assert published.published_at is not None
    assert published.checksum == graph_checksum(*simple_graph())
    with pytest.raises(StateError):
        store.update_draft(ORG, draft.id, {"name": "otro"})
    with pytest.raises(StateError):
        store.publish(ORG, draft.id)


def test_publish_rejects_invalid_graph_with_violations(store):
    nodes, edges = simple_graph()
    draft = store.create_draft(ORG, ENTITY, "Roto", nodes, edges[:1])
    with pytest.raises(ValidationError) as exc_info:
        store.publish(ORG, draft.id)
    codes = {v.code for v in exc_info.value.violations}
    assert "handle_faltante" in codes
    assert exc_info.value.details and "code" in exc_info.value.details[0]
    assert store.get(ORG, draft.id).status == DefinitionStatus.draft


def test_validate_reports_without_publishing(store):
    draft = store.create_draft(ORG, ENTITY, "Compras", *simple_graph())
    report = store.validate(ORG, draft.id)
    assert report.valid
    assert store.get(ORG, draft.id).status == DefinitionStatus.draft


def test_publishing_new_version_archives_previous(store):
    v1 = store.publish(ORG, store.create_draft(ORG, ENTITY, "Compras", *simple_graph()).id)
    v2 = store.new_version(ORG, v1.id)
    assert v2.version == 2 and v2.status == DefinitionStatus.draft
    assert v2.nodes == v1.nodes

    store.update_draft(ORG, v2.id, dict(zip(("nodes", "edges"), escalation_graph())))
    store.publish(ORG, v2.id)

    assert store.get(ORG, v1.id).status == DefinitionStatus.archived
    current = store.get_published(ORG, ENTITY)
    assert current.id == v2.id
    assert len(store.list(ORG, status=DefinitionStatus.published)) == 1


def test_new_version_of_draft_is_rejected(store):
    draft = store.create_draft(ORG, ENTITY, "Compras", *simple_graph())
    with pytest.raises(StateError):
        store.new_version(ORG, draft.id)


def test_archive(store):
    published = store.publish(ORG, store.create_draft(ORG, ENTITY, "Compras", *simple_graph()).id)
    archived = store.archive(ORG, published.id)
    assert archived.status == DefinitionStatus.archived
    assert store.get_published(ORG, ENTITY) is None
    # Archivar dos veces no falla
    assert store.archive(ORG, published.id).status == DefinitionStatus.archived


def test_lineages_are_scoped_by_organization_and_entity(store):
    a = store.create_draft(ORG, ENTITY, "Compras")
    b = store.create_draft(ORG, "factura", "Facturas")
    c = store.create_draft("org_2", ENTITY, "Compras org 2")
    assert (a.version, b.version, c.version) == (1, 1, 1)
    assert {d.id for d in store.list(ORG)} == {a.id, b.id}
    assert [d.id for d in store.list(ORG, entity_type="factura")] == [b.id]
    with pytest.raises(NotFoundError):
        store.get("org_2", a.id)


def test_checksum_is_order_insensitive_for_keys():
    nodes, edges = simple_graph()
    reordered = [dict(reversed(list(n.items()))) for n in nodes]
    assert graph_checksum(nodes, edges) == graph_checksum(reordered, edges)


def test_publish_rejects_malformed_activation_condition(store):
    draft = store.create_draft(
        ORG, ENTITY, "Compras", *simple_graph(),
        activation_condition=[{"campo": "monto", "operador": "entre", "valor": 1}],
    )
    report = store.validate(ORG, draft.id)
    assert not report.valid
    assert "condicion_activacion_invalida" in {v.code for v in report.violations}

    with pytest.raises(ValidationError):
        store.publish(ORG, draft.id)
    assert store.get(ORG, draft.id).status == DefinitionStatus.draft


def test_delete_draft(store):
    draft = store.create_draft(ORG, ENTITY, "Compras", *simple_graph())
    store.delete_draft(ORG, draft.id)
    with pytest.raises(NotFoundError):
        store.get(ORG, draft.id)


def test_published_definition_cannot_be_deleted(store, publish):
    published = publish(simple_graph())
    with pytest.raises(StateError):
        store.delete_draft(ORG, published.id)
    assert store.get(ORG, published.id).status == DefinitionStatus.published
