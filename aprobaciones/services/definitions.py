"""
Definition Store
Guarda las versiones de cada definición de workflow y su ciclo de vida
draft -> published -> archived.
"""
import hashlib
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import Engine
from sqlmodel import Session, SQLModel, select

from ..errors import NotFoundError, StateError, ValidationError
from ..graph.types import WorkflowGraph
from ..graph.validator import ValidationReport, validate_graph
from ..models import DefinitionStatus, WorkflowDefinition
from ..util.clock import utc_now
from ..util.ids import new_id
from ..util.pagination import clamp_limit, clamp_offset

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "description", "nodes", "edges", "activation_condition", "priority")


def graph_checksum(nodes: List[Dict[str, Any]], edges: List[Dict[str, Any]]) -> str:
    canonical = json.dumps({"nodes": nodes, "edges": edges}, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class DefinitionStore:
    """Repositorio de definiciones; todas las operaciones van acotadas por organización."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def create_schema(self):
        """Crea todas las tablas del motor."""
        SQLModel.metadata.create_all(self.engine)

    # ------------------------------------------------------------------ CRUD

    def create_draft(
        self,
        organization_id: str,
        entity_type: str,
        name: str,
        nodes: Optional[List[Dict[str, Any]]] = None,
        edges: Optional[List[Dict[str, Any]]] = None,
        description: str = "",
        activation_condition: Optional[List[Dict[str, Any]]] = None,
        priority: int = 0,
    ) -> WorkflowDefinition:
        with Session(self.engine) as session:
            version = self._next_version(session, organization_id, entity_type)
            definition = WorkflowDefinition(
                id=new_id("def_"),
                organization_id=organization_id,
                entity_type=entity_type,
                version=version,
                name=name,
                description=description or "",
                nodes=list(nodes or []),
                edges=list(edges or []),
                activation_condition=activation_condition,
                priority=priority,
            )
            session.add(definition)
            session.commit()
            session.refresh(definition)
            logger.info("Borrador %s creado (%s v%s)", definition.id, entity_type, version)
            return definition

    def update_draft(self, organization_id: str, definition_id: str, changes: Dict[str, Any]) -> WorkflowDefinition:
        with Session(self.engine) as session:
            definition = self._load(session, organization_id, definition_id)
            if definition.status != DefinitionStatus.draft:
                raise StateError(
                    f"La definición {definition_id} está '{definition.status.value}'; "
                    "las publicadas son inmutables, cree una nueva versión"
                )
            for key in EDITABLE_FIELDS:
                if key in changes and changes[key] is not None:
                    setattr(definition, key, changes[key])
            definition.updated_at = utc_now()
            session.add(definition)
            session.commit()
            session.refresh(definition)
            return definition

    def get(self, organization_id: str, definition_id: str) -> WorkflowDefinition:
        with Session(self.engine) as session:
            return self._load(session, organization_id, definition_id)

    def list(
        self,
        organization_id: str,
        entity_type: Optional[str] = None,
        status: Optional[DefinitionStatus] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[WorkflowDefinition]:
        with Session(self.engine) as session:
            stmt = select(WorkflowDefinition).where(WorkflowDefinition.organization_id == organization_id)
            if entity_type:
                stmt = stmt.where(WorkflowDefinition.entity_type == entity_type)
            if status:
                stmt = stmt.where(WorkflowDefinition.status == DefinitionStatus(status))
            stmt = stmt.order_by(WorkflowDefinition.entity_type, WorkflowDefinition.version.desc())
            if limit is not None or offset is not None:
                stmt = stmt.offset(clamp_offset(offset)).limit(clamp_limit(limit))
            return list(session.exec(stmt).all())

    def get_published(self, organization_id: str, entity_type: str) -> Optional[WorkflowDefinition]:
        with Session(self.engine) as session:
            return session.exec(
                select(WorkflowDefinition).where(
                    WorkflowDefinition.organization_id == organization_id,
                    WorkflowDefinition.entity_type == entity_type,
                    WorkflowDefinition.status == DefinitionStatus.published,
                )
            ).first()

    # ------------------------------------------------------------ lifecycle

    def validate(self, organization_id: str, definition_id: str) -> ValidationReport:
        definition = self.get(organization_id, definition_id)
        return validate_graph(definition.nodes, definition.edges, definition.activation_condition)

    def publish(self, organization_id: str, definition_id: str) -> WorkflowDefinition:
        """
        Publica un borrador válido y archiva la versión publicada anterior del linaje.

        Raises:
            ValidationError: el grafo tiene violaciones de severidad error
            StateError: la definición no es un borrador
        """
        with Session(self.engine) as session:
            definition = self._load(session, organization_id, definition_id)
            if definition.status != DefinitionStatus.draft:
                raise StateError(f"Solo se publican borradores; {definition_id} está '{definition.status.value}'")

            report = validate_graph(definition.nodes, definition.edges, definition.activation_condition)
            if not report.valid:
                raise ValidationError(
                    f"La definición {definition_id} tiene {len(report.errors)} errores",
                    report.errors,
                )

            now = utc_now()
            previous = session.exec(
                select(WorkflowDefinition).where(
                    WorkflowDefinition.organization_id == organization_id,
                    WorkflowDefinition.entity_type == definition.entity_type,
                    WorkflowDefinition.status == DefinitionStatus.published,
                )
            ).all()
            for old in previous:
                old.status = DefinitionStatus.archived
                old.updated_at = now
                session.add(old)

            definition.status = DefinitionStatus.published
            definition.checksum = graph_checksum(definition.nodes, definition.edges)
            definition.published_at = now
            definition.updated_at = now
            session.add(definition)
            session.commit()
            session.refresh(definition)
            logger.info(
                "Definición %s publicada (%s v%s); archivadas: %s",
                definition.id, definition.entity_type, definition.version, [d.id for d in previous],
            )
            return definition

    def archive(self, organization_id: str, definition_id: str) -> WorkflowDefinition:
        with Session(self.engine) as session:
            definition = self._load(session, organization_id, definition_id)
            if definition.status == DefinitionStatus.archived:
                return definition
            definition.status = DefinitionStatus.archived
            definition.updated_at = utc_now()
            session.add(definition)
            session.commit()
            session.refresh(definition)
            return definition

    def new_version(self, organization_id: str, definition_id: str) -> WorkflowDefinition:
        """Copia una versión publicada o archivada en un nuevo borrador con version+1."""
        with Session(self.engine) as session:
            source = self._load(session, organization_id, definition_id)
            if source.status == DefinitionStatus.draft:
                raise StateError(f"{definition_id} ya es un borrador; edítelo directamente")
            draft = WorkflowDefinition(
                id=new_id("def_"),
                organization_id=organization_id,
                entity_type=source.entity_type,
                version=self._next_version(session, organization_id, source.entity_type),
                name=source.name,
                description=source.description,
                nodes=json.loads(json.dumps(source.nodes)),
                edges=json.loads(json.dumps(source.edges)),
                activation_condition=source.activation_condition,
                priority=source.priority,
            )
            session.add(draft)
            session.commit()
            session.refresh(draft)
            return draft

    def delete_draft(self, organization_id: str, definition_id: str) -> None:
        """Elimina un borrador. Las instancias solo nacen de versiones publicadas."""
        with Session(self.engine) as session:
            definition = self._load(session, organization_id, definition_id)
            if definition.status != DefinitionStatus.draft:
                raise StateError(
                    f"Solo se eliminan borradores; {definition_id} está '{definition.status.value}', archívela"
                )
            session.delete(definition)
            session.commit()
            logger.info("Borrador %s eliminado", definition_id)

    # --------------------------------------------------------------- helpers

    @staticmethod
    def _next_version(session: Session, organization_id: str, entity_type: str) -> int:
        latest = session.exec(
            select(WorkflowDefinition.version)
            .where(
                WorkflowDefinition.organization_id == organization_id,
                WorkflowDefinition.entity_type == entity_type,
            )
            .order_by(WorkflowDefinition.version.desc())
        ).first()
        return (latest or 0) + 1

    @staticmethod
    def _load(session: Session, organization_id: str, definition_id: str) -> WorkflowDefinition:
        definition = session.get(WorkflowDefinition, definition_id)
        if not definition or definition.organization_id != organization_id:
            raise NotFoundError(f"Definición {definition_id} no encontrada")
        return definition


def graph_of(definition: WorkflowDefinition) -> WorkflowGraph:
    return WorkflowGraph.from_payload(definition.nodes, definition.edges)
