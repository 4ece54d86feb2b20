"""
Contratos de los colaboradores externos y sus implementaciones en memoria.

El motor no conoce usuarios, roles ni entidades de negocio: los consulta a
través de estos protocolos. Las implementaciones ``Static*`` sirven para
desarrollo, pruebas y despliegues pequeños.
"""
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, Set, Tuple

from ..config import settings
from ..graph.types import ApproverSpec, ApproverType

logger = logging.getLogger(__name__)

ApproverPredicate = Callable[[str], bool]


class EntityResolver(Protocol):
    def resumen(self, entity_type: str, entity_id: str, organization_id: str) -> Dict[str, Any]:
        """Resumen legible de la entidad (folio, monto, proveedor...)."""
        ...


class ApproverDirectory(Protocol):
    def resolver(self, aprobador: ApproverSpec, organization_id: str) -> ApproverPredicate:
        """Predicado que indica si un usuario satisface la especificación de aprobador."""
        ...

    def es_administrador(self, actor_id: str, organization_id: str) -> bool:
        ...


class StaticDirectory:
    """
    Directorio en memoria.

    ``users`` mapea ``(organization_id, user_id)`` o ``user_id`` a un dict con
    listas ``roles``, ``grupos`` y ``permisos``. Un usuario con el rol
    ``settings.admin_role`` es administrador.
    """

    def __init__(self, users: Optional[Dict[Any, Dict[str, Iterable[str]]]] = None, admin_role: Optional[str] = None):
        self.users = dict(users or {})
        self.admin_role = admin_role or settings.admin_role

    def add_user(
        self,
        user_id: str,
        roles: Iterable[str] = (),
        grupos: Iterable[str] = (),
        permisos: Iterable[str] = (),
        organization_id: Optional[str] = None,
    ) -> None:
        key = (organization_id, user_id) if organization_id else user_id
        self.users[key] = {"roles": list(roles), "grupos": list(grupos), "permisos": list(permisos)}

    def _profile(self, user_id: str, organization_id: str) -> Dict[str, Set[str]]:
        raw = self.users.get((organization_id, user_id)) or self.users.get(user_id) or {}
        return {k: set(raw.get(k, ())) for k in ("roles", "grupos", "permisos")}

    def resolver(self, aprobador: ApproverSpec, organization_id: str) -> ApproverPredicate:
        tipo, valor = aprobador.tipo, aprobador.valor
        if tipo == ApproverType.usuario:
            return lambda user_id: user_id == valor
        field_by_type: Dict[ApproverType, str] = {
            ApproverType.rol: "roles",
            ApproverType.grupo: "grupos",
            ApproverType.permiso: "permisos",
        }
        field_name = field_by_type[tipo]
        return lambda user_id: valor in self._profile(user_id, organization_id)[field_name]

    def es_administrador(self, actor_id: str, organization_id: str) -> bool:
        return self.admin_role in self._profile(actor_id, organization_id)["roles"]


class StaticEntityResolver:
    """Resúmenes registrados de antemano; sin registro devuelve solo tipo e id."""

    def __init__(self, summaries: Optional[Dict[Tuple[str, str], Dict[str, Any]]] = None):
        self.summaries = dict(summaries or {})

    def register(self, entity_type: str, entity_id: str, summary: Dict[str, Any]) -> None:
        self.summaries[(entity_type, entity_id)] = summary

    def resumen(self, entity_type: str, entity_id: str, organization_id: str) -> Dict[str, Any]:
        summary = self.summaries.get((entity_type, entity_id))
        if summary is None:
            return {"entity_type": entity_type, "entity_id": entity_id}
        return dict(summary)
