"""
Ejecución de nodos ``accion``.

El motor llama a un ``ActionExecutor`` (colaborador externo). Aquí vive el
contrato y una implementación por defecto con los tres tipos de acción que
ofrece el editor: cambiar_estado, notificar y webhook.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol

import requests

from ..config import settings
from ..errors import ActionExecutionError

logger = logging.getLogger(__name__)


@dataclass
class ActionContext:
    """Lo que una acción puede saber de la instancia que la dispara."""
    organization_id: str
    entity_type: str
    entity_id: str
    instance_id: Optional[str] = None
    node_id: Optional[str] = None
    snapshot: Dict[str, Any] = field(default_factory=dict)

    def payload(self) -> Dict[str, Any]:
        return {
            "organizacion_id": self.organization_id,
            "instancia_id": self.instance_id,
            "entidad_tipo": self.entity_type,
            "entidad_id": self.entity_id,
            "nodo_id": self.node_id,
            "datos": self.snapshot,
        }


class ActionExecutor(Protocol):
    def ejecutar(
        self, tipo_accion: str, config_accion: Dict[str, Any], contexto: ActionContext
    ) -> Optional[Dict[str, Any]]:
        """Ejecuta la acción; lanza ActionExecutionError si falla."""
        ...


Notifier = Callable[[Dict[str, Any], ActionContext], None]
EntityStateChanger = Callable[[str, ActionContext], None]


def _log_notifier(config: Dict[str, Any], contexto: ActionContext) -> None:
    # La entrega real (email/SMS/push) la hace otro sistema
    logger.info(
        "Notificación para %s: %s (instancia=%s)",
        config.get("destino"), config.get("titulo", ""), contexto.instance_id,
    )


class DefaultActionExecutor:
    """
    Implementación por defecto de ExecuteAction.

    - notificar: delega en ``notifier`` (por defecto solo registra en log)
    - cambiar_estado: delega en ``state_changer``; sin él la acción falla
    - webhook: POST JSON con ``requests`` y timeout acotado
    """

    def __init__(
        self,
        notifier: Optional[Notifier] = None,
        state_changer: Optional[EntityStateChanger] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ):
        self.notifier = notifier or _log_notifier
        self.state_changer = state_changer
        self.timeout = timeout if timeout is not None else settings.action_timeout_seconds
        self.http = http or requests.Session()
        self._handlers = {
            "notificar": self._notificar,
            "cambiar_estado": self._cambiar_estado,
            "webhook": self._webhook,
        }

    def ejecutar(
        self, tipo_accion: str, config_accion: Dict[str, Any], contexto: ActionContext
    ) -> Optional[Dict[str, Any]]:
        handler = self._handlers.get(tipo_accion)
        if handler is None:
            raise ActionExecutionError(f"Tipo de acción no soportado: {tipo_accion}")
        try:
            return handler(config_accion or {}, contexto)
        except ActionExecutionError:
            raise
        except Exception as exc:  # notifier / state_changer inyectados
            raise ActionExecutionError(f"La acción {tipo_accion} falló: {exc}") from exc

    def _notificar(self, config: Dict[str, Any], contexto: ActionContext) -> Dict[str, Any]:
        if not config.get("destino"):
            raise ActionExecutionError("La notificación no tiene destino")
        self.notifier(config, contexto)
        return {"destino": config["destino"]}

    def _cambiar_estado(self, config: Dict[str, Any], contexto: ActionContext) -> Dict[str, Any]:
        nuevo_estado = config.get("nuevo_estado")
        if not nuevo_estado:
            raise ActionExecutionError("cambiar_estado requiere 'nuevo_estado'")
        if self.state_changer is None:
            raise ActionExecutionError(
                f"No hay colaborador para cambiar el estado de '{contexto.entity_type}'"
            )
        self.state_changer(nuevo_estado, contexto)
        return {"nuevo_estado": nuevo_estado}

    def _webhook(self, config: Dict[str, Any], contexto: ActionContext) -> Dict[str, Any]:
        url = config.get("url") or ""
        if not url.startswith(("http://", "https://")):
            raise ActionExecutionError(f"URL de webhook inválida: {url!r}")
        method = str(config.get("metodo", "POST")).upper()
        try:
            resp = self.http.request(
                method,
                url,
                json=contexto.payload(),
                headers=config.get("headers") or {},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ActionExecutionError(f"Webhook {method} {url} falló: {exc}") from exc
        return {"status_code": resp.status_code}
