"""
Delegaciones de aprobación: un aprobador cede sus permisos a otro usuario
durante una ventana de fechas, opcionalmente solo para un tipo de entidad.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Engine
from sqlmodel import Session, select

from ..errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..models import ApprovalDelegation
from ..util.clock import to_naive_utc, utc_now
from ..util.ids import new_id

logger = logging.getLogger(__name__)


class DelegationService:

    def __init__(self, engine: Engine):
        self.engine = engine

    def crear(
        self,
        organization_id: str,
        delegator_id: str,
        delegate_id: str,
        starts_at: datetime,
        ends_at: datetime,
        entity_type: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> ApprovalDelegation:
        starts_at, ends_at = to_naive_utc(starts_at), to_naive_utc(ends_at)
        if delegator_id == delegate_id:
            raise ValidationError("No se puede delegar en uno mismo")
        if ends_at < starts_at:
            raise ValidationError("La fecha de fin no puede ser anterior a la de inicio")

        with Session(self.engine) as session:
            existing = session.exec(
                select(ApprovalDelegation).where(
                    ApprovalDelegation.organization_id == organization_id,
                    ApprovalDelegation.delegator_id == delegator_id,
                    ApprovalDelegation.active == True,  # noqa: E712
                    ApprovalDelegation.starts_at <= ends_at,
                    ApprovalDelegation.ends_at >= starts_at,
                )
            ).all()
            for other in existing:
                # Solapan si comparten alcance: mismo tipo o alguna de las dos es global
                if other.entity_type is None or entity_type is None or other.entity_type == entity_type:
                    raise ConflictError(
                        f"Ya existe la delegación {other.id} activa que se solapa con ese periodo"
                    )

            delegation = ApprovalDelegation(
                id=new_id("dlg_"),
                organization_id=organization_id,
                delegator_id=delegator_id,
                delegate_id=delegate_id,
                entity_type=entity_type,
                starts_at=starts_at,
                ends_at=ends_at,
                reason=reason,
            )
            session.add(delegation)
            session.commit()
            session.refresh(delegation)
            logger.info("Delegación %s: %s -> %s", delegation.id, delegator_id, delegate_id)
            return delegation

    def listar(self, organization_id: str, user_id: str, as_delegate: bool = False) -> List[ApprovalDelegation]:
        column = ApprovalDelegation.delegate_id if as_delegate else ApprovalDelegation.delegator_id
        with Session(self.engine) as session:
            return list(session.exec(
                select(ApprovalDelegation)
                .where(ApprovalDelegation.organization_id == organization_id, column == user_id)
                .order_by(ApprovalDelegation.starts_at.desc())
            ).all())

    def desactivar(self, organization_id: str, delegation_id: str, actor_id: str) -> ApprovalDelegation:
        with Session(self.engine) as session:
            delegation = session.get(ApprovalDelegation, delegation_id)
            if not delegation or delegation.organization_id != organization_id:
                raise NotFoundError(f"Delegación {delegation_id} no encontrada")
            if actor_id not in (delegation.delegator_id, delegation.delegate_id):
                raise AuthorizationError("Solo el delegante o el delegado pueden desactivar la delegación")
            delegation.active = False
            delegation.updated_at = utc_now()
            session.add(delegation)
            session.commit()
            session.refresh(delegation)
            return delegation

    def vigentes_para(
        self, session: Session, organization_id: str, delegate_id: str, at: datetime, entity_type: Optional[str] = None
    ) -> List[ApprovalDelegation]:
        """Delegaciones que hoy otorgan permisos a ``delegate_id``."""
        rows = session.exec(
            select(ApprovalDelegation).where(
                ApprovalDelegation.organization_id == organization_id,
                ApprovalDelegation.delegate_id == delegate_id,
                ApprovalDelegation.active == True,  # noqa: E712
            )
        ).all()
        return [d for d in rows if d.covers(at, entity_type)]
