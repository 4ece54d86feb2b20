"""
Timeout Sweeper
Pasada periódica sobre instancias detenidas en una aprobación cuyo plazo
venció: con salida ``timeout`` se escala; sin ella la instancia expira.

Ejecutar como proceso independiente:

    python -m aprobaciones.services.sweeper
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session

from ..config import settings
from ..db import make_engine
from ..errors import WorkflowError
from ..logs import configure_logging
from ..models import HistoryAction
from .gateway import ApprovalGateway

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    escalated: List[str] = field(default_factory=list)
    expired: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.escalated) + len(self.expired)


class TimeoutSweeper:

    def __init__(self, gateway: ApprovalGateway):
        self.gateway = gateway

    def barrer(self, now: Optional[datetime] = None) -> SweepReport:
        """Una pasada. Idempotente: una instancia ya movida se omite."""
        now = now or self.gateway.clock()
        report = SweepReport()
        with Session(self.gateway.engine) as session:
            due = [(i.organization_id, i.id) for i in self.gateway.instances.list_due(session, now)]

        for organization_id, instance_id in due:
            try:
                outcome = self.gateway.expirar_por_timeout(organization_id, instance_id, now)
            except WorkflowError as exc:
                # Otra instancia del sweeper o una decisión humana ganó la carrera
                logger.warning("Timeout de %s no aplicado: %s", instance_id, exc.message)
                report.failed.append(instance_id)
                continue
            if outcome is None:
                report.skipped.append(instance_id)
            elif outcome[1] == HistoryAction.expirar:
                report.expired.append(instance_id)
            else:
                report.escalated.append(instance_id)

        if due:
            logger.info(
                "Barrido %s: %d escaladas, %d expiradas, %d omitidas, %d con error",
                now.isoformat(), len(report.escalated), len(report.expired),
                len(report.skipped), len(report.failed),
            )
        return report

    def run_forever(self, interval: Optional[int] = None) -> None:
        interval = interval or settings.sweep_interval_seconds
        logger.info("Sweeper iniciado (cada %ss)", interval)
        while True:
            try:
                self.barrer()
            except Exception:
                logger.exception("Error en el barrido de timeouts")
            time.sleep(interval)


def main() -> None:
    configure_logging(settings.log_level)
    engine = make_engine()
    gateway = ApprovalGateway(engine)
    gateway.definitions.create_schema()
    TimeoutSweeper(gateway).run_forever()


if __name__ == "__main__":
    main()
