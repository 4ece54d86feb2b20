from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

from ..util.clock import utc_now


# Fechas en UTC sin tzinfo (ver util/clock.py); el tipo se declara explícito
# para que SQLModel no aplique su columna con zona horaria
class Timestamped(SQLModel):
    created_at: datetime = Field(default_factory=utc_now, nullable=False, sa_type=DateTime)
    updated_at: datetime = Field(
        default_factory=utc_now, nullable=False, sa_type=DateTime, sa_column_kwargs={"onupdate": utc_now}
    )
