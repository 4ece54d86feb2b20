from sqlalchemy import Engine
from sqlmodel import create_engine

from .config import settings


def make_engine(url: str | None = None, echo: bool = False) -> Engine:
    url = url or settings.database_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, echo=echo)
