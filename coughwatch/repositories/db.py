"""
Database engine helpers.
"""

from pathlib import Path
from typing import Optional

from sqlmodel import SQLModel, create_engine

from ..core.config import settings

_ENGINE = None


def _build_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    if url.startswith("sqlite:///"):
        db_path = url.replace("sqlite:///", "")
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, echo=False, connect_args=connect_args)


def get_engine():
    global _ENGINE
    if _ENGINE is None:
        _ENGINE = _build_engine(settings.database_url)
    return _ENGINE


def configure_engine(url: Optional[str] = None):
    """Swap the process engine, e.g. to point tests at a scratch database."""
    global _ENGINE
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = _build_engine(url or settings.database_url)
    return _ENGINE


def init_db() -> None:
    engine = get_engine()
    from . import db_models  # noqa: F401
    SQLModel.metadata.create_all(engine)
