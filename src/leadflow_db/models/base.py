"""Declarative base for the session store.

Session rows keep flow data as JSONB documents and every timestamp as
``timestamptz``; the annotation map below lets models declare plain
``Mapped[dict]`` / ``Mapped[list]`` / ``Mapped[datetime]`` columns and get
those PostgreSQL types.
"""

from datetime import datetime

from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    type_annotation_map = {
        dict: JSONB,
        list: JSONB,
        datetime: TIMESTAMP(timezone=True),
    }
