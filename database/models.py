"""
SQLAlchemy ORM models for the local workspace database.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class ExternalFile(Base):
    """Maps a local pointer file to the remote resource it stands for."""

    __tablename__ = "external_files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(Text, nullable=False)
    path = Column(Text, nullable=False, unique=True)
    file_id = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("idx_type", "type"),
        Index("idx_path", "path"),
        Index("idx_file_id", "file_id"),
    )
