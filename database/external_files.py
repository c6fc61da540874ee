"""
External reference store — local pointer path ↔ remote resource id.

Each public call runs in its own transaction.  Path uniqueness is enforced
by the ``UNIQUE`` constraint on ``external_files.path`` rather than by a
read-before-write check.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional, Union

from pydantic import BaseModel
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from connectors.errors import DuplicatePath, StorageFailure
from database.models import ExternalFile
from database.session import Database

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


class ExternalFileRow(BaseModel):
    id: int
    resource_type: str
    local_path: str
    remote_id: str
    created_at: Optional[datetime] = None


def _to_row(row: ExternalFile) -> ExternalFileRow:
    return ExternalFileRow(
        id=row.id,
        resource_type=row.type,
        local_path=row.path,
        remote_id=row.file_id,
        created_at=row.created_at,
    )


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("external_files %s failed: %s", action, exc)
        raise StorageFailure(f"Reference store {action} failed: {exc}") from exc


class ExternalReferenceStore:
    """CRUD over the ``external_files`` table."""

    def __init__(self, database: Database):
        self._db = database

    async def add(self, resource_type: str, local_path: PathLike, remote_id: str) -> ExternalFileRow:
        """
        Insert a mapping.

        Raises
        ------
        DuplicatePath
            If ``local_path`` is already mapped.
        """
        path = os.fspath(local_path)
        try:
            async with self._db.transaction() as session:
                row = ExternalFile(type=resource_type, path=path, file_id=remote_id)
                session.add(row)
                await session.flush()
                created = _to_row(row)
        except IntegrityError as exc:
            raise DuplicatePath(path) from exc
        except SQLAlchemyError as exc:
            raise StorageFailure(f"Reference store add failed: {exc}") from exc

        logger.info("Linked %s → %s (%s)", path, remote_id, resource_type)
        return created

    async def get_by_path(self, local_path: PathLike) -> Optional[ExternalFileRow]:
        with _storage_errors("lookup"):
            async with self._db.transaction() as session:
                result = await session.execute(
                    select(ExternalFile).where(ExternalFile.path == os.fspath(local_path))
                )
                row = result.scalar_one_or_none()
                return _to_row(row) if row else None

    async def get_by_remote_id(self, remote_id: str) -> Optional[ExternalFileRow]:
        """First mapping for ``remote_id`` (oldest), or None."""
        with _storage_errors("lookup"):
            async with self._db.transaction() as session:
                result = await session.execute(
                    select(ExternalFile)
                    .where(ExternalFile.file_id == remote_id)
                    .order_by(ExternalFile.id)
                    .limit(1)
                )
                row = result.scalar_one_or_none()
                return _to_row(row) if row else None

    async def list_by_type(self, resource_type: str) -> List[ExternalFileRow]:
        """All mappings of ``resource_type``, newest first."""
        with _storage_errors("list"):
            async with self._db.transaction() as session:
                result = await session.execute(
                    select(ExternalFile)
                    .where(ExternalFile.type == resource_type)
                    .order_by(ExternalFile.created_at.desc(), ExternalFile.id.desc())
                )
                return [_to_row(r) for r in result.scalars().all()]

    async def update_path(self, old_path: PathLike, new_path: PathLike) -> bool:
        """
        Re-point a mapping after its pointer file moved.

        Returns False (and changes nothing) if ``old_path`` is not mapped.
        """
        old, new = os.fspath(old_path), os.fspath(new_path)
        try:
            async with self._db.transaction() as session:
                result = await session.execute(
                    update(ExternalFile).where(ExternalFile.path == old).values(path=new)
                )
                moved = result.rowcount > 0
        except IntegrityError as exc:
            raise DuplicatePath(new) from exc
        except SQLAlchemyError as exc:
            raise StorageFailure(f"Reference store update failed: {exc}") from exc

        if moved:
            logger.info("Moved link %s → %s", old, new)
        return moved

    async def remove(self, local_path: PathLike) -> bool:
        """Delete the mapping for ``local_path``. Idempotent."""
        path = os.fspath(local_path)
        with _storage_errors("remove"):
            async with self._db.transaction() as session:
                result = await session.execute(delete(ExternalFile).where(ExternalFile.path == path))
                removed = result.rowcount > 0
        if removed:
            logger.info("Unlinked %s", path)
        return removed

    async def is_external(self, local_path: PathLike) -> bool:
        return await self.get_by_path(local_path) is not None
