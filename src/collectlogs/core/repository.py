"""Data access for the local convert rule table."""

from typing import Iterable, List, Optional, Set

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..models.convert_message import ConvertMessage, ConvertRule
from .database import get_session_factory
from .exceptions import StorageError

logger = structlog.get_logger(__name__)


def _sanitize(value: str) -> str:
    """Values go through bound parameters; only NUL bytes need removing."""
    return value.replace("\x00", "")


class ConvertMessageRepository:
    """Reads and mutates `collectlogs_convert_message`, one short session per call."""

    def __init__(self, session_factory: Optional[sessionmaker[Session]] = None) -> None:
        self._session_factory = session_factory or get_session_factory()

    def list_rules(self) -> List[ConvertRule]:
        """All rules in application order."""
        try:
            with self._session_factory() as db:
                rows = db.execute(
                    select(ConvertMessage).order_by(ConvertMessage.id_collectlogs_convert_message)
                ).scalars().all()
                return [ConvertRule.from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError("Failed to load convert rules", details={"error": str(e)}) from e

    def remote_ids(self) -> Set[int]:
        """Remote ids of every stored rule; rows without a remote id are left out."""
        try:
            with self._session_factory() as db:
                ids = db.execute(select(ConvertMessage.id_remote)).scalars().all()
                return {int(remote_id) for remote_id in ids if remote_id}
        except SQLAlchemyError as e:
            raise StorageError("Failed to load remote rule ids", details={"error": str(e)}) from e

    def insert(self, remote_id: int, search: str, replace: str) -> ConvertRule:
        try:
            with self._session_factory() as db:
                row = ConvertMessage(
                    id_remote=remote_id,
                    search=_sanitize(search),
                    replace=_sanitize(replace),
                )
                db.add(row)
                db.commit()
                logger.debug("Convert rule inserted", remote_id=remote_id, local_id=row.id_collectlogs_convert_message)
                return ConvertRule.from_row(row)
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to insert convert rule",
                details={"remote_id": remote_id, "error": str(e)},
            ) from e

    def delete_by_remote_ids(self, remote_ids: Iterable[int]) -> int:
        """Delete rules by remote id; returns the number of rows removed."""
        ids = sorted(set(remote_ids))
        if not ids:
            return 0
        try:
            with self._session_factory() as db:
                result = db.execute(delete(ConvertMessage).where(ConvertMessage.id_remote.in_(ids)))
                db.commit()
                logger.debug("Convert rules deleted", remote_ids=ids, rows=result.rowcount)
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to delete convert rules",
                details={"remote_ids": ids, "error": str(e)},
            ) from e
