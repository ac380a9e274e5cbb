"""
Convert rule storage model.

Rows are applied in id order, which is also insertion order.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class ConvertMessage(Base):
    """One search/replace rule, as cached from the remote server."""

    __tablename__ = "collectlogs_convert_message"

    id_collectlogs_convert_message: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id_remote: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    search: Mapped[str] = mapped_column(Text, nullable=False)
    replace: Mapped[str] = mapped_column(Text, nullable=False)


@dataclass(frozen=True)
class ConvertRule:
    """Detached, read-only view of a stored rule."""
    local_id: int
    remote_id: int
    search: str
    replace: str

    @classmethod
    def from_row(cls, row: ConvertMessage) -> "ConvertRule":
        return cls(
            local_id=int(row.id_collectlogs_convert_message),
            remote_id=int(row.id_remote or 0),
            search=row.search,
            replace=row.replace,
        )
