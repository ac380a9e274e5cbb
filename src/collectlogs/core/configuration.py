"""
Host configuration facility.

A process-wide, globally scoped key/value store. Every value is kept as
text; callers convert ints and bools on the way in and out.
"""

import secrets
import string
from datetime import datetime
from typing import Optional, Protocol, Union, runtime_checkable

import structlog
from sqlalchemy import DateTime, String, Text, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, Session, mapped_column, sessionmaker

from .database import Base, get_session_factory
from .exceptions import ConfigurationAccessError

logger = structlog.get_logger(__name__)

TRACKING_UID_KEY = "TB_TRACKING_UID"
TRACKING_UID_LENGTH = 40

ConfigValue = Union[str, int, bool]


def generate_password(length: int) -> str:
    """Cryptographically random alphanumeric string."""
    alphabet = string.ascii_letters + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


@runtime_checkable
class ConfigurationStore(Protocol):
    """What the settings store needs from the host platform."""

    def get_global_value(self, key: str) -> Optional[str]: ...

    def update_global_value(self, key: str, value: ConfigValue) -> None: ...

    def delete_by_name(self, key: str) -> None: ...


class ConfigurationValue(Base):
    """Key-value row of the configuration table."""

    __tablename__ = "configuration"

    id_configuration: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(254), unique=True, nullable=False, index=True)
    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    date_upd: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


def _to_text(value: ConfigValue) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


class DatabaseConfiguration:
    """ConfigurationStore backed by the `configuration` table."""

    def __init__(self, session_factory: Optional[sessionmaker[Session]] = None) -> None:
        self._session_factory = session_factory or get_session_factory()

    def get_global_value(self, key: str) -> Optional[str]:
        try:
            with self._session_factory() as db:
                return db.execute(
                    select(ConfigurationValue.value).where(ConfigurationValue.name == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Configuration read failed", key=key, error=str(e))
            raise ConfigurationAccessError(f"Failed to read configuration value {key}", key=key) from e

    def update_global_value(self, key: str, value: ConfigValue) -> None:
        text = _to_text(value)
        try:
            with self._session_factory() as db:
                row = db.execute(
                    select(ConfigurationValue).where(ConfigurationValue.name == key)
                ).scalar_one_or_none()
                if row is None:
                    db.add(ConfigurationValue(name=key, value=text))
                else:
                    row.value = text
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Configuration write failed", key=key, error=str(e))
            raise ConfigurationAccessError(f"Failed to update configuration value {key}", key=key) from e

    def delete_by_name(self, key: str) -> None:
        try:
            with self._session_factory() as db:
                db.execute(delete(ConfigurationValue).where(ConfigurationValue.name == key))
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Configuration delete failed", key=key, error=str(e))
            raise ConfigurationAccessError(f"Failed to delete configuration value {key}", key=key) from e


class TrackingIdProvider:
    """
    Stable per-installation identifier sent to the remote server.

    Uses the platform's own server tracking id when the configuration store
    offers one, otherwise generates a random id once and keeps it in the
    store. The result is memoized for the lifetime of the provider.
    """

    def __init__(self, configuration: ConfigurationStore) -> None:
        self._configuration = configuration
        self._sid: Optional[str] = None

    def get_sid(self) -> str:
        if self._sid is None:
            platform_accessor = getattr(self._configuration, "get_server_tracking_id", None)
            if callable(platform_accessor):
                self._sid = platform_accessor()
            else:
                sid = self._configuration.get_global_value(TRACKING_UID_KEY)
                if not sid:
                    sid = generate_password(TRACKING_UID_LENGTH)
                    self._configuration.update_global_value(TRACKING_UID_KEY, sid)
                    logger.info("Generated tracking id", sid=sid[:8] + "...")
                self._sid = sid
        return self._sid


# Global instances
_configuration: Optional[DatabaseConfiguration] = None
_tracking_id_provider: Optional[TrackingIdProvider] = None


def get_configuration() -> DatabaseConfiguration:
    """Get or create the global configuration store."""
    global _configuration

    if _configuration is None:
        _configuration = DatabaseConfiguration()

    return _configuration


def get_tracking_id_provider() -> TrackingIdProvider:
    """Get or create the global tracking id provider."""
    global _tracking_id_provider

    if _tracking_id_provider is None:
        _tracking_id_provider = TrackingIdProvider(get_configuration())

    return _tracking_id_provider
