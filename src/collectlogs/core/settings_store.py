"""
Module settings kept in the host configuration facility.

No state of its own: every accessor reads through or writes through to
the configuration store. Getters heal missing or invalid values by
storing a valid default and returning it.
"""

import time
from enum import IntEnum
from typing import List, Optional, Sequence

import structlog

from .configuration import ConfigurationStore, generate_password, get_configuration

logger = structlog.get_logger(__name__)

SETTINGS_CRON_SECRET = "COLLECTLOGS_CRON_SECRET"
SETTINGS_LAST_CRON_EXECUTION = "COLLECTLOGS_CRON_TS"
SETTINGS_SEND_NEW_ERRORS_EMAIL = "COLLECTLOGS_SEND_NEW_ERRORS_EMAIL"
SETTINGS_NEW_ERRORS_EMAIL_ADDRESSES = "COLLECTLOGS_NEW_ERRORS_EMAIL"
SETTINGS_LOG_TO_FILE = "COLLECTLOGS_LOG_TO_FILE"
SETTINGS_LOG_TO_FILE_NEW_ONLY = "COLLECTLOGS_LOG_TO_FILE_NEW_ONLY"
SETTINGS_LOG_TO_FILE_SEVERITY = "COLLECTLOGS_LOG_TO_FILE_SEVERITY"
SETTINGS_CONVERT_MESSAGE_SYNC = "COLLECTLOGS_CONVERT_MESSAGE_SYNC_TS"

# Every key owned by this module, in the order cleanup removes them
SETTINGS_KEYS = (
    SETTINGS_CRON_SECRET,
    SETTINGS_LAST_CRON_EXECUTION,
    SETTINGS_SEND_NEW_ERRORS_EMAIL,
    SETTINGS_NEW_ERRORS_EMAIL_ADDRESSES,
    SETTINGS_LOG_TO_FILE,
    SETTINGS_LOG_TO_FILE_NEW_ONLY,
    SETTINGS_LOG_TO_FILE_SEVERITY,
    SETTINGS_CONVERT_MESSAGE_SYNC,
)

CRON_SECRET_LENGTH = 32


class SeverityLevel(IntEnum):
    """Minimum severity of messages written to the log file."""

    NOTICE = 1
    DEPRECATION = 2
    WARNING = 3
    ERROR = 4


def _to_int(value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0


def _is_severity_level(number: int) -> bool:
    return number in {level.value for level in SeverityLevel}


def _coerce_severity(value: object) -> SeverityLevel:
    number = _to_int(value)
    if _is_severity_level(number):
        return SeverityLevel(number)
    return SeverityLevel.DEPRECATION


class SettingsStore:
    """Typed accessors over the module's configuration keys."""

    def __init__(self, configuration: Optional[ConfigurationStore] = None) -> None:
        self.configuration = configuration or get_configuration()

    def cleanup(self) -> bool:
        """
        Delete every key owned by this module.

        Used during uninstall, so it never raises: a failure is logged and
        the remaining keys are left in place.
        """
        try:
            for key in SETTINGS_KEYS:
                self.configuration.delete_by_name(key)
        except Exception as e:
            logger.warning("Settings cleanup failed", error=str(e), error_type=type(e).__name__)
        return True

    def get_cron_secret(self) -> str:
        value = self.configuration.get_global_value(SETTINGS_CRON_SECRET)
        if not value:
            value = generate_password(CRON_SECRET_LENGTH)
            self.configuration.update_global_value(SETTINGS_CRON_SECRET, value)
            logger.info("Generated cron secret", secret=value[:8] + "...")
        return value

    def get_cron_last_exec(self) -> int:
        return _to_int(self.configuration.get_global_value(SETTINGS_LAST_CRON_EXECUTION))

    def update_cron_last_exec(self) -> None:
        # One second in the past, so "ran since X" checks made in the same second hold
        self.configuration.update_global_value(SETTINGS_LAST_CRON_EXECUTION, int(time.time()) - 1)

    def get_last_sync(self) -> int:
        return _to_int(self.configuration.get_global_value(SETTINGS_CONVERT_MESSAGE_SYNC))

    def update_last_sync(self, timestamp: int) -> None:
        self.configuration.update_global_value(SETTINGS_CONVERT_MESSAGE_SYNC, int(timestamp))

    def get_log_to_file_min_severity(self) -> SeverityLevel:
        value = self.configuration.get_global_value(SETTINGS_LOG_TO_FILE_SEVERITY)
        if not _is_severity_level(_to_int(value)):
            return self.set_log_to_file_min_severity(SeverityLevel.DEPRECATION)
        return SeverityLevel(_to_int(value))

    def set_log_to_file_min_severity(self, value: object) -> SeverityLevel:
        severity = _coerce_severity(value)
        self.configuration.update_global_value(SETTINGS_LOG_TO_FILE_SEVERITY, int(severity))
        return severity

    def get_log_to_file(self) -> bool:
        return self._get_bool_value(SETTINGS_LOG_TO_FILE, False)

    def set_log_to_file(self, value: bool) -> bool:
        return self._set_bool_value(SETTINGS_LOG_TO_FILE, value)

    def get_log_to_file_new_only(self) -> bool:
        return self._get_bool_value(SETTINGS_LOG_TO_FILE_NEW_ONLY, True)

    def set_log_to_file_new_only(self, value: bool) -> bool:
        return self._set_bool_value(SETTINGS_LOG_TO_FILE_NEW_ONLY, value)

    def get_send_new_errors_email(self) -> bool:
        return self._get_bool_value(SETTINGS_SEND_NEW_ERRORS_EMAIL, False)

    def set_send_new_errors_email(self, value: bool) -> bool:
        return self._set_bool_value(SETTINGS_SEND_NEW_ERRORS_EMAIL, value)

    def get_email_addresses(self) -> List[str]:
        value = self.configuration.get_global_value(SETTINGS_NEW_ERRORS_EMAIL_ADDRESSES)
        if not value:
            return []
        return value.split("\n")

    def set_email_addresses(self, emails: Sequence[str]) -> List[str]:
        """Store the addresses newline-joined; an empty list removes the key."""
        emails = list(emails)
        if emails:
            self.configuration.update_global_value(SETTINGS_NEW_ERRORS_EMAIL_ADDRESSES, "\n".join(emails))
        else:
            self.configuration.delete_by_name(SETTINGS_NEW_ERRORS_EMAIL_ADDRESSES)
        return emails

    def _get_bool_value(self, key: str, default: bool) -> bool:
        value = self.configuration.get_global_value(key)
        if value is None:
            return self._set_bool_value(key, default)
        # Same truthiness the host applies to stored text
        return value not in ("", "0")

    def _set_bool_value(self, key: str, value: bool) -> bool:
        value = bool(value)
        self.configuration.update_global_value(key, value)
        return value


# Global settings store instance
_settings_store: Optional[SettingsStore] = None


def get_settings_store() -> SettingsStore:
    """Get or create the global settings store."""
    global _settings_store

    if _settings_store is None:
        _settings_store = SettingsStore(get_configuration())

    return _settings_store
