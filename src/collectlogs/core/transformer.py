"""
Message transformation with remotely maintained convert rules.

The rule set lives in the local `collectlogs_convert_message` table and
is reconciled against the remote server at most once per sync interval.
Rules are applied to log and error messages before they are recorded or
emailed.
"""

import asyncio
import time
from typing import Iterable, List, Optional

import structlog

from ..config import get_settings
from ..models.convert_message import ConvertRule
from ..models.remote import RemoteConvertRule
from .client import ConvertMessageClient, get_convert_message_client
from .error_reporting import ErrorReporter, describe_exception, get_error_reporter
from .metrics import MetricsCollector
from .patterns import CompiledRule
from .repository import ConvertMessageRepository
from .settings_store import SettingsStore, get_settings_store

logger = structlog.get_logger(__name__)

SYNC_INTERVAL = 8 * 60 * 60


class MessageTransformer:
    """
    Applies convert rules to messages and keeps them in sync with the server.

    Features:
    - Rules cached in memory on first use, in insertion order
    - Throttled synchronization (the throttle window starts at the attempt)
    - Diff by remote id: unknown ids inserted, missing ids deleted
    - Synchronization failures reported, never raised
    """

    def __init__(
        self,
        settings_store: SettingsStore,
        repository: ConvertMessageRepository,
        client: ConvertMessageClient,
        error_reporter: ErrorReporter,
        metrics: Optional[MetricsCollector] = None,
        sync_interval: int = SYNC_INTERVAL,
    ) -> None:
        self.settings_store = settings_store
        self.repository = repository
        self.client = client
        self.error_reporter = error_reporter
        self.metrics = metrics
        self.sync_interval = sync_interval
        self._rules: Optional[List[ConvertRule]] = None
        self._compiled: Optional[List[CompiledRule]] = None

        logger.info("Message transformer initialized", sync_interval=sync_interval)

    def transform(self, message: str) -> str:
        """
        Run a message through every rule, each rule's output feeding the next.

        Raises:
            InvalidPatternError: a stored rule cannot be compiled. Stored rules
                are expected to be valid, so this is left to the caller.
        """
        compiled = self._get_compiled_rules()
        for rule in compiled:
            message = rule.apply(message)

        if self.metrics:
            self.metrics.record_transform(len(compiled))
        return message

    def transform_all(self, messages: Iterable[str]) -> List[str]:
        return [self.transform(message) for message in messages]

    def get_rules(self) -> List[ConvertRule]:
        """Current rule set, loaded from the table on first access."""
        if self._rules is None:
            self._rules = self.repository.list_rules()
            logger.debug("Convert rules loaded", count=len(self._rules))
        return self._rules

    def invalidate(self) -> None:
        """Drop the in-memory rules; the next access reloads them from the table."""
        self._rules = None
        self._compiled = None

    def _get_compiled_rules(self) -> List[CompiledRule]:
        if self._compiled is None:
            self._compiled = [CompiledRule.compile(rule.search, rule.replace) for rule in self.get_rules()]
        return self._compiled

    async def synchronize(self, force: bool = False) -> None:
        """
        Reconcile the local rule table with the remote rule set.

        Skipped without network access when the last attempt is more recent
        than the sync interval, unless forced. Any failure is described and
        handed to the error reporter; this method never raises.
        """
        started = time.monotonic()
        try:
            now = int(time.time())
            since_last_sync = now - await asyncio.to_thread(self.settings_store.get_last_sync)
            if not force and since_last_sync < self.sync_interval:
                logger.debug("Synchronization throttled", seconds_since_last_sync=since_last_sync)
                if self.metrics:
                    self.metrics.record_sync_skipped()
                return

            # Recorded before the request so a failing server is not retried until the next interval
            await asyncio.to_thread(self.settings_store.update_last_sync, now)
            if self.metrics:
                self.metrics.record_sync_attempt(now)

            remote_rules = await self.client.fetch_rules()
            inserted, deleted = await asyncio.to_thread(self._apply_remote_rules, remote_rules)

            if inserted or deleted:
                self.invalidate()

            logger.info(
                "Convert rules synchronized",
                remote_rules=len(remote_rules),
                inserted=inserted,
                deleted=deleted,
                forced=force,
            )
            if self.metrics:
                self.metrics.record_sync_result(inserted, deleted, time.monotonic() - started)

        except Exception as e:
            logger.warning("Convert rules synchronization failed", error=str(e), error_type=type(e).__name__)
            # Rows may have changed before the failure
            self.invalidate()
            if self.metrics:
                self.metrics.record_sync_failure(type(e).__name__, time.monotonic() - started)
            self._report(e)

    def _apply_remote_rules(self, remote_rules: List[RemoteConvertRule]) -> tuple[int, int]:
        """
        Insert rules with unknown remote ids and delete rules the server no
        longer publishes. Rules already known by id are left untouched, even
        when their search or replace text differs remotely. Remote rules with
        id 0 are skipped.
        """
        stale = self.repository.remote_ids()
        seen = set()
        inserted = 0

        for remote_rule in remote_rules:
            remote_id = int(remote_rule.id)
            if not remote_id:
                # Id 0 marks local-only rows and is never diffed
                logger.warning("Skipping remote rule without id", search=remote_rule.search)
            elif remote_id in stale:
                stale.discard(remote_id)
                seen.add(remote_id)
            elif remote_id in seen:
                logger.warning("Duplicate remote rule id in payload", remote_id=remote_id)
            else:
                self.repository.insert(remote_id, remote_rule.search, remote_rule.replace)
                seen.add(remote_id)
                inserted += 1

        deleted = 0
        if stale:
            deleted = self.repository.delete_by_remote_ids(stale)

        return inserted, deleted

    def _report(self, exc: Exception) -> None:
        try:
            self.error_reporter.log_fatal_error(describe_exception(exc))
        except Exception as reporter_error:
            # The reporter is the last resort; its own failure only gets logged
            logger.error(
                "Error reporter failed",
                error=str(reporter_error),
                original_error=str(exc),
                exc_info=True,
            )


# Global transformer instance
_transformer: Optional[MessageTransformer] = None


def get_message_transformer(metrics: Optional[MetricsCollector] = None) -> MessageTransformer:
    """Get or create the global message transformer."""
    global _transformer

    if _transformer is None:
        settings = get_settings()
        _transformer = MessageTransformer(
            settings_store=get_settings_store(),
            repository=ConvertMessageRepository(),
            client=get_convert_message_client(),
            error_reporter=get_error_reporter(),
            metrics=metrics,
            sync_interval=settings.remote.sync_interval_seconds,
        )

    return _transformer


def transform_messages(messages: List[str]) -> List[str]:
    """
    Convenience function to transform a list of messages.

    Args:
        messages: Raw log or error messages

    Returns:
        Messages with every convert rule applied
    """
    return get_message_transformer().transform_all(messages)
