"""
Tests for convert rule synchronization.

The remote server is an AsyncMock; the local table is a real in-memory
SQLite database.
"""

import threading
from typing import Dict, List
from unittest.mock import AsyncMock, Mock, patch

import pytest

from collectlogs.core.client import ConvertMessageClient
from collectlogs.core.exceptions import StorageError, SynchronizationError
from collectlogs.core.repository import ConvertMessageRepository
from collectlogs.core.settings_store import SettingsStore
from collectlogs.core.transformer import SYNC_INTERVAL, MessageTransformer
from collectlogs.models.remote import RemoteConvertRule


def remote_rules(*rules: Dict) -> List[RemoteConvertRule]:
    return [RemoteConvertRule.model_validate(rule) for rule in rules]


def rule(remote_id: int, search: str = "/a/", replace: str = "b") -> Dict:
    return {"id": remote_id, "search": search, "replace": replace}


def stored(repository: ConvertMessageRepository) -> Dict[int, tuple]:
    return {r.remote_id: (r.search, r.replace) for r in repository.list_rules()}


class TestDiff:
    """Reconciling the local table with the remote set."""

    @pytest.mark.asyncio
    async def test_insert_new_and_delete_stale(
        self, transformer: MessageTransformer, repository: ConvertMessageRepository, remote_client: Mock
    ) -> None:
        """Local {1,2,3} against remote {2,3,4} ends as {2,3,4}; 2 and 3 keep their text."""
        for remote_id in (1, 2, 3):
            repository.insert(remote_id, f"/old{remote_id}/", f"old{remote_id}")

        remote_client.fetch_rules.return_value = remote_rules(
            rule(2, "/new2/", "new2"),
            rule(3, "/new3/", "new3"),
            rule(4, "/new4/", "new4"),
        )

        await transformer.synchronize(force=True)

        assert stored(repository) == {
            2: ("/old2/", "old2"),
            3: ("/old3/", "old3"),
            4: ("/new4/", "new4"),
        }

    @pytest.mark.asyncio
    async def test_first_sync_keeps_payload_order(
        self, transformer: MessageTransformer, repository: ConvertMessageRepository, remote_client: Mock
    ) -> None:
        remote_client.fetch_rules.return_value = remote_rules(rule(30), rule(10), rule(20))

        await transformer.synchronize(force=True)

        assert [r.remote_id for r in repository.list_rules()] == [30, 10, 20]

    @pytest.mark.asyncio
    async def test_empty_payload_deletes_everything(
        self, transformer: MessageTransformer, repository: ConvertMessageRepository, remote_client: Mock
    ) -> None:
        repository.insert(1, "/a/", "b")
        repository.insert(2, "/c/", "d")
        remote_client.fetch_rules.return_value = []

        await transformer.synchronize(force=True)

        assert repository.list_rules() == []

    @pytest.mark.asyncio
    async def test_rows_without_remote_id_survive(
        self, transformer: MessageTransformer, repository: ConvertMessageRepository, remote_client: Mock
    ) -> None:
        repository.insert(0, "/local/", "kept")
        remote_client.fetch_rules.return_value = remote_rules(rule(5))

        await transformer.synchronize(force=True)

        assert sorted(stored(repository)) == [0, 5]

    @pytest.mark.asyncio
    async def test_remote_rule_with_id_zero_skipped(
        self, transformer: MessageTransformer, repository: ConvertMessageRepository, remote_client: Mock
    ) -> None:
        remote_client.fetch_rules.return_value = remote_rules(rule(0, "/zero/"), rule(1, "/one/"))

        await transformer.synchronize(force=True)
        await transformer.synchronize(force=True)

        assert [(r.remote_id, r.search) for r in repository.list_rules()] == [(1, "/one/")]
        assert remote_client.fetch_rules.await_count == 2

    @pytest.mark.asyncio
    async def test_table_work_runs_off_the_event_loop(
        self,
        settings_store: SettingsStore,
        remote_client: Mock,
        error_reporter: Mock,
    ) -> None:
        loop_thread = threading.get_ident()
        repository = Mock(spec=ConvertMessageRepository)
        repository.remote_ids.side_effect = lambda: {threading.get_ident()}
        repository.delete_by_remote_ids.return_value = 1
        transformer = MessageTransformer(settings_store, repository, remote_client, error_reporter)

        await transformer.synchronize(force=True)

        stale_ids = repository.delete_by_remote_ids.call_args.args[0]
        assert loop_thread not in stale_ids
        error_reporter.log_fatal_error.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_id_inserted_once(
        self, transformer: MessageTransformer, repository: ConvertMessageRepository, remote_client: Mock
    ) -> None:
        remote_client.fetch_rules.return_value = remote_rules(rule(7, "/first/"), rule(7, "/second/"))

        await transformer.synchronize(force=True)

        rules = repository.list_rules()
        assert len(rules) == 1
        assert rules[0].search == "/first/"

    @pytest.mark.asyncio
    async def test_unchanged_set_is_a_no_op(
        self, transformer: MessageTransformer, repository: ConvertMessageRepository, remote_client: Mock
    ) -> None:
        repository.insert(1, "/a/", "b")
        before = repository.list_rules()
        remote_client.fetch_rules.return_value = remote_rules(rule(1, "/changed/", "changed"))

        await transformer.synchronize(force=True)

        assert repository.list_rules() == before


class TestThrottle:
    """At most one fetch per sync interval."""

    @pytest.mark.asyncio
    async def test_second_call_within_interval_skipped(
        self, transformer: MessageTransformer, remote_client: Mock
    ) -> None:
        with patch("time.time", return_value=1_700_000_000):
            await transformer.synchronize()
            await transformer.synchronize()

        with patch("time.time", return_value=1_700_000_000 + SYNC_INTERVAL - 1):
            await transformer.synchronize()

        remote_client.fetch_rules.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_runs_again_after_interval(
        self, transformer: MessageTransformer, remote_client: Mock
    ) -> None:
        with patch("time.time", return_value=1_700_000_000):
            await transformer.synchronize()

        with patch("time.time", return_value=1_700_000_000 + SYNC_INTERVAL):
            await transformer.synchronize()

        assert remote_client.fetch_rules.await_count == 2

    @pytest.mark.asyncio
    async def test_force_bypasses_throttle(
        self, transformer: MessageTransformer, settings_store: SettingsStore, remote_client: Mock
    ) -> None:
        settings_store.update_last_sync(1_700_000_000)

        with patch("time.time", return_value=1_700_000_010):
            await transformer.synchronize()
            await transformer.synchronize(force=True)

        remote_client.fetch_rules.assert_awaited_once()
        assert settings_store.get_last_sync() == 1_700_000_010

    @pytest.mark.asyncio
    async def test_custom_interval(
        self,
        settings_store: SettingsStore,
        repository: ConvertMessageRepository,
        remote_client: Mock,
        error_reporter: Mock,
    ) -> None:
        transformer = MessageTransformer(settings_store, repository, remote_client, error_reporter, sync_interval=60)

        with patch("time.time", return_value=1_700_000_000):
            await transformer.synchronize()
        with patch("time.time", return_value=1_700_000_060):
            await transformer.synchronize()

        assert remote_client.fetch_rules.await_count == 2


class TestFailures:
    """Failures are reported, never raised."""

    @pytest.mark.asyncio
    async def test_failure_payload_reported(
        self,
        transformer: MessageTransformer,
        repository: ConvertMessageRepository,
        remote_client: Mock,
        error_reporter: Mock,
    ) -> None:
        repository.insert(1, "/a/", "b")
        body = '{"success": false, "error": "boom"}'
        remote_client.fetch_rules = AsyncMock(side_effect=lambda: ConvertMessageClient.parse_response(body))

        await transformer.synchronize(force=True)

        assert stored(repository) == {1: ("/a/", "b")}
        error_reporter.log_fatal_error.assert_called_once()
        description = error_reporter.log_fatal_error.call_args.args[0]
        assert description["type"] == "SynchronizationError"
        assert "boom" in description["message"]
        assert description["error_code"] == "synchronization_error"

    @pytest.mark.asyncio
    async def test_attempt_recorded_even_on_failure(
        self, transformer: MessageTransformer, settings_store: SettingsStore, remote_client: Mock
    ) -> None:
        remote_client.fetch_rules.side_effect = SynchronizationError("Request failed")

        with patch("time.time", return_value=1_700_000_000):
            await transformer.synchronize()
            await transformer.synchronize()

        assert settings_store.get_last_sync() == 1_700_000_000
        remote_client.fetch_rules.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_storage_failure_reported(
        self,
        settings_store: SettingsStore,
        remote_client: Mock,
        error_reporter: Mock,
    ) -> None:
        repository = Mock(spec=ConvertMessageRepository)
        repository.remote_ids.side_effect = StorageError("Failed to load remote rule ids")
        transformer = MessageTransformer(settings_store, repository, remote_client, error_reporter)

        await transformer.synchronize(force=True)

        description = error_reporter.log_fatal_error.call_args.args[0]
        assert description["error_code"] == "storage_error"

    @pytest.mark.asyncio
    async def test_unexpected_error_reported(
        self, transformer: MessageTransformer, remote_client: Mock, error_reporter: Mock
    ) -> None:
        remote_client.fetch_rules.side_effect = RuntimeError("unexpected")

        await transformer.synchronize(force=True)

        description = error_reporter.log_fatal_error.call_args.args[0]
        assert description["type"] == "RuntimeError"
        assert description["trace"]

    @pytest.mark.asyncio
    async def test_failing_reporter_does_not_raise(
        self, transformer: MessageTransformer, remote_client: Mock, error_reporter: Mock
    ) -> None:
        remote_client.fetch_rules.side_effect = SynchronizationError("down")
        error_reporter.log_fatal_error.side_effect = RuntimeError("reporter down")

        await transformer.synchronize(force=True)

        error_reporter.log_fatal_error.assert_called_once()


class TestCache:
    """In-memory rules follow the table after a sync."""

    @pytest.mark.asyncio
    async def test_cache_invalidated_after_change(
        self, transformer: MessageTransformer, repository: ConvertMessageRepository, remote_client: Mock
    ) -> None:
        assert transformer.transform("apple") == "apple"

        remote_client.fetch_rules.return_value = remote_rules(rule(1, "/apple/", "pear"))
        await transformer.synchronize(force=True)

        assert transformer.transform("apple") == "pear"

    @pytest.mark.asyncio
    async def test_cache_invalidated_after_failure(
        self, transformer: MessageTransformer, repository: ConvertMessageRepository, remote_client: Mock
    ) -> None:
        assert transformer.get_rules() == []
        repository.insert(1, "/x/", "y")
        remote_client.fetch_rules.side_effect = SynchronizationError("down")

        await transformer.synchronize(force=True)

        assert len(transformer.get_rules()) == 1

    @pytest.mark.asyncio
    async def test_metrics_recorded(
        self, transformer: MessageTransformer, remote_client: Mock
    ) -> None:
        remote_client.fetch_rules.return_value = remote_rules(rule(1), rule(2))

        await transformer.synchronize(force=True)

        registry = transformer.metrics.registry
        assert registry.get_sample_value("convert_rules_sync_attempts_total") == 1
        assert registry.get_sample_value("convert_rules_inserted_total") == 2
