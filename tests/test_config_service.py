"""ConfigurationService cache-aside 协议测试。"""
import json
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from configlog.core.exceptions import InvalidArgumentError, StoreUnavailableError, StoreWriteFailedError
from configlog.models.configuration import Configuration
from configlog.services.config_service import ConfigurationService, config_cache_key
from tests.conftest import selects


async def _seed(db_session, service_name, entries):
    for key, value in entries.items():
        db_session.add(Configuration(service_name=service_name, config_key=key, config_value=value))
    await db_session.commit()


def _db_error():
    return OperationalError("SELECT", {}, Exception("database is down"))


class TestReadPath:
    async def test_miss_populates_cache_and_second_read_skips_store(self, db_session, fake_redis, store_queries):
        entries = {"timeout": "30", "retries": "3", "mode": "fast"}
        await _seed(db_session, "svc-a", entries)
        service = ConfigurationService(db_session, fake_redis)
        store_queries.clear()

        first = await service.get_configuration("svc-a")
        assert first == entries
        assert len(selects(store_queries)) == 1
        assert json.loads(fake_redis._store["config:svc-a"]) == entries
        assert fake_redis.ttls["config:svc-a"] == 300

        store_queries.clear()
        second = await service.get_configuration("svc-a")
        assert second == entries
        assert selects(store_queries) == []

    async def test_unknown_service_caches_empty_map(self, db_session, fake_redis, store_queries):
        service = ConfigurationService(db_session, fake_redis)

        assert await service.get_configuration("ghost") == {}
        assert fake_redis._store[config_cache_key("ghost")] == "{}"

        store_queries.clear()
        assert await service.get_configuration("ghost") == {}
        assert selects(store_queries) == []

    async def test_cache_key_is_namespaced(self):
        assert config_cache_key("svc-a") == "config:svc-a"

    async def test_cache_read_failure_falls_back_to_store(self, db_session, fake_redis, caplog):
        await _seed(db_session, "svc-a", {"timeout": "30"})
        fake_redis.fail_commands.add("get")
        service = ConfigurationService(db_session, fake_redis)

        with caplog.at_level(logging.WARNING):
            assert await service.get_configuration("svc-a") == {"timeout": "30"}
        assert "falling back to store" in caplog.text

    async def test_cache_populate_failure_still_returns_store_data(self, db_session, fake_redis):
        await _seed(db_session, "svc-a", {"timeout": "30"})
        fake_redis.fail_commands.add("set")
        service = ConfigurationService(db_session, fake_redis)

        assert await service.get_configuration("svc-a") == {"timeout": "30"}
        assert "config:svc-a" not in fake_redis._store

    async def test_undecodable_cache_entry_is_treated_as_miss(self, db_session, fake_redis):
        await _seed(db_session, "svc-a", {"timeout": "30"})
        fake_redis._store["config:svc-a"] = "not-json{"
        service = ConfigurationService(db_session, fake_redis)

        assert await service.get_configuration("svc-a") == {"timeout": "30"}
        assert json.loads(fake_redis._store["config:svc-a"]) == {"timeout": "30"}

    async def test_store_failure_raises_store_unavailable(self, db_session, fake_redis):
        service = ConfigurationService(db_session, fake_redis)
        with patch.object(db_session, "execute", AsyncMock(side_effect=_db_error())):
            with pytest.raises(StoreUnavailableError):
                await service.get_configuration("svc-a")
        assert "config:svc-a" not in fake_redis._store

    @pytest.mark.parametrize("error", [
        ConnectionRefusedError(111, "Connect call failed ('127.0.0.1', 5432)"),
        TimeoutError(),
    ])
    async def test_driver_level_failure_raises_store_unavailable(self, db_session, fake_redis, error):
        """asyncpg 的连接拒绝和语句超时不经 SQLAlchemy 包装，同样映射为 store_unavailable"""
        service = ConfigurationService(db_session, fake_redis)
        with patch.object(db_session, "execute", AsyncMock(side_effect=error)):
            with pytest.raises(StoreUnavailableError):
                await service.get_configuration("svc-a")
        assert "config:svc-a" not in fake_redis._store

    async def test_duplicate_keys_fold_last_row_wins(self, fake_redis):
        result = MagicMock()
        result.all.return_value = [("timeout", "30"), ("timeout", "60"), ("mode", "x")]
        db = MagicMock()
        db.execute = AsyncMock(return_value=result)
        service = ConfigurationService(db, fake_redis)

        assert await service.get_configuration("svc-a") == {"timeout": "60", "mode": "x"}

    async def test_empty_service_name_rejected(self, db_session, fake_redis):
        service = ConfigurationService(db_session, fake_redis)
        with pytest.raises(InvalidArgumentError):
            await service.get_configuration("")
        assert fake_redis.calls == []


class TestWritePath:
    async def test_set_then_get_reflects_latest_value(self, db_session, fake_redis):
        service = ConfigurationService(db_session, fake_redis)

        await service.set_configuration("svc-a", "timeout", "30")
        assert await service.get_configuration("svc-a") == {"timeout": "30"}

        await service.set_configuration("svc-a", "timeout", "60")
        assert await service.get_configuration("svc-a") == {"timeout": "60"}

    async def test_upsert_keeps_one_row_per_key(self, db_session, fake_redis):
        service = ConfigurationService(db_session, fake_redis)
        await service.set_configuration("svc-a", "timeout", "30")
        await service.set_configuration("svc-a", "timeout", "60")

        count = (await db_session.execute(select(func.count(Configuration.id)))).scalar()
        assert count == 1

    async def test_set_invalidates_whole_map(self, db_session, fake_redis):
        service = ConfigurationService(db_session, fake_redis)
        await service.set_configuration("svc-a", "timeout", "30")
        await service.get_configuration("svc-a")
        assert "config:svc-a" in fake_redis._store

        await service.set_configuration("svc-a", "retries", "5")
        assert "config:svc-a" not in fake_redis._store
        assert ("delete", "config:svc-a") in fake_redis.calls

    @pytest.mark.parametrize("key,value", [(None, "1"), ("", "1"), ("k", None), ("k", "")])
    async def test_missing_key_or_value_rejected_before_io(self, db_session, fake_redis, store_queries, key, value):
        service = ConfigurationService(db_session, fake_redis)
        store_queries.clear()

        with pytest.raises(InvalidArgumentError):
            await service.set_configuration("svc-a", key, value)
        assert store_queries == []
        assert fake_redis.calls == []

    async def test_store_write_failure_leaves_cache_untouched(self, db_session, fake_redis):
        service = ConfigurationService(db_session, fake_redis)
        await service.set_configuration("svc-a", "timeout", "30")
        await service.get_configuration("svc-a")
        fake_redis.calls.clear()

        with patch.object(db_session, "commit", AsyncMock(side_effect=_db_error())):
            with pytest.raises(StoreWriteFailedError):
                await service.set_configuration("svc-a", "timeout", "60")

        assert fake_redis.mutations() == []
        assert json.loads(fake_redis._store["config:svc-a"]) == {"timeout": "30"}

    @pytest.mark.parametrize("error", [ConnectionRefusedError(111, "Connect call failed"), TimeoutError()])
    async def test_driver_level_write_failure_rolls_back(self, db_session, fake_redis, error):
        service = ConfigurationService(db_session, fake_redis)
        rollback = AsyncMock()
        with patch.object(db_session, "execute", AsyncMock(side_effect=error)), \
                patch.object(db_session, "rollback", rollback):
            with pytest.raises(StoreWriteFailedError):
                await service.set_configuration("svc-a", "timeout", "60")

        rollback.assert_awaited_once()
        assert fake_redis.mutations() == []

    async def test_rollback_failure_on_dead_connection_keeps_write_error(self, db_session, fake_redis, caplog):
        service = ConfigurationService(db_session, fake_redis)
        with patch.object(db_session, "execute", AsyncMock(side_effect=ConnectionResetError())), \
                patch.object(db_session, "rollback", AsyncMock(side_effect=ConnectionResetError())):
            with caplog.at_level(logging.WARNING):
                with pytest.raises(StoreWriteFailedError):
                    await service.set_configuration("svc-a", "timeout", "60")
        assert "Session rollback failed" in caplog.text

    async def test_invalidation_failure_is_fail_open(self, db_session, fake_redis, caplog):
        service = ConfigurationService(db_session, fake_redis)
        await service.set_configuration("svc-a", "timeout", "30")
        await service.get_configuration("svc-a")
        fake_redis.fail_commands.add("delete")

        with caplog.at_level(logging.ERROR):
            await service.set_configuration("svc-a", "timeout", "60")
        assert "Cache invalidation failed" in caplog.text

        row = (await db_session.execute(
            select(Configuration.config_value).where(Configuration.config_key == "timeout")
        )).scalar_one()
        assert row == "60"
        # 旧映射保留到 TTL 过期
        assert await service.get_configuration("svc-a") == {"timeout": "30"}
        fake_redis.expire_now("config:svc-a")
        assert await service.get_configuration("svc-a") == {"timeout": "60"}


class TestDeletePath:
    async def test_delete_removes_key_and_invalidates(self, db_session, fake_redis):
        service = ConfigurationService(db_session, fake_redis)
        await service.set_configuration("svc-a", "timeout", "30")
        await service.set_configuration("svc-a", "mode", "fast")
        await service.get_configuration("svc-a")

        await service.delete_configuration("svc-a", "timeout")
        assert "config:svc-a" not in fake_redis._store
        assert await service.get_configuration("svc-a") == {"mode": "fast"}

    async def test_delete_nonexistent_key_is_noop(self, db_session, fake_redis):
        service = ConfigurationService(db_session, fake_redis)
        await service.set_configuration("svc-a", "timeout", "30")
        before = await service.get_configuration("svc-a")

        await service.delete_configuration("svc-a", "missing")
        await service.delete_configuration("never-seen", "missing")

        assert await service.get_configuration("svc-a") == before
        count = (await db_session.execute(select(func.count(Configuration.id)))).scalar()
        assert count == 1

    async def test_delete_store_failure(self, db_session, fake_redis):
        service = ConfigurationService(db_session, fake_redis)
        with patch.object(db_session, "commit", AsyncMock(side_effect=_db_error())):
            with pytest.raises(StoreWriteFailedError):
                await service.delete_configuration("svc-a", "timeout")
        assert fake_redis.mutations() == []


class TestListing:
    async def test_list_is_ordered_and_bypasses_cache(self, db_session, fake_redis):
        service = ConfigurationService(db_session, fake_redis)
        await service.set_configuration("svc-b", "z", "1")
        await service.set_configuration("svc-a", "y", "2")
        await service.set_configuration("svc-a", "x", "3")
        fake_redis.calls.clear()

        rows = await service.list_configurations()
        assert [(r.service_name, r.config_key) for r in rows] == [
            ("svc-a", "x"), ("svc-a", "y"), ("svc-b", "z"),
        ]
        assert fake_redis.calls == []


class TestAcceptedRaces:
    async def test_reader_racing_writer_caches_stale_map_until_next_write(self, db_session, fake_redis):
        """读者先读库、写者 upsert+失效、读者再回填：旧映射被缓存，下一次写入自愈。"""
        writer = ConfigurationService(db_session, fake_redis)
        reader = ConfigurationService(db_session, fake_redis)
        await writer.set_configuration("svc-a", "timeout", "30")

        original_set = fake_redis.set
        raced = False

        async def set_after_concurrent_write(key, value, ex=None, **kwargs):
            nonlocal raced
            if not raced:
                raced = True
                await writer.set_configuration("svc-a", "timeout", "60")
            return await original_set(key, value, ex=ex, **kwargs)

        fake_redis.set = set_after_concurrent_write
        assert await reader.get_configuration("svc-a") == {"timeout": "30"}
        fake_redis.set = original_set

        # 陈旧窗口：缓存仍是写入前快照
        assert await reader.get_configuration("svc-a") == {"timeout": "30"}

        await writer.set_configuration("svc-a", "retries", "5")
        assert await reader.get_configuration("svc-a") == {"timeout": "60", "retries": "5"}

    async def test_first_write_race_caches_empty_map_for_one_ttl(self, db_session, fake_redis):
        writer = ConfigurationService(db_session, fake_redis)
        reader = ConfigurationService(db_session, fake_redis)

        original_set = fake_redis.set
        raced = False

        async def set_after_first_write(key, value, ex=None, **kwargs):
            nonlocal raced
            if not raced:
                raced = True
                await writer.set_configuration("svc-new", "timeout", "30")
            return await original_set(key, value, ex=ex, **kwargs)

        fake_redis.set = set_after_first_write
        assert await reader.get_configuration("svc-new") == {}
        fake_redis.set = original_set

        assert await reader.get_configuration("svc-new") == {}
        assert fake_redis.ttls["config:svc-new"] == 300

        fake_redis.expire_now("config:svc-new")
        assert await reader.get_configuration("svc-new") == {"timeout": "30"}
