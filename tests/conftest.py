"""
configlog 测试基础配置

提供 SQLite in-memory 异步数据库、内存级 FakeRedis、FastAPI 异步测试客户端等通用 fixture。
所有测试使用隔离的 SQLite 数据库，不依赖外部 PostgreSQL/Redis。
"""
import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import BigInteger, event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

# 必须在导入应用之前设置环境变量，避免真实连接
os.environ["POSTGRES_HOST"] = "localhost"
os.environ["REDIS_HOST"] = "localhost"
os.environ["LOG_LEVEL"] = "WARNING"

from configlog.core.database import Base, get_db
import configlog.core.redis as redis_module
from configlog.core.redis import get_redis


# ── SQLite 异步引擎 ──────────────────────────────────────────────────
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
TestingSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# SQLite 不支持 BigInteger autoincrement，编译时替换为 Integer
@compiles(BigInteger, "sqlite")
def compile_big_int_sqlite(type_, compiler, **kw):
    return "INTEGER"


# ── Mock Redis ────────────────────────────────────────────────────────
class FakeRedis:
    """
    内存级 Redis 模拟，支持字符串与列表命令，并记录 TTL 和调用序列。

    fail_commands 中列出的命令会抛出 redis ConnectionError，用于注入缓存故障。
    """

    def __init__(self):
        self._store: dict[str, str] = {}
        self._lists: dict[str, list[str]] = {}
        self.ttls: dict[str, int] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_commands: set[str] = set()

    def _record(self, command: str, key: str = "") -> None:
        self.calls.append((command, key))
        if command in self.fail_commands:
            raise RedisConnectionError(f"simulated failure on {command}")

    def mutations(self) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] in ("set", "delete", "lpush", "ltrim", "expire")]

    def expire_now(self, key: str) -> None:
        """模拟 TTL 到期。"""
        self._store.pop(key, None)
        self._lists.pop(key, None)
        self.ttls.pop(key, None)

    async def get(self, key: str) -> str | None:
        self._record("get", key)
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None, **kwargs) -> bool:
        self._record("set", key)
        self._store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        else:
            self.ttls.pop(key, None)
        return True

    async def delete(self, *keys: str) -> int:
        self._record("delete", ",".join(keys))
        removed = 0
        for k in keys:
            if self._store.pop(k, None) is not None or self._lists.pop(k, None) is not None:
                removed += 1
            self.ttls.pop(k, None)
        return removed

    async def lpush(self, key: str, *values: str) -> int:
        self._record("lpush", key)
        items = self._lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def ltrim(self, key: str, start: int, end: int) -> bool:
        self._record("ltrim", key)
        items = self._lists.get(key)
        if items is None:
            return True
        stop = None if end == -1 else end + 1
        trimmed = items[start:stop]
        if trimmed:
            self._lists[key] = trimmed
        else:
            self._lists.pop(key, None)
        return True

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        self._record("lrange", key)
        items = self._lists.get(key, [])
        stop = None if end == -1 else end + 1
        return list(items[start:stop])

    async def expire(self, key: str, time: int) -> bool:
        self._record("expire", key)
        if key in self._store or key in self._lists:
            self.ttls[key] = time
            return True
        return False

    async def ping(self) -> bool:
        self._record("ping")
        return True

    async def aclose(self) -> None:
        pass

    async def close(self) -> None:
        pass


# ── Fixtures ──────────────────────────────────────────────────────────

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """每个测试前创建所有表，测试后清空。"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """提供一个干净的数据库会话。"""
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def fake_redis() -> FakeRedis:
    """每个测试独立的 FakeRedis。"""
    return FakeRedis()


@pytest.fixture
def store_queries():
    """记录测试期间发往数据库的 SQL 语句。"""
    statements: list[str] = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine.sync_engine, "before_cursor_execute", _record)
    yield statements
    event.remove(engine.sync_engine, "before_cursor_execute", _record)


def selects(statements: list[str]) -> list[str]:
    return [s for s in statements if s.lstrip().upper().startswith("SELECT")]


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, fake_redis: FakeRedis) -> AsyncGenerator[AsyncClient, None]:
    """提供配置好依赖覆盖的异步 HTTP 测试客户端。"""
    from configlog.main import app

    async def override_get_db():
        yield db_session

    async def override_get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    original_redis_client = redis_module.redis_client
    redis_module.redis_client = fake_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    redis_module.redis_client = original_redis_client
