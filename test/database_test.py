"""
SQLite 데이터베이스 테스트

테스트 항목:
1. 커넥션 풀 테스트
2. 트랜잭션 테스트 (데코레이터, 수동)
3. readOnly 모드 테스트
4. 커넥션 풀 소진 테스트 (타임아웃)
5. 레지스트리 테스트
6. 동시 트랜잭션 테스트

실행: python -m pytest test/database_test.py -v
"""

import asyncio
import logging
import sys
from pathlib import Path

import pytest
import pytest_asyncio

sys.path.insert(0, str(Path(__file__).parent.parent))

from database import (
    transactional,
    transactional_readonly,
    get_connection,
    get_db,
    ConnectionPoolExhaustedError,
    DatabaseNotFoundError,
    ReadOnlyTransactionError,
    TransactionError,
)
from database.registry import DatabaseRegistry

logger = logging.getLogger(__name__)


@pytest_asyncio.fixture
async def items_db(database):
    """items 테이블이 있는 DB"""
    async with database.transaction() as ctx:
        await ctx.execute("CREATE TABLE IF NOT EXISTS items (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")
    return database


class TestConnectionPool:
    """커넥션 풀 관련 테스트"""

    @pytest.mark.asyncio
    async def test_pool_initialization(self, database):
        """커넥션 풀 초기화 테스트"""
        pool = database.pool
        assert pool.size == 3
        assert pool.available == 3

    @pytest.mark.asyncio
    async def test_connection_acquire_release(self, database):
        """커넥션 획득/반환 테스트"""
        pool = database.pool

        conn = await pool.acquire()
        assert pool.available == 2
        assert conn.in_use is True

        await pool.release(conn)
        assert pool.available == 3
        assert conn.in_use is False

    @pytest.mark.asyncio
    async def test_pool_exhaustion_timeout(self, database):
        """커넥션 풀 소진 시 타임아웃"""
        pool = database.pool
        connections = [await pool.acquire() for _ in range(3)]
        assert pool.available == 0

        with pytest.raises(ConnectionPoolExhaustedError):
            await pool.acquire(timeout=0.5)

        for conn in connections:
            await pool.release(conn)

    @pytest.mark.asyncio
    async def test_pool_wait_and_acquire(self, database):
        """커넥션 반환 대기 후 획득"""
        pool = database.pool
        connections = [await pool.acquire() for _ in range(3)]

        async def release_after_delay():
            await asyncio.sleep(0.2)
            await pool.release(connections[0])

        release_task = asyncio.create_task(release_after_delay())
        new_conn = await pool.acquire(timeout=2.0)
        assert new_conn is not None

        await release_task
        await pool.release(new_conn)
        for conn in connections[1:]:
            await pool.release(conn)


class TestTransaction:
    """트랜잭션 테스트"""

    @pytest.mark.asyncio
    async def test_transactional_decorator_commit(self, items_db):
        """트랜잭션 데코레이터 커밋"""
        @transactional(items_db)
        async def insert_item():
            ctx = get_connection('default')
            await ctx.execute("INSERT INTO items (name) VALUES (?)", ("committed",))

        await insert_item()

        @transactional_readonly
        async def find_item():
            ctx = get_connection()
            return await ctx.fetch_one("SELECT * FROM items WHERE name = ?", ("committed",))

        row = await find_item()
        assert row is not None
        assert row['name'] == "committed"

    @pytest.mark.asyncio
    async def test_transactional_decorator_rollback(self, items_db):
        """예외 발생 시 롤백"""
        @transactional('default')
        async def insert_and_fail():
            ctx = get_connection()
            await ctx.execute("INSERT INTO items (name) VALUES (?)", ("rolled_back",))
            raise ValueError("Intentional error for rollback test")

        with pytest.raises(ValueError):
            await insert_and_fail()

        async with items_db.transaction(readonly=True) as ctx:
            count = await ctx.fetch_val("SELECT COUNT(*) FROM items WHERE name = ?", ("rolled_back",))
        assert count == 0

    @pytest.mark.asyncio
    async def test_nested_decorator_joins_transaction(self, items_db):
        """이미 열린 트랜잭션 안에서는 같은 연결을 사용"""
        @transactional
        async def inner():
            return get_connection()

        @transactional
        async def outer():
            return get_connection(), await inner()

        outer_ctx, inner_ctx = await outer()
        assert outer_ctx is inner_ctx

    @pytest.mark.asyncio
    async def test_manual_transaction_rollback(self, items_db):
        """async with 블록에서 예외 발생 시 롤백"""
        with pytest.raises(ValueError):
            async with items_db.transaction() as ctx:
                await ctx.execute("INSERT INTO items (name) VALUES (?)", ("manual",))
                raise ValueError("Force rollback")

        async with items_db.transaction(readonly=True) as ctx:
            rows = await ctx.fetch_all("SELECT * FROM items")
        assert rows == []

    @pytest.mark.asyncio
    async def test_get_connection_outside_transaction(self, database):
        """트랜잭션 밖에서 get_connection() 호출 시 TransactionError"""
        with pytest.raises(TransactionError):
            get_connection()


class TestReadOnlyTransaction:
    """읽기 전용 트랜잭션 테스트"""

    @pytest.mark.asyncio
    async def test_readonly_write_blocked(self, items_db):
        """읽기 전용 모드에서 쓰기 차단"""
        @transactional_readonly(items_db)
        async def try_write():
            ctx = get_connection()
            await ctx.execute("INSERT INTO items (name) VALUES (?)", ("readonly",))

        with pytest.raises(ReadOnlyTransactionError):
            await try_write()


class TestRegistry:
    """DatabaseRegistry 테스트"""

    @pytest.mark.asyncio
    async def test_get_db_function(self, database):
        """get_db()는 등록된 인스턴스 반환"""
        assert get_db('default') is database
        assert DatabaseRegistry.names() == ['default']

    @pytest.mark.asyncio
    async def test_unknown_database(self, database):
        """등록되지 않은 이름은 DatabaseNotFoundError"""
        with pytest.raises(DatabaseNotFoundError):
            get_db('reporting')

    @pytest.mark.asyncio
    async def test_init_unknown_name(self, database):
        """설정에 없는 DB 초기화 요청"""
        with pytest.raises(DatabaseNotFoundError):
            await DatabaseRegistry.init_from_config({'databases': {}}, ['missing'])


class TestConcurrency:
    """동시성 테스트"""

    @pytest.mark.asyncio
    async def test_concurrent_transactions(self, items_db):
        """동시 쓰기 트랜잭션"""
        @transactional(items_db)
        async def insert(name: str):
            ctx = get_connection()
            await ctx.execute("INSERT INTO items (name) VALUES (?)", (name,))

        await asyncio.gather(*(insert(f"concurrent_{i}") for i in range(5)))

        async with items_db.transaction(readonly=True) as ctx:
            count = await ctx.fetch_val("SELECT COUNT(*) FROM items WHERE name LIKE ?", ("concurrent_%",))
        assert count == 5
