"""
SQLite3 비동기 커넥션풀 모듈

aiosqlite 위에서 커넥션풀, 트랜잭션 컨텍스트, aiosql 쿼리 로딩을 제공합니다.
잡 원장(jobs 테이블)처럼 여러 워커 프로세스가 공유하는 저장소는
BEGIN IMMEDIATE 트랜잭션으로 쓰기 락을 먼저 잡고 조회 후 갱신합니다.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite
import aiosql
from aiosql.queries import Queries

from database.base import BaseDatabase
from database.context import set_connection, clear_connection
from database.exception import (
    ConnectionPoolExhaustedError,
    ReadOnlyTransactionError,
)

logger = logging.getLogger(__name__)

_WRITE_KEYWORDS = ('INSERT', 'UPDATE', 'DELETE', 'REPLACE', 'CREATE', 'DROP', 'ALTER')


@dataclass
class PoolConfig:
    """커넥션풀 설정"""
    pool_size: int = 5
    pool_timeout: float = 30.0


@dataclass
class SqliteOptions:
    """연결마다 적용하는 PRAGMA 값"""
    busy_timeout: int = 5000
    journal_mode: str = 'WAL'
    synchronous: str = 'NORMAL'
    cache_size: int = -2000
    foreign_keys: bool = True

    def pragmas(self) -> list[str]:
        return [
            f"PRAGMA busy_timeout={self.busy_timeout}",
            f"PRAGMA journal_mode={self.journal_mode}",
            f"PRAGMA synchronous={self.synchronous}",
            f"PRAGMA cache_size={self.cache_size}",
            f"PRAGMA foreign_keys={'ON' if self.foreign_keys else 'OFF'}",
        ]


def _from_dict(cls, values: dict[str, Any]):
    """설정 dict로 dataclass 생성 (모르는 키는 무시)"""
    names = {f.name for f in fields(cls)}
    return cls(**{key: value for key, value in values.items() if key in names})


@dataclass
class PooledConnection:
    """풀에서 관리되는 연결"""
    connection: aiosqlite.Connection
    in_use: bool = False
    acquired_at: float | None = None


class TransactionContext:
    """트랜잭션 안에서 사용하는 연결 래퍼"""

    def __init__(self, connection: aiosqlite.Connection, readonly: bool = False):
        self._connection = connection
        self._readonly = readonly
        self._active = False

    @property
    def connection(self) -> aiosqlite.Connection:
        """aiosql 쿼리 함수에 넘기는 원본 연결"""
        return self._connection

    @property
    def readonly(self) -> bool:
        return self._readonly

    @property
    def in_transaction(self) -> bool:
        return self._active

    async def begin(self) -> None:
        if self._active:
            logger.warning("Transaction already started")
            return
        # 쓰기 트랜잭션은 시작 시점에 RESERVED 락 획득
        await self._connection.execute("BEGIN DEFERRED" if self._readonly else "BEGIN IMMEDIATE")
        self._active = True
        logger.debug(f"Transaction started (readonly={self._readonly})")

    async def commit(self) -> None:
        if not self._active:
            logger.warning("No active transaction to commit")
            return
        await self._connection.commit()
        self._active = False
        logger.debug("Transaction committed")

    async def rollback(self) -> None:
        if not self._active:
            logger.warning("No active transaction to rollback")
            return
        await self._connection.rollback()
        self._active = False
        logger.debug("Transaction rolled back")

    async def execute(self, sql: str, parameters: Any = None) -> aiosqlite.Cursor:
        """
        SQL 실행

        Raises:
            ReadOnlyTransactionError: readonly 트랜잭션에서 쓰기 쿼리 실행
        """
        if self._readonly and sql.lstrip().upper().startswith(_WRITE_KEYWORDS):
            raise ReadOnlyTransactionError("Cannot execute write query in readonly transaction")

        logger.debug(f"[SQL] {' '.join(sql.split())} | params: {parameters}")
        return await self._connection.execute(sql, parameters or ())

    async def fetch_one(self, sql: str, parameters: Any = None) -> aiosqlite.Row | None:
        cursor = await self.execute(sql, parameters)
        return await cursor.fetchone()

    async def fetch_all(self, sql: str, parameters: Any = None) -> list[aiosqlite.Row]:
        cursor = await self.execute(sql, parameters)
        rows = await cursor.fetchall()
        logger.debug(f"[SQL Result] {len(rows)} row(s)")
        return rows

    async def fetch_val(self, sql: str, parameters: Any = None) -> Any:
        """첫 행의 첫 컬럼"""
        row = await self.fetch_one(sql, parameters)
        return row[0] if row else None


class AsyncConnectionPool:
    """고정 크기 SQLite 커넥션풀 (유휴 연결은 asyncio.Queue로 관리)"""

    def __init__(
        self,
        db_path: str,
        pool_config: PoolConfig | None = None,
        sqlite_options: SqliteOptions | None = None
    ):
        self._db_path = Path(db_path)
        self._pool_config = pool_config or PoolConfig()
        self._sqlite_options = sqlite_options or SqliteOptions()

        self._connections: list[PooledConnection] = []
        self._idle: asyncio.Queue[PooledConnection] = asyncio.Queue()
        self._initialized = False
        self._closed = False

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("Connection pool already initialized")
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(self._pool_config.pool_size):
            pooled_conn = PooledConnection(connection=await self._connect())
            self._connections.append(pooled_conn)
            self._idle.put_nowait(pooled_conn)

        self._initialized = True
        logger.info(
            f"Connection pool initialized: {self._db_path} "
            f"(size={self._pool_config.pool_size}, timeout={self._pool_config.pool_timeout}s)"
        )

    async def _connect(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(
            self._db_path,
            timeout=self._sqlite_options.busy_timeout / 1000.0
        )
        conn.row_factory = aiosqlite.Row
        for pragma in self._sqlite_options.pragmas():
            await conn.execute(pragma)
        return conn

    async def acquire(self, timeout: float | None = None) -> PooledConnection:
        """
        연결 획득

        Raises:
            ConnectionPoolExhaustedError: timeout 안에 연결을 얻지 못한 경우
        """
        if not self._initialized:
            raise RuntimeError("Connection pool not initialized. Call initialize() first.")
        if self._closed:
            raise RuntimeError("Connection pool is closed.")

        timeout = timeout or self._pool_config.pool_timeout
        try:
            pooled_conn = await asyncio.wait_for(self._idle.get(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConnectionPoolExhaustedError(
                f"Connection pool exhausted. Timeout after {timeout}s"
            )

        pooled_conn.in_use = True
        pooled_conn.acquired_at = time.monotonic()
        return pooled_conn

    async def release(self, pooled_conn: PooledConnection) -> None:
        held = time.monotonic() - (pooled_conn.acquired_at or time.monotonic())
        pooled_conn.in_use = False
        pooled_conn.acquired_at = None
        self._idle.put_nowait(pooled_conn)
        logger.debug(f"Connection released after {held:.3f}s. Available: {self.available}/{self.size}")

    async def close(self) -> None:
        self._closed = True
        for pooled_conn in self._connections:
            try:
                await pooled_conn.connection.close()
            except Exception as e:
                logger.error(f"Error closing connection: {e}")
        self._connections.clear()
        logger.info("Connection pool closed")

    @property
    def size(self) -> int:
        return len(self._connections)

    @property
    def available(self) -> int:
        return self._idle.qsize()


class ManagedTransaction:
    """async with 로 사용하는 트랜잭션 (예외 시 롤백, 정상 종료 시 커밋)"""

    def __init__(self, db: 'SQLiteDatabase', readonly: bool = False):
        self._db = db
        self._readonly = readonly
        self._pooled_conn: PooledConnection | None = None
        self._ctx: TransactionContext | None = None

    async def __aenter__(self) -> TransactionContext:
        self._pooled_conn = await self._db.pool.acquire()
        self._ctx = TransactionContext(self._pooled_conn.connection, self._readonly)
        try:
            await self._ctx.begin()
        except BaseException:
            await self._db.pool.release(self._pooled_conn)
            raise

        set_connection(self._db.name, self._ctx)
        return self._ctx

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if exc_type:
                await self._ctx.rollback()
            else:
                await self._ctx.commit()
        finally:
            clear_connection(self._db.name)
            await self._db.pool.release(self._pooled_conn)


class SQLiteDatabase(BaseDatabase):
    """
    SQLite 데이터베이스

    사용 예시:
        db = await SQLiteDatabase.create('default', config)
        queries = db.load_queries('ledger', 'ledger/sql/ledger.sql')

        async with db.transaction() as ctx:
            await queries.insert_job(ctx.connection, id='42', ...)
    """

    def __init__(self, name: str, config: dict[str, Any]):
        super().__init__(name)
        self._config = config
        self._pool: AsyncConnectionPool | None = None
        self._queries: dict[str, Queries] = {}

    @classmethod
    async def create(cls, name: str, config: dict[str, Any]) -> 'SQLiteDatabase':
        instance = cls(name, config)
        await instance._initialize()
        return instance

    async def _initialize(self) -> None:
        self._pool = AsyncConnectionPool(
            db_path=self._config.get('path', f'./data/{self.name}.db'),
            pool_config=_from_dict(PoolConfig, self._config.get('pool', {})),
            sqlite_options=_from_dict(SqliteOptions, self._config.get('options', {}))
        )
        await self._pool.initialize()
        logger.info(f"SQLiteDatabase '{self.name}' initialized successfully")

    def transaction(self, readonly: bool = False) -> ManagedTransaction:
        return ManagedTransaction(self, readonly)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """트랜잭션 없이 풀 연결 대여 (스키마 스크립트 실행용)"""
        pooled_conn = await self.pool.acquire()
        try:
            yield pooled_conn.connection
        finally:
            await self.pool.release(pooled_conn)

    @property
    def pool(self) -> AsyncConnectionPool:
        if self._pool is None:
            raise RuntimeError(f"Database '{self.name}' not initialized")
        return self._pool

    def load_queries(self, name: str, sql_path: str) -> Queries:
        """aiosql로 SQL 파일 로드 (같은 이름은 한 번만 로드)"""
        if name not in self._queries:
            self._queries[name] = aiosql.from_path(sql_path, "aiosqlite")
        return self._queries[name]

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
        logger.info(f"SQLiteDatabase '{self.name}' closed")
