"""
비동기 데이터베이스 패키지

사용 예시:
    from database import transactional, get_connection
    from database.registry import DatabaseRegistry

    await DatabaseRegistry.init_from_config(config)

    @transactional
    async def create_job(job_data):
        ctx = get_connection()
        await ctx.execute("INSERT INTO ...")

    @transactional_readonly('reporting')
    async def count_jobs():
        ctx = get_connection('reporting')
        return await ctx.fetch_val("SELECT COUNT(*) FROM jobs")
"""

import functools
from typing import Any, Callable

from database.base import BaseDatabase
from database.context import peek_connection
from database.exception import (
    DatabaseError,
    DatabaseNotFoundError,
    ConnectionPoolExhaustedError,
    ReadOnlyTransactionError,
    TransactionError,
)
from database.registry import DatabaseRegistry

__all__ = [
    'transactional',
    'transactional_readonly',
    'get_connection',
    'get_db',
    'DatabaseError',
    'DatabaseNotFoundError',
    'ConnectionPoolExhaustedError',
    'ReadOnlyTransactionError',
    'TransactionError',
]


def get_db(name: str = 'default') -> BaseDatabase:
    """등록된 데이터베이스 반환"""
    return DatabaseRegistry.get(name)


def get_connection(name: str = 'default') -> Any:
    """
    현재 태스크의 트랜잭션 컨텍스트 반환

    Raises:
        TransactionError: 트랜잭션 밖에서 호출한 경우
    """
    ctx = peek_connection(name)
    if ctx is None:
        raise TransactionError(f"No active transaction for database '{name}'")
    return ctx


def _resolve(target: BaseDatabase | str | None) -> BaseDatabase:
    if isinstance(target, BaseDatabase):
        return target
    return DatabaseRegistry.get(target or 'default')


def _make_decorator(target: BaseDatabase | str | None, readonly: bool) -> Callable:
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            db = _resolve(target)
            # 이미 같은 DB의 트랜잭션 안이면 참여
            if peek_connection(db.name) is not None:
                return await func(*args, **kwargs)
            async with db.transaction(readonly=readonly):
                return await func(*args, **kwargs)
        return wrapper
    return decorator


def transactional(target: Any = None):
    """
    쓰기 트랜잭션 데코레이터

    @transactional, @transactional(db), @transactional('name') 모두 지원
    """
    if callable(target) and not isinstance(target, BaseDatabase):
        return _make_decorator(None, readonly=False)(target)
    return _make_decorator(target, readonly=False)


def transactional_readonly(target: Any = None):
    """읽기 전용 트랜잭션 데코레이터"""
    if callable(target) and not isinstance(target, BaseDatabase):
        return _make_decorator(None, readonly=True)(target)
    return _make_decorator(target, readonly=True)
