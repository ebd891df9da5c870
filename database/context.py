"""
현재 태스크의 트랜잭션 컨텍스트 보관

contextvars를 사용하므로 asyncio 태스크마다 독립적인 연결을 가집니다.
"""

from contextvars import ContextVar
from typing import Any

_connections: ContextVar[dict[str, Any] | None] = ContextVar('db_connections', default=None)


def set_connection(name: str, ctx: Any) -> None:
    """DB 이름에 트랜잭션 컨텍스트 바인딩"""
    current = dict(_connections.get() or {})
    current[name] = ctx
    _connections.set(current)


def clear_connection(name: str) -> None:
    """DB 이름의 바인딩 해제"""
    current = dict(_connections.get() or {})
    current.pop(name, None)
    _connections.set(current)


def peek_connection(name: str) -> Any | None:
    """바인딩된 컨텍스트 조회 (없으면 None)"""
    return (_connections.get() or {}).get(name)
