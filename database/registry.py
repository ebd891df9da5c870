"""
DatabaseRegistry: 이름 기반 데이터베이스 레지스트리

database.yaml 예시:
    databases:
      default:
        type: sqlite
        path: ./data/offload.db
        pool:
          pool_size: 5
"""

import logging
from typing import Any

from database.base import BaseDatabase
from database.exception import DatabaseError, DatabaseNotFoundError

logger = logging.getLogger(__name__)


class DatabaseRegistry:
    """프로세스 단위 데이터베이스 레지스트리"""

    _databases: dict[str, BaseDatabase] = {}

    @classmethod
    async def init_from_config(cls, config: dict[str, Any], names: list[str] | None = None) -> None:
        """
        설정에서 데이터베이스 초기화

        Args:
            config: databases 키를 포함한 설정 dict
            names: 초기화할 DB 이름 목록 (None이면 전체)
        """
        databases = config.get('databases', {})
        targets = names or list(databases.keys())

        for name in targets:
            if name in cls._databases:
                continue
            if name not in databases:
                raise DatabaseNotFoundError(name)

            db_config = databases[name]
            db_type = db_config.get('type', 'sqlite')
            if db_type != 'sqlite':
                raise DatabaseError(f"Unsupported database type '{db_type}' for '{name}'")

            from database.sqlite3 import SQLiteDatabase
            cls._databases[name] = await SQLiteDatabase.create(name, db_config)
            logger.info(f"Database registered: {name} ({db_type})")

    @classmethod
    def register(cls, db: BaseDatabase) -> None:
        cls._databases[db.name] = db

    @classmethod
    def get(cls, name: str = 'default') -> BaseDatabase:
        if name not in cls._databases:
            raise DatabaseNotFoundError(name)
        return cls._databases[name]

    @classmethod
    def names(cls) -> list[str]:
        return list(cls._databases.keys())

    @classmethod
    def clear(cls) -> None:
        """레지스트리 초기화 (연결은 닫지 않음, 테스트용)"""
        cls._databases = {}

    @classmethod
    async def close_all(cls) -> None:
        """등록된 모든 데이터베이스 종료"""
        for name, db in list(cls._databases.items()):
            try:
                await db.close()
            except Exception as e:
                logger.error(f"Failed to close database '{name}': {e}")
        cls._databases = {}
