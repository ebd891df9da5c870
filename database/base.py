"""
데이터베이스 추상 기본 클래스
"""

from abc import ABC, abstractmethod
from typing import Any


class BaseDatabase(ABC):
    """이름으로 식별되는 비동기 데이터베이스"""

    def __init__(self, name: str):
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @abstractmethod
    def transaction(self, readonly: bool = False) -> Any:
        """트랜잭션 컨텍스트 매니저 반환"""
        ...

    @abstractmethod
    def load_queries(self, name: str, sql_path: str) -> Any:
        """SQL 파일에서 쿼리 세트 로드"""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
