"""Queue Adapter 기본 인터페이스"""
from abc import ABC, abstractmethod
from typing import AsyncIterator

from producer.model import EnqueueMessage


class BaseQueueAdapter(ABC):
    """
    외부 큐 어댑터 기본 클래스

    잡 추가 요청을 다른 서비스가 큐로 보내는 경우 사용합니다.
    """

    @abstractmethod
    async def connect(self) -> None:
        """큐 연결"""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """큐 연결 해제"""
        ...

    @abstractmethod
    def receive(self) -> AsyncIterator[EnqueueMessage]:
        """
        메시지 수신 (async generator)

        파싱할 수 없는 메시지는 어댑터가 처리 완료로 넘기고 내보내지 않습니다.
        """
        ...

    @abstractmethod
    async def complete(self, message: EnqueueMessage) -> None:
        """메시지 처리 완료 (ack)"""
        ...

    @abstractmethod
    async def abandon(self, message: EnqueueMessage) -> None:
        """메시지 처리 실패 (nack)"""
        ...
