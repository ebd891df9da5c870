from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError

from integration.services import Services
from ledger.model.job import JOB_NAMES, QueueName
from worker.exception import HandlerNotFoundError, PayloadValidationError
from worker.model.handler import HandlerResult, JobContext

__all__ = [
    'handler',
    'get_handler',
    'get_registered_handlers',
    'BaseHandler',
    'HandlerNotFoundError',
    'PayloadValidationError',
]

# (queue, job_name) -> 핸들러 클래스
_registry: dict[tuple[str, str], type["BaseHandler"]] = {}


def handler(queue: QueueName, *job_names: Enum):
    """
    핸들러 등록 데코레이터

    job name은 큐에 정의된 이름이어야 하며, 아니면 import 시점에 ValueError.

    사용 예시:
        @handler(QueueName.SEARCH_INDEX, SearchIndexJob.INDEX_JOB)
        class IndexHandler(BaseHandler): ...
    """
    queue = QueueName(queue)
    vocabulary = JOB_NAMES[queue]
    if not job_names:
        raise ValueError(f"No job names given for handler on queue '{queue.value}'")

    def decorator(cls):
        for name in job_names:
            kind = vocabulary(name)
            key = (queue.value, kind.value)
            if key in _registry and _registry[key] is not cls:
                raise ValueError(f"Duplicate handler for {key}: {_registry[key].__name__}, {cls.__name__}")
            _registry[key] = cls
        return cls
    return decorator


def get_handler(queue: str, job_name: str, services: Services) -> "BaseHandler":
    """핸들러 인스턴스 반환"""
    key = (str(queue), str(job_name))
    if key not in _registry:
        raise HandlerNotFoundError(*key)
    return _registry[key](services)


def get_registered_handlers() -> dict[tuple[str, str], type["BaseHandler"]]:
    """등록된 핸들러 목록 반환 (테스트용)"""
    return _registry.copy()


class BaseHandler(ABC):
    """잡 핸들러 기본 클래스"""

    # job name 별 payload 모델이 다르면 get_payload_model()을 재정의
    payload_model: type[BaseModel] | None = None

    def __init__(self, services: Services):
        self.services = services

    def get_payload_model(self, job_name: str) -> type[BaseModel] | None:
        return self.payload_model

    def parse_payload(self, job_name: str, payload: dict[str, Any]) -> Any:
        """
        payload 검증

        Raises:
            PayloadValidationError: 모델 검증 실패
        """
        model = self.get_payload_model(job_name)
        if model is None:
            return payload
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise PayloadValidationError(job_name, _summarize(e))

    async def on_rejected(self, payload: dict[str, Any], context: JobContext) -> None:
        """payload 검증 실패 후 호출 (검증 전 원본 payload, 재시도 없음)"""
        pass

    @abstractmethod
    async def execute(self, payload: Any, context: JobContext) -> HandlerResult | dict | None:
        """
        잡 실행 로직

        Args:
            payload: parse_payload() 결과
            context: 진행률 보고, 잡 로거

        Returns:
            실행 결과 (jobs.result에 JSON으로 저장)

        Raises:
            UnrecoverableJobError: 재시도 없이 실패 처리
            Exception: 그 외 예외는 백오프 후 재시도
        """
        pass


def _summarize(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "payload"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)
