"""
큐 설정 모델
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from ledger.model.job import QueueName


class RateLimit(BaseModel):
    """윈도우(window_ms) 안에 시작 가능한 최대 잡 수"""
    max: int = Field(ge=1)
    window_ms: int = Field(ge=1)


class RetentionPolicy(BaseModel):
    """종료 상태 잡 보관 개수"""
    completed: int = Field(default=100, ge=0)
    failed: int = Field(default=500, ge=0)


class QueueConfig(BaseModel):
    """큐별 설정"""
    name: str
    concurrency: int = Field(default=5, ge=1, le=100)
    rate_limit: RateLimit | None = None
    max_attempts: int = Field(default=5, ge=1, le=50)
    backoff_base_ms: int = Field(default=1000, ge=0)
    backoff_strategy: Literal['exponential', 'fixed'] = 'exponential'
    retention: RetentionPolicy = Field(default_factory=RetentionPolicy)


_PER_MINUTE_50 = RateLimit(max=50, window_ms=60_000)

DEFAULT_QUEUE_CONFIGS: dict[str, QueueConfig] = {
    QueueName.SEARCH_INDEX.value: QueueConfig(
        name=QueueName.SEARCH_INDEX.value,
        concurrency=5, rate_limit=_PER_MINUTE_50,
        max_attempts=3, backoff_base_ms=1000,
    ),
    QueueName.EMAIL.value: QueueConfig(
        name=QueueName.EMAIL.value,
        concurrency=5, rate_limit=_PER_MINUTE_50,
        max_attempts=5, backoff_base_ms=1000,
    ),
    QueueName.FILE_UPLOAD.value: QueueConfig(
        name=QueueName.FILE_UPLOAD.value,
        concurrency=3, rate_limit=RateLimit(max=15, window_ms=60_000),
        max_attempts=3, backoff_base_ms=2000,
    ),
    QueueName.CLEANUP.value: QueueConfig(
        name=QueueName.CLEANUP.value,
        concurrency=5, rate_limit=_PER_MINUTE_50,
        max_attempts=5, backoff_base_ms=1000,
    ),
}


def load_queue_configs(config: dict[str, Any] | None) -> dict[str, QueueConfig]:
    """
    queues.yaml 설정을 기본값 위에 덮어써서 큐 설정 생성

    예시:
        queues:
          email:
            concurrency: 10
            rate_limit: {max: 100, window_ms: 60000}
    """
    overrides = (config or {}).get('queues', {}) or {}
    configs = {}
    for name, default in DEFAULT_QUEUE_CONFIGS.items():
        merged = default.model_dump()
        merged.update(overrides.get(name) or {})
        merged['name'] = name
        configs[name] = QueueConfig(**merged)
    return configs
