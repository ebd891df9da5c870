"""
QueueRegistry: 잡 추가 진입점

프로세스 시작 시 한 번 만들어 잡을 추가하는 쪽(HTTP 핸들러, 이벤트 수신, CLI)에 전달합니다.
enqueue는 원장에 기록되면 반환하며, 잡의 처리 결과와는 무관합니다.

사용 예시:
    registry = QueueRegistry(ledger, queue_configs)
    job_id = await registry.enqueue('email', 'sendWelcomeEmail', payload)
"""

import logging
from typing import Any

from ledger.exception import UnknownQueueError
from ledger.main import Ledger
from ledger.model.job import JobOptions, validate_job_name
from ledger.model.queue import QueueConfig

logger = logging.getLogger(__name__)


class QueueRegistry:

    def __init__(self, ledger: Ledger, queue_configs: dict[str, QueueConfig]):
        self._ledger = ledger
        self._queue_configs = queue_configs

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def queues(self) -> list[str]:
        return list(self._queue_configs.keys())

    def config(self, queue: str) -> QueueConfig:
        if queue not in self._queue_configs:
            raise UnknownQueueError(str(queue))
        return self._queue_configs[queue]

    async def enqueue(
        self,
        queue: str,
        job_name: str,
        payload: dict[str, Any] | None = None,
        options: JobOptions | dict[str, Any] | None = None,
    ) -> str:
        """
        잡 추가

        Returns:
            잡 id (repeat 옵션이면 스케줄 id)

        Raises:
            UnknownQueueError, UnknownJobError: 정의되지 않은 큐 / job name
            pydantic.ValidationError: 잘못된 options
        """
        queue_name, kind = validate_job_name(queue, job_name)
        self.config(queue_name.value)

        if isinstance(options, dict):
            options = JobOptions.model_validate(options)
        options = options or JobOptions()

        # payload의 correlationId를 잡 로그 추적 id로 사용
        correlation_id = (payload or {}).get("correlationId")
        if options.correlation_id is None and isinstance(correlation_id, str) and correlation_id:
            options = options.model_copy(update={"correlation_id": correlation_id})

        job_id = await self._ledger.push(queue_name.value, kind.value, payload, options)
        logger.info(f"Job enqueued: id={job_id}, queue={queue_name.value}, name={kind.value}")
        return job_id
