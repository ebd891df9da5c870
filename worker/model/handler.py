"""
핸들러 실행 컨텍스트 및 결과 모델
"""

import logging
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict

from ledger.model.job import Job


class HandlerResult(BaseModel):
    """핸들러 실행 결과 (jobs.result에 JSON으로 저장)"""
    model_config = ConfigDict(extra='allow')

    success: bool = True


class JobLoggerAdapter(logging.LoggerAdapter):
    """잡 식별 정보를 extra로 붙이는 로거"""

    def process(self, msg, kwargs):
        extra = dict(self.extra)
        extra.update(kwargs.get('extra') or {})
        kwargs['extra'] = extra
        return msg, kwargs


class JobContext:
    """
    핸들러에 전달되는 실행 컨텍스트

    progress 보고와 잡 단위 로거를 제공합니다.
    """

    def __init__(self, job: Job, report_progress: Callable[[int], Awaitable[None]], logger: logging.Logger):
        self.job = job
        self._report_progress = report_progress
        self.logger = JobLoggerAdapter(logger, {
            'job_id': job.id,
            'queue': job.queue,
            'job_name': job.job_name,
            'correlation_id': job.correlation_id,
        })

    @property
    def job_id(self) -> str:
        return self.job.id

    @property
    def job_name(self) -> str:
        return self.job.job_name

    @property
    def attempt(self) -> int:
        """현재 시도 번호 (1부터)"""
        return self.job.attempts_made + 1

    @property
    def correlation_id(self) -> str | None:
        return self.job.correlation_id

    async def update_progress(self, percent: int) -> None:
        await self._report_progress(max(0, min(100, int(percent))))


def dump_result(result: Any) -> Any:
    """핸들러 반환값을 JSON 저장 가능한 값으로 변환"""
    if isinstance(result, BaseModel):
        return result.model_dump(mode='json', by_alias=True)
    return result
