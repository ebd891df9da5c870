"""
잡 실행기 모듈

lease 받은 잡 하나를 핸들러로 실행하고 결과에 따라 ack / fail 합니다.
실행 중에는 heartbeat 로 lease를 연장합니다.
"""

import asyncio
import logging
from typing import Any

from integration.services import Services
from ledger.main import Ledger
from ledger.model.job import Job, JobState
from worker.base import get_handler
from worker.events import EventKind, JobEvent, JobEvents
from worker.exception import (
    HandlerNotFoundError,
    PayloadValidationError,
    UnrecoverableJobError,
)
from worker.model.handler import JobContext, dump_result

logger = logging.getLogger(__name__)


class Executor:
    """잡 실행기"""

    def __init__(
        self,
        ledger: Ledger,
        services: Services,
        events: JobEvents,
        worker_id: str,
        lease_ms: int,
        heartbeat_seconds: float | None = None,
    ):
        self._ledger = ledger
        self._services = services
        self._events = events
        self._worker_id = worker_id
        self._lease_ms = lease_ms
        self._heartbeat_seconds = heartbeat_seconds or max(lease_ms / 3000, 0.1)

    @property
    def worker_id(self) -> str:
        return self._worker_id

    async def execute(self, job: Job) -> Job | None:
        """
        잡 실행

        Args:
            job: lease로 active 상태가 된 잡

        Returns:
            ack/fail 후의 잡 (lease를 잃었으면 None)
        """
        logger.info(f"Starting job: id={job.id}, queue={job.queue}, name={job.job_name}, attempt={job.attempts_made + 1}")

        # 1. 핸들러 조회
        try:
            handler = get_handler(job.queue, job.job_name, self._services)
        except HandlerNotFoundError as e:
            logger.error(f"Unknown job name, failing without retry: id={job.id}, name={job.job_name}")
            return await self._fail(job, e.message, retryable=False)

        context = JobContext(job, lambda percent: self._report_progress(job, percent), logger)

        # 2. payload 검증
        try:
            payload = handler.parse_payload(job.job_name, job.payload)
        except PayloadValidationError as e:
            logger.error(f"Invalid payload, failing without retry: id={job.id}, error={e.message}")
            try:
                await handler.on_rejected(job.payload, context)
            except Exception as hook_error:
                logger.error(f"Rejected payload hook failed: id={job.id}, error={hook_error}")
            return await self._fail(job, e.message, retryable=False)

        # 3. 핸들러 실행 (타임아웃은 핸들러 내부 I/O에 맡김)
        heartbeat = asyncio.create_task(self._heartbeat(job))
        try:
            result = await handler.execute(payload, context)
        except UnrecoverableJobError as e:
            logger.error(f"Job failed without retry: id={job.id}, error={e.message}")
            failure = (e.message, False)
        except Exception as e:
            logger.warning(f"Job attempt failed: id={job.id}, error={e}", exc_info=True)
            failure = (str(e) or type(e).__name__, True)
        else:
            failure = None
        finally:
            heartbeat.cancel()
            try:
                await heartbeat
            except asyncio.CancelledError:
                pass

        # 4. 결과 반영
        if failure is not None:
            reason, retryable = failure
            return await self._fail(job, reason, retryable=retryable)
        return await self._complete(job, dump_result(result))

    async def _complete(self, job: Job, result: Any) -> Job | None:
        done = await self._ledger.ack(job.id, self._worker_id, result)
        if done is None:
            return None
        await self._events.emit(JobEvent(
            kind=EventKind.COMPLETED,
            job_id=done.id,
            queue=done.queue,
            job_name=done.job_name,
            attempts_made=done.attempts_made,
            result=result,
        ))
        return done

    async def _fail(self, job: Job, reason: str, retryable: bool) -> Job | None:
        failed = await self._ledger.fail(job.id, self._worker_id, reason, retryable=retryable)
        if failed is None:
            return None
        await self._events.emit(JobEvent(
            kind=EventKind.FAILED,
            job_id=failed.id,
            queue=failed.queue,
            job_name=failed.job_name,
            attempts_made=failed.attempts_made,
            reason=reason,
            terminal=failed.state == JobState.FAILED,
        ))
        return failed

    async def _report_progress(self, job: Job, percent: int) -> None:
        updated = await self._ledger.update_progress(job.id, percent, self._worker_id)
        if not updated:
            logger.warning(f"Progress not recorded, lease lost: id={job.id}")
            return
        await self._events.emit(JobEvent(
            kind=EventKind.PROGRESS,
            job_id=job.id,
            queue=job.queue,
            job_name=job.job_name,
            attempts_made=job.attempts_made,
            progress=percent,
        ))

    async def _heartbeat(self, job: Job) -> None:
        """lease 연장 루프 (실행이 끝나면 취소됨)"""
        while True:
            await asyncio.sleep(self._heartbeat_seconds)
            try:
                extended = await self._ledger.extend_lease(job.id, self._worker_id, self._lease_ms)
                if not extended:
                    logger.warning(f"Lease lost while running: id={job.id}")
                    return
            except Exception as e:
                logger.error(f"Heartbeat failed: id={job.id}, error={e}")
