"""
Scheduler: 반복 잡 등록 및 회차 생성 모듈

반복 스케줄은 고정 id로 원장에 등록되므로 프로세스를 여러 번 재시작해도
스케줄은 한 건만 존재합니다. 폴링 루프는 실행 시점에 도달한 스케줄을
다음 회차로 전진시키고 다음 회차 잡을 delayed 상태로 만듭니다.

HA 구성 시 중복 생성 방지:
- 스케줄 전진은 next_run_at compare-and-set
- 회차 잡 id는 "repeat:<schedule id>:<run_at>" (INSERT OR IGNORE)

실행 방법:
    python -m scheduler.main
    python main.py scheduler
"""

import asyncio
import logging
from typing import Any

from database import ConnectionPoolExhaustedError, DatabaseError
from ledger.exception import LedgerError
from ledger.main import Ledger
from ledger.model.job import CleanupJob, JobOptions, QueueName, RepeatSchedule, validate_job_name
from ledger.repeat import interval_seconds, is_valid_pattern, next_fire_time
from scheduler.exception import (
    CronIntervalTooShortError,
    CronParseError,
    ScheduleRegistrationError,
)
from scheduler.model.scheduler import SchedulerConfig

logger = logging.getLogger(__name__)


class Scheduler:
    """
    반복 잡 Scheduler

    사용 예시:
        scheduler = Scheduler(ledger, SchedulerConfig())
        await scheduler.schedule_cleanup_job()
        asyncio.create_task(scheduler.start())
    """

    def __init__(self, ledger: Ledger, config: SchedulerConfig | None = None):
        self._ledger = ledger
        self._config = config or SchedulerConfig()
        self._running = False
        self._stop_event: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        """실행 중 여부"""
        return self._running

    async def register(
        self,
        schedule_id: str,
        queue: str,
        job_name: str,
        pattern: str,
        payload: dict[str, Any] | None = None,
        options: JobOptions | None = None,
    ) -> RepeatSchedule:
        """
        반복 스케줄 등록 (같은 id로 다시 호출하면 갱신)

        Raises:
            CronParseError: 잘못된 크론 표현식
            CronIntervalTooShortError: 간격이 min_cron_interval_seconds 미만
            ScheduleRegistrationError: job name 검증 또는 원장 기록 실패
        """
        self._validate_cron_interval(pattern)

        try:
            validate_job_name(queue, job_name)
            return await self._ledger.upsert_schedule(
                schedule_id, str(queue), str(job_name), pattern, payload, options
            )
        except (LedgerError, DatabaseError) as e:
            raise ScheduleRegistrationError(schedule_id, e.message)

    async def schedule_cleanup_job(self) -> RepeatSchedule | None:
        """임시 파일 정리 반복 잡 등록"""
        cleanup = self._config.cleanup
        if not cleanup.enabled:
            logger.info("Temp file cleanup schedule disabled")
            return None

        schedule = await self.register(
            cleanup.job_id,
            QueueName.CLEANUP.value,
            CleanupJob.CLEANUP_TEMP_FILES.value,
            cleanup.pattern,
        )
        logger.info(f"Scheduled temp file cleanup: id={schedule.id}, pattern='{schedule.pattern}'")
        return schedule

    async def start(self) -> None:
        """Scheduler 메인 루프 시작"""
        if self._running:
            logger.warning("Scheduler is already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()

        logger.info(
            f"Scheduler started (poll_interval={self._config.poll_interval_seconds}s, "
            f"max_sleep={self._config.max_sleep_seconds}s)"
        )

        try:
            await self._main_loop()
        except asyncio.CancelledError:
            logger.info("Scheduler cancelled")
        except Exception as e:
            logger.error(f"Scheduler error: {e}", exc_info=True)
            raise
        finally:
            self._running = False
            logger.info("Scheduler stopped")

    async def stop(self) -> None:
        """Scheduler graceful shutdown"""
        if not self._running:
            return

        logger.info("Stopping scheduler...")
        self._running = False
        if self._stop_event:
            self._stop_event.set()

    async def _main_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
                sleep_seconds = self._calculate_next_sleep(await self._ledger.list_schedules())
                await self._sleep(sleep_seconds)

            except ConnectionPoolExhaustedError as e:
                logger.warning(f"Connection pool exhausted: {e}. Retrying in 10s...")
                await self._sleep(10)

            except DatabaseError as e:
                logger.error(f"Database error: {e}. Continuing...")
                await self._sleep(self._config.poll_interval_seconds)

            except Exception as e:
                logger.error(f"Unexpected error in main loop: {e}", exc_info=True)
                await self._sleep(self._config.poll_interval_seconds)

    async def run_once(self) -> int:
        """
        실행 시점에 도달한 스케줄을 다음 회차로 전진

        Returns:
            전진시킨 스케줄 수
        """
        advanced = 0
        for schedule in await self._ledger.list_schedules(due_only=True):
            try:
                if await self._advance(schedule):
                    advanced += 1
            except CronParseError as e:
                logger.error(f"Cron parse error for schedule '{schedule.id}': {e}")
            except Exception as e:
                # 개별 스케줄 에러는 다른 스케줄 처리에 영향을 주지 않음
                logger.error(f"Error advancing schedule '{schedule.id}': {e}", exc_info=True)
        return advanced

    async def _advance(self, schedule: RepeatSchedule) -> bool:
        if not is_valid_pattern(schedule.pattern):
            raise CronParseError(schedule.pattern)

        # 중단되었던 동안 놓친 회차는 건너뛰고 현재 이후 첫 시점으로 이동
        base = max(self._ledger.now(), schedule.next_run_at)
        next_run_at = next_fire_time(schedule.pattern, base)

        if await self._ledger.advance_schedule(schedule, next_run_at):
            logger.info(
                f"Repeat occurrence created: schedule={schedule.id}, "
                f"run_at={schedule.next_run_at} -> next_run_at={next_run_at}"
            )
            return True

        logger.debug(f"Schedule already advanced by another process: id={schedule.id}")
        return False

    def _validate_cron_interval(self, pattern: str) -> None:
        """
        크론 간격 검증

        Raises:
            CronParseError, CronIntervalTooShortError
        """
        if not is_valid_pattern(pattern):
            raise CronParseError(pattern)

        interval = interval_seconds(pattern, self._ledger.now())
        if interval < self._config.min_cron_interval_seconds:
            raise CronIntervalTooShortError(pattern, interval, self._config.min_cron_interval_seconds)

    def _calculate_next_sleep(self, schedules: list[RepeatSchedule]) -> float:
        """
        가장 빠른 next_run_at 까지의 대기 시간

        poll_interval_seconds ~ max_sleep_seconds 범위로 제한
        """
        if not schedules:
            return self._config.poll_interval_seconds

        now = self._ledger.now()
        earliest = min(s.next_run_at for s in schedules)
        wait_seconds = max((earliest - now) / 1000, 0)

        sleep_time = max(
            self._config.poll_interval_seconds,
            min(wait_seconds, self._config.max_sleep_seconds)
        )
        logger.debug(f"Next sleep: {sleep_time:.1f}s")
        return sleep_time

    async def _sleep(self, seconds: float) -> None:
        """인터럽트 가능한 sleep"""
        if self._stop_event:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass


if __name__ == "__main__":
    import signal

    from common.config import load_config
    from common.logging import setup_logging
    from database.registry import DatabaseRegistry
    from ledger.model.queue import load_queue_configs

    async def main():
        config = load_config()
        setup_logging(**config.get("logging", {}))

        scheduler_config = SchedulerConfig(**config.get("scheduler", {}))
        await DatabaseRegistry.init_from_config(config, [scheduler_config.database])

        ledger = Ledger(DatabaseRegistry.get(scheduler_config.database), load_queue_configs(config))
        await ledger.initialize()

        scheduler = Scheduler(ledger, scheduler_config)
        await scheduler.schedule_cleanup_job()

        loop = asyncio.get_running_loop()

        def signal_handler():
            logger.info("Received shutdown signal")
            asyncio.create_task(scheduler.stop())

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        try:
            logger.info("Starting scheduler...")
            await scheduler.start()
        finally:
            await DatabaseRegistry.close_all()

    asyncio.run(main())
