"""
Scheduler 테스트

테스트 항목:
1. 반복 스케줄 등록 멱등성 (재시작 시 한 건 유지)
2. 크론 표현식 / 간격 검증
3. 임시 파일 정리 스케줄 등록
4. run_once 회차 생성 (놓친 회차 건너뛰기 포함)
5. 메인 루프 시작 / 종료

실행: python -m pytest test/scheduler_test.py -v
"""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from ledger.main import repeat_job_id
from ledger.model.job import JobState
from scheduler.exception import (
    CronIntervalTooShortError,
    CronParseError,
    ScheduleRegistrationError,
)
from scheduler.main import Scheduler
from scheduler.model.scheduler import CleanupConfig, SchedulerConfig

CLEANUP_ID = "temp-file-cleanup"
# START_MS(22:13:20) 이후 첫 15분 단위 시점까지
FIRST_FIRE_OFFSET_MS = 100_000
FIFTEEN_MINUTES_MS = 15 * 60 * 1000


class TestRegistration:
    """반복 스케줄 등록 테스트"""

    @pytest.mark.asyncio
    async def test_cleanup_schedule(self, ledger, clock):
        """임시 파일 정리 스케줄은 고정 id와 15분 패턴"""
        scheduler = Scheduler(ledger)
        schedule = await scheduler.schedule_cleanup_job()

        assert schedule.id == CLEANUP_ID
        assert schedule.pattern == "*/15 * * * *"
        assert schedule.queue == "cleanup"
        assert schedule.job_name == "cleanupTempFiles"
        assert schedule.next_run_at == clock.now_ms + FIRST_FIRE_OFFSET_MS

    @pytest.mark.asyncio
    async def test_restart_keeps_single_schedule(self, ledger):
        """여러 번 등록해도 스케줄 한 건, 대기 회차 한 건"""
        for _ in range(3):
            await Scheduler(ledger).schedule_cleanup_job()

        schedules = await ledger.list_schedules()
        assert [s.id for s in schedules] == [CLEANUP_ID]
        assert (await ledger.get_counts("cleanup"))["delayed"] == 1

    @pytest.mark.asyncio
    async def test_cleanup_disabled(self, ledger):
        config = SchedulerConfig(cleanup=CleanupConfig(enabled=False))
        assert await Scheduler(ledger, config).schedule_cleanup_job() is None
        assert await ledger.list_schedules() == []

    @pytest.mark.asyncio
    async def test_invalid_cron(self, ledger):
        """잘못된 크론 표현식"""
        with pytest.raises(CronParseError):
            await Scheduler(ledger).register("bad", "cleanup", "cleanupTempFiles", "every 15 minutes")

    @pytest.mark.asyncio
    async def test_interval_too_short(self, ledger):
        """최소 간격 미만 크론 차단"""
        scheduler = Scheduler(ledger, SchedulerConfig(min_cron_interval_seconds=300))
        with pytest.raises(CronIntervalTooShortError) as exc_info:
            await scheduler.register("fast", "cleanup", "cleanupTempFiles", "* * * * *")
        assert exc_info.value.interval_seconds == 60

    @pytest.mark.asyncio
    async def test_unknown_job_name(self, ledger):
        """큐에 없는 job name은 등록 실패"""
        with pytest.raises(ScheduleRegistrationError) as exc_info:
            await Scheduler(ledger).register("bad", "cleanup", "sendWelcomeEmail", "*/15 * * * *")
        assert exc_info.value.schedule_id == "bad"
        assert await ledger.list_schedules() == []


class TestRunOnce:
    """회차 생성 테스트"""

    @pytest.mark.asyncio
    async def test_not_due(self, ledger):
        scheduler = Scheduler(ledger)
        await scheduler.schedule_cleanup_job()
        assert await scheduler.run_once() == 0

    @pytest.mark.asyncio
    async def test_due_schedule_advances(self, ledger, clock):
        """실행 시점이 되면 다음 회차로 전진하고 회차 잡 생성"""
        scheduler = Scheduler(ledger)
        first = await scheduler.schedule_cleanup_job()

        clock.advance(FIRST_FIRE_OFFSET_MS)
        assert await scheduler.run_once() == 1
        assert await scheduler.run_once() == 0

        schedule = await ledger.get_schedule(CLEANUP_ID)
        assert schedule.next_run_at == first.next_run_at + FIFTEEN_MINUTES_MS

        # 이번 회차 잡은 실행 가능, 다음 회차 잡은 delayed
        job = await ledger.lease("cleanup", worker_id="w1", lease_ms=30_000)
        assert job.id == repeat_job_id(CLEANUP_ID, first.next_run_at)
        assert job.repeat_id == CLEANUP_ID

        next_job = await ledger.get_job(repeat_job_id(CLEANUP_ID, schedule.next_run_at))
        assert next_job.state == JobState.DELAYED

    @pytest.mark.asyncio
    async def test_missed_occurrences_skipped(self, ledger, clock):
        """중단 기간에 놓친 회차는 한 번만 실행"""
        scheduler = Scheduler(ledger)
        first = await scheduler.schedule_cleanup_job()

        # 22:15 회차 이후 1시간 경과 (23:15:00)
        clock.advance(FIRST_FIRE_OFFSET_MS + 60 * 60 * 1000)
        assert await scheduler.run_once() == 1

        schedule = await ledger.get_schedule(CLEANUP_ID)
        assert schedule.next_run_at == first.next_run_at + 5 * FIFTEEN_MINUTES_MS
        assert (await ledger.get_counts("cleanup"))["delayed"] == 2

    @pytest.mark.asyncio
    async def test_next_sleep(self, ledger, clock):
        """대기 시간은 poll_interval ~ max_sleep 범위"""
        scheduler = Scheduler(ledger, SchedulerConfig(poll_interval_seconds=5, max_sleep_seconds=60))
        assert scheduler._calculate_next_sleep([]) == 5

        schedule = await scheduler.schedule_cleanup_job()
        assert scheduler._calculate_next_sleep([schedule]) == 60

        clock.advance(FIRST_FIRE_OFFSET_MS - 20_000)
        assert scheduler._calculate_next_sleep([schedule]) == 20

        clock.advance(60_000)
        assert scheduler._calculate_next_sleep([schedule]) == 5


class TestMainLoop:
    """메인 루프 테스트"""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, ledger, clock):
        scheduler = Scheduler(ledger, SchedulerConfig(poll_interval_seconds=0.1))
        await scheduler.schedule_cleanup_job()
        clock.advance(FIRST_FIRE_OFFSET_MS)

        task = asyncio.create_task(scheduler.start())
        await asyncio.sleep(0.3)
        assert scheduler.is_running is True

        await scheduler.stop()
        await asyncio.wait_for(task, timeout=2.0)

        assert scheduler.is_running is False
        schedule = await ledger.get_schedule(CLEANUP_ID)
        assert schedule.next_run_at > clock.now_ms
