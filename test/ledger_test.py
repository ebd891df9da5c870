"""
Ledger (잡 원장) 테스트

테스트 항목:
1. 백오프 계산
2. push (즉시 / delay / jobId 중복)
3. lease / ack / fail 상태 전이와 시도 횟수
4. 재시도 백오프, 시도 소진, 재시도 불가 실패
5. rate limit
6. lease 만료 회수 (stalled)
7. 보관 개수 정리, pause / resume, retry, clean
8. 반복 스케줄 등록 멱등성

실행: python -m pytest test/ledger_test.py -v
"""

import sys
from pathlib import Path

import pytest
import pytest_asyncio
from pydantic import ValidationError

sys.path.insert(0, str(Path(__file__).parent.parent))

from ledger.backoff import compute_backoff_ms
from ledger.exception import (
    InvalidJobStateError,
    JobNotFoundError,
    RateLimitExceeded,
    UnknownJobError,
    UnknownQueueError,
)
from ledger.main import Ledger, repeat_job_id
from ledger.model.job import EmailJob, JobOptions, JobState, QueueName, RepeatOptions, validate_job_name
from ledger.model.queue import QueueConfig, RateLimit, RetentionPolicy, load_queue_configs

LEASE_MS = 30_000


async def lease_one(ledger: Ledger, queue: str = "email", worker: str = "w1", **kwargs):
    return await ledger.lease(queue, worker_id=worker, lease_ms=kwargs.pop("lease_ms", LEASE_MS), **kwargs)


class TestBackoff:
    """백오프 계산 테스트"""

    def test_exponential(self):
        """base * 2^(k-1)"""
        assert [compute_backoff_ms(k, 1000) for k in (1, 2, 3, 4)] == [1000, 2000, 4000, 8000]

    def test_fixed(self):
        """fixed 전략은 항상 base"""
        assert compute_backoff_ms(3, 2000, "fixed") == 2000

    def test_invalid_attempt(self):
        """시도 번호는 1부터"""
        with pytest.raises(ValueError):
            compute_backoff_ms(0, 1000)


class TestQueueConfig:
    """큐 설정 병합 테스트"""

    def test_defaults(self):
        """설정이 없으면 기본값"""
        configs = load_queue_configs({})
        assert configs["file-upload"].concurrency == 3
        assert configs["file-upload"].backoff_base_ms == 2000
        assert configs["search-index"].max_attempts == 3
        assert configs["email"].rate_limit == RateLimit(max=50, window_ms=60_000)

    def test_override(self):
        """queues.yaml 값이 기본값을 덮어씀"""
        configs = load_queue_configs({"queues": {"email": {"concurrency": 10}}})
        assert configs["email"].concurrency == 10
        assert configs["email"].max_attempts == 5


class TestJobNames:
    """큐별 job name 검증"""

    def test_valid(self):
        queue, kind = validate_job_name("email", "sendWelcomeEmail")
        assert queue == QueueName.EMAIL
        assert kind == EmailJob.SEND_WELCOME_EMAIL

    def test_unknown_queue(self):
        with pytest.raises(UnknownQueueError):
            validate_job_name("sms", "sendWelcomeEmail")

    def test_job_name_of_other_queue(self):
        """다른 큐의 job name은 거부"""
        with pytest.raises(UnknownJobError):
            validate_job_name("email", "indexJob")


class TestPush:
    """push 테스트"""

    def test_unknown_backoff_strategy_rejected(self):
        """정의되지 않은 backoff 전략은 옵션 생성 시점에 거부"""
        with pytest.raises(ValidationError):
            JobOptions(backoff_strategy="linear")
        assert JobOptions(backoff_strategy="fixed").backoff_strategy == "fixed"

    @pytest.mark.asyncio
    async def test_push_fixed_backoff(self, ledger, clock):
        """잡 단위 fixed 전략은 실패 시 기본 지연 그대로 사용"""
        job_id = await ledger.push("email", "sendWelcomeEmail", {}, JobOptions(backoff_strategy="fixed", backoff_base_ms=700))
        job = await lease_one(ledger)
        await ledger.fail(job_id, job.lease_owner, "smtp unavailable")

        failed = await ledger.get_job(job_id)
        assert failed.state == JobState.DELAYED
        assert failed.run_at == clock.now_ms + 700

    @pytest.mark.asyncio
    async def test_push_waiting(self, ledger):
        """delay 없는 잡은 waiting, 큐 기본값 적용"""
        job_id = await ledger.push("email", "sendWelcomeEmail", {"recipientEmail": "a@b.co"})
        job = await ledger.get_job(job_id)

        assert job.state == JobState.WAITING
        assert job.attempts_made == 0
        assert job.max_attempts == 5
        assert job.backoff_base_ms == 1000
        assert job.payload == {"recipientEmail": "a@b.co"}

    @pytest.mark.asyncio
    async def test_push_delayed(self, ledger, clock):
        """delay가 지나기 전에는 lease 되지 않음"""
        job_id = await ledger.push("email", "sendWelcomeEmail", {}, JobOptions(delay_ms=5000))
        assert (await ledger.get_job(job_id)).state == JobState.DELAYED

        assert await lease_one(ledger) is None

        clock.advance(5000)
        job = await lease_one(ledger)
        assert job is not None
        assert job.id == job_id

    @pytest.mark.asyncio
    async def test_push_duplicate_job_id(self, ledger):
        """같은 jobId로 다시 push하면 무시"""
        first = await ledger.push("email", "sendWelcomeEmail", {"n": 1}, JobOptions(job_id="welcome-7"))
        second = await ledger.push("email", "sendWelcomeEmail", {"n": 2}, JobOptions(job_id="welcome-7"))

        assert first == second == "welcome-7"
        assert (await ledger.get_counts("email"))["waiting"] == 1
        assert (await ledger.get_job("welcome-7")).payload == {"n": 1}

    @pytest.mark.asyncio
    async def test_lease_order(self, ledger):
        """먼저 push된 잡부터 lease"""
        first = await ledger.push("email", "sendWelcomeEmail", {})
        second = await ledger.push("email", "sendWelcomeEmail", {})

        assert (await lease_one(ledger)).id == first
        assert (await lease_one(ledger)).id == second
        assert await lease_one(ledger) is None


class TestLeaseAckFail:
    """lease / ack / fail 테스트"""

    @pytest.mark.asyncio
    async def test_lease_and_ack(self, ledger):
        """ack 후 completed, 시도 횟수 1"""
        job_id = await ledger.push("email", "sendWelcomeEmail", {})

        job = await lease_one(ledger)
        assert job.state == JobState.ACTIVE
        assert job.attempts_made == 0
        assert job.lease_owner == "w1"

        done = await ledger.ack(job_id, "w1", {"messageId": "m-1"})
        assert done.state == JobState.COMPLETED
        assert done.attempts_made == 1
        assert done.result == {"messageId": "m-1"}
        assert done.finished_at is not None

    @pytest.mark.asyncio
    async def test_ack_by_other_worker_ignored(self, ledger):
        """lease 소유자가 아니면 ack 무시"""
        job_id = await ledger.push("email", "sendWelcomeEmail", {})
        await lease_one(ledger)

        assert await ledger.ack(job_id, "w2") is None
        assert (await ledger.get_job(job_id)).state == JobState.ACTIVE

    @pytest.mark.asyncio
    async def test_fail_schedules_retry_with_backoff(self, ledger, clock):
        """재시도 가능한 실패는 backoff 후 다시 실행"""
        job_id = await ledger.push("email", "sendWelcomeEmail", {})
        await lease_one(ledger)

        failed = await ledger.fail(job_id, "w1", "smtp timeout")
        assert failed.state == JobState.DELAYED
        assert failed.attempts_made == 1
        assert failed.failed_reason == "smtp timeout"
        assert failed.run_at == clock.now_ms + 1000

        clock.advance(999)
        assert await lease_one(ledger) is None
        clock.advance(1)
        assert (await lease_one(ledger)).id == job_id

        # 두 번째 실패는 2000ms
        failed = await ledger.fail(job_id, "w1", "smtp timeout")
        assert failed.attempts_made == 2
        assert failed.run_at == clock.now_ms + 2000

    @pytest.mark.asyncio
    async def test_fail_until_exhausted(self, ledger, clock):
        """시도 소진 시 failed, attempts_made == max_attempts"""
        job_id = await ledger.push("search-index", "indexJob", {"id": 1})

        for attempt in range(1, 4):
            job = await lease_one(ledger, "search-index")
            assert job is not None
            failed = await ledger.fail(job_id, "w1", f"boom {attempt}")
            assert failed.attempts_made == attempt
            clock.advance(60_000)

        assert failed.state == JobState.FAILED
        assert failed.attempts_made == failed.max_attempts == 3
        assert failed.failed_reason == "boom 3"
        assert await lease_one(ledger, "search-index") is None

    @pytest.mark.asyncio
    async def test_fail_not_retryable(self, ledger):
        """재시도 불가 실패는 바로 failed"""
        job_id = await ledger.push("email", "sendWelcomeEmail", {})
        await lease_one(ledger)

        failed = await ledger.fail(job_id, "w1", "invalid payload", retryable=False)
        assert failed.state == JobState.FAILED
        assert failed.attempts_made == 1

    @pytest.mark.asyncio
    async def test_fail_unknown_job(self, ledger):
        """없는 잡 fail 시 JobNotFoundError"""
        with pytest.raises(JobNotFoundError):
            await ledger.fail("nope", "w1", "reason")

    @pytest.mark.asyncio
    async def test_progress_clamped(self, ledger):
        """progress는 0~100"""
        job_id = await ledger.push("file-upload", "uploadFile", {})
        await lease_one(ledger, "file-upload")

        assert await ledger.update_progress(job_id, 150, "w1") is True
        assert (await ledger.get_job(job_id)).progress == 100
        assert await ledger.update_progress(job_id, 10, "w2") is False


class TestRateLimit:
    """rate limit 테스트"""

    @pytest.mark.asyncio
    async def test_rate_limit_window(self, ledger, clock):
        """윈도우 내 시작 수가 한도에 도달하면 RateLimitExceeded"""
        limit = RateLimit(max=2, window_ms=60_000)
        for _ in range(3):
            await ledger.push("email", "sendWelcomeEmail", {})

        assert await lease_one(ledger, rate_limit=limit) is not None
        assert await lease_one(ledger, rate_limit=limit) is not None

        with pytest.raises(RateLimitExceeded) as exc_info:
            await lease_one(ledger, rate_limit=limit)
        assert exc_info.value.retry_after_ms == 60_000

        # 거부된 lease는 잡 상태를 바꾸지 않음
        assert (await ledger.get_counts("email"))["waiting"] == 1

        clock.advance(60_000)
        assert await lease_one(ledger, rate_limit=limit) is not None


class TestStalledJobs:
    """lease 만료 회수 테스트"""

    @pytest.mark.asyncio
    async def test_expired_lease_requeued_then_failed(self, ledger, clock):
        """첫 만료는 다시 waiting, 한도를 넘으면 failed"""
        job_id = await ledger.push("email", "sendWelcomeEmail", {})

        await lease_one(ledger, lease_ms=1000)
        clock.advance(1001)
        assert await ledger.requeue_expired_leases(max_stalled_count=1) == (1, 0)

        job = await ledger.get_job(job_id)
        assert job.state == JobState.WAITING
        assert job.stalled_count == 1
        assert job.attempts_made == 0

        await lease_one(ledger, worker="w2", lease_ms=1000)
        clock.advance(1001)
        assert await ledger.requeue_expired_leases(max_stalled_count=1) == (0, 1)

        job = await ledger.get_job(job_id)
        assert job.state == JobState.FAILED
        assert job.failed_reason == "job stalled more than allowable limit"

    @pytest.mark.asyncio
    async def test_extend_lease(self, ledger, clock):
        """heartbeat로 연장된 lease는 회수되지 않음"""
        job_id = await ledger.push("email", "sendWelcomeEmail", {})
        await lease_one(ledger, lease_ms=1000)

        clock.advance(800)
        assert await ledger.extend_lease(job_id, "w1", 1000) is True
        clock.advance(800)
        assert await ledger.requeue_expired_leases() == (0, 0)

    @pytest.mark.asyncio
    async def test_late_ack_after_requeue(self, ledger, clock):
        """회수된 잡에 대한 이전 소유자의 ack는 무시"""
        job_id = await ledger.push("email", "sendWelcomeEmail", {})
        await lease_one(ledger, lease_ms=1000)
        clock.advance(1001)
        await ledger.requeue_expired_leases()

        assert await ledger.ack(job_id, "w1") is None
        assert await ledger.fail(job_id, "w1", "late") is None


class TestOperations:
    """보관 정리, pause, retry, clean 테스트"""

    @pytest_asyncio.fixture
    async def small_retention_ledger(self, database, clock):
        configs = {
            "email": QueueConfig(name="email", retention=RetentionPolicy(completed=2, failed=1)),
        }
        ledger = Ledger(database, configs, clock=clock)
        await ledger.initialize()
        return ledger

    @pytest.mark.asyncio
    async def test_retention_trims_completed(self, small_retention_ledger):
        """완료 잡은 보관 개수만큼만 유지"""
        ledger = small_retention_ledger
        ids = [await ledger.push("email", "sendWelcomeEmail", {}) for _ in range(4)]
        for job_id in ids:
            await lease_one(ledger)
            await ledger.ack(job_id, "w1")

        remaining = await ledger.list_jobs("email", JobState.COMPLETED)
        assert [job.id for job in remaining] == [ids[3], ids[2]]

    @pytest.mark.asyncio
    async def test_pause_resume(self, ledger):
        """pause된 큐는 lease 되지 않음"""
        await ledger.push("email", "sendWelcomeEmail", {})
        await ledger.pause("email")
        assert await ledger.is_paused("email") is True
        assert await lease_one(ledger) is None

        await ledger.resume("email")
        assert await ledger.is_paused("email") is False
        assert await lease_one(ledger) is not None

    @pytest.mark.asyncio
    async def test_retry_failed_job(self, ledger):
        """failed 잡을 다시 waiting으로"""
        job_id = await ledger.push("email", "sendWelcomeEmail", {})
        await lease_one(ledger)
        await ledger.fail(job_id, "w1", "bad", retryable=False)

        job = await ledger.retry_job(job_id)
        assert job.state == JobState.WAITING
        assert job.attempts_made == 0
        assert job.failed_reason is None

        with pytest.raises(InvalidJobStateError):
            await ledger.retry_job(job_id)

    @pytest.mark.asyncio
    async def test_clean(self, ledger, clock):
        """grace 보다 오래된 종료 잡 삭제"""
        job_id = await ledger.push("email", "sendWelcomeEmail", {})
        await lease_one(ledger)
        await ledger.ack(job_id, "w1")

        assert await ledger.clean("email", JobState.COMPLETED, grace_ms=10_000) == 0
        clock.advance(10_000)
        assert await ledger.clean("email", JobState.COMPLETED, grace_ms=10_000) == 1
        assert await ledger.get_job(job_id) is None

        with pytest.raises(InvalidJobStateError):
            await ledger.clean("email", JobState.ACTIVE)

    @pytest.mark.asyncio
    async def test_counts(self, ledger):
        """상태별 잡 수"""
        await ledger.push("email", "sendWelcomeEmail", {})
        await ledger.push("email", "sendWelcomeEmail", {}, JobOptions(delay_ms=1000))
        await lease_one(ledger)

        counts = await ledger.get_counts("email")
        assert counts == {"delayed": 1, "waiting": 0, "active": 1, "completed": 0, "failed": 0}


class TestRepeatSchedule:
    """반복 스케줄 테스트"""

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, ledger, clock):
        """같은 id로 두 번 등록해도 스케줄과 회차 잡은 한 건"""
        for _ in range(2):
            await ledger.upsert_schedule("temp-file-cleanup", "cleanup", "cleanupTempFiles", "*/15 * * * *")

        schedules = await ledger.list_schedules()
        assert len(schedules) == 1
        # 22:13:20 이후 첫 15분 단위 = 22:15:00
        assert schedules[0].next_run_at == clock.now_ms + 100_000

        counts = await ledger.get_counts("cleanup")
        assert counts["delayed"] == 1
        job = await ledger.get_job(repeat_job_id("temp-file-cleanup", schedules[0].next_run_at))
        assert job.repeat_id == "temp-file-cleanup"

    @pytest.mark.asyncio
    async def test_push_with_repeat_option(self, ledger):
        """repeat 옵션 push는 스케줄 id 반환"""
        schedule_id = await ledger.push(
            "cleanup", "cleanupTempFiles", {},
            JobOptions(job_id="temp-file-cleanup", repeat=RepeatOptions(pattern="*/15 * * * *")),
        )
        assert schedule_id == "temp-file-cleanup"
        assert (await ledger.get_schedule("temp-file-cleanup")).pattern == "*/15 * * * *"

    @pytest.mark.asyncio
    async def test_pattern_change_replaces_pending_occurrence(self, ledger):
        """패턴이 바뀌면 이전 회차 잡은 삭제"""
        await ledger.upsert_schedule("s1", "cleanup", "cleanupTempFiles", "*/15 * * * *")
        schedule = await ledger.upsert_schedule("s1", "cleanup", "cleanupTempFiles", "0 * * * *")

        jobs = await ledger.list_jobs("cleanup", JobState.DELAYED)
        assert [job.id for job in jobs] == [repeat_job_id("s1", schedule.next_run_at)]

    @pytest.mark.asyncio
    async def test_advance_compare_and_set(self, ledger):
        """같은 회차를 두 번 전진시킬 수 없음"""
        schedule = await ledger.upsert_schedule("s1", "cleanup", "cleanupTempFiles", "*/15 * * * *")
        next_run_at = schedule.next_run_at + 900_000

        assert await ledger.advance_schedule(schedule, next_run_at) is True
        assert await ledger.advance_schedule(schedule, next_run_at) is False
        assert (await ledger.get_counts("cleanup"))["delayed"] == 2

    @pytest.mark.asyncio
    async def test_remove_schedule(self, ledger):
        """스케줄 삭제 시 대기 중인 회차 잡도 삭제"""
        await ledger.upsert_schedule("s1", "cleanup", "cleanupTempFiles", "*/15 * * * *")

        assert await ledger.remove_schedule("s1") is True
        assert await ledger.list_schedules() == []
        assert (await ledger.get_counts("cleanup"))["delayed"] == 0
