"""
Ledger: 잡 원장

큐별로 잡 레코드를 저장하고 lease / ack / fail 로만 상태를 전이합니다.
여러 워커 프로세스가 같은 SQLite 파일을 공유하며, 모든 전이는
BEGIN IMMEDIATE 트랜잭션 안에서 조회 후 조건부 UPDATE 로 수행합니다.

상태 전이:
    delayed -> waiting -> active -> completed
                            |  -> delayed/waiting (재시도, 백오프)
                            |  -> failed (시도 소진 또는 재시도 불가)
                            +-> waiting (lease 만료, stalled)

사용 예시:
    ledger = Ledger(db, queue_configs)
    await ledger.initialize()

    job_id = await ledger.push('email', 'sendWelcomeEmail', payload)
    job = await ledger.lease('email', worker_id='w1', lease_ms=30000)
    await ledger.ack(job.id, "w1", {"sent": True})
"""

import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Callable

from database.sqlite3 import SQLiteDatabase
from ledger.backoff import compute_backoff_ms
from ledger.exception import (
    JobNotFoundError,
    InvalidJobStateError,
    RateLimitExceeded,
)
from ledger.model.job import Job, JobOptions, JobState, RepeatSchedule
from ledger.model.queue import QueueConfig, RateLimit
from ledger.repeat import next_fire_time

logger = logging.getLogger(__name__)

SQL_PATH = Path(__file__).parent / "sql" / "ledger.sql"


def _now_ms() -> int:
    return int(time.time() * 1000)


def repeat_job_id(schedule_id: str, run_at: int) -> str:
    """반복 스케줄의 회차별 잡 id"""
    return f"repeat:{schedule_id}:{run_at}"


class Ledger:
    """SQLite 기반 잡 원장"""

    def __init__(
        self,
        db: SQLiteDatabase,
        queue_configs: dict[str, QueueConfig] | None = None,
        clock: Callable[[], int] | None = None,
    ):
        """
        Args:
            db: 원장 테이블이 위치한 데이터베이스
            queue_configs: 큐별 기본 옵션 (재시도, 백오프, 보관 개수)
            clock: 현재 시각(epoch ms) 함수, 테스트에서 교체
        """
        self._db = db
        self._queue_configs = queue_configs or {}
        self._clock = clock or _now_ms
        self._queries = db.load_queries("ledger", str(SQL_PATH))

    async def initialize(self) -> None:
        """원장 스키마 생성"""
        async with self._db.connection() as conn:
            await self._queries.create_ledger_schema(conn)
            await conn.commit()
        logger.info(f"Ledger schema ready on database '{self._db.name}'")

    def now(self) -> int:
        return self._clock()

    def queue_config(self, queue: str) -> QueueConfig:
        return self._queue_configs.get(queue) or QueueConfig(name=queue)

    # ------------------------------------------------------------
    # push
    # ------------------------------------------------------------

    async def push(
        self,
        queue: str,
        job_name: str,
        payload: dict[str, Any] | None = None,
        options: JobOptions | None = None,
    ) -> str:
        """
        잡 추가

        jobId가 지정되고 이미 존재하면 아무 것도 하지 않고 같은 id를 반환합니다.
        repeat가 지정되면 스케줄(id = jobId)을 등록하고 다음 회차 잡만 만듭니다.

        Returns:
            잡 id (repeat인 경우 스케줄 id)
        """
        options = options or JobOptions()
        payload = payload or {}

        if options.repeat is not None:
            schedule_id = options.job_id or f"{queue}:{job_name}:{options.repeat.pattern}"
            await self.upsert_schedule(schedule_id, queue, job_name, options.repeat.pattern, payload, options)
            return schedule_id

        now = self.now()
        job_id = options.job_id or uuid.uuid4().hex
        delay = options.delay_ms

        async with self._db.transaction() as ctx:
            inserted = await self._insert_job(
                ctx.connection, job_id, queue, job_name, payload, options,
                run_at=now + delay,
                state=JobState.DELAYED if delay > 0 else JobState.WAITING,
                now=now,
            )

        if inserted:
            logger.debug(f"Job pushed: id={job_id}, queue={queue}, name={job_name}, delay={delay}ms")
        else:
            logger.info(f"Job already exists, push ignored: id={job_id}, queue={queue}")
        return job_id

    async def _insert_job(
        self,
        conn,
        job_id: str,
        queue: str,
        job_name: str,
        payload: dict[str, Any],
        options: JobOptions,
        run_at: int,
        state: JobState,
        now: int,
        repeat_id: str | None = None,
    ) -> bool:
        config = self.queue_config(queue)
        max_attempts = options.max_attempts or config.max_attempts
        backoff_base_ms = (
            options.backoff_base_ms if options.backoff_base_ms is not None else config.backoff_base_ms
        )
        affected = await self._queries.insert_job(
            conn,
            id=job_id,
            queue=queue,
            job_name=job_name,
            payload=json.dumps(payload),
            state=state.value,
            max_attempts=max_attempts,
            backoff_base_ms=backoff_base_ms,
            backoff_strategy=options.backoff_strategy or config.backoff_strategy,
            correlation_id=options.correlation_id,
            run_at=run_at,
            repeat_id=repeat_id,
            created_at=now,
        )
        return affected > 0

    # ------------------------------------------------------------
    # lease / ack / fail
    # ------------------------------------------------------------

    async def lease(
        self,
        queue: str,
        worker_id: str,
        lease_ms: int,
        rate_limit: RateLimit | None = None,
    ) -> Job | None:
        """
        다음 실행 가능한 잡을 active로 전환하여 반환

        시도 횟수는 여기서 증가하지 않습니다 (ack/fail에서 증가).

        Raises:
            RateLimitExceeded: 윈도우 내 시작 수가 한도에 도달한 경우
        """
        now = self.now()

        async with self._db.transaction() as ctx:
            conn = ctx.connection

            paused = await self._queries.is_queue_paused(conn, queue=queue)
            if paused:
                return None

            await self._queries.promote_delayed(conn, queue=queue, now=now)

            row = await self._queries.next_waiting_job(conn, queue=queue)
            if row is None:
                return None

            if rate_limit is not None:
                window_start = now - rate_limit.window_ms
                await self._queries.prune_job_starts(conn, queue=queue, window_start=window_start)
                started = await self._queries.count_starts_in_window(
                    conn, queue=queue, window_start=window_start
                )
                if started >= rate_limit.max:
                    oldest = await self._queries.oldest_start_in_window(
                        conn, queue=queue, window_start=window_start
                    )
                    retry_after = max(1, oldest + rate_limit.window_ms - now)
                    raise RateLimitExceeded(queue, retry_after)

            claimed = await self._queries.claim_job(
                conn,
                id=row["id"],
                lease_owner=worker_id,
                lease_until=now + lease_ms,
                now=now,
            )
            if claimed == 0:
                return None

            if rate_limit is not None:
                await self._queries.record_job_start(conn, queue=queue, now=now)

            job_row = await self._queries.get_job(conn, id=row["id"])

        job = Job.from_row(job_row)
        logger.debug(f"Job leased: id={job.id}, queue={queue}, worker={worker_id}")
        return job

    async def extend_lease(self, job_id: str, lease_owner: str, lease_ms: int) -> bool:
        """lease 연장 (heartbeat), lease를 잃었으면 False"""
        async with self._db.transaction() as ctx:
            affected = await self._queries.extend_lease(
                ctx.connection,
                id=job_id,
                lease_owner=lease_owner,
                lease_until=self.now() + lease_ms,
            )
        return affected > 0

    async def update_progress(self, job_id: str, progress: int, lease_owner: str) -> bool:
        progress = max(0, min(100, int(progress)))
        async with self._db.transaction() as ctx:
            affected = await self._queries.update_progress(
                ctx.connection, id=job_id, progress=progress, lease_owner=lease_owner
            )
        return affected > 0

    async def ack(self, job_id: str, lease_owner: str, result: Any = None) -> Job | None:
        """
        성공 처리 (active -> completed)

        Returns:
            갱신된 잡, lease를 잃은 경우 None
        """
        now = self.now()
        async with self._db.transaction() as ctx:
            conn = ctx.connection
            affected = await self._queries.complete_job(
                conn,
                id=job_id,
                result=json.dumps(result) if result is not None else None,
                lease_owner=lease_owner,
                now=now,
            )
            if affected == 0:
                logger.warning(f"Ack ignored, lease lost: id={job_id}, owner={lease_owner}")
                return None

            job = Job.from_row(await self._queries.get_job(conn, id=job_id))
            await self._trim(conn, job.queue, JobState.COMPLETED)

        return job

    async def fail(
        self,
        job_id: str,
        lease_owner: str,
        reason: str,
        retryable: bool = True,
    ) -> Job | None:
        """
        실패 처리

        attempts_made를 1 증가시키고, 재시도 가능하고 시도가 남아 있으면
        backoff 후 다시 실행되도록 예약합니다. 아니면 failed (종료).

        Returns:
            갱신된 잡 (job.state로 재시도/종료 구분), lease를 잃은 경우 None
        """
        now = self.now()
        async with self._db.transaction() as ctx:
            conn = ctx.connection
            row = await self._queries.get_job(conn, id=job_id)
            if row is None:
                raise JobNotFoundError(job_id)

            current = Job.from_row(row)
            if current.state != JobState.ACTIVE or current.lease_owner != lease_owner:
                logger.warning(f"Fail ignored, lease lost: id={job_id}, owner={lease_owner}")
                return None

            attempts = current.attempts_made + 1
            if retryable and attempts < current.max_attempts:
                delay = compute_backoff_ms(attempts, current.backoff_base_ms, current.backoff_strategy)
                await self._queries.reschedule_job(
                    conn,
                    id=job_id,
                    state=(JobState.DELAYED if delay > 0 else JobState.WAITING).value,
                    attempts_made=attempts,
                    failed_reason=reason,
                    run_at=now + delay,
                    lease_owner=lease_owner,
                )
                logger.info(
                    f"Job scheduled for retry: id={job_id}, attempt={attempts}/{current.max_attempts}, "
                    f"backoff={delay}ms"
                )
            else:
                await self._queries.fail_job(
                    conn,
                    id=job_id,
                    attempts_made=attempts,
                    failed_reason=reason,
                    lease_owner=lease_owner,
                    now=now,
                )
                await self._trim(conn, current.queue, JobState.FAILED)

            job = Job.from_row(await self._queries.get_job(conn, id=job_id))

        return job

    async def requeue_expired_leases(self, max_stalled_count: int = 1) -> tuple[int, int]:
        """
        lease가 만료된 active 잡 회수

        Returns:
            (다시 waiting으로 돌린 수, stalled 한도 초과로 실패 처리한 수)
        """
        now = self.now()
        async with self._db.transaction() as ctx:
            conn = ctx.connection
            failed = await self._queries.fail_stalled_jobs(conn, now=now, max_stalled=max_stalled_count)
            requeued = await self._queries.requeue_stalled_jobs(conn, now=now)

        if requeued or failed:
            logger.warning(f"Expired leases recovered: requeued={requeued}, failed={failed}")
        return requeued, failed

    async def _trim(self, conn, queue: str, state: JobState) -> None:
        retention = self.queue_config(queue).retention
        keep = retention.completed if state == JobState.COMPLETED else retention.failed
        removed = await self._queries.trim_terminal_jobs(conn, queue=queue, state=state.value, keep=keep)
        if removed:
            logger.debug(f"Retention trimmed {removed} {state.value} job(s) from '{queue}'")

    # ------------------------------------------------------------
    # 조회 / 운영
    # ------------------------------------------------------------

    async def get_job(self, job_id: str) -> Job | None:
        async with self._db.transaction(readonly=True) as ctx:
            row = await self._queries.get_job(ctx.connection, id=job_id)
        return Job.from_row(row) if row else None

    async def get_counts(self, queue: str) -> dict[str, int]:
        """상태별 잡 수 (없는 상태는 0)"""
        async with self._db.transaction(readonly=True) as ctx:
            rows = await self._queries.count_jobs_by_state(ctx.connection, queue=queue)
        counts = {state.value: 0 for state in JobState}
        for row in rows:
            counts[row["state"]] = row["count"]
        return counts

    async def list_jobs(self, queue: str, state: JobState | str, limit: int = 50, offset: int = 0) -> list[Job]:
        state = JobState(state)
        async with self._db.transaction(readonly=True) as ctx:
            rows = await self._queries.list_jobs(
                ctx.connection, queue=queue, state=state.value, limit=limit, offset=offset
            )
        return [Job.from_row(row) for row in rows]

    async def retry_job(self, job_id: str) -> Job:
        """failed 잡을 시도 횟수 0으로 되돌려 다시 대기열에 넣음 (운영자용)"""
        async with self._db.transaction() as ctx:
            conn = ctx.connection
            row = await self._queries.get_job(conn, id=job_id)
            if row is None:
                raise JobNotFoundError(job_id)
            if row["state"] != JobState.FAILED.value:
                raise InvalidJobStateError(job_id, row["state"], "retry")

            await self._queries.retry_failed_job(conn, id=job_id, now=self.now())
            job = Job.from_row(await self._queries.get_job(conn, id=job_id))

        logger.info(f"Failed job moved back to waiting: id={job_id}")
        return job

    async def clean(self, queue: str, state: JobState | str, grace_ms: int = 0) -> int:
        """grace_ms 보다 오래된 잡 삭제 (active는 삭제 불가)"""
        state = JobState(state)
        if state == JobState.ACTIVE:
            raise InvalidJobStateError("*", state.value, "clean")

        cutoff = self.now() - grace_ms
        async with self._db.transaction() as ctx:
            removed = await self._queries.clean_jobs(
                ctx.connection, queue=queue, state=state.value, cutoff=cutoff
            )
        logger.info(f"Cleaned {removed} {state.value} job(s) from '{queue}'")
        return removed

    async def pause(self, queue: str) -> None:
        await self._set_paused(queue, True)

    async def resume(self, queue: str) -> None:
        await self._set_paused(queue, False)

    async def is_paused(self, queue: str) -> bool:
        async with self._db.transaction(readonly=True) as ctx:
            paused = await self._queries.is_queue_paused(ctx.connection, queue=queue)
        return bool(paused)

    async def _set_paused(self, queue: str, paused: bool) -> None:
        async with self._db.transaction() as ctx:
            await self._queries.set_queue_paused(
                ctx.connection, queue=queue, paused=1 if paused else 0, now=self.now()
            )
        logger.info(f"Queue '{queue}' {'paused' if paused else 'resumed'}")

    # ------------------------------------------------------------
    # 반복 스케줄
    # ------------------------------------------------------------

    async def upsert_schedule(
        self,
        schedule_id: str,
        queue: str,
        job_name: str,
        pattern: str,
        payload: dict[str, Any] | None = None,
        options: JobOptions | None = None,
    ) -> RepeatSchedule:
        """
        반복 스케줄 등록 (같은 id는 한 건만 존재)

        다음 회차 잡을 delayed 상태로 함께 만들며, 이미 있으면 무시합니다.
        """
        options = options or JobOptions()
        payload = payload or {}
        now = self.now()

        async with self._db.transaction() as ctx:
            conn = ctx.connection
            existing = await self._queries.get_repeat_schedule(conn, id=schedule_id)
            if existing is not None and existing["pattern"] != pattern:
                # 이전 패턴으로 예약된 회차는 버림
                await self._queries.delete_pending_repeat_jobs(conn, repeat_id=schedule_id)

            await self._queries.upsert_repeat_schedule(
                conn,
                id=schedule_id,
                queue=queue,
                job_name=job_name,
                pattern=pattern,
                payload=json.dumps(payload),
                next_run_at=next_fire_time(pattern, now),
                now=now,
            )
            schedule = RepeatSchedule.from_row(await self._queries.get_repeat_schedule(conn, id=schedule_id))
            await self._insert_occurrence(conn, schedule, options, now)

        logger.info(
            f"Repeat schedule registered: id={schedule_id}, queue={queue}, "
            f"pattern='{pattern}', next_run_at={schedule.next_run_at}"
        )
        return schedule

    async def advance_schedule(self, schedule: RepeatSchedule, next_run_at: int) -> bool:
        """
        스케줄을 다음 회차로 전진 (compare-and-set)

        Returns:
            전진시켰으면 True, 다른 프로세스가 먼저 전진시켰으면 False
        """
        now = self.now()
        async with self._db.transaction() as ctx:
            conn = ctx.connection
            affected = await self._queries.advance_repeat_schedule(
                conn,
                id=schedule.id,
                next_run_at=next_run_at,
                expected_run_at=schedule.next_run_at,
                now=now,
            )
            if affected == 0:
                return False

            advanced = schedule.model_copy(update={"next_run_at": next_run_at})
            await self._insert_occurrence(conn, advanced, JobOptions(), now)
        return True

    async def _insert_occurrence(self, conn, schedule: RepeatSchedule, options: JobOptions, now: int) -> bool:
        return await self._insert_job(
            conn,
            repeat_job_id(schedule.id, schedule.next_run_at),
            schedule.queue,
            schedule.job_name,
            schedule.payload,
            options,
            run_at=schedule.next_run_at,
            state=JobState.DELAYED,
            now=now,
            repeat_id=schedule.id,
        )

    async def get_schedule(self, schedule_id: str) -> RepeatSchedule | None:
        async with self._db.transaction(readonly=True) as ctx:
            row = await self._queries.get_repeat_schedule(ctx.connection, id=schedule_id)
        return RepeatSchedule.from_row(row) if row else None

    async def list_schedules(self, due_only: bool = False) -> list[RepeatSchedule]:
        async with self._db.transaction(readonly=True) as ctx:
            if due_only:
                rows = await self._queries.list_due_repeat_schedules(ctx.connection, now=self.now())
            else:
                rows = await self._queries.list_repeat_schedules(ctx.connection)
        return [RepeatSchedule.from_row(row) for row in rows]

    async def remove_schedule(self, schedule_id: str) -> bool:
        """스케줄과 아직 실행되지 않은 회차 잡 삭제"""
        async with self._db.transaction() as ctx:
            conn = ctx.connection
            removed = await self._queries.delete_repeat_schedule(conn, id=schedule_id)
            await self._queries.delete_pending_repeat_jobs(conn, repeat_id=schedule_id)
        return removed > 0
