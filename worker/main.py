"""
WorkerPool: 큐별 잡 실행 워커풀 모듈

큐마다 QueueWorker 하나가 원장에서 잡을 lease 하여 동시 실행 한도(concurrency)와
시작 속도 한도(rate limit) 안에서 실행합니다. 별도 reaper 루프가 lease가 만료된
잡을 회수하여 다른 워커가 다시 가져갈 수 있게 합니다.

실행 방법:
    python -m worker.main
    python main.py worker
"""

import asyncio
import logging
import os
import secrets
import signal
import socket
from dataclasses import dataclass, field

from integration.services import Services
from ledger.exception import RateLimitExceeded
from ledger.main import Ledger
from ledger.model.job import Job
from ledger.model.queue import QueueConfig
from worker.events import JobEvents
from worker.executor import Executor

logger = logging.getLogger(__name__)


@dataclass
class WorkerConfig:
    """워커풀 설정"""
    database: str = "default"  # 원장 DB (database.yaml에 정의된 이름)
    worker_id: str | None = None
    queues: list[str] = field(default_factory=list)  # 비어 있으면 전체 큐
    poll_interval_seconds: float = 1.0
    lease_seconds: float = 30.0
    heartbeat_seconds: float = 10.0
    reaper_interval_seconds: float = 15.0
    max_stalled_count: int = 1
    shutdown_timeout_seconds: float = 30.0


def default_worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{secrets.token_hex(3)}"


class QueueWorker:
    """
    단일 큐 워커

    세마포어로 동시 실행 수를 제한하고, 슬롯이 비면 다음 잡을 lease 합니다.
    """

    def __init__(
        self,
        queue_config: QueueConfig,
        ledger: Ledger,
        executor: Executor,
        config: WorkerConfig,
        stop_event: asyncio.Event,
    ):
        self._queue_config = queue_config
        self._ledger = ledger
        self._executor = executor
        self._config = config
        self._stop_event = stop_event
        self._semaphore = asyncio.Semaphore(queue_config.concurrency)
        self._running_tasks: set[asyncio.Task] = set()

    @property
    def name(self) -> str:
        return self._queue_config.name

    @property
    def running_task_count(self) -> int:
        return len(self._running_tasks)

    async def run(self) -> None:
        logger.info(
            f"QueueWorker started: queue={self.name}, concurrency={self._queue_config.concurrency}, "
            f"rate_limit={self._queue_config.rate_limit}"
        )
        try:
            await self._main_loop()
        finally:
            await self._wait_running_tasks()
            logger.info(f"QueueWorker stopped: queue={self.name}")

    async def _main_loop(self) -> None:
        while not self._stop_event.is_set():
            await self._semaphore.acquire()
            if self._stop_event.is_set():
                self._semaphore.release()
                break

            try:
                job = await self._ledger.lease(
                    self.name,
                    worker_id=self._executor.worker_id,
                    lease_ms=int(self._config.lease_seconds * 1000),
                    rate_limit=self._queue_config.rate_limit,
                )
            except RateLimitExceeded as e:
                self._semaphore.release()
                logger.debug(f"Rate limited: queue={self.name}, retry_after={e.retry_after_ms}ms")
                await self._sleep(e.retry_after_ms / 1000)
                continue
            except Exception as e:
                self._semaphore.release()
                logger.error(f"Lease error on queue '{self.name}': {e}", exc_info=True)
                await self._sleep(self._config.poll_interval_seconds)
                continue

            if job is None:
                self._semaphore.release()
                await self._sleep(self._config.poll_interval_seconds)
                continue

            task = asyncio.create_task(self._execute_job(job))
            self._running_tasks.add(task)
            task.add_done_callback(self._on_task_done)

    async def _execute_job(self, job: Job) -> None:
        try:
            await self._executor.execute(job)
        except Exception as e:
            # ack/fail 기록 실패: lease 만료 후 reaper가 회수
            logger.error(f"Unexpected error executing job {job.id}: {e}", exc_info=True)
        finally:
            self._semaphore.release()

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._running_tasks.discard(task)
        if not task.cancelled() and task.exception():
            logger.error(f"Task exception: {task.exception()}")

    async def _sleep(self, seconds: float) -> None:
        """인터럽트 가능한 sleep"""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _wait_running_tasks(self) -> None:
        """실행 중인 잡 완료 대기 (graceful shutdown)"""
        if not self._running_tasks:
            return

        logger.info(f"Waiting for {len(self._running_tasks)} running job(s) on '{self.name}'...")
        try:
            await asyncio.wait_for(
                asyncio.gather(*self._running_tasks, return_exceptions=True),
                timeout=self._config.shutdown_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Shutdown timeout ({self._config.shutdown_timeout_seconds}s), "
                f"cancelling {len(self._running_tasks)} job(s) on '{self.name}'"
            )
            # 취소된 잡은 lease 만료 후 다른 워커가 다시 실행
            for task in self._running_tasks:
                task.cancel()


class WorkerPool:
    """
    잡 실행 워커풀

    프로세스 시작 시 한 번 생성하여 사용합니다.

    사용 예시:
        pool = WorkerPool(ledger, services, queue_configs, WorkerConfig())
        asyncio.create_task(pool.start())
        ...
        await pool.stop()
    """

    def __init__(
        self,
        ledger: Ledger,
        services: Services,
        queue_configs: dict[str, QueueConfig],
        config: WorkerConfig | None = None,
        events: JobEvents | None = None,
    ):
        self._ledger = ledger
        self._services = services
        self._config = config or WorkerConfig()
        self._events = events or JobEvents()
        self._worker_id = self._config.worker_id or default_worker_id()
        self._running = False
        self._stop_event: asyncio.Event | None = None

        names = self._config.queues or list(queue_configs.keys())
        unknown = [n for n in names if n not in queue_configs]
        if unknown:
            raise ValueError(f"Unknown queue(s) in worker config: {unknown}")
        self._queue_configs = {name: queue_configs[name] for name in names}
        self._workers: list[QueueWorker] = []

    @property
    def events(self) -> JobEvents:
        return self._events

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def running_task_count(self) -> int:
        return sum(w.running_task_count for w in self._workers)

    async def start(self) -> None:
        """워커풀 시작 (stop() 호출 시까지 실행)"""
        if self._running:
            logger.warning("WorkerPool is already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()

        executor = Executor(
            self._ledger,
            self._services,
            self._events,
            worker_id=self._worker_id,
            lease_ms=int(self._config.lease_seconds * 1000),
            heartbeat_seconds=self._config.heartbeat_seconds,
        )
        self._workers = [
            QueueWorker(queue_config, self._ledger, executor, self._config, self._stop_event)
            for queue_config in self._queue_configs.values()
        ]

        logger.info(
            f"WorkerPool started (worker_id={self._worker_id}, queues={list(self._queue_configs)}, "
            f"lease={self._config.lease_seconds}s)"
        )

        try:
            await asyncio.gather(
                *(worker.run() for worker in self._workers),
                self._reaper_loop(),
            )
        except asyncio.CancelledError:
            logger.info("WorkerPool cancelled")
        except Exception as e:
            logger.error(f"WorkerPool error: {e}", exc_info=True)
            raise
        finally:
            self._running = False
            logger.info("WorkerPool stopped")

    async def stop(self) -> None:
        """WorkerPool graceful shutdown"""
        if not self._running:
            return

        logger.info("Stopping WorkerPool...")
        if self._stop_event:
            self._stop_event.set()

    async def _reaper_loop(self) -> None:
        """lease 만료 잡 회수 루프"""
        while not self._stop_event.is_set():
            try:
                await self._ledger.requeue_expired_leases(self._config.max_stalled_count)
            except Exception as e:
                logger.error(f"Error recovering expired leases: {e}", exc_info=True)

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._config.reaper_interval_seconds
                )
            except asyncio.TimeoutError:
                pass


def _load_handlers() -> None:
    """핸들러 모듈 로드 (데코레이터 등록을 위해, 하위 폴더 재귀 탐색)"""
    import importlib
    import pkgutil
    from worker import job as job_pkg

    def load_recursive(package, prefix: str):
        for _, module_name, is_pkg in pkgutil.iter_modules(package.__path__):
            full_name = f"{prefix}.{module_name}"
            module = importlib.import_module(full_name)
            logger.debug(f"Loaded handler module: {full_name}")
            if is_pkg:
                load_recursive(module, full_name)

    load_recursive(job_pkg, "worker.job")


if __name__ == "__main__":
    from common.config import load_config
    from common.logging import setup_logging
    from database.registry import DatabaseRegistry
    from integration.factory import build_services
    from ledger.model.queue import load_queue_configs

    async def main():
        config = load_config()
        setup_logging(**config.get("logging", {}))

        _load_handlers()

        worker_config = WorkerConfig(**config.get("worker", {}))
        await DatabaseRegistry.init_from_config(config)

        queue_configs = load_queue_configs(config)
        ledger = Ledger(DatabaseRegistry.get(worker_config.database), queue_configs)
        await ledger.initialize()
        services = await build_services(config)

        worker_pool = WorkerPool(ledger, services, queue_configs, worker_config)

        loop = asyncio.get_running_loop()

        def signal_handler():
            logger.info("Received shutdown signal")
            asyncio.create_task(worker_pool.stop())

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        try:
            logger.info("Starting WorkerPool...")
            await worker_pool.start()
        finally:
            await services.close()
            await DatabaseRegistry.close_all()

    asyncio.run(main())
