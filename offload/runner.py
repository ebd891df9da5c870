"""
모듈 실행기

Worker, Scheduler, Ingress를 한 프로세스에서 함께 실행합니다.
원장, QueueRegistry, Services는 여기서 한 번만 만들어 각 모듈에 전달합니다.
"""

import asyncio
import logging
import signal
import sys
from typing import Any

from database.registry import DatabaseRegistry
from ledger.main import Ledger
from ledger.model.queue import QueueConfig, load_queue_configs

logger = logging.getLogger(__name__)

VALID_MODULES = ("worker", "scheduler", "ingress")


class LedgerProvider:
    """DB 이름별 Ledger (모듈들이 같은 DB를 쓰면 같은 인스턴스 공유)"""

    def __init__(self, queue_configs: dict[str, QueueConfig]):
        self._queue_configs = queue_configs
        self._ledgers: dict[str, Ledger] = {}

    async def get(self, database: str) -> Ledger:
        if database not in self._ledgers:
            ledger = Ledger(DatabaseRegistry.get(database), self._queue_configs)
            await ledger.initialize()
            self._ledgers[database] = ledger
        return self._ledgers[database]


async def run_worker(config: dict, ledgers: LedgerProvider, queue_configs: dict[str, QueueConfig], stop_event: asyncio.Event):
    """Worker 실행"""
    from integration.factory import build_services
    from worker.main import WorkerConfig, WorkerPool, _load_handlers

    _load_handlers()
    worker_config = WorkerConfig(**config.get("worker", {}))
    services = await build_services(config)
    worker_pool = WorkerPool(await ledgers.get(worker_config.database), services, queue_configs, worker_config)

    async def wait_stop():
        await stop_event.wait()
        await worker_pool.stop()

    asyncio.create_task(wait_stop())
    try:
        await worker_pool.start()
    finally:
        await services.close()


async def run_scheduler(config: dict, ledgers: LedgerProvider, stop_event: asyncio.Event):
    """Scheduler 실행"""
    from scheduler.main import Scheduler
    from scheduler.model.scheduler import SchedulerConfig

    scheduler_config = SchedulerConfig(**config.get("scheduler", {}))
    scheduler = Scheduler(await ledgers.get(scheduler_config.database), scheduler_config)
    await scheduler.schedule_cleanup_job()

    async def wait_stop():
        await stop_event.wait()
        await scheduler.stop()

    asyncio.create_task(wait_stop())
    await scheduler.start()


async def run_ingress(config: dict, ledgers: LedgerProvider, queue_configs: dict[str, QueueConfig], stop_event: asyncio.Event):
    """Kafka 이벤트 수신 실행"""
    from producer.ingress import EventIngress
    from producer.model import IngressConfig
    from producer.registry import QueueRegistry

    ingress_config = IngressConfig(**config.get("ingress", {}))
    registry = QueueRegistry(await ledgers.get(ingress_config.database), queue_configs)
    ingress = EventIngress(registry, ingress_config)

    async def wait_stop():
        await stop_event.wait()
        await ingress.stop()

    asyncio.create_task(wait_stop())
    await ingress.start()


def required_databases(config: dict[str, Any], modules: list[str]) -> list[str]:
    """모듈 실행에 필요한 DB 이름 목록"""
    db_names = set()
    if "worker" in modules:
        db_names.add(config.get("worker", {}).get("database", "default"))
        metadata = config.get("integration", {}).get("metadata", {}) or {}
        db_names.add(metadata.get("database", "default"))
    if "scheduler" in modules:
        db_names.add(config.get("scheduler", {}).get("database", "default"))
    if "ingress" in modules:
        db_names.add(config.get("ingress", {}).get("database", "default"))
    return sorted(db_names)


async def run(modules: list[str], config: dict[str, Any]) -> None:
    """선택한 모듈을 함께 실행 (종료 시그널까지)"""
    await DatabaseRegistry.init_from_config(config, required_databases(config, modules))

    queue_configs = load_queue_configs(config)
    ledgers = LedgerProvider(queue_configs)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    # Windows는 add_signal_handler를 지원하지 않음
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

    tasks = []
    if "worker" in modules:
        tasks.append(asyncio.create_task(run_worker(config, ledgers, queue_configs, stop_event)))
        logger.info("Worker started")
    if "scheduler" in modules:
        tasks.append(asyncio.create_task(run_scheduler(config, ledgers, stop_event)))
        logger.info("Scheduler started")
    if "ingress" in modules:
        tasks.append(asyncio.create_task(run_ingress(config, ledgers, queue_configs, stop_event)))
        logger.info("Ingress started")

    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        logger.info("Tasks cancelled")
    finally:
        await DatabaseRegistry.close_all()
        logger.info("All modules stopped")
