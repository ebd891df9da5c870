"""
EventIngress: 외부 큐 메시지로 잡 추가

외부 큐(Kafka)에서 {queue, job_name, payload, options} 메시지를 수신하여
QueueRegistry.enqueue 로 원장에 기록합니다.

- 검증 실패 (정의되지 않은 큐 / job name, 잘못된 options): 로그 후 커밋
- 그 외 실패 (DB 오류 등): abandon (커밋하지 않음)

실행 방법:
    python -m producer.ingress
    python main.py ingress
"""

import asyncio
import logging

from pydantic import ValidationError

from ledger.exception import UnknownJobError, UnknownQueueError
from producer.adapter.base import BaseQueueAdapter
from producer.adapter.kafka import KafkaAdapter
from producer.exception import QueueConnectionError
from producer.model import EnqueueMessage, IngressConfig
from producer.registry import QueueRegistry

logger = logging.getLogger(__name__)


class EventIngress:

    def __init__(self, registry: QueueRegistry, config: IngressConfig, adapter: BaseQueueAdapter | None = None):
        """
        Args:
            registry: 잡 추가에 사용할 QueueRegistry
            config: EventIngress 설정
            adapter: 큐 어댑터 (미지정 시 KafkaAdapter 사용)
        """
        self._registry = registry
        self._config = config
        self._adapter = adapter or KafkaAdapter(config)
        self._running = False

    @property
    def is_running(self) -> bool:
        """실행 중 여부"""
        return self._running

    async def start(self) -> None:
        """EventIngress 메인 루프 시작"""
        if self._running:
            logger.warning("EventIngress is already running")
            return

        self._running = True

        try:
            await self._adapter.connect()
        except Exception as e:
            self._running = False
            raise QueueConnectionError(f"Failed to connect to queue: {e}")

        logger.info("EventIngress started")

        try:
            await self._main_loop()
        except asyncio.CancelledError:
            logger.info("EventIngress cancelled")
        except Exception as e:
            logger.error(f"EventIngress error: {e}", exc_info=True)
            raise
        finally:
            await self._adapter.disconnect()
            self._running = False
            logger.info("EventIngress stopped")

    async def stop(self) -> None:
        """EventIngress graceful shutdown"""
        if not self._running:
            return

        logger.info("Stopping EventIngress...")
        self._running = False
        # consumer 종료로 async for 루프 탈출
        await self._adapter.disconnect()

    async def _main_loop(self) -> None:
        async for message in self._adapter.receive():
            if not self._running:
                break
            await self.handle(message)

    async def handle(self, message: EnqueueMessage) -> str | None:
        """
        메시지 하나 처리

        Returns:
            추가된 잡 id (버린 메시지는 None)
        """
        try:
            job_id = await self._registry.enqueue(
                message.queue, message.job_name, message.payload, message.options
            )
        except (UnknownQueueError, UnknownJobError) as e:
            logger.error(f"Message rejected: {e.message}")
            await self._adapter.complete(message)
            return None
        except ValidationError as e:
            logger.error(f"Message rejected, invalid options: queue={message.queue}, error={e}")
            await self._adapter.complete(message)
            return None
        except Exception as e:
            logger.error(
                f"Failed to enqueue message: {e}, queue={message.queue}, job_name={message.job_name}",
                exc_info=True
            )
            await self._adapter.abandon(message)
            return None

        await self._adapter.complete(message)
        return job_id


if __name__ == "__main__":
    import signal

    from common.config import load_config
    from common.logging import setup_logging
    from database.registry import DatabaseRegistry
    from ledger.main import Ledger
    from ledger.model.queue import load_queue_configs

    async def main():
        config = load_config()
        setup_logging(**config.get("logging", {}))

        ingress_config = IngressConfig(**config.get("ingress", {}))
        await DatabaseRegistry.init_from_config(config, [ingress_config.database])

        queue_configs = load_queue_configs(config)
        ledger = Ledger(DatabaseRegistry.get(ingress_config.database), queue_configs)
        await ledger.initialize()

        ingress = EventIngress(QueueRegistry(ledger, queue_configs), ingress_config)

        loop = asyncio.get_running_loop()

        def signal_handler():
            logger.info("Received shutdown signal")
            asyncio.create_task(ingress.stop())

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        try:
            logger.info("Starting EventIngress...")
            await ingress.start()
        finally:
            await DatabaseRegistry.close_all()

    asyncio.run(main())
