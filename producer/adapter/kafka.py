"""Kafka Queue Adapter"""
import json
import logging
from typing import AsyncIterator

from producer.adapter.base import BaseQueueAdapter
from producer.exception import MessageParseError
from producer.model import EnqueueMessage, IngressConfig

logger = logging.getLogger(__name__)


class KafkaAdapter(BaseQueueAdapter):
    """
    Kafka 큐 어댑터

    aiokafka consumer를 수동 커밋 모드로 사용합니다.
    """

    def __init__(self, config: IngressConfig):
        self._config = config
        self._consumer = None

    async def connect(self) -> None:
        """Kafka consumer 연결"""
        # kafka extra 설치 시에만 필요
        from aiokafka import AIOKafkaConsumer

        self._consumer = AIOKafkaConsumer(
            self._config.kafka_topic,
            bootstrap_servers=self._config.kafka_bootstrap_servers,
            group_id=self._config.kafka_group_id,
            auto_offset_reset=self._config.kafka_auto_offset_reset,
            enable_auto_commit=False,
            max_poll_records=self._config.kafka_max_poll_records,
        )
        await self._consumer.start()
        logger.info(
            f"Kafka consumer connected: topic={self._config.kafka_topic}, "
            f"group_id={self._config.kafka_group_id}"
        )

    async def disconnect(self) -> None:
        """Kafka consumer 연결 해제"""
        if self._consumer:
            consumer, self._consumer = self._consumer, None
            await consumer.stop()
            logger.info("Kafka consumer disconnected")

    async def receive(self) -> AsyncIterator[EnqueueMessage]:
        if not self._consumer:
            raise RuntimeError("Kafka consumer not connected")

        async for msg in self._consumer:
            try:
                data = json.loads(msg.value.decode("utf-8"))
                message = EnqueueMessage.from_dict(data, raw_message=msg)
            except (ValueError, MessageParseError) as e:
                # 파싱 실패한 메시지는 커밋하고 넘어감
                logger.error(f"Failed to parse message: {e}, partition={msg.partition}, offset={msg.offset}")
                await self._consumer.commit()
                continue

            logger.debug(
                f"Received message: queue={message.queue}, job_name={message.job_name}, "
                f"partition={msg.partition}, offset={msg.offset}"
            )
            yield message

    async def complete(self, message: EnqueueMessage) -> None:
        """메시지 처리 완료 (커밋)"""
        if self._consumer and message.raw_message:
            await self._consumer.commit()
            logger.debug(f"Message committed: offset={message.raw_message.offset}")

    async def abandon(self, message: EnqueueMessage) -> None:
        """
        메시지 처리 실패

        커밋하지 않으므로 재시작 또는 리밸런스 후 같은 오프셋부터 다시 수신합니다.
        """
        logger.warning(
            f"Message abandoned: queue={message.queue}, job_name={message.job_name}, "
            f"offset={message.raw_message.offset if message.raw_message else 'N/A'}"
        )
