"""이벤트 수신 관련 모델"""
from dataclasses import dataclass, field
from typing import Any

from producer.exception import MessageParseError


@dataclass
class IngressConfig:
    """EventIngress 설정"""
    database: str = "default"

    # Kafka 설정
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_group_id: str = "offload-ingress"
    kafka_topic: str = "offload-jobs"
    kafka_auto_offset_reset: str = "earliest"
    kafka_max_poll_records: int = 10


@dataclass
class EnqueueMessage:
    """
    외부 큐에서 수신한 enqueue 요청

    메시지 포맷 (JSON):
    {
        "queue": "email",
        "job_name": "sendWelcomeEmail",
        "payload": {"recipientEmail": "a@b.co", ...},
        "options": {"delay_ms": 0, "job_id": "..."}   // optional
    }
    """
    queue: str
    job_name: str
    payload: dict[str, Any] = field(default_factory=dict)
    options: dict[str, Any] = field(default_factory=dict)

    # 원본 메시지 (ack/nack용)
    raw_message: Any = None

    @classmethod
    def from_dict(cls, data: Any, raw_message: Any = None) -> "EnqueueMessage":
        if not isinstance(data, dict):
            raise MessageParseError("Message is not a JSON object", data)

        queue = data.get("queue")
        job_name = data.get("job_name") or data.get("jobName")
        if not queue or not job_name:
            raise MessageParseError("Message requires 'queue' and 'job_name'", data)

        payload = data.get("payload") or {}
        options = data.get("options") or {}
        if not isinstance(payload, dict) or not isinstance(options, dict):
            raise MessageParseError("'payload' and 'options' must be JSON objects", data)

        return cls(queue=queue, job_name=job_name, payload=payload, options=options, raw_message=raw_message)
