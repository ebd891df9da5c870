"""잡 추가 (QueueRegistry, 타입별 enqueue 함수, 외부 이벤트 수신)"""
from producer.registry import QueueRegistry

__all__ = ["QueueRegistry"]
