"""Queue adapters"""
from producer.adapter.base import BaseQueueAdapter
from producer.adapter.kafka import KafkaAdapter

__all__ = ["BaseQueueAdapter", "KafkaAdapter"]
