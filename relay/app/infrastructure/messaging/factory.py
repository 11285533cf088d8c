"""Queue client factory: selects implementation from config. Only place that imports concrete queue clients."""
from __future__ import annotations

import boto3

from relay.app.config.settings import Settings
from relay.app.constants import QUEUE_BACKEND
from relay.app.ports.queue_client import QueueClient
from relay.app.infrastructure.messaging.inmemory.in_memory_queue import InMemoryQueueClient
from relay.app.infrastructure.messaging.rabbitmq.rabbitmq_queue_client import RabbitMQQueueClient
from relay.app.infrastructure.messaging.sqs.sqs_queue_client import SqsQueueClient


def _create_sqs_client(settings: Settings):
    if settings.aws_endpoint_url:
        return boto3.client(
            "sqs",
            region_name=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
        )
    return boto3.client("sqs", region_name=settings.aws_region)


def create_queue_client(settings: Settings) -> QueueClient:
    backend = settings.queue_backend.strip().lower()

    if backend == QUEUE_BACKEND.SQS:
        return SqsQueueClient(
            _create_sqs_client(settings),
            settings.queue_url,
            dead_letter_queue_url=settings.dead_letter_queue_url,
        )

    if backend == QUEUE_BACKEND.RABBITMQ:
        return RabbitMQQueueClient(settings)

    if backend == QUEUE_BACKEND.INMEMORY:
        return InMemoryQueueClient(
            visibility_timeout_seconds=settings.inmemory_visibility_timeout_seconds,
        )

    raise ValueError(f"Unsupported queue backend: {backend}")
