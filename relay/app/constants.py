"""Relay-level constants shared across modules."""
from __future__ import annotations

SERVICE_NAME = "relay"

# SQS caps a single receive at 10 messages and a long poll at 20 seconds.
MAX_MESSAGES = 10
WAIT_TIME_SECONDS = 20
RETRY_DELAY_SECONDS = 5.0

PRODUCTS_ENDPOINT = "/api/products"


class QUEUE_BACKEND:
    SQS = "sqs"
    RABBITMQ = "rabbitmq"
    INMEMORY = "inmemory"
