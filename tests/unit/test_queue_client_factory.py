import pytest

from relay.app.config.settings import Settings
from relay.app.infrastructure.messaging.factory import create_queue_client
from relay.app.infrastructure.messaging.inmemory.in_memory_queue import InMemoryQueueClient
from relay.app.infrastructure.messaging.rabbitmq.rabbitmq_queue_client import RabbitMQQueueClient
from relay.app.infrastructure.messaging.sqs.sqs_queue_client import SqsQueueClient


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "test")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "test")
    for name in ("QUEUE_BACKEND", "QUEUE_URL", "AWS_ENDPOINT_URL", "MAX_MESSAGES", "MAX_RECEIVE_COUNT"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_settings_defaults(env):
    settings = Settings(_env_file=None)

    assert settings.queue_backend == "sqs"
    assert settings.max_messages == 10
    assert settings.wait_time_seconds == 20
    assert settings.retry_delay_seconds == 5.0
    assert settings.max_receive_count == 0


def test_settings_read_from_environment(env):
    env.setenv("QUEUE_BACKEND", "rabbitmq")
    env.setenv("MAX_MESSAGES", "4")
    env.setenv("MAX_RECEIVE_COUNT", "5")
    env.setenv("API_BASE_URL", "http://inventory:9000")

    settings = Settings(_env_file=None)

    assert settings.queue_backend == "rabbitmq"
    assert settings.max_messages == 4
    assert settings.max_receive_count == 5
    assert settings.api_base_url == "http://inventory:9000"


def test_sqs_backend(env):
    env.setenv("QUEUE_BACKEND", "sqs")
    env.setenv("QUEUE_URL", "http://localhost:4566/000000000000/products")
    env.setenv("AWS_ENDPOINT_URL", "http://localhost:4566")

    client = create_queue_client(Settings(_env_file=None))

    assert isinstance(client, SqsQueueClient)
    assert client.queue_url == "http://localhost:4566/000000000000/products"


def test_sqs_backend_requires_queue_url(env):
    env.setenv("QUEUE_BACKEND", "sqs")

    with pytest.raises(ValueError):
        create_queue_client(Settings(_env_file=None))


def test_rabbitmq_backend(env):
    env.setenv("QUEUE_BACKEND", "RabbitMQ")

    assert isinstance(create_queue_client(Settings(_env_file=None)), RabbitMQQueueClient)


def test_inmemory_backend(env):
    env.setenv("QUEUE_BACKEND", "inmemory")

    assert isinstance(create_queue_client(Settings(_env_file=None)), InMemoryQueueClient)


def test_unknown_backend_is_rejected(env):
    env.setenv("QUEUE_BACKEND", "kafka")

    with pytest.raises(ValueError, match="Unsupported queue backend"):
        create_queue_client(Settings(_env_file=None))
