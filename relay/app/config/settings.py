from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from relay.app.constants import MAX_MESSAGES, RETRY_DELAY_SECONDS, WAIT_TIME_SECONDS


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    queue_backend: str = Field("sqs", validation_alias="QUEUE_BACKEND")

    queue_url: str = Field("", validation_alias="QUEUE_URL")
    aws_region: str = Field("us-east-1", validation_alias="AWS_REGION")
    aws_endpoint_url: str = Field("", validation_alias="AWS_ENDPOINT_URL")
    dead_letter_queue_url: str = Field("", validation_alias="DEAD_LETTER_QUEUE_URL")

    broker_host: str = Field("localhost", validation_alias="BROKER_HOST")
    broker_port: int = Field(5672, validation_alias="BROKER_PORT")
    broker_user: str = Field("guest", validation_alias="BROKER_USER")
    broker_password: str = Field("guest", validation_alias="BROKER_PASSWORD")
    queue_name: str = Field("product_queue", validation_alias="QUEUE_NAME")
    broker_poll_interval_seconds: float = Field(0.5, validation_alias="BROKER_POLL_INTERVAL_SECONDS")

    inmemory_visibility_timeout_seconds: float = Field(
        30.0,
        validation_alias="INMEMORY_VISIBILITY_TIMEOUT_SECONDS",
    )

    api_base_url: str = Field("http://localhost:8080", validation_alias="API_BASE_URL")
    forward_connect_timeout_seconds: float = Field(5.0, validation_alias="FORWARD_CONNECT_TIMEOUT_SECONDS")
    forward_read_timeout_seconds: float = Field(15.0, validation_alias="FORWARD_READ_TIMEOUT_SECONDS")

    max_messages: int = Field(MAX_MESSAGES, ge=1, validation_alias="MAX_MESSAGES")
    wait_time_seconds: int = Field(WAIT_TIME_SECONDS, ge=0, validation_alias="WAIT_TIME_SECONDS")
    retry_delay_seconds: float = Field(RETRY_DELAY_SECONDS, ge=0, validation_alias="RETRY_DELAY_SECONDS")
    stop_timeout_seconds: float = Field(30.0, validation_alias="STOP_TIMEOUT_SECONDS")

    # 0 leaves redelivery and dead-lettering entirely to the queue's own redrive policy.
    max_receive_count: int = Field(0, ge=0, validation_alias="MAX_RECEIVE_COUNT")

    initial_backoff_seconds: float = Field(1.0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, validation_alias="MAX_BACKOFF_SECONDS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")
    max_connection_attempts: int = Field(5, validation_alias="MAX_CONNECTION_ATTEMPTS")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(False, validation_alias="LOG_JSON")
