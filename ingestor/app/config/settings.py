from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    queue_client_backend: str = Field("sqs", validation_alias="QUEUE_CLIENT_BACKEND")

    queue_name: str = Field("", validation_alias="QUEUE_NAME")
    queue_url: str = Field("", validation_alias="QUEUE_URL")
    aws_region: str = Field("", validation_alias="AWS_REGION")
    sqs_endpoint_url: str = Field("", validation_alias="SQS_ENDPOINT_URL")

    # SQS caps a single receive at 10 messages.
    sqs_max_number_of_messages: int = Field(10, validation_alias="SQS_MAX_NUMBER_OF_MESSAGES")
    sqs_wait_time_seconds: int | None = Field(None, validation_alias="SQS_WAIT_TIME_SECONDS")
    sqs_visibility_timeout: int | None = Field(None, validation_alias="SQS_VISIBILITY_TIMEOUT")
    sqs_max_attempts: int = Field(3, validation_alias="SQS_MAX_ATTEMPTS")

    # Idle backoff between receives when the queue came back empty.
    poll_interval_ms: int = Field(5000, validation_alias="POLL_INTERVAL_MS")

    batch_size: int = Field(10, validation_alias="BATCH_SIZE")
    batch_timeout_ms: int = Field(1000, validation_alias="BATCH_TIMEOUT_MS")

    initial_backoff_seconds: float = Field(0.5, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(10.0, validation_alias="MAX_BACKOFF_SECONDS")
    max_connection_attempts: int = Field(5, validation_alias="MAX_CONNECTION_ATTEMPTS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")
