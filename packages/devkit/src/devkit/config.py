from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict

from devkit.amqp import RabbitMqSettings


class ServiceSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    SERVICE_NAME: str = "service"
    DATABASE_URL: str | None = None
    LOG_LEVEL: str = "INFO"

    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USERNAME: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VIRTUAL_HOST: str = "/"
    RABBITMQ_EXCHANGE_NAME: str = "ratings_exchange"
    RABBITMQ_QUEUE_NAME: str = "notifications_queue"
    RABBITMQ_ROUTING_KEY: str = "rating.created"
    RABBITMQ_CONNECT_MAX_RETRIES: int = 10
    RABBITMQ_CONNECT_RETRY_DELAY_SECONDS: float = 5.0

    PUBLISH_MAX_RETRIES: int = 3
    PUBLISH_BASE_DELAY_SECONDS: float = 1.0
    HANDLER_MAX_RETRIES: int = 3
    HANDLER_BASE_DELAY_SECONDS: float = 1.0
    NOTIFICATION_CONSUMER_ENABLED: bool = True

    def rabbitmq(self) -> RabbitMqSettings:
        return RabbitMqSettings(
            host=self.RABBITMQ_HOST,
            port=self.RABBITMQ_PORT,
            username=self.RABBITMQ_USERNAME,
            password=self.RABBITMQ_PASSWORD,
            virtual_host=self.RABBITMQ_VIRTUAL_HOST,
            exchange_name=self.RABBITMQ_EXCHANGE_NAME,
            queue_name=self.RABBITMQ_QUEUE_NAME,
            routing_key=self.RABBITMQ_ROUTING_KEY,
            connect_max_retries=self.RABBITMQ_CONNECT_MAX_RETRIES,
            connect_retry_delay_seconds=self.RABBITMQ_CONNECT_RETRY_DELAY_SECONDS,
        )


def load_settings(service_name: str) -> ServiceSettings:
    return ServiceSettings(SERVICE_NAME=service_name)
