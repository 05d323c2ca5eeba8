from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuración del núcleo de visitas clínicas utilizando Pydantic BaseSettings.
    Carga automáticamente las variables de entorno (prefijo CLINICFLOW_).
    """

    # Persistence / REST backend
    API_BASE_URL: str = Field("http://localhost:8080/api", description="Base URL of the clinic REST backend")
    API_TIMEOUT: float = Field(30.0, description="HTTP timeout in seconds for backend calls")
    API_TOKEN: str | None = Field(None, description="Bearer token forwarded to the backend")

    # Real-time transport (STOMP over websocket)
    WS_URL: str = Field("ws://localhost:8080/ws", description="STOMP websocket endpoint for payment events")
    WS_CONNECT_TIMEOUT: float = Field(10.0, description="Seconds to wait for the STOMP CONNECTED frame")
    WS_HEARTBEAT_MS: int = Field(4000, description="STOMP heart-beat interval in milliseconds")

    # Payment gateway
    QR_SETTLEMENT_TIMEOUT: float = Field(600.0, description="UI-level timeout waiting for a QR settlement")
    PAYMENT_RETURN_URL: str | None = Field(None, description="Return URL forwarded to the gateway")
    PAYMENT_CANCEL_URL: str | None = Field(None, description="Cancel URL forwarded to the gateway")
    CURRENCY: str = Field("VND", description="Currency label printed on receipts")

    # Checkout idempotency ledger
    CHECKOUT_LEDGER_BACKEND: Literal["memory", "redis"] = Field(
        "memory", description="Where committed checkouts are remembered"
    )
    REDIS_URL: str = Field("redis://localhost:6379/0", description="Redis URL for the checkout ledger")
    CHECKOUT_LOCK_TTL_MS: int = Field(5 * 60 * 1000, description="Processing lock TTL (5 minutes)")
    CHECKOUT_COMPLETED_TTL_MS: int = Field(24 * 60 * 60 * 1000, description="Completed checkout TTL (24 hours)")

    # Logging
    LOG_LEVEL: str = Field("INFO", description="Log level")
    LOG_FORMAT: Literal["colored", "json", "plain"] = Field("colored", description="Log output format")

    @field_validator("API_BASE_URL", "WS_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid LOG_LEVEL: {v}")
        return level

    @field_validator("QR_SETTLEMENT_TIMEOUT", "API_TIMEOUT", "WS_CONNECT_TIMEOUT")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be positive")
        return v

    model_config = SettingsConfigDict(
        env_prefix="CLINICFLOW_",
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """
    Retorna una instancia cacheada de la configuración.
    Esto evita cargar las variables de entorno múltiples veces.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings (tests change the environment)."""
    global _settings_instance
    _settings_instance = None
