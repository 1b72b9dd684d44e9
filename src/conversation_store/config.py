from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field

class Settings(BaseSettings):
    PROJECT_NAME: str = "Conversation Store"

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Log level: DEBUG, INFO, WARNING, ERROR")

    # ========================================================================
    # Cosmos DB (durable backend)
    # A single container holds sessions, directory entries, messages and
    # windows; every document is partitioned by tenant_id.
    # ========================================================================
    COSMOS_DB_ENDPOINT: Optional[str] = None
    COSMOS_DB_KEY: Optional[str] = None  # Unset = DefaultAzureCredential (managed identity)
    COSMOS_DB_DATABASE_NAME: str = "conversation_store"
    COSMOS_DB_CONTAINER_NAME: str = "conversations"
    COSMOS_DB_PARTITION_KEY_PATH: str = "/tenant_id"
    COSMOS_DB_THROUGHPUT: int = 400  # RU/s, only used when provisioning
    # Probe connectivity once at startup; unreachable = degraded mode for the process lifetime
    COSMOS_PROBE_ON_STARTUP: bool = True

    # ========================================================================
    # Retention
    # ========================================================================
    SESSION_TTL_SECONDS: int = 60 * 60  # Fixed, no sliding renewal
    DOCUMENT_TTL_SECONDS: int = 60 * 60 * 24 * 90  # Messages, windows, directory entries

    # ========================================================================
    # Conversation shape
    # ========================================================================
    WINDOW_CAPACITY: int = Field(default=20, ge=1)  # K: entries kept in the rolling window
    MAX_MESSAGE_BYTES: int = Field(default=4000, ge=1)  # Longer content is truncated, not rejected
    HISTORY_MAX_LIMIT: int = Field(default=100, ge=1)
    DEFAULT_CONVERSATION_TITLE: str = "New chat"
    MAX_TITLE_CHARS: int = 120

    # ========================================================================
    # Identity provider (credentials -> profile + opaque token)
    # ========================================================================
    IDENTITY_API_URL: Optional[str] = None
    IDENTITY_TIMEOUT_SECONDS: float = 15.0

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def cosmos_configured(self) -> bool:
        return bool(self.COSMOS_DB_ENDPOINT)

settings = Settings()
