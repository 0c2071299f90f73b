import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    responder_model: str = Field("gpt-4o-mini", alias="CODEHELPER_RESPONDER_MODEL")
    database_url: Optional[str] = Field(None, alias="CODEHELPER_DATABASE_URL")
    database_pool_size: int = Field(10, alias="CODEHELPER_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="CODEHELPER_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="CODEHELPER_DATABASE_ECHO")
    auto_create_schema: bool = Field(False, alias="CODEHELPER_AUTO_CREATE_SCHEMA")
    seed_catalog: bool = Field(False, alias="CODEHELPER_SEED_CATALOG")
    admin_user_ids: str = Field("", alias="CODEHELPER_ADMIN_USER_IDS")

    message_max_length: int = Field(2000, alias="CODEHELPER_MESSAGE_MAX_LENGTH")
    chat_rate_limit: int = Field(10, alias="CODEHELPER_CHAT_RATE_LIMIT")
    chat_rate_window_seconds: float = Field(60.0, alias="CODEHELPER_CHAT_RATE_WINDOW_SECONDS")

    # Client-side tunables.
    api_base_url: str = Field("http://127.0.0.1:8000", alias="CODEHELPER_API_BASE_URL")
    api_timeout_seconds: float = Field(15.0, alias="CODEHELPER_API_TIMEOUT_SECONDS")
    local_state_dir: str = Field(".codehelper", alias="CODEHELPER_LOCAL_STATE_DIR")
    block_status_ttl_seconds: float = Field(30.0, alias="CODEHELPER_BLOCK_STATUS_TTL_SECONDS")
    query_stale_seconds: float = Field(300.0, alias="CODEHELPER_QUERY_STALE_SECONDS")
    auto_send_delay_seconds: float = Field(0.3, alias="CODEHELPER_AUTO_SEND_DELAY_SECONDS")
    read_retry_attempts: int = Field(2, alias="CODEHELPER_READ_RETRY_ATTEMPTS")
    link_retry_attempts: int = Field(2, alias="CODEHELPER_LINK_RETRY_ATTEMPTS")
    retry_base_delay_seconds: float = Field(1.0, alias="CODEHELPER_RETRY_BASE_DELAY_SECONDS")
    retry_max_delay_seconds: float = Field(5.0, alias="CODEHELPER_RETRY_MAX_DELAY_SECONDS")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def admin_ids(self) -> set[str]:
        return {value.strip() for value in self.admin_user_ids.split(",") if value.strip()}


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid codehelper configuration: {exc}") from exc
