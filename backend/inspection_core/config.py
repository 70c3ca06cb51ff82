import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    database_url: Optional[str] = Field(None, alias="INSPECTION_DATABASE_URL")
    database_pool_size: int = Field(10, alias="INSPECTION_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="INSPECTION_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="INSPECTION_DATABASE_ECHO")
    school_timezone: str = Field("Asia/Shanghai", alias="INSPECTION_TIMEZONE")
    calendar_path: Optional[str] = Field(None, alias="INSPECTION_CALENDAR_PATH")
    daily_item_target: int = Field(5, ge=1, alias="INSPECTION_DAILY_ITEM_TARGET")
    privileged_role: str = Field("ADMIN", alias="INSPECTION_PRIVILEGED_ROLE")
    debug_endpoints: bool = Field(False, alias="INSPECTION_DEBUG_ENDPOINTS")


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid inspection engine configuration: {exc}") from exc
