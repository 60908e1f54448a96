"""
config.py
=========
Configuration models.

DerivationConfig is the per-request config accepted by the dasha calculator
and the orchestrator (both `traditionHints.startFrom` and snake_case names are
accepted). Settings holds service-level knobs read from the environment
(prefix KUNDALI_) or a .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TraditionHints(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    start_from: Optional[str] = Field(
        None, alias="startFrom",
        description="Yogini deity the first Maha period starts from",
    )


class DerivationConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    tradition_hints: TraditionHints = Field(default_factory=TraditionHints,
                                            alias="traditionHints")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="KUNDALI_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    app_name: str = "Kundali Derivation API"
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]
    default_locale: str = Field("en", pattern="^(en|ne)$")
    default_dasha_depth: int = Field(3, ge=1, le=5)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
