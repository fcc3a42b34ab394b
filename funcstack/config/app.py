"""Runtime configuration for the HTTP functions."""
from __future__ import annotations

import functools

from pydantic import Field
from pydantic_settings import BaseSettings


class AppSettings(BaseSettings):
    """
    Application settings bound from the function host's environment.

    In Azure these come from the function app's Application Settings; in
    local development from ``local.settings.json``.
    """

    welcome_message: str = Field("", alias="WelcomeMessage")
    max_retries: int = Field(3, alias="MaxRetries")
    api_base_url: str = Field("", alias="ApiBaseUrl")
    database_connection_string: str = Field("", alias="DatabaseConnectionString")

    class Config:
        case_sensitive = False
        populate_by_name = True
        extra = "ignore"


@functools.lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Return cached settings instance."""
    return AppSettings()
