"""Response payloads for the configuration demo functions."""
from __future__ import annotations

import os
import platform
from datetime import datetime
from typing import Any, Mapping

from funcstack.config.app import AppSettings

CUSTOM_APP_SETTING_NAMES = (
    "WelcomeMessage",
    "MaxRetries",
    "ApiBaseUrl",
    "DatabaseConnectionString",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def get_int(config: Mapping[str, str], key: str, default: int) -> int:
    """Read an integer setting, falling back when absent or malformed."""
    value = config.get(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_bool(config: Mapping[str, str], key: str, default: bool) -> bool:
    """Read a boolean setting, falling back when absent or malformed."""
    value = (config.get(key) or "").strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return default


def hello_world_payload(
    settings: AppSettings,
    config: Mapping[str, str],
    now: datetime,
) -> dict[str, Any]:
    """Welcome message plus the same value read three different ways."""
    return {
        "message": config.get("WelcomeMessage", "Default Welcome Message"),
        "maxRetries": settings.max_retries,
        "apiBaseUrl": settings.api_base_url,
        "timestamp": now.isoformat(),
        "configMethods": {
            "fromConfiguration": config.get("WelcomeMessage"),
            "fromStronglyTyped": settings.welcome_message,
            "fromGetValue": config.get("WelcomeMessage", "fallback"),
        },
    }


def config_demo_payload(settings: AppSettings, config: Mapping[str, str]) -> dict[str, Any]:
    """Typed settings, fallbacks for absent settings, and CUSTOM_* variables."""
    connection_string = settings.database_connection_string or ""
    return {
        "welcomeMessage": settings.welcome_message,
        "maxRetries": get_int(config, "MaxRetries", 3),
        "enableDebug": get_bool(config, "EnableDebug", False),
        "apiConfiguration": {
            "baseUrl": settings.api_base_url,
            "timeout": get_int(config, "ApiTimeout", 30),
        },
        "environment": config.get("AZURE_FUNCTIONS_ENVIRONMENT") or "Development",
        "hasConnectionString": bool(connection_string),
        "connectionStringLength": len(connection_string),
        "customSettings": {
            key: value for key, value in config.items() if key.startswith("CUSTOM_")
        },
        "configurationSources": {
            "note": "In Azure, these come from Application Settings",
            "localNote": "In local development, these come from local.settings.json",
        },
    }


def health_payload(settings: AppSettings, now: datetime) -> dict[str, Any]:
    """
    Validate the settings the functions cannot work without.

    Status is ``Healthy`` only when WelcomeMessage and ApiBaseUrl are set
    and MaxRetries is positive.
    """
    checks = {
        "welcomeMessage": bool(settings.welcome_message),
        "maxRetries": settings.max_retries > 0,
        "apiBaseUrl": bool(settings.api_base_url),
    }

    errors = []
    if not checks["welcomeMessage"]:
        errors.append("WelcomeMessage is not configured")
    if not checks["maxRetries"]:
        errors.append("MaxRetries must be greater than 0")
    if not checks["apiBaseUrl"]:
        errors.append("ApiBaseUrl is not configured")

    return {
        "status": "Unhealthy" if errors else "Healthy",
        "errors": errors,
        "timestamp": now.isoformat(),
        "configurationValidated": checks,
    }


def environment_payload(config: Mapping[str, str]) -> dict[str, Any]:
    """How application settings surface as environment variables."""
    return {
        "fromEnvironmentVariables": {
            "welcomeMessage": config.get("WelcomeMessage"),
            "maxRetries": config.get("MaxRetries"),
            "apiBaseUrl": config.get("ApiBaseUrl"),
            "functionsRuntime": config.get("FUNCTIONS_WORKER_RUNTIME"),
            "azureWebJobsStorage": config.get("AzureWebJobsStorage"),
        },
        "systemEnvironment": {
            "machineName": platform.node(),
            "osVersion": platform.platform(),
            "processorCount": os.cpu_count(),
            "workingDirectory": os.getcwd(),
        },
        "azureFunctionVars": {
            key: value
            for key, value in config.items()
            if key.upper().startswith(("AZURE", "FUNCTIONS"))
        },
        "customAppSettings": {
            key: value for key, value in config.items() if key in CUSTOM_APP_SETTING_NAMES
        },
        "explanation": {
            "localDevelopment": "Values from local.settings.json become environment variables",
            "azureProduction": "Application Settings in Azure become environment variables",
            "configurationSystem": "Settings are bound from environment variables",
        },
    }
