"""
Stack options: named configuration read once at composition start.

Absent or empty options fall back to a fixed default table. Nothing is
inferred from other options, except the default welcome message, which
names the environment.
"""

from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, model_validator

DEFAULT_WELCOME_MESSAGE = "Hello from {ENVIRONMENT} environment!"

DEFAULTS: dict[str, Any] = {
    "location": "East US",
    "environment": "dev",
    "welcomeMessage": DEFAULT_WELCOME_MESSAGE,
    "planSku": "B1",
    "planTier": "Basic",
    "workerRuntime": "python",
    "pythonVersion": "3.11",
    "maxRetries": 5,
    "apiBaseUrl": "https://prod-api.example.com",
    "databaseConnectionString": (
        "Server=prod-server.database.windows.net;Database=ProdDB;"
        "Authentication=Active Directory Default;"
    ),
}
"""Documented default for every option"""

PLAN_PRESETS: dict[str, tuple[str, str]] = {
    "basic": ("B1", "Basic"),
    "consumption": ("Y1", "Dynamic"),
    "premium": ("EP1", "ElasticPremium"),
}
"""Named (sku, tier) pairs accepted by the ``plan`` option"""


class StackOptions(BaseModel):
    """
    Options for the function-app stack.

    Field aliases are the camelCase option names used in Pulumi stack
    configuration and on the command line.

    Example:
        options = StackOptions.from_mapping({"environment": "staging"})
        options.location         # 'East US'
        options.welcome_message  # 'Hello from STAGING environment!'
    """

    location: str = Field(DEFAULTS["location"], description="Azure region for every resource")
    environment: str = Field(DEFAULTS["environment"], description="Deployment environment name")
    welcome_message: str = Field(
        DEFAULT_WELCOME_MESSAGE,
        alias="welcomeMessage",
        description="WelcomeMessage application setting",
    )
    plan_sku: str = Field(DEFAULTS["planSku"], alias="planSku", description="App Service plan SKU name")
    plan_tier: str = Field(DEFAULTS["planTier"], alias="planTier", description="App Service plan tier")
    worker_runtime: str = Field(
        DEFAULTS["workerRuntime"],
        alias="workerRuntime",
        description="FUNCTIONS_WORKER_RUNTIME application setting",
    )
    python_version: str = Field(
        DEFAULTS["pythonVersion"],
        alias="pythonVersion",
        description="Python version of the Linux function host",
    )
    max_retries: int = Field(DEFAULTS["maxRetries"], alias="maxRetries", description="MaxRetries application setting")
    api_base_url: str = Field(DEFAULTS["apiBaseUrl"], alias="apiBaseUrl", description="ApiBaseUrl application setting")
    database_connection_string: str = Field(
        DEFAULTS["databaseConnectionString"],
        alias="databaseConnectionString",
        description="DatabaseConnectionString application setting",
    )

    class Config:
        populate_by_name = True
        extra = "forbid"
        frozen = True

    @model_validator(mode="after")
    def _expand_welcome_message(self) -> "StackOptions":
        if "{ENVIRONMENT}" in self.welcome_message:
            message = self.welcome_message.replace("{ENVIRONMENT}", self.environment.upper())
            object.__setattr__(self, "welcome_message", message)
        return self

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None = None) -> "StackOptions":
        """
        Build options from raw values.

        ``None`` and empty strings count as absent and take the default.
        A ``plan`` value naming a preset (basic, consumption, premium) sets
        both SKU and tier unless they are given explicitly.
        """
        present = {
            key: value
            for key, value in (values or {}).items()
            if value is not None and value != ""
        }

        preset = present.pop("plan", None)
        if preset is not None:
            try:
                sku, tier = PLAN_PRESETS[str(preset).lower()]
            except KeyError:
                raise ValueError(
                    f"Unknown plan '{preset}', expected one of: {', '.join(PLAN_PRESETS)}"
                ) from None
            present.setdefault("planSku", sku)
            present.setdefault("planTier", tier)

        return cls.model_validate(present)

    def to_mapping(self) -> dict[str, Any]:
        """Options keyed by their camelCase names."""
        return self.model_dump(by_alias=True)

    @property
    def is_linux(self) -> bool:
        return self.worker_runtime != "dotnet-isolated"


def load_options(
    path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> StackOptions:
    """
    Load options from a Pulumi stack file plus explicit overrides.

    Keys under ``config`` may carry a project namespace
    (``funcstack:location``); the namespace is dropped. Keys for other
    namespaces (``azure-native:location``) are ignored.

    Args:
        path: Optional ``Pulumi.<stack>.yaml`` file
        overrides: Values that win over the file

    Returns:
        Resolved options
    """
    values: dict[str, Any] = {}

    if path is not None:
        with open(path) as f:
            document = yaml.safe_load(f) or {}
        config = document.get("config", document)
        for key, value in (config or {}).items():
            namespace, _, option = str(key).rpartition(":")
            if namespace and namespace not in ("funcstack", "azure-function"):
                continue
            values[option] = value

    values.update(overrides or {})
    return StackOptions.from_mapping(values)
