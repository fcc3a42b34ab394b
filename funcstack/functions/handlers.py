"""HTTP handlers for the configuration demo functions."""
from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

import azure.functions as func

from funcstack.config.app import AppSettings
from funcstack.functions.payloads import (
    config_demo_payload,
    environment_payload,
    health_payload,
    hello_world_payload,
)

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def json_response(payload: dict[str, Any], status_code: int = 200) -> func.HttpResponse:
    """Serialize a payload as indented JSON."""
    return func.HttpResponse(
        json.dumps(payload, indent=2, default=str),
        status_code=status_code,
        mimetype="application/json",
    )


class ConfigHandlers:
    """
    Handlers that echo configuration back as JSON.

    Settings and the environment are injected at construction; handlers do
    not read global state.

    Usage:
        handlers = ConfigHandlers(get_settings(), os.environ)
        response = handlers.config_health(req)
    """

    def __init__(
        self,
        settings: AppSettings,
        environ: Mapping[str, str] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings
        self.environ = dict(os.environ if environ is None else environ)
        self.clock = clock

    def hello_world(self, req: func.HttpRequest) -> func.HttpResponse:
        LOGGER.info("HelloWorld processed a %s request.", req.method)
        payload = hello_world_payload(self.settings, self.environ, self.clock())
        LOGGER.info("WelcomeMessage: %s", payload["message"])
        LOGGER.info("MaxRetries from settings: %s", self.settings.max_retries)
        return json_response(payload)

    def config_demo(self, req: func.HttpRequest) -> func.HttpResponse:
        LOGGER.info("Configuration demo function called.")
        return json_response(config_demo_payload(self.settings, self.environ))

    def config_health(self, req: func.HttpRequest) -> func.HttpResponse:
        LOGGER.info("Configuration health check called.")
        payload = health_payload(self.settings, self.clock())
        if payload["errors"]:
            LOGGER.warning("Configuration is unhealthy: %s", "; ".join(payload["errors"]))
        return json_response(payload)

    def environment_demo(self, req: func.HttpRequest) -> func.HttpResponse:
        LOGGER.info("Environment demo function called.")
        return json_response(environment_payload(self.environ))
