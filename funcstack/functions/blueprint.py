"""Blueprint registering the configuration demo functions."""
from __future__ import annotations

from typing import Mapping

import azure.functions as func

from funcstack.config.app import AppSettings
from funcstack.functions.handlers import ConfigHandlers


def make_blueprint(
    settings: AppSettings,
    environ: Mapping[str, str] | None = None,
) -> func.Blueprint:
    """
    Build the blueprint with handlers bound to ``settings``.

    Args:
        settings: Application settings for every handler
        environ: Environment mapping (``os.environ`` by default)
    """
    bp = func.Blueprint()
    handlers = ConfigHandlers(settings, environ)

    @bp.function_name("HelloWorld")
    @bp.route(route="HelloWorld", methods=["GET", "POST"], auth_level=func.AuthLevel.ANONYMOUS)
    def hello_world(req: func.HttpRequest) -> func.HttpResponse:
        return handlers.hello_world(req)

    @bp.function_name("ConfigDemo")
    @bp.route(route="ConfigDemo", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
    def config_demo(req: func.HttpRequest) -> func.HttpResponse:
        return handlers.config_demo(req)

    @bp.function_name("ConfigHealth")
    @bp.route(route="ConfigHealth", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
    def config_health(req: func.HttpRequest) -> func.HttpResponse:
        return handlers.config_health(req)

    @bp.function_name("EnvironmentDemo")
    @bp.route(route="EnvironmentDemo", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
    def environment_demo(req: func.HttpRequest) -> func.HttpResponse:
        return handlers.environment_demo(req)

    return bp
