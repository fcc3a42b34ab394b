"""Azure Functions entry point for the configuration demo functions."""
from __future__ import annotations

import azure.functions as func

from funcstack.config.app import get_settings
from funcstack.functions.blueprint import make_blueprint
from funcstack.log import configure_logging

configure_logging()

app = func.FunctionApp()
app.register_functions(make_blueprint(get_settings()))
