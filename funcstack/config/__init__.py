"""
Configuration for the provisioning program and the HTTP functions.
"""

from funcstack.config.app import AppSettings, get_settings
from funcstack.config.stack import (
    DEFAULTS,
    PLAN_PRESETS,
    StackOptions,
    load_options,
)

__all__ = [
    # Stack options
    "DEFAULTS",
    "PLAN_PRESETS",
    "StackOptions",
    "load_options",
    # Function settings
    "AppSettings",
    "get_settings",
]
