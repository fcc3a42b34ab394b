"""
HTTP-triggered functions that echo configuration as JSON.
"""

from funcstack.functions.blueprint import make_blueprint
from funcstack.functions.handlers import ConfigHandlers, json_response

__all__ = [
    "ConfigHandlers",
    "json_response",
    "make_blueprint",
]
