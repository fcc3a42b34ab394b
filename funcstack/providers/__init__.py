"""
Provisioning backends.

The Pulumi backend needs pulumi and pulumi-azure-native and is imported
from ``funcstack.providers.pulumi_azure`` directly.
"""

from funcstack.providers.base import Backend, CreateRequest, ListKeysRequest
from funcstack.providers.memory import InMemoryBackend

__all__ = [
    "Backend",
    "CreateRequest",
    "ListKeysRequest",
    "InMemoryBackend",
]
