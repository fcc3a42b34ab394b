"""
Backend boundary for provisioning.

A backend receives creation and key-listing requests with plain, fully
resolved properties and answers with cells that settle when the external
operation completes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from funcstack.core.cell import Cell
from funcstack.core.resource import ResourceKind


@dataclass(frozen=True)
class CreateRequest:
    """Request to create a resource."""

    kind: ResourceKind
    name: str
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ListKeysRequest:
    """Request to list the access keys of a storage account."""

    resource_group_name: str
    account_name: str


class Backend(ABC):
    """
    Abstract provisioning backend.

    Implementations must not block: both operations return a cell at once
    and settle it later (or immediately, for synchronous fakes).
    """

    @abstractmethod
    def create(self, request: CreateRequest) -> Cell[dict[str, Any]]:
        """
        Issue a creation request.

        Returns:
            Cell that resolves to the created resource's output properties,
            or fails with the backend's error
        """
        pass

    @abstractmethod
    def list_keys(self, request: ListKeysRequest) -> Cell[list[Any]]:
        """
        List a storage account's access keys.

        Returns:
            Cell that resolves to the ordered key list. Keys are mappings
            with ``key_name`` and ``value`` entries, or plain strings.
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return backend name (memory, pulumi)"""
        pass
