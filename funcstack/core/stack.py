"""
Stack: the declaration surface for a provisioning graph.

A Stack collects resource declarations, key lookups and exports. Nothing
touches the backend until ``provision`` is called.
"""

from typing import Any

from funcstack.core.cell import Cell
from funcstack.core.dag import DAG
from funcstack.core.errors import CompositionError
from funcstack.core.export import ExportMap
from funcstack.core.lookup import StorageKeyLookup
from funcstack.core.resolver import Resolver
from funcstack.core.resource import ResourceKind, ResourceNode
from funcstack.providers.base import Backend


class Stack:
    """
    Container for a one-shot provisioning graph.

    Example:
        stack = Stack("dev", backend=InMemoryBackend())

        group = stack.declare(ResourceKind.RESOURCE_GROUP, "rg", {"location": "East US"})
        account = stack.declare(
            ResourceKind.STORAGE_ACCOUNT,
            "store",
            {
                "resource_group_name": group.output("name"),
                "location": group.output("location"),
            },
        )
        key = stack.lookup_storage_key(group.output("name"), account.output("name"))

        stack.export("storageAccountName", account.output("name"))
        stack.provision()
    """

    def __init__(self, name: str, backend: Backend):
        self.name = name
        self.backend = backend
        self.exports = ExportMap()
        self._resources: dict[str, ResourceNode] = {}
        self._lookups: list[StorageKeyLookup] = []
        self._resolver: Resolver | None = None

    def declare(
        self,
        kind: ResourceKind,
        name: str,
        inputs: dict[str, Any] | None = None,
    ) -> ResourceNode:
        """
        Register a resource.

        Does not contact the backend.

        Raises:
            CompositionError: If a resource with the same name exists, or
                provisioning has already started
        """
        self._check_open()
        if name in self._resources:
            raise CompositionError(f"Resource '{name}' is already declared")

        node = ResourceNode(name=name, kind=ResourceKind(kind), inputs=dict(inputs or {}))
        self._resources[name] = node
        return node

    def lookup_storage_key(
        self,
        resource_group_name: Cell[str] | str,
        account_name: Cell[str] | str,
    ) -> Cell[str]:
        """
        Declare a lookup of a storage account's first access key.

        Returns:
            Cell that resolves to the key once the lookup completes
        """
        self._check_open()
        lookup = StorageKeyLookup(resource_group_name, account_name)
        self._lookups.append(lookup)
        return lookup.key

    def export(self, name: str, value: Cell[Any] | Any) -> Cell[Any]:
        """Add a named output to the export map."""
        return self.exports.add(name, value)

    @property
    def resources(self) -> list[ResourceNode]:
        return list(self._resources.values())

    @property
    def lookups(self) -> list[StorageKeyLookup]:
        return list(self._lookups)

    def get_resource(self, name: str) -> ResourceNode | None:
        """Get resource by name."""
        return self._resources.get(name)

    def graph(self) -> DAG:
        """
        Build the static dependency graph of the declared resources.

        Raises:
            CompositionError: If an input references an undeclared resource
        """
        return DAG.from_resources(self.resources)

    def validate(self) -> list[str]:
        """
        Check the graph without provisioning.

        Returns:
            A valid creation order

        Raises:
            CompositionError: If the graph is invalid
            CyclicDependencyError: If the graph contains a cycle
        """
        return Resolver(self.backend, self.resources, self.lookups).plan()

    def provision(self) -> ExportMap:
        """
        Start creating resources.

        Returns as soon as every creation is scheduled. Exports settle as the
        backend completes its requests.

        Raises:
            CompositionError: If the graph is invalid, before any backend call
        """
        self._check_open()
        resolver = Resolver(self.backend, self.resources, self.lookups)
        resolver.run()
        self._resolver = resolver
        return self.exports

    def _check_open(self) -> None:
        if self._resolver is not None:
            raise CompositionError(f"Stack '{self.name}' has already been provisioned")

    def __repr__(self) -> str:
        return f"Stack(name={self.name!r}, resources={len(self._resources)})"
