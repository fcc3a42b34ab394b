"""
Dependency resolver: drives resource creation from cell resolution.

The resolver never computes a fixed creation order up front. Each node's
creation is attached as a continuation to the gathered cell of all its
inputs, so independent branches are in flight together and dependent
chains serialize through resolution order. The static graph is still
built first, to reject cycles before any backend call.
"""

import logging
from typing import Any, Iterable

from funcstack.core.cell import Cell, unwrap
from funcstack.core.dag import DAG
from funcstack.core.errors import CompositionError, ProvisioningFailure
from funcstack.core.lookup import StorageKeyLookup
from funcstack.core.resource import NodeState, ResourceNode
from funcstack.providers.base import Backend, CreateRequest

LOGGER = logging.getLogger(__name__)


class Resolver:
    """
    Schedules materialization of declared resources against a backend.

    Example:
        resolver = Resolver(backend, stack.resources, stack.lookups)
        resolver.plan()   # raises CyclicDependencyError on cycles
        resolver.run()    # issues creation requests as inputs resolve
    """

    def __init__(
        self,
        backend: Backend,
        resources: Iterable[ResourceNode],
        lookups: Iterable[StorageKeyLookup] = (),
    ):
        self.backend = backend
        self.resources = list(resources)
        self.lookups = list(lookups)
        self._dag: DAG | None = None
        self._started = False

    @property
    def dag(self) -> DAG:
        if self._dag is None:
            self._dag = DAG.from_resources(self.resources)
        return self._dag

    def plan(self) -> list[str]:
        """
        Check the graph and return a creation order for display.

        Lookup inputs are checked too: a lookup may only read declared
        resources.

        Raises:
            CompositionError: If a reference points outside the graph
            CyclicDependencyError: If the graph contains a cycle
        """
        for lookup in self.lookups:
            unknown = lookup.key.dependencies - set(self.dag.nodes)
            if unknown:
                raise CompositionError(
                    f"Key lookup references undeclared resource '{sorted(unknown)[0]}'"
                )
        self.dag.validate()
        return self.dag.topological_sort()

    def run(self) -> None:
        """
        Start provisioning.

        Raises:
            CompositionError: If the graph is invalid, before any backend call
        """
        if self._started:
            raise CompositionError("Provisioning has already started")

        order = self.plan()
        self._started = True
        LOGGER.info(
            "Provisioning %d resources with %s backend",
            len(order),
            self.backend.get_provider_name(),
        )

        for resource in self.resources:
            resource.seal()
        for lookup in self.lookups:
            lookup.start(self.backend)
        for name in order:
            self._schedule(self.dag.nodes[name].resource)

    def _schedule(self, node: ResourceNode) -> None:
        node.state = NodeState.WAITING
        ready = Cell.gather(*node.input_cells(), label=f"{node.name}.inputs")
        ready.subscribe(
            lambda _: self._on_inputs_ready(node),
            lambda error: self._on_dependency_failed(node, error),
        )

    def _on_inputs_ready(self, node: ResourceNode) -> None:
        properties = unwrap(node.inputs)
        result = self.materialize(node, properties)
        result.subscribe(
            lambda outputs: self._on_created(node, outputs),
            lambda error: self._on_failed(node, error),
        )

    def materialize(self, node: ResourceNode, properties: dict[str, Any]) -> Cell[dict[str, Any]]:
        """
        Issue the creation request for a node.

        This is the only place with an external effect. ``properties`` must
        already be plain values.

        Returns:
            Cell with the backend's raw creation result
        """
        if node.attempted:
            raise CompositionError(f"Resource '{node.name}' has already been materialized")

        node.attempted = True
        node.state = NodeState.CREATING
        LOGGER.info("Creating %s '%s'", node.kind.value, node.name)
        LOGGER.debug("Properties for '%s': %s", node.name, sorted(properties))

        try:
            return self.backend.create(CreateRequest(node.kind, node.name, properties))
        except Exception as e:
            failed: Cell[dict[str, Any]] = Cell({node.name}, label=f"{node.name}.result")
            failed.fail(e)
            return failed

    def _on_created(self, node: ResourceNode, outputs: dict[str, Any]) -> None:
        LOGGER.info("Created %s '%s'", node.kind.value, node.name)
        node.mark_created(outputs)

    def _on_failed(self, node: ResourceNode, error: BaseException) -> None:
        if isinstance(error, ProvisioningFailure) and error.node == node.name:
            failure = error
        else:
            failure = ProvisioningFailure(node.name, error)
        LOGGER.error("%s", failure)
        node.mark_failed(failure)

    def _on_dependency_failed(self, node: ResourceNode, error: BaseException) -> None:
        LOGGER.warning("Skipping '%s': %s", node.name, error)
        node.mark_failed(error)
