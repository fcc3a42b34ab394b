"""
Resource nodes: declared cloud resources in the provisioning graph.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from funcstack.core.cell import Cell, collect_cells
from funcstack.core.errors import CompositionError, ProvisioningFailure


class ResourceKind(str, Enum):
    """Kinds of resources the function stack declares."""

    RESOURCE_GROUP = "resource_group"
    STORAGE_ACCOUNT = "storage_account"
    APP_INSIGHTS = "app_insights"
    APP_SERVICE_PLAN = "app_service_plan"
    FUNCTION_APP = "function_app"


class NodeState(str, Enum):
    """Lifecycle of a resource node."""

    DECLARED = "declared"
    WAITING = "waiting"
    CREATING = "creating"
    CREATED = "created"
    FAILED = "failed"


@dataclass
class ResourceNode:
    """
    A declared cloud resource.

    Inputs map property names to literals, cells, or lists and dicts
    containing cells. Outputs are cells created on first access and
    resolved from the backend's creation result.

    Example:
        group = stack.declare(ResourceKind.RESOURCE_GROUP, "rg", {"location": "East US"})
        account = stack.declare(
            ResourceKind.STORAGE_ACCOUNT,
            "store",
            {"resource_group_name": group.output("name")},
        )
    """

    name: str
    """Unique logical name"""

    kind: ResourceKind
    """Resource kind"""

    inputs: dict[str, Any] = field(default_factory=dict)
    """Input properties"""

    state: NodeState = NodeState.DECLARED
    """Lifecycle state"""

    failure: BaseException | None = None
    """Originating failure when state is FAILED"""

    attempted: bool = False
    """Whether a creation request was issued for this node"""

    result: dict[str, Any] | None = None
    """Raw creation result from the backend"""

    _outputs: dict[str, Cell[Any]] = field(default_factory=dict, repr=False)
    _sealed: bool = field(default=False, repr=False)

    def output(self, prop: str) -> Cell[Any]:
        """
        Get the output cell for a property.

        The same cell is returned on every call for the same property.
        """
        if prop not in self._outputs:
            cell: Cell[Any] = Cell({self.name}, label=f"{self.name}.{prop}")
            self._outputs[prop] = cell
            if self.result is not None:
                self._settle_output(prop, cell)
            elif self.state is NodeState.FAILED:
                cell.fail(self.failure)
        return self._outputs[prop]

    @property
    def outputs(self) -> dict[str, Cell[Any]]:
        """Output cells requested so far."""
        return dict(self._outputs)

    def set_input(self, prop: str, value: Any) -> None:
        """
        Set or replace an input property before provisioning.

        Raises:
            CompositionError: If provisioning has already started
        """
        if self._sealed:
            raise CompositionError(
                f"Inputs of resource '{self.name}' cannot change after provisioning has started"
            )
        self.inputs[prop] = value

    def dependencies(self) -> set[str]:
        """Names of the nodes whose outputs this node's inputs reference."""
        names: set[str] = set()
        for cell in collect_cells(self.inputs):
            names.update(cell.dependencies)
        return names

    def input_cells(self) -> list[Cell[Any]]:
        """Every cell among this node's inputs, in declaration order."""
        return collect_cells(self.inputs)

    def seal(self) -> None:
        self._sealed = True

    def mark_created(self, result: dict[str, Any]) -> None:
        """Record the creation result and resolve every output cell."""
        self.result = dict(result)
        self.state = NodeState.CREATED
        for prop, cell in list(self._outputs.items()):
            self._settle_output(prop, cell)

    def mark_failed(self, failure: BaseException) -> None:
        """Record the failure and fail every output cell with it."""
        self.failure = failure
        self.state = NodeState.FAILED
        for cell in list(self._outputs.values()):
            if cell.is_pending:
                cell.fail(failure)

    def _settle_output(self, prop: str, cell: Cell[Any]) -> None:
        if prop in self.result:
            cell.resolve(self.result[prop])
        else:
            cell.fail(ProvisioningFailure(
                self.name,
                message=f"Resource '{self.name}' has no output property '{prop}'",
            ))

    def __hash__(self) -> int:
        return hash(self.name)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ResourceNode) and other.name == self.name
