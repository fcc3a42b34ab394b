"""
Core funcstack functionality.

- Cell: deferred single-assignment values with transform/combine
- ResourceNode: declared resources whose outputs are cells
- Resolver: creates resources as their input cells resolve
- Stack: declarations, key lookups and exports
"""

from funcstack.core.cell import Cell, CellState, as_cell
from funcstack.core.dag import DAG
from funcstack.core.errors import (
    AlreadyResolvedError,
    CompositionError,
    CyclicDependencyError,
    FuncstackError,
    LookupFailure,
    ProvisioningFailure,
    UnresolvedOutputError,
)
from funcstack.core.export import ExportMap
from funcstack.core.resolver import Resolver
from funcstack.core.resource import NodeState, ResourceKind, ResourceNode
from funcstack.core.stack import Stack

__all__ = [
    "Cell",
    "CellState",
    "as_cell",
    "DAG",
    "AlreadyResolvedError",
    "CompositionError",
    "CyclicDependencyError",
    "FuncstackError",
    "LookupFailure",
    "ProvisioningFailure",
    "UnresolvedOutputError",
    "ExportMap",
    "Resolver",
    "NodeState",
    "ResourceKind",
    "ResourceNode",
    "Stack",
]
