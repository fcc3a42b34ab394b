"""
funcstack: provision an Azure function app from a resource graph.

Resources are declared with inputs that may reference the outputs of
other resources. Those outputs are cells: deferred values that resolve
once the backend has created the resource. Creation order follows from
the references, and a resource is created only after every cell it reads
has resolved.

Core concepts:
- Cell: deferred single-assignment value with transform/combine
- Stack: declares resources, key lookups and exports
- Backend: performs the creation requests (in-memory or Pulumi)

Example:
    from funcstack import Stack, StackOptions, build_function_stack
    from funcstack.providers import InMemoryBackend

    stack = Stack("dev", backend=InMemoryBackend())
    exports = build_function_stack(stack, StackOptions.from_mapping({"environment": "dev"}))
    stack.provision()

    exports.collect()["functionAppUrl"]
"""

from funcstack.core import (
    AlreadyResolvedError,
    Cell,
    CompositionError,
    CyclicDependencyError,
    ExportMap,
    LookupFailure,
    ProvisioningFailure,
    ResourceKind,
    ResourceNode,
    Stack,
    UnresolvedOutputError,
)
from funcstack.config import AppSettings, StackOptions, load_options
from funcstack.program import build_function_stack

__version__ = "0.1.0"
__all__ = [
    "Cell",
    "ExportMap",
    "ResourceKind",
    "ResourceNode",
    "Stack",
    # Errors
    "AlreadyResolvedError",
    "CompositionError",
    "CyclicDependencyError",
    "LookupFailure",
    "ProvisioningFailure",
    "UnresolvedOutputError",
    # Configuration
    "AppSettings",
    "StackOptions",
    "load_options",
    "build_function_stack",
]
