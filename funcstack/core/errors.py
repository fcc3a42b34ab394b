"""
Error taxonomy for stack composition and provisioning.

Composition errors are raised synchronously, before any backend call.
Provisioning and lookup failures never raise at the call site; they are
stored in the failed cells and re-raised when a caller reads those cells.
"""

from typing import Any


class FuncstackError(Exception):
    """Base class for all funcstack errors."""
    pass


class AlreadyResolvedError(FuncstackError):
    """Raised when a cell that has already settled is resolved or failed again."""

    def __init__(self, label: str | None = None):
        self.label = label
        target = f"Cell '{label}'" if label else "Cell"
        super().__init__(f"{target} has already been settled")


class UnresolvedOutputError(FuncstackError):
    """Raised when reading a cell that has not settled yet."""

    def __init__(self, label: str | None = None):
        self.label = label
        target = f"Cell '{label}'" if label else "Cell"
        super().__init__(f"{target} has not been resolved")


class CompositionError(FuncstackError):
    """Raised when the declared graph is invalid."""
    pass


class CyclicDependencyError(CompositionError):
    """Raised when resource inputs form a dependency cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(
            f"Resources form a dependency cycle: {' -> '.join(cycle)}"
        )


class ProvisioningFailure(FuncstackError):
    """
    The backend rejected a creation request.

    Dependents of the failed node are marked failed with this same
    instance, so ``node`` always names the resource that was attempted.
    """

    def __init__(self, node: str, cause: Any = None, message: str | None = None):
        self.node = node
        self.cause = cause
        if message is None:
            message = f"Failed to create resource '{node}'"
            if cause is not None:
                message += f": {cause}"
        super().__init__(message)


class LookupFailure(FuncstackError):
    """Retrieving storage account keys failed."""

    def __init__(self, account: Any, cause: Any = None):
        self.account = account
        self.cause = cause
        message = f"Failed to list keys for storage account '{account}'"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
