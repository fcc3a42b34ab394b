"""
Secret lookup: reading a storage account's access key.

The lookup is a deferred read keyed on resources created earlier in the
graph. It is declared along with the resources but issued to the backend
only once both of its inputs have resolved.
"""

import logging
from typing import Any

from funcstack.core.cell import Cell, as_cell, is_deferred
from funcstack.core.errors import LookupFailure, ProvisioningFailure
from funcstack.providers.base import Backend, ListKeysRequest

LOGGER = logging.getLogger(__name__)


class StorageKeyLookup:
    """
    Deferred lookup of a storage account's first access key.

    Example:
        key = stack.lookup_storage_key(group.output("name"), account.output("name"))
        connection = Cell.format("AccountKey={key}", key=key)
    """

    def __init__(self, resource_group_name: Cell[str] | str, account_name: Cell[str] | str):
        self.resource_group_name = as_cell(resource_group_name)
        self.account_name = as_cell(account_name)
        self._inputs = Cell.gather(self.resource_group_name, self.account_name)
        self.key: Cell[str] = Cell(
            self._inputs.dependencies,
            label=f"{self._describe(account_name)}.primary_key",
        )
        self.issued = False

    def start(self, backend: Backend) -> None:
        """Issue the lookup once both inputs resolve."""
        self._inputs.subscribe(lambda names: self._issue(backend, *names), self.key.fail)

    def _issue(self, backend: Backend, resource_group_name: str, account_name: str) -> None:
        self.issued = True
        # deferred names are reported by their cell label
        name = account_name if isinstance(account_name, str) else self._describe(self.account_name)
        LOGGER.info("Listing keys for storage account '%s'", name)
        try:
            keys = backend.list_keys(ListKeysRequest(resource_group_name, account_name))
        except Exception as e:
            self._fail(name, e)
            return

        keys.subscribe(
            lambda listed: self._select(name, listed),
            lambda error: self._fail(name, error),
        )

    def _select(self, account_name: str, keys: list[Any]) -> None:
        if not keys:
            self._fail(account_name, "no access keys returned")
            return

        first = keys[0]
        value = first.get("value") if isinstance(first, dict) else first
        usable = bool(value) if isinstance(value, str) else is_deferred(value)
        if not usable:
            self._fail(account_name, "access key has no value")
            return

        self.key.resolve(value)

    def _fail(self, account_name: str, cause: Any) -> None:
        if isinstance(cause, (LookupFailure, ProvisioningFailure)):
            failure = cause
        else:
            failure = LookupFailure(account_name, cause)
        LOGGER.warning("%s", failure)
        self.key.fail(failure)

    @staticmethod
    def _describe(value: Any) -> str:
        if isinstance(value, Cell):
            return value.label or "storage"
        return str(value)
