"""
In-memory backend for simulation and testing.

Records every request and answers with deterministic, Azure-shaped
outputs. Requests can complete immediately or be held until the caller
completes them, which lets tests control the order in which branches of
the graph finish.
"""

import base64
import hashlib
import re
import uuid
from typing import Any

from funcstack.core.cell import Cell
from funcstack.core.resource import ResourceKind
from funcstack.providers.base import Backend, CreateRequest, ListKeysRequest

SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000000"

PROVIDER_TYPES = {
    ResourceKind.STORAGE_ACCOUNT: "Microsoft.Storage/storageAccounts",
    ResourceKind.APP_INSIGHTS: "Microsoft.Insights/components",
    ResourceKind.APP_SERVICE_PLAN: "Microsoft.Web/serverfarms",
    ResourceKind.FUNCTION_APP: "Microsoft.Web/sites",
}


def _digest(*parts: str) -> str:
    return hashlib.sha256("/".join(parts).encode()).hexdigest()


class InMemoryBackend(Backend):
    """
    Backend that provisions nothing and answers from memory.

    Example:
        backend = InMemoryBackend(
            responses={"azfuncstore": {"name": "stdev12345678"}},
            keys={"stdev12345678": ["ABC123"]},
        )
        stack = Stack("dev", backend=backend)

        # Hold requests until completed explicitly
        backend = InMemoryBackend(auto_complete=False)
        ...
        backend.complete("azure-function-rg")
        backend.fail("azfuncstore", "quota exceeded")
    """

    def __init__(
        self,
        responses: dict[str, dict[str, Any]] | None = None,
        keys: dict[str, list[Any]] | None = None,
        failures: dict[str, Any] | None = None,
        lookup_failures: dict[str, Any] | None = None,
        auto_complete: bool = True,
    ):
        """
        Initialize the backend.

        Args:
            responses: Output overrides per logical resource name
            keys: Key lists per storage account name
            failures: Errors to report per logical resource name
            lookup_failures: Errors to report per storage account name,
                or for every account under "*"
            auto_complete: Settle requests as soon as they are issued
        """
        self.responses = responses or {}
        self.keys = keys or {}
        self.failures = failures or {}
        self.lookup_failures = lookup_failures or {}
        self.auto_complete = auto_complete

        self.calls: list[CreateRequest | ListKeysRequest] = []
        self.created: dict[str, dict[str, Any]] = {}
        self.accounts: set[str] = set()
        self._pending: dict[str, tuple[CreateRequest | ListKeysRequest, Cell[Any]]] = {}

    def get_provider_name(self) -> str:
        return "memory"

    def create(self, request: CreateRequest) -> Cell[dict[str, Any]]:
        self.calls.append(request)
        cell: Cell[dict[str, Any]] = Cell(label=f"{request.name}.result")
        self._submit(request.name, request, cell)
        return cell

    def list_keys(self, request: ListKeysRequest) -> Cell[list[Any]]:
        self.calls.append(request)
        cell: Cell[list[Any]] = Cell(label=f"{request.account_name}.keys")
        self._submit(self.lookup_id(request.account_name), request, cell)
        return cell

    @staticmethod
    def lookup_id(account_name: str) -> str:
        """Pending-request id of a key lookup."""
        return f"keys:{account_name}"

    @property
    def pending(self) -> list[str]:
        """Ids of requests waiting to be completed."""
        return list(self._pending)

    @property
    def create_calls(self) -> list[CreateRequest]:
        return [call for call in self.calls if isinstance(call, CreateRequest)]

    @property
    def lookup_calls(self) -> list[ListKeysRequest]:
        return [call for call in self.calls if isinstance(call, ListKeysRequest)]

    def created_order(self) -> list[str]:
        """Logical names in the order creation requests were issued."""
        return [call.name for call in self.create_calls]

    def request_for(self, name: str) -> CreateRequest:
        """
        The creation request issued for a logical name.

        Raises:
            KeyError: If no request was issued for ``name``
        """
        for call in self.create_calls:
            if call.name == name:
                return call
        raise KeyError(name)

    def complete(self, request_id: str, outputs: Any = None) -> None:
        """
        Complete a held request.

        Args:
            request_id: Logical resource name, or ``lookup_id(account)``
            outputs: Result to report instead of the synthesized one
        """
        request, cell = self._pending.pop(request_id)
        if outputs is None:
            self._settle(request, cell)
        else:
            cell.resolve(outputs)

    def fail(self, request_id: str, error: Any = "request failed") -> None:
        """Fail a held request."""
        _, cell = self._pending.pop(request_id)
        cell.fail(self._as_exception(error))

    def complete_all(self) -> None:
        """Complete held requests until none are left, including new ones."""
        while self._pending:
            self.complete(next(iter(self._pending)))

    def _submit(self, request_id: str, request: CreateRequest | ListKeysRequest, cell: Cell[Any]) -> None:
        if self.auto_complete:
            self._settle(request, cell)
        else:
            self._pending[request_id] = (request, cell)

    def _settle(self, request: CreateRequest | ListKeysRequest, cell: Cell[Any]) -> None:
        if isinstance(request, CreateRequest):
            if request.name in self.failures:
                cell.fail(self._as_exception(self.failures[request.name]))
                return
            outputs = self.outputs_for(request)
            self.created[request.name] = outputs
            if request.kind is ResourceKind.STORAGE_ACCOUNT:
                self.accounts.add(outputs["name"])
            cell.resolve(outputs)
        else:
            error = self.lookup_failures.get(request.account_name, self.lookup_failures.get("*"))
            if error is not None:
                cell.fail(self._as_exception(error))
                return
            try:
                keys = self.keys_for(request)
            except LookupError as e:
                cell.fail(e)
                return
            cell.resolve(keys)

    def outputs_for(self, request: CreateRequest) -> dict[str, Any]:
        """
        Synthesize the output properties of a created resource.

        Inputs are echoed back, then ``name`` and ``id`` and kind-specific
        outputs are added, then overrides from ``responses`` are applied.
        """
        properties = request.properties
        physical_name = self._physical_name(request)
        group = properties.get("resource_group_name", physical_name)

        outputs = dict(properties)
        outputs["name"] = physical_name

        if request.kind is ResourceKind.RESOURCE_GROUP:
            outputs["id"] = f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{physical_name}"
        else:
            outputs["id"] = (
                f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{group}"
                f"/providers/{PROVIDER_TYPES[request.kind]}/{physical_name}"
            )

        if request.kind is ResourceKind.APP_INSIGHTS:
            instrumentation_key = str(uuid.UUID(hex=_digest("ikey", request.name)[:32]))
            region = re.sub(r"\s+", "", str(properties.get("location", "eastus"))).lower()
            outputs["instrumentation_key"] = instrumentation_key
            outputs["connection_string"] = (
                f"InstrumentationKey={instrumentation_key};"
                f"IngestionEndpoint=https://{region}-0.in.applicationinsights.azure.com/"
            )
        elif request.kind is ResourceKind.FUNCTION_APP:
            outputs["default_host_name"] = f"{physical_name}.azurewebsites.net"

        outputs.update(self.responses.get(request.name, {}))
        return outputs

    def keys_for(self, request: ListKeysRequest) -> list[Any]:
        """
        Keys of a storage account created by this backend.

        Raises:
            LookupError: If no storage account with that name exists
        """
        if request.account_name in self.keys:
            return list(self.keys[request.account_name])

        if request.account_name not in self.accounts:
            raise LookupError(f"Storage account '{request.account_name}' was not found")

        return [
            {
                "key_name": key_name,
                "value": base64.b64encode(bytes.fromhex(_digest(request.account_name, key_name))).decode(),
            }
            for key_name in ("key1", "key2")
        ]

    def _physical_name(self, request: CreateRequest) -> str:
        suffix = _digest(request.name)[:8]
        if request.kind is ResourceKind.STORAGE_ACCOUNT:
            base = re.sub(r"[^a-z0-9]", "", request.name.lower())[:16]
            return f"{base}{suffix}"
        return f"{request.name}{suffix}"

    @staticmethod
    def _as_exception(error: Any) -> BaseException:
        if isinstance(error, BaseException):
            return error
        return RuntimeError(str(error))
