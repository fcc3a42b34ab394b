"""
Tests for the storage key lookup.
"""

import pytest
from funcstack.core.cell import Cell
from funcstack.core.errors import CompositionError, LookupFailure, ProvisioningFailure
from funcstack.core.lookup import StorageKeyLookup
from funcstack.core.resource import ResourceKind
from funcstack.core.stack import Stack
from funcstack.providers.base import ListKeysRequest
from funcstack.providers.memory import InMemoryBackend


def declare_storage(stack):
    rg = stack.declare(ResourceKind.RESOURCE_GROUP, "rg", {"location": "East US"})
    store = stack.declare(
        ResourceKind.STORAGE_ACCOUNT,
        "store",
        {"resource_group_name": rg.output("name"), "location": rg.output("location")},
    )
    key = stack.lookup_storage_key(rg.output("name"), store.output("name"))
    return rg, store, key


class TestStorageKeyLookup:
    """Tests for StorageKeyLookup."""

    def test_selects_first_key(self):
        """Test the first key's value is used."""
        backend = InMemoryBackend(
            responses={"store": {"name": "stdev12345678"}},
            keys={"stdev12345678": [{"key_name": "key1", "value": "ABC123"}, {"key_name": "key2", "value": "XYZ"}]},
        )
        stack = Stack("dev", backend=backend)
        rg, store, key = declare_storage(stack)

        stack.provision()

        assert key.get() == "ABC123"
        assert backend.lookup_calls == [
            ListKeysRequest(rg.output("name").get(), "stdev12345678")
        ]

    def test_plain_string_keys(self):
        """Test key lists of plain strings."""
        backend = InMemoryBackend(
            responses={"store": {"name": "stdev12345678"}},
            keys={"stdev12345678": ["ABC123"]},
        )
        stack = Stack("dev", backend=backend)
        _, _, key = declare_storage(stack)

        stack.provision()

        assert key.get() == "ABC123"

    def test_synthesized_keys(self):
        """Test the in-memory backend answers for accounts it created."""
        stack = Stack("dev", backend=InMemoryBackend())
        _, _, key = declare_storage(stack)

        stack.provision()

        assert isinstance(key.get(), str)
        assert key.get()

    def test_issued_only_after_inputs_resolve(self):
        """Test the lookup waits for the account to exist."""
        backend = InMemoryBackend(auto_complete=False)
        stack = Stack("dev", backend=backend)
        _, store, key = declare_storage(stack)
        lookup = stack.lookups[0]

        stack.provision()
        backend.complete("rg")

        assert not lookup.issued
        assert backend.lookup_calls == []

        backend.complete("store")

        assert lookup.issued
        account = store.output("name").get()
        assert backend.pending == [InMemoryBackend.lookup_id(account)]

        backend.complete(InMemoryBackend.lookup_id(account))
        assert key.is_resolved

    def test_empty_key_list_fails(self):
        """Test an account without keys."""
        backend = InMemoryBackend(
            responses={"store": {"name": "stdev12345678"}},
            keys={"stdev12345678": []},
        )
        stack = Stack("dev", backend=backend)
        _, _, key = declare_storage(stack)

        stack.provision()

        assert isinstance(key.failure, LookupFailure)
        assert key.failure.account == "stdev12345678"

    def test_backend_failure_becomes_lookup_failure(self):
        """Test a failed listing is reported as a lookup failure."""
        backend = InMemoryBackend(lookup_failures={"*": "authorization failed"})
        stack = Stack("dev", backend=backend)
        _, _, key = declare_storage(stack)

        stack.provision()

        assert isinstance(key.failure, LookupFailure)
        assert "authorization failed" in str(key.failure)

    def test_unknown_account_fails(self):
        """Test listing keys of an account that does not exist."""
        backend = InMemoryBackend()
        lookup = StorageKeyLookup("rg", "missing")

        lookup.start(backend)

        assert isinstance(lookup.key.failure, LookupFailure)
        assert isinstance(lookup.key.failure.cause, LookupError)

    def test_account_failure_propagates_unchanged(self):
        """Test an upstream creation failure is not rewrapped."""
        backend = InMemoryBackend(failures={"store": "name taken"})
        stack = Stack("dev", backend=backend)
        _, store, key = declare_storage(stack)

        stack.provision()

        assert isinstance(key.failure, ProvisioningFailure)
        assert key.failure is store.failure
        assert backend.lookup_calls == []

    def test_dependencies_come_from_inputs(self):
        """Test the key cell depends on the nodes its inputs read."""
        account = Cell({"store"}, label="store.name")
        lookup = StorageKeyLookup(Cell({"rg"}), account)

        assert lookup.key.dependencies == frozenset({"rg", "store"})
        assert lookup.key.label == "store.name.primary_key"

    def test_undeclared_lookup_input_rejected(self):
        """Test a lookup may only read declared resources."""
        backend = InMemoryBackend()
        stack = Stack("dev", backend=backend)
        stack.lookup_storage_key("rg", Cell({"elsewhere"}))

        with pytest.raises(CompositionError, match="elsewhere"):
            stack.provision()
        assert backend.calls == []

    def test_deferred_key_is_accepted(self):
        """Test a key the backend only knows later is passed on as is."""

        class PendingKey:
            def apply(self, f):
                return self

        class PreviewBackend:
            def list_keys(self, request):
                return Cell.of([PendingKey()])

        lookup = StorageKeyLookup(Cell.of("rg"), Cell.of("stdev12345678"))
        lookup.start(PreviewBackend())

        assert isinstance(lookup.key.get(), PendingKey)

    def test_non_string_key_fails(self):
        """Test a key value that is neither a string nor deferred fails the lookup."""

        class OddBackend:
            def list_keys(self, request):
                return Cell.of([{"key_name": "key1", "value": 42}])

        lookup = StorageKeyLookup(Cell.of("rg"), Cell.of("stdev12345678"))
        lookup.start(OddBackend())

        assert isinstance(lookup.key.failure, LookupFailure)
        assert "stdev12345678" in str(lookup.key.failure)
