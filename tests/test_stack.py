"""
Tests for stack composition and dependency-ordered provisioning.
"""

import pytest
from funcstack.core.cell import Cell
from funcstack.core.errors import (
    CompositionError,
    CyclicDependencyError,
    ProvisioningFailure,
    UnresolvedOutputError,
)
from funcstack.core.resolver import Resolver
from funcstack.core.resource import NodeState, ResourceKind
from funcstack.core.stack import Stack
from funcstack.providers.memory import InMemoryBackend


def declare_chain(stack):
    """rg <- store, rg <- plan, (store, plan) <- app"""
    rg = stack.declare(ResourceKind.RESOURCE_GROUP, "rg", {"location": "East US"})
    store = stack.declare(
        ResourceKind.STORAGE_ACCOUNT,
        "store",
        {"resource_group_name": rg.output("name"), "location": rg.output("location")},
    )
    plan = stack.declare(
        ResourceKind.APP_SERVICE_PLAN,
        "plan",
        {"resource_group_name": rg.output("name"), "sku": {"name": "B1", "tier": "Basic"}},
    )
    app = stack.declare(
        ResourceKind.FUNCTION_APP,
        "app",
        {
            "resource_group_name": rg.output("name"),
            "server_farm_id": plan.output("id"),
            "site_config": {"app_settings": [{"name": "Storage", "value": store.output("name")}]},
        },
    )
    return rg, store, plan, app


class TestStackDeclaration:
    """Tests for declaring resources."""

    def test_declare_does_not_contact_backend(self):
        """Test declaration has no external effect."""
        backend = InMemoryBackend()
        stack = Stack("dev", backend=backend)

        rg, store, plan, app = declare_chain(stack)
        stack.lookup_storage_key(rg.output("name"), store.output("name"))

        assert backend.calls == []
        assert all(node.state is NodeState.DECLARED for node in stack.resources)

    def test_duplicate_name_raises(self):
        """Test names are unique within a stack."""
        stack = Stack("dev", backend=InMemoryBackend())
        stack.declare(ResourceKind.RESOURCE_GROUP, "rg")

        with pytest.raises(CompositionError, match="already declared"):
            stack.declare(ResourceKind.STORAGE_ACCOUNT, "rg")

    def test_declare_after_provision_raises(self):
        """Test the graph is closed once provisioning starts."""
        stack = Stack("dev", backend=InMemoryBackend())
        stack.declare(ResourceKind.RESOURCE_GROUP, "rg")
        stack.provision()

        with pytest.raises(CompositionError, match="already been provisioned"):
            stack.declare(ResourceKind.STORAGE_ACCOUNT, "late")
        with pytest.raises(CompositionError):
            stack.provision()

    def test_set_input_after_provision_raises(self):
        """Test inputs are sealed once provisioning starts."""
        stack = Stack("dev", backend=InMemoryBackend())
        rg = stack.declare(ResourceKind.RESOURCE_GROUP, "rg")
        stack.provision()

        with pytest.raises(CompositionError):
            rg.set_input("location", "West US")

    def test_output_cell_is_stable(self):
        """Test the same output cell is returned for a property."""
        stack = Stack("dev", backend=InMemoryBackend())
        rg = stack.declare(ResourceKind.RESOURCE_GROUP, "rg")

        assert rg.output("name") is rg.output("name")
        assert rg.output("name").dependencies == frozenset({"rg"})

    def test_graph(self):
        """Test the static graph of the stack."""
        stack = Stack("dev", backend=InMemoryBackend())
        declare_chain(stack)

        dag = stack.graph()

        assert set(dag.get_dependencies("app")) == {"rg", "plan", "store"}
        assert stack.validate()[0] == "rg"


class TestProvisioning:
    """Tests for the resolver driving creation."""

    def test_creates_in_dependency_order(self):
        """Test each node is created after every node it reads."""
        backend = InMemoryBackend()
        stack = Stack("dev", backend=backend)
        declare_chain(stack)

        stack.provision()

        order = backend.created_order()
        assert order[0] == "rg"
        assert order[-1] == "app"
        assert sorted(order) == ["app", "plan", "rg", "store"]
        assert all(node.state is NodeState.CREATED for node in stack.resources)

    def test_materializes_exactly_once_after_inputs_resolve(self):
        """Test no creation request is issued before its inputs resolve."""
        backend = InMemoryBackend(auto_complete=False)
        stack = Stack("dev", backend=backend)
        rg, store, plan, app = declare_chain(stack)

        stack.provision()
        assert backend.created_order() == ["rg"]

        backend.complete("rg")
        assert sorted(backend.created_order()) == ["plan", "rg", "store"]
        assert app.state is NodeState.WAITING

        backend.complete("plan")
        assert "app" not in backend.created_order()

        backend.complete("store")
        assert backend.created_order()[-1] == "app"

        backend.complete("app")
        assert backend.created_order().count("app") == 1
        assert backend.pending == []

    def test_request_properties_are_resolved(self):
        """Test the backend only sees plain values."""
        backend = InMemoryBackend(responses={"store": {"name": "stdev12345678"}})
        stack = Stack("dev", backend=backend)
        declare_chain(stack)

        stack.provision()

        request = backend.request_for("app")
        assert request.kind is ResourceKind.FUNCTION_APP
        assert request.properties["site_config"]["app_settings"] == [
            {"name": "Storage", "value": "stdev12345678"}
        ]
        assert request.properties["server_farm_id"].endswith("/serverfarms/" + backend.created["plan"]["name"])

    def test_never_resolving_input_blocks_creation(self):
        """Test a node whose input never resolves is never created."""
        backend = InMemoryBackend()
        stack = Stack("dev", backend=backend)
        stack.declare(ResourceKind.RESOURCE_GROUP, "rg", {"location": Cell()})
        other = stack.declare(ResourceKind.APP_SERVICE_PLAN, "plan", {"location": "East US"})

        stack.provision()

        assert backend.created_order() == ["plan"]
        assert stack.get_resource("rg").state is NodeState.WAITING
        assert other.state is NodeState.CREATED

    def test_cycle_rejected_before_backend_call(self):
        """Test a cycle fails composition with zero backend calls."""
        backend = InMemoryBackend()
        stack = Stack("dev", backend=backend)
        a = stack.declare(ResourceKind.STORAGE_ACCOUNT, "a")
        b = stack.declare(ResourceKind.STORAGE_ACCOUNT, "b", {"ref": a.output("id")})
        a.set_input("ref", b.output("id"))

        with pytest.raises(CyclicDependencyError):
            stack.provision()

        assert backend.calls == []

    def test_undeclared_reference_rejected(self):
        """Test referencing a resource of another stack."""
        other = Stack("other", backend=InMemoryBackend())
        foreign = other.declare(ResourceKind.RESOURCE_GROUP, "foreign")

        backend = InMemoryBackend()
        stack = Stack("dev", backend=backend)
        stack.declare(ResourceKind.STORAGE_ACCOUNT, "store", {"resource_group_name": foreign.output("name")})

        with pytest.raises(CompositionError, match="undeclared"):
            stack.provision()
        assert backend.calls == []

    def test_failure_propagates_to_dependents(self):
        """Test dependents fail with the originating failure and are never requested."""
        backend = InMemoryBackend(failures={"plan": "quota exceeded"})
        stack = Stack("dev", backend=backend)
        rg, store, plan, app = declare_chain(stack)
        url = stack.export("url", app.output("default_host_name"))
        account = stack.export("account", store.output("name"))

        stack.provision()

        assert plan.state is NodeState.FAILED
        assert isinstance(plan.failure, ProvisioningFailure)
        assert plan.failure.node == "plan"
        assert "quota exceeded" in str(plan.failure)

        assert app.state is NodeState.FAILED
        assert app.failure is plan.failure
        assert "app" not in backend.created_order()
        assert url.failure is plan.failure

        # Unrelated branch still completes
        assert store.state is NodeState.CREATED
        assert account.is_resolved

    def test_backend_exception_becomes_failure(self):
        """Test a backend raising synchronously fails the node."""

        class ExplodingBackend(InMemoryBackend):
            def create(self, request):
                if request.name == "store":
                    raise RuntimeError("connection reset")
                return super().create(request)

        stack = Stack("dev", backend=ExplodingBackend())
        rg, store, plan, app = declare_chain(stack)

        stack.provision()

        assert store.state is NodeState.FAILED
        assert isinstance(store.failure, ProvisioningFailure)
        assert isinstance(store.failure.cause, RuntimeError)
        assert app.failure is store.failure
        assert plan.state is NodeState.CREATED

    def test_missing_output_property_fails(self):
        """Test reading an output the backend did not report."""
        stack = Stack("dev", backend=InMemoryBackend())
        rg = stack.declare(ResourceKind.RESOURCE_GROUP, "rg")
        missing = stack.export("missing", rg.output("does_not_exist"))

        stack.provision()

        assert isinstance(missing.failure, ProvisioningFailure)
        assert "does_not_exist" in str(missing.failure)

    def test_output_requested_after_creation(self):
        """Test output cells requested late settle immediately."""
        stack = Stack("dev", backend=InMemoryBackend())
        rg = stack.declare(ResourceKind.RESOURCE_GROUP, "rg", {"location": "East US"})
        stack.provision()

        assert rg.output("location").get() == "East US"

    def test_materialize_twice_raises(self):
        """Test a node cannot be materialized twice."""
        backend = InMemoryBackend()
        stack = Stack("dev", backend=backend)
        rg = stack.declare(ResourceKind.RESOURCE_GROUP, "rg")
        resolver = Resolver(backend, stack.resources)
        resolver.run()

        with pytest.raises(CompositionError, match="already been materialized"):
            resolver.materialize(rg, {})

        with pytest.raises(CompositionError):
            resolver.run()

    def test_pending_export_read_raises(self):
        """Test reading exports before the backend completes."""
        backend = InMemoryBackend(auto_complete=False)
        stack = Stack("dev", backend=backend)
        rg = stack.declare(ResourceKind.RESOURCE_GROUP, "rg")
        stack.export("name", rg.output("name"))

        exports = stack.provision()

        assert exports.pending() == ["name"]
        with pytest.raises(UnresolvedOutputError):
            exports.collect()

        backend.complete_all()
        assert exports.collect()["name"].startswith("rg")
