"""
Tests for the function-app stack.
"""

import pytest
from funcstack.config.stack import StackOptions
from funcstack.core.errors import LookupFailure, ProvisioningFailure
from funcstack.core.resource import NodeState
from funcstack.core.stack import Stack
from funcstack.program import (
    APP_INSIGHTS,
    APP_SERVICE_PLAN,
    FUNCTION_APP,
    RESOURCE_GROUP,
    STORAGE_ACCOUNT,
    app_settings,
    build_function_stack,
)
from funcstack.providers.memory import InMemoryBackend

EXPORT_NAMES = [
    "resourceGroupName",
    "functionAppName",
    "functionAppUrl",
    "storageAccountName",
    "appInsightsName",
    "appInsightsInstrumentationKey",
    "location",
    "environment",
]


def provision(options=None, **backend_args):
    backend = InMemoryBackend(**backend_args)
    stack = Stack("test", backend=backend)
    exports = build_function_stack(stack, options or StackOptions())
    stack.provision()
    return stack, backend, exports


def settings_of(request):
    return {
        setting["name"]: setting["value"]
        for setting in request.properties["site_config"]["app_settings"]
    }


class TestFunctionStack:
    """Tests for build_function_stack."""

    def test_declares_graph_without_backend_calls(self):
        """Test building the stack only declares resources."""
        backend = InMemoryBackend()
        stack = Stack("test", backend=backend)

        exports = build_function_stack(stack, StackOptions())

        assert [node.name for node in stack.resources] == [
            RESOURCE_GROUP,
            STORAGE_ACCOUNT,
            APP_INSIGHTS,
            APP_SERVICE_PLAN,
            FUNCTION_APP,
        ]
        assert len(stack.lookups) == 1
        assert list(exports) == EXPORT_NAMES
        assert backend.calls == []

    def test_graph_shape(self):
        """Test every resource hangs off the resource group."""
        stack = Stack("test", backend=InMemoryBackend())
        build_function_stack(stack, StackOptions())

        dag = stack.graph()

        assert dag.get_execution_levels() == [
            [RESOURCE_GROUP],
            [STORAGE_ACCOUNT, APP_INSIGHTS, APP_SERVICE_PLAN],
            [FUNCTION_APP],
        ]
        assert set(dag.get_dependencies(FUNCTION_APP)) == {
            RESOURCE_GROUP,
            STORAGE_ACCOUNT,
            APP_INSIGHTS,
            APP_SERVICE_PLAN,
        }

    def test_storage_connection_string(self):
        """Test the function app receives the storage account's connection string."""
        _, backend, exports = provision(
            responses={STORAGE_ACCOUNT: {"name": "stdev12345678"}},
            keys={"stdev12345678": ["ABC123"]},
        )

        settings = settings_of(backend.request_for(FUNCTION_APP))

        assert settings["AzureWebJobsStorage"] == (
            "DefaultEndpointsProtocol=https;AccountName=stdev12345678;"
            "AccountKey=ABC123;EndpointSuffix=core.windows.net"
        )
        assert exports["storageAccountName"].get() == "stdev12345678"

    def test_app_settings(self):
        """Test the application settings of the function app."""
        stack, backend, _ = provision(StackOptions.from_mapping({"environment": "staging"}))

        settings = settings_of(backend.request_for(FUNCTION_APP))
        insights = backend.created[APP_INSIGHTS]

        assert list(settings) == [
            "AzureWebJobsStorage",
            "FUNCTIONS_EXTENSION_VERSION",
            "FUNCTIONS_WORKER_RUNTIME",
            "APPINSIGHTS_INSTRUMENTATIONKEY",
            "APPLICATIONINSIGHTS_CONNECTION_STRING",
            "AZURE_FUNCTIONS_ENVIRONMENT",
            "WelcomeMessage",
            "MaxRetries",
            "ApiBaseUrl",
            "DatabaseConnectionString",
        ]
        assert settings["FUNCTIONS_EXTENSION_VERSION"] == "~4"
        assert settings["FUNCTIONS_WORKER_RUNTIME"] == "python"
        assert settings["APPINSIGHTS_INSTRUMENTATIONKEY"] == insights["instrumentation_key"]
        assert settings["APPLICATIONINSIGHTS_CONNECTION_STRING"] == insights["connection_string"]
        assert settings["AZURE_FUNCTIONS_ENVIRONMENT"] == "staging"
        assert settings["WelcomeMessage"] == "Hello from STAGING environment!"
        assert settings["MaxRetries"] == "5"

    def test_exports(self):
        """Test every export resolves after provisioning."""
        _, backend, exports = provision(
            responses={FUNCTION_APP: {"default_host_name": "azure-function-app.azurewebsites.net"}},
        )

        values = exports.collect()

        assert list(values) == EXPORT_NAMES
        assert values["functionAppUrl"] == "https://azure-function-app.azurewebsites.net"
        assert values["resourceGroupName"] == backend.created[RESOURCE_GROUP]["name"]
        assert values["functionAppName"] == backend.created[FUNCTION_APP]["name"]
        assert values["appInsightsInstrumentationKey"] == backend.created[APP_INSIGHTS]["instrumentation_key"]
        assert values["environment"] == "dev"

    def test_default_location(self):
        """Test the location default applies regardless of environment."""
        _, backend, exports = provision(StackOptions.from_mapping({"environment": "staging"}))

        assert exports["location"].get() == "East US"
        assert all(
            call.properties["location"] == "East US"
            for call in backend.create_calls
        )

    def test_plan_options(self):
        """Test SKU and tier come from options."""
        options = StackOptions.from_mapping({"plan": "consumption"})
        _, backend, _ = provision(options)

        plan = backend.request_for(APP_SERVICE_PLAN)

        assert plan.properties["sku"] == {"name": "Y1", "tier": "Dynamic"}
        assert plan.properties["reserved"] is True

    def test_linux_site_config(self):
        """Test the Python runtime gets a Linux function app."""
        _, backend, _ = provision()

        app = backend.request_for(FUNCTION_APP)

        assert app.properties["kind"] == "functionapp,linux"
        assert app.properties["site_config"]["linux_fx_version"] == "PYTHON|3.11"
        assert app.properties["server_farm_id"] == backend.created[APP_SERVICE_PLAN]["id"]

    def test_windows_runtime(self):
        """Test a dotnet-isolated runtime gets a Windows plan and app."""
        _, backend, _ = provision(StackOptions.from_mapping({"workerRuntime": "dotnet-isolated"}))

        app = backend.request_for(FUNCTION_APP)

        assert app.properties["kind"] == "functionapp"
        assert "linux_fx_version" not in app.properties["site_config"]
        assert backend.request_for(APP_SERVICE_PLAN).properties["reserved"] is False

    def test_lookup_failure_is_isolated(self):
        """Test a failed key lookup fails only what reads the key."""
        stack, backend, exports = provision(lookup_failures={"*": "forbidden"})

        failed = exports.failed()

        assert set(failed) == {"functionAppName", "functionAppUrl"}
        assert all(isinstance(error, LookupFailure) for error in failed.values())
        assert FUNCTION_APP not in backend.created_order()
        assert stack.get_resource(FUNCTION_APP).state is NodeState.FAILED
        assert exports["storageAccountName"].is_resolved
        assert exports["appInsightsInstrumentationKey"].is_resolved

        with pytest.raises(LookupFailure):
            exports.collect()

    def test_plan_failure(self):
        """Test a failed plan fails the function app with the same failure."""
        stack, backend, exports = provision(failures={APP_SERVICE_PLAN: "SKU not available"})

        plan = stack.get_resource(APP_SERVICE_PLAN)
        failure = exports["functionAppName"].failure

        assert isinstance(failure, ProvisioningFailure)
        assert failure is plan.failure
        assert failure.node == APP_SERVICE_PLAN
        assert exports["storageAccountName"].is_resolved
        assert exports["location"].is_resolved

    def test_resource_group_failure_fails_everything_but_literals(self):
        """Test a failed root fails every resource export."""
        stack, backend, exports = provision(failures={RESOURCE_GROUP: "region unavailable"})

        assert backend.created_order() == [RESOURCE_GROUP]
        assert backend.lookup_calls == []
        assert exports.pending() == []
        assert set(exports.failed()) == set(EXPORT_NAMES) - {"environment"}


class TestAppSettings:
    """Tests for app_settings."""

    def test_literal_values(self):
        """Test settings built from options and literal resource values."""
        options = StackOptions.from_mapping({"maxRetries": 7, "apiBaseUrl": "https://x"})

        settings = app_settings(
            options,
            storage_connection_string="conn",
            instrumentation_key="ikey",
            insights_connection_string="ai-conn",
        )

        values = {s["name"]: s["value"] for s in settings}
        assert values["MaxRetries"] == "7"
        assert values["ApiBaseUrl"] == "https://x"
        assert values["AzureWebJobsStorage"] == "conn"
