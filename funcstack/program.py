"""
The function-app stack.

Declares the fixed graph:

    resource group
      |-- storage account --> key lookup --> connection string --+
      |-- Application Insights component ------------------------+--> function app
      +-- App Service plan --------------------------------------+

and returns the export map.
"""

from funcstack.config.stack import StackOptions
from funcstack.core.cell import Cell
from funcstack.core.export import ExportMap
from funcstack.core.resource import ResourceKind
from funcstack.core.stack import Stack

RESOURCE_GROUP = "azure-function-rg"
STORAGE_ACCOUNT = "azfuncstore"
APP_INSIGHTS = "azure-function-ai"
APP_SERVICE_PLAN = "azure-function-plan"
FUNCTION_APP = "azure-function-app"

STORAGE_CONNECTION_STRING = (
    "DefaultEndpointsProtocol=https;AccountName={name};AccountKey={key};"
    "EndpointSuffix=core.windows.net"
)


def storage_connection_string(account_name: Cell[str] | str, key: Cell[str] | str) -> Cell[str]:
    """Connection string for a storage account, once its name and key are known."""
    return Cell.format(
        STORAGE_CONNECTION_STRING,
        label="storage.connection_string",
        name=account_name,
        key=key,
    )


def function_app_url(host_name: Cell[str]) -> Cell[str]:
    return host_name.transform(lambda host: f"https://{host}", label="functionAppUrl")


def app_settings(options: StackOptions, **settings: Cell[str] | str) -> list[dict[str, Cell[str] | str]]:
    """
    Application settings of the function app as name/value pairs.

    Keyword arguments supply the values that come from other resources.
    """
    values = {
        "AzureWebJobsStorage": settings["storage_connection_string"],
        "FUNCTIONS_EXTENSION_VERSION": "~4",
        "FUNCTIONS_WORKER_RUNTIME": options.worker_runtime,
        "APPINSIGHTS_INSTRUMENTATIONKEY": settings["instrumentation_key"],
        "APPLICATIONINSIGHTS_CONNECTION_STRING": settings["insights_connection_string"],
        "AZURE_FUNCTIONS_ENVIRONMENT": options.environment,
        "WelcomeMessage": options.welcome_message,
        "MaxRetries": str(options.max_retries),
        "ApiBaseUrl": options.api_base_url,
        "DatabaseConnectionString": options.database_connection_string,
    }
    return [{"name": name, "value": value} for name, value in values.items()]


def build_function_stack(stack: Stack, options: StackOptions) -> ExportMap:
    """
    Declare the function-app resources on ``stack``.

    Nothing is created until ``stack.provision()`` is called.

    Returns:
        The stack's export map
    """
    group = stack.declare(
        ResourceKind.RESOURCE_GROUP,
        RESOURCE_GROUP,
        {"location": options.location},
    )
    group_name = group.output("name")
    location = group.output("location")

    account = stack.declare(
        ResourceKind.STORAGE_ACCOUNT,
        STORAGE_ACCOUNT,
        {
            "resource_group_name": group_name,
            "location": location,
            "sku": {"name": "Standard_LRS"},
            "kind": "StorageV2",
        },
    )
    account_name = account.output("name")

    key = stack.lookup_storage_key(group_name, account_name)
    connection_string = storage_connection_string(account_name, key)

    insights = stack.declare(
        ResourceKind.APP_INSIGHTS,
        APP_INSIGHTS,
        {
            "resource_group_name": group_name,
            "location": location,
            "application_type": "web",
            "kind": "web",
            "ingestion_mode": "ApplicationInsights",
        },
    )

    plan = stack.declare(
        ResourceKind.APP_SERVICE_PLAN,
        APP_SERVICE_PLAN,
        {
            "resource_group_name": group_name,
            "location": location,
            "sku": {"name": options.plan_sku, "tier": options.plan_tier},
            "kind": "FunctionApp",
            "reserved": options.is_linux,
        },
    )

    site_config = {
        "app_settings": app_settings(
            options,
            storage_connection_string=connection_string,
            instrumentation_key=insights.output("instrumentation_key"),
            insights_connection_string=insights.output("connection_string"),
        ),
    }
    if options.is_linux:
        site_config["linux_fx_version"] = f"{options.worker_runtime.upper()}|{options.python_version}"

    app = stack.declare(
        ResourceKind.FUNCTION_APP,
        FUNCTION_APP,
        {
            "resource_group_name": group_name,
            "location": location,
            "server_farm_id": plan.output("id"),
            "kind": "functionapp,linux" if options.is_linux else "functionapp",
            "site_config": site_config,
        },
    )

    stack.export("resourceGroupName", group_name)
    stack.export("functionAppName", app.output("name"))
    stack.export("functionAppUrl", function_app_url(app.output("default_host_name")))
    stack.export("storageAccountName", account_name)
    stack.export("appInsightsName", insights.output("name"))
    stack.export("appInsightsInstrumentationKey", insights.output("instrumentation_key"))
    stack.export("location", location)
    stack.export("environment", options.environment)

    return stack.exports
