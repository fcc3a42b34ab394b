"""
Pulumi backend: provisions the stack with Pulumi Azure Native.

Creation requests become Pulumi resources and key lookups become
``list_storage_account_keys`` invokes.

During ``pulumi up`` cells are resolved from ``Output.apply`` callbacks on
the Pulumi engine's event loop, so a request is only registered with the
engine once all of its inputs are known. During ``pulumi preview`` outputs
of new resources are unknown and ``apply`` never runs for them, so cells
are resolved right away with the ``Output`` objects themselves. Dependent
resources take them as inputs and derived values map over them, which
lets every resource appear in the preview and every export settle.
"""

import asyncio
from typing import Any, Mapping

try:
    import pulumi
    import pulumi_azure_native as azure_native
except ImportError:
    raise ImportError(
        "pulumi and pulumi-azure-native required for PulumiBackend. "
        "Install with: pip install pulumi pulumi-azure-native"
    )

from funcstack.config.stack import StackOptions
from funcstack.core.cell import Cell
from funcstack.core.export import ExportMap
from funcstack.core.resource import ResourceKind
from funcstack.providers.base import Backend, CreateRequest, ListKeysRequest

OUTPUT_PROPERTIES: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.RESOURCE_GROUP: ("id", "name", "location"),
    ResourceKind.STORAGE_ACCOUNT: ("id", "name", "location"),
    ResourceKind.APP_INSIGHTS: ("id", "name", "location", "instrumentation_key", "connection_string"),
    ResourceKind.APP_SERVICE_PLAN: ("id", "name", "location"),
    ResourceKind.FUNCTION_APP: ("id", "name", "location", "default_host_name"),
}
"""Resource attributes copied into the creation result"""

SECRET_APP_SETTINGS = frozenset({
    "AzureWebJobsStorage",
    "APPLICATIONINSIGHTS_CONNECTION_STRING",
    "DatabaseConnectionString",
})
"""Application settings stored as Pulumi secrets"""


def resource_args(kind: ResourceKind, properties: Mapping[str, Any]) -> dict[str, Any]:
    """
    Translate plain properties into keyword arguments for the resource class.

    Nested ``sku`` and ``site_config`` mappings become the matching
    ``*Args`` input types.
    """
    args = dict(properties)

    if kind is ResourceKind.STORAGE_ACCOUNT and "sku" in args:
        args["sku"] = azure_native.storage.SkuArgs(**args["sku"])
    elif kind is ResourceKind.APP_SERVICE_PLAN and "sku" in args:
        args["sku"] = azure_native.web.SkuDescriptionArgs(**args["sku"])
    elif kind is ResourceKind.FUNCTION_APP and "site_config" in args:
        site_config = dict(args["site_config"])
        site_config["app_settings"] = [
            azure_native.web.NameValuePairArgs(
                name=setting["name"],
                value=(
                    pulumi.Output.secret(setting["value"])
                    if setting["name"] in SECRET_APP_SETTINGS
                    else setting["value"]
                ),
            )
            for setting in site_config.get("app_settings", [])
        ]
        args["site_config"] = azure_native.web.SiteConfigArgs(**site_config)

    return args


RESOURCE_TYPES: dict[ResourceKind, tuple[str, str]] = {
    ResourceKind.RESOURCE_GROUP: ("resources", "ResourceGroup"),
    ResourceKind.STORAGE_ACCOUNT: ("storage", "StorageAccount"),
    ResourceKind.APP_INSIGHTS: ("applicationinsights", "Component"),
    ResourceKind.APP_SERVICE_PLAN: ("web", "AppServicePlan"),
    ResourceKind.FUNCTION_APP: ("web", "WebApp"),
}
"""Module and class name in pulumi_azure_native for each kind"""


def resource_class(kind: ResourceKind) -> type:
    """
    Pulumi resource class for a resource kind.

    Looked up per kind, so a module missing from the installed SDK only
    affects the kinds that use it.
    """
    module, name = RESOURCE_TYPES[kind]
    return getattr(getattr(azure_native, module), name)


class PulumiBackend(Backend):
    """
    Backend that registers resources with the Pulumi engine.

    Only usable inside a running Pulumi program.

    Example:
        stack = Stack(pulumi.get_stack(), backend=PulumiBackend())
        exports = build_function_stack(stack, options)
        stack.provision()
        export_outputs(exports)
    """

    def __init__(self, opts: pulumi.ResourceOptions | None = None):
        """
        Initialize Pulumi backend.

        Args:
            opts: Resource options applied to every created resource
        """
        self.opts = opts
        self.resources: dict[str, pulumi.Resource] = {}

    def get_provider_name(self) -> str:
        return "pulumi"

    def create(self, request: CreateRequest) -> Cell[dict[str, Any]]:
        cell: Cell[dict[str, Any]] = Cell(label=f"{request.name}.result")

        resource = resource_class(request.kind)(
            request.name,
            opts=self.opts,
            **resource_args(request.kind, request.properties),
        )
        self.resources[request.name] = resource

        outputs = {
            prop: getattr(resource, prop)
            for prop in OUTPUT_PROPERTIES[request.kind]
        }
        if pulumi.runtime.is_dry_run():
            cell.resolve(outputs)
        else:
            pulumi.Output.all(**outputs).apply(lambda values: cell.resolve(dict(values)))
        return cell

    def list_keys(self, request: ListKeysRequest) -> Cell[list[Any]]:
        cell: Cell[list[Any]] = Cell(label=f"{request.account_name}.keys")

        result = azure_native.storage.list_storage_account_keys_output(
            resource_group_name=request.resource_group_name,
            account_name=request.account_name,
        )
        if pulumi.runtime.is_dry_run():
            # the key list is unknown until the account exists
            cell.resolve([result.apply(lambda listed: listed.keys[0].value)])
        else:
            result.apply(lambda listed: cell.resolve([
                {"key_name": key.key_name, "value": key.value}
                for key in listed.keys
            ]))
        return cell


def options_from_pulumi_config(config: Any = None) -> StackOptions:
    """
    Read stack options from Pulumi configuration.

    Args:
        config: A ``pulumi.Config`` (the project's namespace by default)
    """
    config = config if config is not None else pulumi.Config()
    names = [field.alias or name for name, field in StackOptions.model_fields.items()]
    values = {name: config.get(name) for name in names + ["plan"]}
    return StackOptions.from_mapping(values)


def export_outputs(exports: ExportMap) -> dict[str, pulumi.Output]:
    """
    Publish every export as a Pulumi stack output.

    Must be called from the running Pulumi program. Exports that already
    resolved are published directly; the rest wait on their cells.
    """
    outputs: dict[str, pulumi.Output] = {}
    for name, cell in exports.items():
        if cell.is_resolved:
            output = pulumi.Output.from_input(cell.get())
        else:
            future = cell.to_future(asyncio.get_event_loop())
            # apply flattens a cell that resolves to an Output
            output = pulumi.Output.from_input(future).apply(lambda value: value)
        pulumi.export(name, output)
        outputs[name] = output
    return outputs
