"""Pulumi program for the function-app stack."""

import pulumi

from funcstack.core.stack import Stack
from funcstack.log import configure_logging
from funcstack.program import build_function_stack
from funcstack.providers.pulumi_azure import (
    PulumiBackend,
    export_outputs,
    options_from_pulumi_config,
)

configure_logging()

options = options_from_pulumi_config(pulumi.Config())
stack = Stack(pulumi.get_stack(), backend=PulumiBackend())
exports = build_function_stack(stack, options)
stack.provision()
export_outputs(exports)
