#!/usr/bin/env python3
"""CDK app entry point for the order processor platform."""

import os
import aws_cdk as cdk
from stacks.config import load_service_config, load_shared_config
from stacks.order_processor_stack import OrderProcessorStack
from stacks.shared_stack import InfrastructureSharedStack


app = cdk.App()

# Context wins over ENVIRONMENT, e.g. `cdk deploy -c environment=prod`
environment = (
    app.node.try_get_context("environment") or os.getenv("ENVIRONMENT") or "dev"
)

shared_config = load_shared_config(environment)
service_config = load_service_config(environment)

env = cdk.Environment(
    account=shared_config.account or os.getenv("CDK_DEFAULT_ACCOUNT"),
    region=shared_config.region,
)
tags = {
    "Environment": environment,
    "Project": "OrderProcessor",
    "ManagedBy": "CDK",
}

shared_stack = InfrastructureSharedStack(
    app,
    f"InfrastructureSharedStack-{environment}",
    config=shared_config,
    env=env,
    description=f"Shared infrastructure for {environment} environment",
    tags=tags,
)

order_processor_stack = OrderProcessorStack(
    app,
    f"MicroserviceOrderProcessorStack-{environment}",
    environment=environment,
    config=service_config,
    max_azs=shared_config.vpc_max_azs,
    env=env,
    description=f"Order processor microservice for {environment} environment",
    tags=tags,
)
# Imports the shared stack's exports
order_processor_stack.add_dependency(shared_stack)

app.synth()
