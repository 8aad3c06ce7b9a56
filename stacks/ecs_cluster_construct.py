"""Fargate ECS cluster shared by the microservices."""

import aws_cdk as cdk
from constructs import Construct
from aws_cdk import (
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_logs as logs,
    CfnOutput,
)

from stacks import exports
from stacks.policies import log_retention, removal_policy


class EcsClusterConstruct(Construct):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        vpc: ec2.IVpc,
        environment: str,
        enable_container_insights: bool,
        log_retention_days: int,
        removal_policy_retain: bool,
    ) -> None:
        super().__init__(scope, construct_id)

        self.log_group = logs.LogGroup(
            self,
            "EcsLogGroup",
            log_group_name=f"/aws/ecs/{environment}/cluster",
            retention=log_retention(log_retention_days),
            removal_policy=removal_policy(removal_policy_retain),
        )

        self.cluster = ecs.Cluster(
            self,
            "EcsCluster",
            vpc=vpc,
            cluster_name=f"{environment}-cluster",
            container_insights_v2=(
                ecs.ContainerInsights.ENABLED
                if enable_container_insights
                else ecs.ContainerInsights.DISABLED
            ),
            enable_fargate_capacity_providers=True,
        )

        cdk.Tags.of(self.cluster).add("Environment", environment)
        cdk.Tags.of(self.cluster).add("Component", "ECS")
        cdk.Tags.of(self.cluster).add("ManagedBy", "CDK")

        CfnOutput(
            self,
            "ClusterArn",
            value=self.cluster.cluster_arn,
            description="ECS Cluster ARN",
            export_name=exports.cluster_arn(environment),
        )

        CfnOutput(
            self,
            "ClusterName",
            value=self.cluster.cluster_name,
            description="ECS Cluster Name",
            export_name=exports.cluster_name(environment),
        )
