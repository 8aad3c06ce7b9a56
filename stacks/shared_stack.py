"""CDK stack for the infrastructure shared by all microservices."""

import aws_cdk as cdk
from constructs import Construct
from aws_cdk import (
    aws_ec2 as ec2,
    CfnOutput,
    Duration,
)

from stacks.alb_construct import AlbConstruct
from stacks.config import SharedInfraConfig
from stacks.database_construct import DatabaseConstruct
from stacks.ecs_cluster_construct import EcsClusterConstruct
from stacks.vpc_construct import VpcConstruct

PROJECT_NAME = "OrderProcessor"


class InfrastructureSharedStack(cdk.Stack):
    """VPC, PostgreSQL database, load balancer and ECS cluster.

    Everything a service stack needs is exported under ``<environment>-*``
    names (see ``stacks.exports``).
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        config: SharedInfraConfig,
        **kwargs,
    ) -> None:
        """Initialise the shared infrastructure stack.

        Args:
            scope: The scope in which this stack is defined.
            construct_id: The scoped construct ID.
            config: Settings for the target environment.
            **kwargs: Additional stack properties.
        """
        super().__init__(scope, construct_id, **kwargs)
        environment = config.environment

        self.vpc = VpcConstruct(
            self,
            "Vpc",
            environment=environment,
            max_azs=config.vpc_max_azs,
            nat_gateways=config.vpc_nat_gateways,
            enable_flow_logs=config.vpc_enable_flow_logs,
            removal_policy_retain=config.removal_policy_retain,
        )

        # Master password is generated into Secrets Manager
        self.database = DatabaseConstruct(
            self,
            "Database",
            vpc=self.vpc.vpc,
            environment=environment,
            database_name=config.rds_database_name,
            instance_type=ec2.InstanceType(
                f"{config.rds_instance_class}.{config.rds_instance_size}"
            ),
            allocated_storage=config.rds_allocated_storage,
            backup_retention=Duration.days(config.rds_backup_retention_days),
            multi_az=config.rds_multi_az,
            removal_policy_retain=config.removal_policy_retain,
            removal_policy_snapshot=config.removal_policy_snapshot,
            deletion_protection=config.deletion_protection,
            enable_performance_insights=config.enable_performance_insights,
            performance_insights_long_term=config.performance_insights_long_term,
        )

        self.alb = AlbConstruct(
            self,
            "Alb",
            vpc=self.vpc.vpc,
            environment=environment,
            enable_access_logs=config.alb_enable_access_logs,
            deletion_protection=config.alb_deletion_protection,
            access_logs_retention_days=config.alb_access_logs_retention_days,
            removal_policy_retain=config.removal_policy_retain,
            auto_delete_objects=config.auto_delete_objects,
            certificate_arn=config.alb_certificate_arn,
        )

        self.ecs_cluster = EcsClusterConstruct(
            self,
            "EcsCluster",
            vpc=self.vpc.vpc,
            environment=environment,
            enable_container_insights=config.ecs_enable_container_insights,
            log_retention_days=config.ecs_log_retention_days,
            removal_policy_retain=config.removal_policy_retain,
        )

        cdk.Tags.of(self).add("Environment", environment)
        cdk.Tags.of(self).add("Project", PROJECT_NAME)
        cdk.Tags.of(self).add("ManagedBy", "CDK")

        CfnOutput(
            self,
            "StackName",
            value=self.stack_name,
            description="Shared Infrastructure Stack Name",
        )

        CfnOutput(
            self,
            "Environment",
            value=environment,
            description="Deployment Environment",
        )
