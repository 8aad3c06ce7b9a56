"""VPC with public, private and isolated subnet tiers."""

import aws_cdk as cdk
from constructs import Construct
from aws_cdk import (
    aws_ec2 as ec2,
    aws_logs as logs,
    CfnOutput,
    Fn,
)

from stacks import exports
from stacks.policies import removal_policy

SUBNET_CIDR_MASK = 24


class VpcConstruct(Construct):
    """Three-tier VPC: public for the ALB, private for tasks, isolated for RDS."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        environment: str,
        max_azs: int,
        nat_gateways: int,
        enable_flow_logs: bool,
        removal_policy_retain: bool,
    ) -> None:
        super().__init__(scope, construct_id)

        self.vpc = ec2.Vpc(
            self,
            "Vpc",
            max_azs=max_azs,
            nat_gateways=nat_gateways,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="Public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=SUBNET_CIDR_MASK,
                ),
                ec2.SubnetConfiguration(
                    name="Private",
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    cidr_mask=SUBNET_CIDR_MASK,
                ),
                ec2.SubnetConfiguration(
                    name="Isolated",
                    subnet_type=ec2.SubnetType.PRIVATE_ISOLATED,
                    cidr_mask=SUBNET_CIDR_MASK,
                ),
            ],
        )

        self.public_subnets = self.vpc.public_subnets
        self.private_subnets = self.vpc.private_subnets
        self.isolated_subnets = self.vpc.isolated_subnets

        # Flow logs to CloudWatch
        if enable_flow_logs:
            flow_log_group = logs.LogGroup(
                self,
                "VpcFlowLogsGroup",
                log_group_name=f"/aws/vpc/{environment}/flow-logs",
                retention=logs.RetentionDays.ONE_WEEK,
                removal_policy=removal_policy(removal_policy_retain),
            )
            ec2.FlowLog(
                self,
                "VpcFlowLog",
                resource_type=ec2.FlowLogResourceType.from_vpc(self.vpc),
                destination=ec2.FlowLogDestination.to_cloud_watch_logs(flow_log_group),
                traffic_type=ec2.FlowLogTrafficType.ALL,
            )

        cdk.Tags.of(self.vpc).add("Environment", environment)
        cdk.Tags.of(self.vpc).add("Component", "SharedInfrastructure")
        cdk.Tags.of(self.vpc).add("ManagedBy", "CDK")

        CfnOutput(
            self,
            "VpcId",
            value=self.vpc.vpc_id,
            description="VPC ID",
            export_name=exports.vpc_id(environment),
        )

        CfnOutput(
            self,
            "VpcCidr",
            value=self.vpc.vpc_cidr_block,
            description="VPC CIDR Block",
        )

        for output_id, kind, subnets in (
            ("PrivateSubnetIds", "private", self.private_subnets),
            ("PublicSubnetIds", "public", self.public_subnets),
            ("IsolatedSubnetIds", "isolated", self.isolated_subnets),
        ):
            CfnOutput(
                self,
                output_id,
                value=Fn.join(",", [subnet.subnet_id for subnet in subnets]),
                description=f"{kind.capitalize()} Subnet IDs",
                export_name=exports.subnet_ids(environment, kind),
            )
