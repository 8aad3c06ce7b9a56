"""Encrypted RDS PostgreSQL instance with generated master credentials."""

import json

import aws_cdk as cdk
from constructs import Construct
from aws_cdk import (
    aws_ec2 as ec2,
    aws_kms as kms,
    aws_rds as rds,
    aws_secretsmanager as secretsmanager,
    CfnOutput,
    Duration,
)

from stacks import exports
from stacks.policies import removal_policy

POSTGRES_PORT = 5432
MASTER_USERNAME = "dbadmin"
PASSWORD_LENGTH = 32
LOG_EXPORTS = ["postgresql", "upgrade"]


class DatabaseConstruct(Construct):
    """PostgreSQL 15 in the isolated subnets, reachable only from private ones.

    Attributes:
        instance: The RDS database instance.
        secret: Secrets Manager secret with ``username``/``password`` and,
            once attached, the connection details.
        security_group: Security group guarding port 5432.
        kms_key: Customer managed key for storage encryption.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        vpc: ec2.IVpc,
        environment: str,
        database_name: str,
        instance_type: ec2.InstanceType,
        allocated_storage: int,
        backup_retention: Duration,
        multi_az: bool,
        removal_policy_retain: bool,
        removal_policy_snapshot: bool,
        deletion_protection: bool,
        enable_performance_insights: bool,
        performance_insights_long_term: bool,
    ) -> None:
        super().__init__(scope, construct_id)

        self.kms_key = kms.Key(
            self,
            "RdsEncryptionKey",
            description=f"RDS encryption key for {environment}",
            enable_key_rotation=True,
            removal_policy=removal_policy(removal_policy_retain),
        )

        self.security_group = ec2.SecurityGroup(
            self,
            "RdsSecurityGroup",
            vpc=vpc,
            description="Security group for RDS PostgreSQL instance",
            allow_all_outbound=False,
        )

        # Only the private subnets, where ECS tasks run, may reach the database
        for index, subnet in enumerate(vpc.private_subnets, start=1):
            self.security_group.add_ingress_rule(
                ec2.Peer.ipv4(subnet.ipv4_cidr_block),
                ec2.Port.tcp(POSTGRES_PORT),
                f"Allow PostgreSQL access from private subnet {index}",
            )

        self.secret = secretsmanager.Secret(
            self,
            "RdsCredentials",
            secret_name=f"{environment}/rds/credentials",
            description=f"RDS master credentials for {environment} - Auto-generated password",
            generate_secret_string=secretsmanager.SecretStringGenerator(
                secret_string_template=json.dumps({"username": MASTER_USERNAME}),
                generate_string_key="password",
                exclude_punctuation=True,
                password_length=PASSWORD_LENGTH,
            ),
        )

        performance_insight_retention = None
        if enable_performance_insights:
            performance_insight_retention = (
                rds.PerformanceInsightRetention.LONG_TERM
                if performance_insights_long_term
                else rds.PerformanceInsightRetention.DEFAULT
            )

        self.instance = rds.DatabaseInstance(
            self,
            "PostgresInstance",
            engine=rds.DatabaseInstanceEngine.postgres(
                version=rds.PostgresEngineVersion.VER_15,
            ),
            instance_type=instance_type,
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(
                subnet_type=ec2.SubnetType.PRIVATE_ISOLATED,
            ),
            security_groups=[self.security_group],
            database_name=database_name,
            credentials=rds.Credentials.from_secret(self.secret),
            allocated_storage=allocated_storage,
            max_allocated_storage=allocated_storage * 2,
            storage_encrypted=True,
            storage_encryption_key=self.kms_key,
            multi_az=multi_az,
            backup_retention=backup_retention,
            deletion_protection=deletion_protection,
            enable_performance_insights=enable_performance_insights,
            performance_insight_retention=performance_insight_retention,
            cloudwatch_logs_exports=LOG_EXPORTS,
            removal_policy=removal_policy(
                removal_policy_retain, snapshot=removal_policy_snapshot
            ),
        )

        cdk.Tags.of(self.instance).add("Environment", environment)
        cdk.Tags.of(self.instance).add("Component", "Database")
        cdk.Tags.of(self.instance).add("ManagedBy", "CDK")

        CfnOutput(
            self,
            "RdsEndpoint",
            value=self.instance.db_instance_endpoint_address,
            description="RDS endpoint address",
            export_name=exports.rds_endpoint(environment),
        )

        CfnOutput(
            self,
            "RdsPort",
            value=self.instance.db_instance_endpoint_port,
            description="RDS port",
            export_name=exports.rds_port(environment),
        )

        CfnOutput(
            self,
            "RdsSecretArn",
            value=self.secret.secret_arn,
            description="RDS credentials secret ARN",
            export_name=exports.rds_secret_arn(environment),
        )

    def allow_connections_from(self, security_group: ec2.ISecurityGroup) -> None:
        """Open port 5432 to ``security_group``."""
        self.security_group.add_ingress_rule(
            security_group,
            ec2.Port.tcp(POSTGRES_PORT),
            "Allow PostgreSQL access from ECS tasks",
        )
