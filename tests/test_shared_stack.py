"""CDK infrastructure unit tests for the shared stack."""

import dataclasses

import aws_cdk as cdk
from aws_cdk.assertions import Template, Match
import pytest

from stacks.config import SharedInfraConfig
from stacks.shared_stack import InfrastructureSharedStack

TEST_ENV = cdk.Environment(account="123456789012", region="ap-southeast-2")
CERTIFICATE_ARN = (
    "arn:aws:acm:ap-southeast-2:123456789012:certificate/"
    "11111111-2222-3333-4444-555555555555"
)


def make_config(**overrides) -> SharedInfraConfig:
    config = SharedInfraConfig(
        environment="test",
        account="123456789012",
        region="ap-southeast-2",
    )
    return dataclasses.replace(config, **overrides)


def synth(config: SharedInfraConfig) -> Template:
    app = cdk.App()
    stack = InfrastructureSharedStack(
        app, "TestSharedStack", config=config, env=TEST_ENV
    )
    return Template.from_stack(stack)


@pytest.fixture
def template():
    """Create a shared stack with default settings and return its template."""
    template = synth(make_config())
    return template


def test_vpc_subnets(template):
    """Verify one public, private and isolated subnet per AZ."""
    template.resource_count_is("AWS::EC2::VPC", 1)
    template.resource_count_is("AWS::EC2::Subnet", 6)
    template.resource_count_is("AWS::EC2::NatGateway", 1)


def test_vpc_flow_logs(template):
    """Verify flow logs go to a one-week CloudWatch log group."""
    template.resource_count_is("AWS::EC2::FlowLog", 1)
    template.has_resource_properties(
        "AWS::Logs::LogGroup",
        {
            "LogGroupName": "/aws/vpc/test/flow-logs",
            "RetentionInDays": 7,
        },
    )
    template.has_resource_properties(
        "AWS::EC2::FlowLog",
        {"ResourceType": "VPC", "TrafficType": "ALL"},
    )


def test_flow_logs_disabled():
    """Verify no flow log resources when flow logs are turned off."""
    template = synth(make_config(vpc_enable_flow_logs=False))
    template.resource_count_is("AWS::EC2::FlowLog", 0)


def test_rds_instance(template):
    """Verify an encrypted PostgreSQL 15 instance with log exports."""
    template.resource_count_is("AWS::RDS::DBInstance", 1)
    template.has_resource_properties(
        "AWS::RDS::DBInstance",
        {
            "Engine": "postgres",
            "EngineVersion": Match.string_like_regexp("^15"),
            "DBInstanceClass": "db.t3.micro",
            "DBName": "orderdb",
            "AllocatedStorage": "20",
            "MaxAllocatedStorage": 40,
            "StorageEncrypted": True,
            "KmsKeyId": Match.any_value(),
            "MultiAZ": False,
            "BackupRetentionPeriod": 7,
            "DeletionProtection": False,
            "EnableCloudwatchLogsExports": ["postgresql", "upgrade"],
        },
    )
    template.has_resource(
        "AWS::RDS::DBInstance",
        {"DeletionPolicy": "Delete"},
    )


def test_rds_encryption_key(template):
    """Verify the RDS KMS key rotates."""
    template.has_resource_properties(
        "AWS::KMS::Key",
        {
            "Description": "RDS encryption key for test",
            "EnableKeyRotation": True,
        },
    )


def test_rds_credentials_secret(template):
    """Verify generated master credentials in Secrets Manager."""
    template.has_resource_properties(
        "AWS::SecretsManager::Secret",
        {
            "Name": "test/rds/credentials",
            "GenerateSecretString": {
                "SecretStringTemplate": '{"username": "dbadmin"}',
                "GenerateStringKey": "password",
                "ExcludePunctuation": True,
                "PasswordLength": 32,
            },
        },
    )


def test_rds_security_group_allows_private_subnets_only(template):
    """Verify port 5432 is opened to each private subnet CIDR."""
    groups = template.find_resources(
        "AWS::EC2::SecurityGroup",
        {
            "Properties": Match.object_like(
                {"GroupDescription": "Security group for RDS PostgreSQL instance"}
            )
        },
    )
    assert len(groups) == 1

    rules = list(groups.values())[0]["Properties"]["SecurityGroupIngress"]
    assert len(rules) == 2
    for rule in rules:
        assert rule["FromPort"] == 5432
        assert rule["ToPort"] == 5432
        assert rule["IpProtocol"] == "tcp"
        assert rule["CidrIp"].startswith("10.0.")


def test_performance_insights_and_retention():
    """Verify production-style settings reach the RDS instance."""
    template = synth(
        make_config(
            environment="prod",
            rds_instance_class="m6g",
            rds_instance_size="large",
            rds_multi_az=True,
            removal_policy_retain=True,
            deletion_protection=True,
            enable_performance_insights=True,
        )
    )
    template.has_resource_properties(
        "AWS::RDS::DBInstance",
        {
            "DBInstanceClass": "db.m6g.large",
            "MultiAZ": True,
            "DeletionProtection": True,
            "EnablePerformanceInsights": True,
            "PerformanceInsightsRetentionPeriod": 7,
        },
    )
    template.has_resource("AWS::RDS::DBInstance", {"DeletionPolicy": "Retain"})
    template.has_resource_properties(
        "AWS::SecretsManager::Secret",
        {"Name": "prod/rds/credentials"},
    )


def test_rds_snapshot_removal_policy():
    """Verify the snapshot removal policy when retain is off."""
    template = synth(make_config(removal_policy_snapshot=True))
    template.has_resource("AWS::RDS::DBInstance", {"DeletionPolicy": "Snapshot"})


def test_alb(template):
    """Verify an internet-facing ALB with an HTTP fixed-response listener."""
    template.resource_count_is("AWS::ElasticLoadBalancingV2::LoadBalancer", 1)
    template.has_resource_properties(
        "AWS::ElasticLoadBalancingV2::LoadBalancer",
        {"Scheme": "internet-facing", "Type": "application"},
    )
    template.resource_count_is("AWS::ElasticLoadBalancingV2::Listener", 1)
    template.has_resource_properties(
        "AWS::ElasticLoadBalancingV2::Listener",
        {
            "Port": 80,
            "Protocol": "HTTP",
            "DefaultActions": [
                {
                    "Type": "fixed-response",
                    "FixedResponseConfig": {
                        "StatusCode": "200",
                        "ContentType": "text/plain",
                        "MessageBody": "OK - HTTP Only (No SSL Certificate)",
                    },
                }
            ],
        },
    )
    template.has_resource_properties(
        "AWS::EC2::SecurityGroup",
        {
            "GroupDescription": "Security group for Application Load Balancer",
            "SecurityGroupIngress": [
                Match.object_like(
                    {"CidrIp": "0.0.0.0/0", "FromPort": 80, "ToPort": 80}
                )
            ],
        },
    )


def test_alb_https_with_certificate():
    """Verify HTTPS listener and HTTP redirect when a certificate is set."""
    template = synth(make_config(alb_certificate_arn=CERTIFICATE_ARN))
    template.resource_count_is("AWS::ElasticLoadBalancingV2::Listener", 2)
    template.has_resource_properties(
        "AWS::ElasticLoadBalancingV2::Listener",
        {
            "Port": 443,
            "Protocol": "HTTPS",
            "Certificates": [{"CertificateArn": CERTIFICATE_ARN}],
        },
    )
    template.has_resource_properties(
        "AWS::ElasticLoadBalancingV2::Listener",
        {
            "Port": 80,
            "DefaultActions": [
                Match.object_like(
                    {
                        "Type": "redirect",
                        "RedirectConfig": Match.object_like(
                            {
                                "Protocol": "HTTPS",
                                "Port": "443",
                                "StatusCode": "HTTP_301",
                            }
                        ),
                    }
                )
            ],
        },
    )
    template.has_output(
        "*", {"Export": {"Name": "test-alb-https-listener-arn"}}
    )


def test_alb_access_logs_bucket(template):
    """Verify the access log bucket lifecycle and public access block."""
    template.has_resource_properties(
        "AWS::S3::Bucket",
        {
            "BucketEncryption": {
                "ServerSideEncryptionConfiguration": [
                    {"ServerSideEncryptionByDefault": {"SSEAlgorithm": "AES256"}}
                ]
            },
            "PublicAccessBlockConfiguration": {
                "BlockPublicAcls": True,
                "BlockPublicPolicy": True,
                "IgnorePublicAcls": True,
                "RestrictPublicBuckets": True,
            },
            "LifecycleConfiguration": {
                "Rules": [
                    Match.object_like(
                        {
                            "Status": "Enabled",
                            "ExpirationInDays": 90,
                            "Transitions": [
                                {
                                    "StorageClass": "STANDARD_IA",
                                    "TransitionInDays": 30,
                                }
                            ],
                        }
                    )
                ]
            },
        },
    )
    template.has_resource_properties(
        "AWS::ElasticLoadBalancingV2::LoadBalancer",
        {
            "LoadBalancerAttributes": Match.array_with(
                [
                    {"Key": "access_logs.s3.enabled", "Value": "true"},
                    {"Key": "access_logs.s3.prefix", "Value": "alb-logs"},
                ]
            )
        },
    )


def test_alb_access_logs_bucket_auto_deletes_when_destroyed(template):
    """Verify the default bucket is emptied and deleted with the stack."""
    template.has_resource("AWS::S3::Bucket", {"DeletionPolicy": "Delete"})
    template.resource_count_is("Custom::S3AutoDeleteObjects", 1)


def test_alb_access_logs_bucket_retained():
    """Verify retain keeps the bucket and skips auto delete even when requested."""
    template = synth(make_config(removal_policy_retain=True, auto_delete_objects=True))

    template.has_resource("AWS::S3::Bucket", {"DeletionPolicy": "Retain"})
    template.resource_count_is("Custom::S3AutoDeleteObjects", 0)


def test_alb_access_logs_bucket_without_auto_delete():
    """Verify auto delete can be switched off for a destroyable bucket."""
    template = synth(make_config(auto_delete_objects=False))

    template.has_resource("AWS::S3::Bucket", {"DeletionPolicy": "Delete"})
    template.resource_count_is("Custom::S3AutoDeleteObjects", 0)


def test_alb_access_logs_disabled():
    """Verify no bucket is created without access logs."""
    template = synth(make_config(alb_enable_access_logs=False))
    template.resource_count_is("AWS::S3::Bucket", 0)


def test_create_target_group():
    """Verify target groups created for services use IP targets."""
    app = cdk.App()
    stack = InfrastructureSharedStack(
        app, "TestSharedStack", config=make_config(), env=TEST_ENV
    )
    stack.alb.create_target_group("ServiceTargetGroup", 8080, "/ready")
    template = Template.from_stack(stack)
    template.has_resource_properties(
        "AWS::ElasticLoadBalancingV2::TargetGroup",
        {
            "Port": 8080,
            "Protocol": "HTTP",
            "TargetType": "ip",
            "HealthCheckPath": "/ready",
            "HealthCheckIntervalSeconds": 30,
            "HealthCheckTimeoutSeconds": 5,
            "HealthyThresholdCount": 2,
            "UnhealthyThresholdCount": 3,
            "TargetGroupAttributes": Match.array_with(
                [{"Key": "deregistration_delay.timeout_seconds", "Value": "30"}]
            ),
        },
    )


def test_ecs_cluster(template):
    """Verify the Fargate cluster with container insights."""
    template.has_resource_properties(
        "AWS::ECS::Cluster",
        {
            "ClusterName": "test-cluster",
            "ClusterSettings": [{"Name": "containerInsights", "Value": "enabled"}],
        },
    )
    template.has_resource_properties(
        "AWS::ECS::ClusterCapacityProviderAssociations",
        {"CapacityProviders": Match.array_with(["FARGATE", "FARGATE_SPOT"])},
    )
    template.has_resource_properties(
        "AWS::Logs::LogGroup",
        {"LogGroupName": "/aws/ecs/test/cluster", "RetentionInDays": 7},
    )


def test_ecs_cluster_log_retention_mapping():
    """Verify configured days map to CloudWatch retention values."""
    template = synth(make_config(ecs_log_retention_days=30))
    template.has_resource_properties(
        "AWS::Logs::LogGroup",
        {"LogGroupName": "/aws/ecs/test/cluster", "RetentionInDays": 30},
    )


def test_stack_tags(template):
    """Verify stack tags propagate to resources."""
    template.has_resource_properties(
        "AWS::EC2::VPC",
        {
            "Tags": Match.array_with(
                [
                    {"Key": "Environment", "Value": "test"},
                    {"Key": "ManagedBy", "Value": "CDK"},
                    {"Key": "Project", "Value": "OrderProcessor"},
                ]
            )
        },
    )


def test_exports(template):
    """Verify every value the service stacks import is exported."""
    expected_exports = [
        "test-vpc-id",
        "test-private-subnet-ids",
        "test-public-subnet-ids",
        "test-isolated-subnet-ids",
        "test-RdsEndpoint",
        "test-RdsPort",
        "test-RdsSecretArn",
        "test-AlbArn",
        "test-AlbDnsName",
        "test-AlbSecurityGroupId",
        "test-alb-http-listener-arn",
        "test-EcsClusterArn",
        "test-EcsClusterName",
    ]

    for export_name in expected_exports:
        template.has_output("*", {"Export": {"Name": export_name}})


def test_stack_outputs(template):
    """Verify stack-level outputs."""
    template.has_output("StackName", {})
    template.has_output("Environment", {"Value": "test"})
