"""Fargate service behind the shared ALB."""

from typing import Dict, Optional

import aws_cdk as cdk
from constructs import Construct
from aws_cdk import (
    aws_ec2 as ec2,
    aws_ecr as ecr,
    aws_ecs as ecs,
    aws_elasticloadbalancingv2 as elbv2,
    aws_iam as iam,
    aws_logs as logs,
    CfnOutput,
    Duration,
)

from stacks.config import ServiceConfig
from stacks.policies import log_retention, removal_policy

ECS_TASKS_PRINCIPAL = "ecs-tasks.amazonaws.com"
EXECUTION_ROLE_MANAGED_POLICY = "service-role/AmazonECSTaskExecutionRolePolicy"


class EcsServiceConstruct(Construct):
    """Task definition, service and target group for one microservice.

    Args:
        scope: The scope in which this construct is defined.
        construct_id: The scoped construct ID.
        environment: Deployment environment name.
        config: Service settings (sizing, health checks, logging).
        vpc: VPC whose private subnets run the tasks.
        cluster: ECS cluster to place the service in.
        alb_security_group: ALB security group allowed to reach the tasks.
        environment_variables: Plain container environment.
        secrets: Container secrets resolved at task start.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        environment: str,
        config: ServiceConfig,
        vpc: ec2.IVpc,
        cluster: ecs.ICluster,
        alb_security_group: ec2.ISecurityGroup,
        environment_variables: Optional[Dict[str, str]] = None,
        secrets: Optional[Dict[str, ecs.Secret]] = None,
    ) -> None:
        super().__init__(scope, construct_id)
        service_name = config.service_name

        self.security_group = ec2.SecurityGroup(
            self,
            "ServiceSecurityGroup",
            vpc=vpc,
            description=f"Security group for {service_name} ECS service",
            allow_all_outbound=True,
        )
        self.security_group.add_ingress_rule(
            alb_security_group,
            ec2.Port.tcp(config.container_port),
            "Allow traffic from ALB",
        )

        self.execution_role = iam.Role(
            self,
            "TaskExecutionRole",
            assumed_by=iam.ServicePrincipal(ECS_TASKS_PRINCIPAL),
            description=f"Execution role for {service_name}",
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    EXECUTION_ROLE_MANAGED_POLICY
                )
            ],
        )

        # Container secrets for this environment's RDS credentials
        self.execution_role.add_to_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                actions=["secretsmanager:GetSecretValue"],
                resources=[
                    f"arn:aws:secretsmanager:{cdk.Aws.REGION}:{cdk.Aws.ACCOUNT_ID}"
                    f":secret:{environment}/rds/*"
                ],
            )
        )

        self.task_role = iam.Role(
            self,
            "TaskRole",
            assumed_by=iam.ServicePrincipal(ECS_TASKS_PRINCIPAL),
            description=f"Task role for {service_name}",
        )
        self.task_role.add_to_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                actions=["logs:CreateLogStream", "logs:PutLogEvents"],
                resources=[
                    f"arn:aws:logs:{cdk.Aws.REGION}:{cdk.Aws.ACCOUNT_ID}"
                    f":log-group:/aws/ecs/{environment}/*"
                ],
            )
        )

        self.log_group = logs.LogGroup(
            self,
            "ServiceLogGroup",
            log_group_name=f"/aws/ecs/{environment}/{service_name}",
            retention=log_retention(config.log_retention_days),
            removal_policy=removal_policy(config.removal_policy == "RETAIN"),
        )

        self.task_definition = ecs.FargateTaskDefinition(
            self,
            "TaskDefinition",
            family=f"{service_name}-{environment}",
            cpu=config.cpu,
            memory_limit_mib=config.memory,
            task_role=self.task_role,
            execution_role=self.execution_role,
        )

        repository = ecr.Repository.from_repository_name(
            self, "Repository", f"{service_name}-{environment}"
        )

        # The image is a Node.js app without curl; probe with its runtime
        health_url = f"http://localhost:{config.container_port}{config.health_check_path}"
        container = self.task_definition.add_container(
            "AppContainer",
            container_name=service_name,
            image=ecs.ContainerImage.from_ecr_repository(repository, config.image_tag),
            logging=ecs.LogDriver.aws_logs(
                log_group=self.log_group,
                stream_prefix=service_name,
            ),
            environment=environment_variables or {},
            secrets=secrets or {},
            health_check=ecs.HealthCheck(
                command=[
                    "CMD-SHELL",
                    "node -e \"require('http').get('"
                    + health_url
                    + "', (r) => {process.exit(r.statusCode === 200 ? 0 : 1)})"
                    + ".on('error', () => process.exit(1))\"",
                ],
                interval=Duration.seconds(config.container_health_check_interval),
                timeout=Duration.seconds(config.container_health_check_timeout),
                retries=config.container_health_check_retries,
                start_period=Duration.seconds(config.container_health_check_start_period),
            ),
        )
        container.add_port_mappings(
            ecs.PortMapping(
                container_port=config.container_port,
                protocol=ecs.Protocol.TCP,
            )
        )

        self.service = ecs.FargateService(
            self,
            "Service",
            cluster=cluster,
            task_definition=self.task_definition,
            service_name=f"{service_name}-{environment}",
            desired_count=config.desired_count,
            security_groups=[self.security_group],
            vpc_subnets=ec2.SubnetSelection(
                subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
            ),
            enable_execute_command=config.enable_execute_command,
            circuit_breaker=ecs.DeploymentCircuitBreaker(rollback=True),
            min_healthy_percent=50,
            max_healthy_percent=200,
            health_check_grace_period=Duration.seconds(config.health_check_grace_period),
        )

        self.target_group = elbv2.ApplicationTargetGroup(
            self,
            "TargetGroup",
            vpc=vpc,
            port=config.container_port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            target_type=elbv2.TargetType.IP,
            health_check=elbv2.HealthCheck(
                path=config.health_check_path,
                interval=Duration.seconds(config.health_check_interval),
                timeout=Duration.seconds(config.health_check_timeout),
                healthy_threshold_count=config.healthy_threshold_count,
                unhealthy_threshold_count=config.unhealthy_threshold_count,
            ),
            deregistration_delay=Duration.seconds(config.deregistration_delay),
        )
        self.service.attach_to_application_target_group(self.target_group)

        cdk.Tags.of(self.service).add("Environment", environment)
        cdk.Tags.of(self.service).add("Service", service_name)
        cdk.Tags.of(self.service).add("ManagedBy", "CDK")

        CfnOutput(
            self,
            "ServiceName",
            value=self.service.service_name,
            description="ECS Service Name",
        )

        CfnOutput(
            self,
            "TaskDefinitionArn",
            value=self.task_definition.task_definition_arn,
            description="Task Definition ARN",
        )
