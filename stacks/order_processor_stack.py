"""CDK stack for the order processor microservice."""

import aws_cdk as cdk
from constructs import Construct
from aws_cdk import (
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_elasticloadbalancingv2 as elbv2,
    aws_secretsmanager as secretsmanager,
    CfnOutput,
    Duration,
    Fn,
)

from stacks import exports
from stacks.alarm_topic_construct import AlarmTopicConstruct
from stacks.autoscaling_construct import AutoscalingConstruct
from stacks.config import ServiceConfig
from stacks.ecs_service_construct import EcsServiceConstruct
from stacks.queue_construct import QueueConstruct

ALARM_TOPIC_NAME = "order-processor-alarms"

# Listener rule priorities: first pattern gets 10, then 20, 30, ...
ROUTE_PRIORITY_START = 10
ROUTE_PRIORITY_STEP = 10


class OrderProcessorStack(cdk.Stack):
    """Fargate order processor wired into the shared infrastructure.

    The VPC, cluster, load balancer and HTTP listener are imported from the
    shared stack's exports; the stack owns the queue, alarm topic, service,
    listener rules and scaling.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        environment: str,
        config: ServiceConfig,
        max_azs: int = 2,
        **kwargs,
    ) -> None:
        """Initialise the order processor stack.

        Args:
            scope: The scope in which this stack is defined.
            construct_id: The scoped construct ID.
            environment: Environment whose shared exports are imported.
            config: Service settings for that environment.
            max_azs: AZ count of the shared VPC; one subnet per AZ and tier.
            **kwargs: Additional stack properties.
        """
        super().__init__(scope, construct_id, **kwargs)

        vpc = ec2.Vpc.from_vpc_attributes(
            self,
            "Vpc",
            vpc_id=Fn.import_value(exports.vpc_id(environment)),
            availability_zones=[Fn.select(i, Fn.get_azs()) for i in range(max_azs)],
            public_subnet_ids=Fn.import_list_value(
                exports.subnet_ids(environment, "public"), max_azs
            ),
            private_subnet_ids=Fn.import_list_value(
                exports.subnet_ids(environment, "private"), max_azs
            ),
            isolated_subnet_ids=Fn.import_list_value(
                exports.subnet_ids(environment, "isolated"), max_azs
            ),
        )

        cluster = ecs.Cluster.from_cluster_attributes(
            self,
            "EcsCluster",
            cluster_name=Fn.import_value(exports.cluster_name(environment)),
            vpc=vpc,
            security_groups=[],
        )

        alb_security_group_id = Fn.import_value(exports.alb_security_group_id(environment))
        alb_security_group = ec2.SecurityGroup.from_security_group_id(
            self, "AlbSecurityGroup", alb_security_group_id
        )
        alb = elbv2.ApplicationLoadBalancer.from_application_load_balancer_attributes(
            self,
            "Alb",
            load_balancer_arn=Fn.import_value(exports.alb_arn(environment)),
            load_balancer_dns_name=Fn.import_value(exports.alb_dns_name(environment)),
            security_group_id=alb_security_group_id,
        )
        listener = elbv2.ApplicationListener.from_application_listener_attributes(
            self,
            "HttpListener",
            listener_arn=Fn.import_value(exports.http_listener_arn(environment)),
            security_group=alb_security_group,
        )

        # An explicit DB_SECRET_ARN wins over the shared stack's secret
        db_secret_arn = config.db_secret_arn or Fn.import_value(
            exports.rds_secret_arn(environment)
        )
        db_secret = secretsmanager.Secret.from_secret_complete_arn(
            self, "DbSecret", db_secret_arn
        )

        self.alarm_topic = AlarmTopicConstruct(
            self,
            "AlarmTopic",
            environment=environment,
            topic_name=ALARM_TOPIC_NAME,
        )

        self.queue = QueueConstruct(
            self,
            "OrderQueue",
            environment=environment,
            queue_name=config.queue_name,
            visibility_timeout=Duration.seconds(config.queue_visibility_timeout),
            message_retention_period=Duration.seconds(config.queue_message_retention),
            max_receive_count=config.queue_max_receive_count,
            dlq_retention_period=Duration.days(config.dlq_retention_days),
            depth_alarm_threshold=config.queue_depth_alarm_threshold,
            old_message_alarm_threshold=config.queue_old_message_alarm_threshold,
        )

        self.service = EcsServiceConstruct(
            self,
            "OrderProcessorService",
            environment=environment,
            config=config,
            vpc=vpc,
            cluster=cluster,
            alb_security_group=alb_security_group,
            environment_variables={
                "QUEUE_URL": self.queue.queue.queue_url,
                "NODE_ENV": "production",
                "AWS_REGION": cdk.Aws.REGION,
                "DB_SECRET_ARN": db_secret_arn,
            },
        )

        # Consume, send and inspect the work queue
        task_role = self.service.task_role
        self.queue.queue.grant_consume_messages(task_role)
        self.queue.queue.grant_send_messages(task_role)
        self.queue.queue.grant(task_role, "sqs:GetQueueAttributes", "sqs:GetQueueUrl")
        db_secret.grant_read(task_role)

        for index, pattern in enumerate(config.route_path_patterns):
            listener.add_target_groups(
                f"Route{index + 1}",
                target_groups=[self.service.target_group],
                priority=ROUTE_PRIORITY_START + index * ROUTE_PRIORITY_STEP,
                conditions=[elbv2.ListenerCondition.path_patterns([pattern])],
            )

        self.autoscaling = AutoscalingConstruct(
            self,
            "OrderProcessorAutoScaling",
            service=self.service.service,
            environment=environment,
            service_name=config.service_name,
            cluster_name=cluster.cluster_name,
            min_capacity=config.min_capacity,
            max_capacity=config.max_capacity,
            target_cpu_utilization=config.cpu_target_utilization,
            target_memory_utilization=config.memory_target_utilization,
            scale_in_cooldown=Duration.seconds(config.scale_in_cooldown),
            scale_out_cooldown=Duration.seconds(config.scale_out_cooldown),
            queue=self.queue.queue,
        )

        for alarm in self.queue.alarms + self.autoscaling.alarms:
            self.alarm_topic.add_alarm_action(alarm)

        cdk.Tags.of(self).add("Environment", environment)
        cdk.Tags.of(self).add("Project", "OrderProcessor")
        cdk.Tags.of(self).add("ManagedBy", "CDK")
        cdk.Tags.of(self).add("Component", config.service_name)

        # Stack outputs
        CfnOutput(
            self,
            "ServiceName",
            value=self.service.service.service_name,
            description="ECS Service Name",
            export_name=f"{environment}-order-processor-service-name",
        )

        CfnOutput(
            self,
            "TaskDefinitionArn",
            value=self.service.task_definition.task_definition_arn,
            description="Task Definition ARN",
            export_name=f"{environment}-order-processor-task-definition-arn",
        )

        CfnOutput(
            self,
            "TargetGroupArn",
            value=self.service.target_group.target_group_arn,
            description="Target Group ARN",
            export_name=f"{environment}-order-processor-target-group-arn",
        )

        dns_name = alb.load_balancer_dns_name

        CfnOutput(
            self,
            "ServiceRootUrl",
            value=f"http://{dns_name}/",
            description="Service Root URL",
        )

        CfnOutput(
            self,
            "ServiceHealthUrl",
            value=f"http://{dns_name}{config.health_check_path}",
            description="Health Check URL",
        )

        CfnOutput(
            self,
            "ServiceUsersUrl",
            value=f"http://{dns_name}/users",
            description="Users API URL",
        )

        CfnOutput(
            self,
            "LoadBalancerDns",
            value=dns_name,
            description="Load Balancer DNS Name",
        )

        CfnOutput(
            self,
            "QueueUrl",
            value=self.queue.queue.queue_url,
            description="SQS Queue URL",
            export_name=f"{environment}-order-queue-url",
        )
