"""Task count scaling and saturation alarms for a Fargate service."""

from typing import List, Optional

from constructs import Construct
from aws_cdk import (
    aws_applicationautoscaling as appscaling,
    aws_cloudwatch as cloudwatch,
    aws_ecs as ecs,
    aws_sqs as sqs,
    CfnOutput,
    Duration,
)

HIGH_UTILIZATION_THRESHOLD = 90

# Visible messages -> task count change
QUEUE_SCALING_STEPS = [
    appscaling.ScalingInterval(upper=0, change=-1),
    appscaling.ScalingInterval(lower=100, change=1),
    appscaling.ScalingInterval(lower=500, change=3),
]


class AutoscalingConstruct(Construct):
    """Target tracking on CPU and memory, optional step scaling on queue depth.

    Attributes:
        scalable_target: The service's scalable task count.
        alarms: High CPU, high memory and max-capacity alarms.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        service: ecs.FargateService,
        environment: str,
        service_name: str,
        cluster_name: str,
        min_capacity: int,
        max_capacity: int,
        target_cpu_utilization: int = 70,
        target_memory_utilization: int = 80,
        scale_in_cooldown: Optional[Duration] = None,
        scale_out_cooldown: Optional[Duration] = None,
        queue: Optional[sqs.IQueue] = None,
    ) -> None:
        super().__init__(scope, construct_id)
        scale_in_cooldown = scale_in_cooldown or Duration.seconds(300)
        scale_out_cooldown = scale_out_cooldown or Duration.seconds(60)

        self.scalable_target = service.auto_scale_task_count(
            min_capacity=min_capacity,
            max_capacity=max_capacity,
        )

        self.scalable_target.scale_on_cpu_utilization(
            "CpuScaling",
            target_utilization_percent=target_cpu_utilization,
            scale_in_cooldown=scale_in_cooldown,
            scale_out_cooldown=scale_out_cooldown,
        )

        self.scalable_target.scale_on_memory_utilization(
            "MemoryScaling",
            target_utilization_percent=target_memory_utilization,
            scale_in_cooldown=scale_in_cooldown,
            scale_out_cooldown=scale_out_cooldown,
        )

        if queue is not None:
            self.scalable_target.scale_on_metric(
                "QueueDepthScaling",
                metric=queue.metric_approximate_number_of_messages_visible(
                    period=Duration.minutes(1),
                ),
                scaling_steps=QUEUE_SCALING_STEPS,
                adjustment_type=appscaling.AdjustmentType.CHANGE_IN_CAPACITY,
                cooldown=scale_out_cooldown,
            )

        self.alarms = self._create_alarms(
            service, f"{environment}-{service_name}", cluster_name, max_capacity
        )

        CfnOutput(
            self,
            "MinCapacity",
            value=str(min_capacity),
            description="Minimum task capacity",
        )

        CfnOutput(
            self,
            "MaxCapacity",
            value=str(max_capacity),
            description="Maximum task capacity",
        )

    def _create_alarms(
        self,
        service: ecs.FargateService,
        prefix: str,
        cluster_name: str,
        max_capacity: int,
    ) -> List[cloudwatch.Alarm]:
        high_cpu_alarm = cloudwatch.Alarm(
            self,
            "HighCpuAlarm",
            metric=service.metric_cpu_utilization(),
            threshold=HIGH_UTILIZATION_THRESHOLD,
            evaluation_periods=2,
            datapoints_to_alarm=2,
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_THRESHOLD,
            alarm_description="Alert when CPU utilization is very high",
            alarm_name=f"{prefix}-high-cpu",
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )

        high_memory_alarm = cloudwatch.Alarm(
            self,
            "HighMemoryAlarm",
            metric=service.metric_memory_utilization(),
            threshold=HIGH_UTILIZATION_THRESHOLD,
            evaluation_periods=2,
            datapoints_to_alarm=2,
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_THRESHOLD,
            alarm_description="Alert when memory utilization is very high",
            alarm_name=f"{prefix}-high-memory",
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )

        # Running task counts are published by Container Insights
        max_capacity_alarm = cloudwatch.Alarm(
            self,
            "MaxCapacityAlarm",
            metric=cloudwatch.Metric(
                namespace="ECS/ContainerInsights",
                metric_name="RunningTaskCount",
                dimensions_map={
                    "ServiceName": service.service_name,
                    "ClusterName": cluster_name,
                },
                statistic="Average",
                period=Duration.minutes(1),
            ),
            threshold=max_capacity,
            evaluation_periods=2,
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
            alarm_description="Alert when service reaches maximum capacity",
            alarm_name=f"{prefix}-max-capacity",
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )

        return [high_cpu_alarm, high_memory_alarm, max_capacity_alarm]
