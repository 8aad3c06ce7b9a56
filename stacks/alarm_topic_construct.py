"""SNS topic that CloudWatch alarms notify."""

import aws_cdk as cdk
from constructs import Construct
from aws_cdk import (
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cloudwatch_actions,
    aws_sns as sns,
    CfnOutput,
)

DEFAULT_TOPIC_NAME = "alarm-notifications"


class AlarmTopicConstruct(Construct):
    """Standard (non-FIFO) topic named ``<topic_name>-<environment>``."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        environment: str,
        topic_name: str = DEFAULT_TOPIC_NAME,
    ) -> None:
        super().__init__(scope, construct_id)

        self.topic = sns.Topic(
            self,
            "AlarmTopic",
            topic_name=f"{topic_name}-{environment}",
            display_name=f"Alarm Notifications for {environment}",
            fifo=False,
        )

        CfnOutput(
            self,
            "AlarmTopicArn",
            value=self.topic.topic_arn,
            description="SNS Topic ARN for alarm notifications - Subscribe to receive alerts",
            export_name=f"{environment}-alarm-topic-arn",
        )

        CfnOutput(
            self,
            "AlarmTopicName",
            value=self.topic.topic_name,
            description="SNS Topic Name for alarm notifications",
            export_name=f"{environment}-alarm-topic-name",
        )

        cdk.Tags.of(self.topic).add("Environment", environment)
        cdk.Tags.of(self.topic).add("Purpose", "AlarmNotifications")
        cdk.Tags.of(self.topic).add("ManagedBy", "CDK")

    def add_alarm_action(self, alarm: cloudwatch.Alarm) -> None:
        """Notify this topic when ``alarm`` goes into ALARM."""
        alarm.add_alarm_action(cloudwatch_actions.SnsAction(self.topic))
