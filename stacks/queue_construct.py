"""KMS-encrypted SQS work queue with a dead-letter queue and alarms."""

from typing import List, Optional

import aws_cdk as cdk
from constructs import Construct
from aws_cdk import (
    aws_cloudwatch as cloudwatch,
    aws_kms as kms,
    aws_sqs as sqs,
    CfnOutput,
    Duration,
)

from stacks.policies import removal_policy

DLQ_ALARM_THRESHOLD = 1
DEFAULT_VISIBILITY_TIMEOUT_SECONDS = 300
DEFAULT_RETENTION_DAYS = 14


class QueueConstruct(Construct):
    """Main queue ``<queue_name>-<env>`` redriving to ``<queue_name>-dlq-<env>``.

    Both queues share one customer managed key. Queues and key are retained
    in ``prod`` and destroyed elsewhere.

    Attributes:
        queue: The main queue.
        dead_letter_queue: Receives messages after ``max_receive_count``
            failed receives.
        encryption_key: KMS key used by both queues.
        alarms: Depth, DLQ and oldest-message alarms, in that order.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        environment: str,
        queue_name: str,
        visibility_timeout: Optional[Duration] = None,
        message_retention_period: Optional[Duration] = None,
        max_receive_count: int = 3,
        dlq_retention_period: Optional[Duration] = None,
        depth_alarm_threshold: int = 500,
        old_message_alarm_threshold: int = 600,
    ) -> None:
        super().__init__(scope, construct_id)
        self.environment = environment
        self.queue_name = queue_name
        visibility_timeout = visibility_timeout or Duration.seconds(
            DEFAULT_VISIBILITY_TIMEOUT_SECONDS
        )
        message_retention_period = message_retention_period or Duration.days(
            DEFAULT_RETENTION_DAYS
        )
        dlq_retention_period = dlq_retention_period or Duration.days(
            DEFAULT_RETENTION_DAYS
        )

        policy = removal_policy(environment == "prod")

        self.encryption_key = kms.Key(
            self,
            "QueueEncryptionKey",
            description=f"Encryption key for {queue_name} SQS queue",
            enable_key_rotation=True,
            removal_policy=policy,
        )

        self.dead_letter_queue = sqs.Queue(
            self,
            "DeadLetterQueue",
            queue_name=f"{queue_name}-dlq-{environment}",
            encryption=sqs.QueueEncryption.KMS,
            encryption_master_key=self.encryption_key,
            retention_period=dlq_retention_period,
            removal_policy=policy,
        )

        self.queue = sqs.Queue(
            self,
            "Queue",
            queue_name=f"{queue_name}-{environment}",
            encryption=sqs.QueueEncryption.KMS,
            encryption_master_key=self.encryption_key,
            visibility_timeout=visibility_timeout,
            retention_period=message_retention_period,
            dead_letter_queue=sqs.DeadLetterQueue(
                queue=self.dead_letter_queue,
                max_receive_count=max_receive_count,
            ),
            removal_policy=policy,
        )

        self.alarms = self._create_alarms(
            depth_alarm_threshold, old_message_alarm_threshold
        )

        cdk.Tags.of(self.queue).add("Environment", environment)
        cdk.Tags.of(self.queue).add("Component", "Queue")
        cdk.Tags.of(self.queue).add("ManagedBy", "CDK")

        CfnOutput(
            self,
            "QueueUrl",
            value=self.queue.queue_url,
            description="Main queue URL",
            export_name=f"{environment}-{queue_name}-QueueUrl",
        )

        CfnOutput(
            self,
            "QueueArn",
            value=self.queue.queue_arn,
            description="Main queue ARN",
            export_name=f"{environment}-{queue_name}-QueueArn",
        )

        CfnOutput(
            self,
            "DeadLetterQueueUrl",
            value=self.dead_letter_queue.queue_url,
            description="Dead letter queue URL",
            export_name=f"{environment}-{queue_name}-DlqUrl",
        )

    def _create_alarms(
        self, depth_threshold: int, old_message_threshold: int
    ) -> List[cloudwatch.Alarm]:
        prefix = f"{self.environment}-{self.queue_name}"

        depth_alarm = cloudwatch.Alarm(
            self,
            "QueueDepthAlarm",
            metric=self.queue.metric_approximate_number_of_messages_visible(),
            threshold=depth_threshold,
            evaluation_periods=2,
            datapoints_to_alarm=2,
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_THRESHOLD,
            alarm_description="Alert when queue has too many messages",
            alarm_name=f"{prefix}-high-depth",
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )

        # Any message in the DLQ is a processing failure
        dlq_alarm = cloudwatch.Alarm(
            self,
            "DeadLetterQueueAlarm",
            metric=self.dead_letter_queue.metric_approximate_number_of_messages_visible(),
            threshold=DLQ_ALARM_THRESHOLD,
            evaluation_periods=1,
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
            alarm_description="Alert when messages appear in dead letter queue",
            alarm_name=f"{prefix}-dlq-messages",
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )

        old_messages_alarm = cloudwatch.Alarm(
            self,
            "OldMessagesAlarm",
            metric=self.queue.metric_approximate_age_of_oldest_message(),
            threshold=old_message_threshold,
            evaluation_periods=2,
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_THRESHOLD,
            alarm_description="Alert when messages are not being processed",
            alarm_name=f"{prefix}-old-messages",
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )

        return [depth_alarm, dlq_alarm, old_messages_alarm]
