"""Removal policy and log retention helpers shared by the constructs."""

import aws_cdk as cdk
from aws_cdk import aws_logs as logs

RETENTION_DAYS = {
    1: logs.RetentionDays.ONE_DAY,
    3: logs.RetentionDays.THREE_DAYS,
    5: logs.RetentionDays.FIVE_DAYS,
    7: logs.RetentionDays.ONE_WEEK,
    14: logs.RetentionDays.TWO_WEEKS,
    30: logs.RetentionDays.ONE_MONTH,
    60: logs.RetentionDays.TWO_MONTHS,
    90: logs.RetentionDays.THREE_MONTHS,
    120: logs.RetentionDays.FOUR_MONTHS,
    150: logs.RetentionDays.FIVE_MONTHS,
    180: logs.RetentionDays.SIX_MONTHS,
    365: logs.RetentionDays.ONE_YEAR,
}


def log_retention(days: int) -> logs.RetentionDays:
    """Map a day count to CloudWatch retention; unknown counts get one week."""
    return RETENTION_DAYS.get(days, logs.RetentionDays.ONE_WEEK)


def removal_policy(retain: bool, snapshot: bool = False) -> cdk.RemovalPolicy:
    if retain:
        return cdk.RemovalPolicy.RETAIN
    if snapshot:
        return cdk.RemovalPolicy.SNAPSHOT
    return cdk.RemovalPolicy.DESTROY
