"""Per-environment configuration for the shared and order processor stacks.

Values come from ``.env.<environment>`` at the repository root, with the
process environment taking precedence over the file.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

from dotenv import dotenv_values

ENV_DIR = Path(__file__).resolve().parent.parent
REMOVAL_POLICIES = ("RETAIN", "DESTROY")


class ConfigError(ValueError):
    """Raised when configuration is missing or malformed."""


class _Values:
    """Typed lookups over the merged env file and process environment."""

    def __init__(self, values: Mapping[str, Optional[str]]):
        self._values = values

    def get_str(self, key: str, default: Optional[str] = None) -> str:
        value = self._values.get(key) or default
        if value is None:
            raise ConfigError(f"Missing required environment variable: {key}")
        return value

    def get_optional(self, key: str) -> Optional[str]:
        return self._values.get(key) or None

    def get_int(self, key: str, default: Optional[int] = None) -> int:
        value = self._values.get(key)
        if not value:
            if default is None:
                raise ConfigError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value, 10)
        except ValueError:
            raise ConfigError(f"{key} must be an integer, got {value!r}") from None

    def get_bool(self, key: str, default: bool) -> bool:
        value = self._values.get(key)
        if not value:
            return default
        if value.lower() not in ("true", "false"):
            raise ConfigError(f"{key} must be 'true' or 'false', got {value!r}")
        return value.lower() == "true"

    def get_list(self, key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
        value = self._values.get(key)
        if not value:
            return default
        return tuple(item.strip() for item in value.split(",") if item.strip())


def _env_file(environment: str, env_dir: Optional[Path]) -> Path:
    return Path(env_dir or ENV_DIR) / f".env.{environment}"


def _load(
    env_file: Path,
    environ: Optional[Mapping[str, str]],
) -> _Values:
    file_values = dotenv_values(env_file) if env_file.exists() else {}
    process_values = os.environ if environ is None else environ
    return _Values({**file_values, **process_values})


@dataclass(frozen=True)
class SharedInfraConfig:
    environment: str
    account: str
    region: str

    # VPC
    vpc_max_azs: int = 2
    vpc_nat_gateways: int = 1
    vpc_enable_flow_logs: bool = True

    # RDS
    rds_instance_class: str = "t3"
    rds_instance_size: str = "micro"
    rds_allocated_storage: int = 20
    rds_backup_retention_days: int = 7
    rds_multi_az: bool = False
    rds_database_name: str = "orderdb"

    # ALB
    alb_enable_access_logs: bool = True
    alb_deletion_protection: bool = False
    alb_access_logs_retention_days: int = 90
    alb_certificate_arn: Optional[str] = None

    # ECS
    ecs_enable_container_insights: bool = True
    ecs_log_retention_days: int = 7

    # Removal policies
    removal_policy_retain: bool = False
    removal_policy_snapshot: bool = False
    deletion_protection: bool = False
    auto_delete_objects: bool = True

    # Performance Insights
    enable_performance_insights: bool = False
    performance_insights_long_term: bool = False


def load_shared_config(
    environment: str,
    env_dir: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SharedInfraConfig:
    """Load shared infrastructure settings; a missing env file means defaults."""
    values = _load(_env_file(environment, env_dir), environ)

    return SharedInfraConfig(
        environment=environment,
        account=values.get_optional("AWS_ACCOUNT_ID")
        or values.get_optional("CDK_DEFAULT_ACCOUNT")
        or "",
        region=values.get_optional("AWS_REGION")
        or values.get_optional("CDK_DEFAULT_REGION")
        or "ap-southeast-2",
        vpc_max_azs=values.get_int("VPC_MAX_AZS", 2),
        vpc_nat_gateways=values.get_int("VPC_NAT_GATEWAYS", 1),
        vpc_enable_flow_logs=values.get_bool("VPC_ENABLE_FLOW_LOGS", True),
        rds_instance_class=values.get_str("RDS_INSTANCE_CLASS", "t3"),
        rds_instance_size=values.get_str("RDS_INSTANCE_SIZE", "micro"),
        rds_allocated_storage=values.get_int("RDS_ALLOCATED_STORAGE", 20),
        rds_backup_retention_days=values.get_int("RDS_BACKUP_RETENTION_DAYS", 7),
        rds_multi_az=values.get_bool("RDS_MULTI_AZ", False),
        rds_database_name=values.get_str("RDS_DATABASE_NAME", "orderdb"),
        alb_enable_access_logs=values.get_bool("ALB_ENABLE_ACCESS_LOGS", True),
        alb_deletion_protection=values.get_bool("ALB_DELETION_PROTECTION", False),
        alb_access_logs_retention_days=values.get_int("ALB_ACCESS_LOGS_RETENTION_DAYS", 90),
        alb_certificate_arn=values.get_optional("ALB_CERTIFICATE_ARN"),
        ecs_enable_container_insights=values.get_bool("ECS_ENABLE_CONTAINER_INSIGHTS", True),
        ecs_log_retention_days=values.get_int("ECS_LOG_RETENTION_DAYS", 7),
        removal_policy_retain=values.get_bool("REMOVAL_POLICY_RETAIN", False),
        removal_policy_snapshot=values.get_bool("REMOVAL_POLICY_SNAPSHOT", False),
        deletion_protection=values.get_bool("DELETION_PROTECTION", False),
        auto_delete_objects=values.get_bool("AUTO_DELETE_OBJECTS", True),
        # Performance Insights defaults to on for prod only
        enable_performance_insights=values.get_bool(
            "ENABLE_PERFORMANCE_INSIGHTS", environment == "prod"
        ),
        performance_insights_long_term=values.get_bool(
            "PERFORMANCE_INSIGHTS_LONG_TERM", False
        ),
    )


@dataclass(frozen=True)
class ServiceConfig:
    cpu: int
    memory: int
    desired_count: int
    min_capacity: int
    max_capacity: int
    log_retention_days: int
    removal_policy: str
    service_name: str = "order-processor"
    container_port: int = 3000
    image_tag: str = "latest"

    # ALB target group health check
    health_check_path: str = "/health"
    health_check_interval: int = 30
    health_check_timeout: int = 5
    healthy_threshold_count: int = 2
    unhealthy_threshold_count: int = 3
    deregistration_delay: int = 30

    # Autoscaling
    cpu_target_utilization: int = 70
    memory_target_utilization: int = 80
    scale_in_cooldown: int = 300
    scale_out_cooldown: int = 60

    # Queue
    queue_name: str = "order-processing"
    queue_visibility_timeout: int = 300
    queue_message_retention: int = 1209600
    queue_max_receive_count: int = 3

    # ECS
    enable_execute_command: bool = False
    health_check_grace_period: int = 60
    container_health_check_interval: int = 30
    container_health_check_timeout: int = 5
    container_health_check_retries: int = 3
    container_health_check_start_period: int = 60

    # Alarms
    queue_depth_alarm_threshold: int = 500
    queue_old_message_alarm_threshold: int = 600
    dlq_retention_days: int = 14

    # Listener rules, one per pattern, priorities counting up from 10
    route_path_patterns: Tuple[str, ...] = ("/users*", "/health*")

    db_secret_arn: Optional[str] = None


def load_service_config(
    environment: str,
    env_dir: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ServiceConfig:
    """Load order processor service settings.

    Raises:
        ConfigError: If the env file is missing, a required key is unset,
            or a value cannot be parsed.
    """
    env_file = _env_file(environment, env_dir)
    if not env_file.exists():
        raise ConfigError(
            f"Failed to load config for environment: {environment}. "
            f"File not found: {env_file}"
        )
    values = _load(env_file, environ)

    removal_policy = values.get_str("REMOVAL_POLICY").upper()
    if removal_policy not in REMOVAL_POLICIES:
        raise ConfigError(
            f"REMOVAL_POLICY must be one of {', '.join(REMOVAL_POLICIES)}, "
            f"got {removal_policy!r}"
        )

    min_capacity = values.get_int("MIN_CAPACITY")
    max_capacity = values.get_int("MAX_CAPACITY")
    if min_capacity > max_capacity:
        raise ConfigError(
            f"MIN_CAPACITY ({min_capacity}) must not exceed MAX_CAPACITY ({max_capacity})"
        )

    return ServiceConfig(
        service_name=values.get_str("SERVICE_NAME", "order-processor"),
        container_port=values.get_int("CONTAINER_PORT", 3000),
        cpu=values.get_int("CPU"),
        memory=values.get_int("MEMORY"),
        desired_count=values.get_int("DESIRED_COUNT"),
        min_capacity=min_capacity,
        max_capacity=max_capacity,
        image_tag=values.get_str("IMAGE_TAG", "latest"),
        health_check_path=values.get_str("HEALTH_CHECK_PATH", "/health"),
        health_check_interval=values.get_int("HEALTH_CHECK_INTERVAL", 30),
        health_check_timeout=values.get_int("HEALTH_CHECK_TIMEOUT", 5),
        healthy_threshold_count=values.get_int("HEALTHY_THRESHOLD_COUNT", 2),
        unhealthy_threshold_count=values.get_int("UNHEALTHY_THRESHOLD_COUNT", 3),
        deregistration_delay=values.get_int("DEREGISTRATION_DELAY", 30),
        cpu_target_utilization=values.get_int("CPU_TARGET_UTILIZATION", 70),
        memory_target_utilization=values.get_int("MEMORY_TARGET_UTILIZATION", 80),
        scale_in_cooldown=values.get_int("SCALE_IN_COOLDOWN", 300),
        scale_out_cooldown=values.get_int("SCALE_OUT_COOLDOWN", 60),
        queue_name=values.get_str("QUEUE_NAME", "order-processing"),
        queue_visibility_timeout=values.get_int("QUEUE_VISIBILITY_TIMEOUT", 300),
        queue_message_retention=values.get_int("QUEUE_MESSAGE_RETENTION", 1209600),
        queue_max_receive_count=values.get_int("QUEUE_MAX_RECEIVE_COUNT", 3),
        log_retention_days=values.get_int("LOG_RETENTION_DAYS"),
        removal_policy=removal_policy,
        enable_execute_command=values.get_bool("ENABLE_EXECUTE_COMMAND", False),
        health_check_grace_period=values.get_int("HEALTH_CHECK_GRACE_PERIOD", 60),
        container_health_check_interval=values.get_int("CONTAINER_HEALTH_CHECK_INTERVAL", 30),
        container_health_check_timeout=values.get_int("CONTAINER_HEALTH_CHECK_TIMEOUT", 5),
        container_health_check_retries=values.get_int("CONTAINER_HEALTH_CHECK_RETRIES", 3),
        container_health_check_start_period=values.get_int(
            "CONTAINER_HEALTH_CHECK_START_PERIOD", 60
        ),
        queue_depth_alarm_threshold=values.get_int("QUEUE_DEPTH_ALARM_THRESHOLD", 500),
        queue_old_message_alarm_threshold=values.get_int(
            "QUEUE_OLD_MESSAGE_ALARM_THRESHOLD", 600
        ),
        dlq_retention_days=values.get_int("DLQ_RETENTION_DAYS", 14),
        route_path_patterns=values.get_list(
            "ROUTE_PATH_PATTERNS", ("/users*", "/health*")
        ),
        db_secret_arn=values.get_optional("DB_SECRET_ARN"),
    )
