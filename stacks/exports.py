"""CloudFormation export names shared between the two stacks."""


def vpc_id(environment: str) -> str:
    return f"{environment}-vpc-id"


def subnet_ids(environment: str, subnet_kind: str) -> str:
    """Export of comma-joined subnet IDs; kind is public, private or isolated."""
    return f"{environment}-{subnet_kind}-subnet-ids"


def cluster_name(environment: str) -> str:
    return f"{environment}-EcsClusterName"


def cluster_arn(environment: str) -> str:
    return f"{environment}-EcsClusterArn"


def alb_arn(environment: str) -> str:
    return f"{environment}-AlbArn"


def alb_dns_name(environment: str) -> str:
    return f"{environment}-AlbDnsName"


def alb_security_group_id(environment: str) -> str:
    return f"{environment}-AlbSecurityGroupId"


def http_listener_arn(environment: str) -> str:
    return f"{environment}-alb-http-listener-arn"


def https_listener_arn(environment: str) -> str:
    return f"{environment}-alb-https-listener-arn"


def rds_endpoint(environment: str) -> str:
    return f"{environment}-RdsEndpoint"


def rds_port(environment: str) -> str:
    return f"{environment}-RdsPort"


def rds_secret_arn(environment: str) -> str:
    return f"{environment}-RdsSecretArn"
