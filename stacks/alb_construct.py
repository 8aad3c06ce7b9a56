"""Internet-facing Application Load Balancer shared by all services."""

from typing import Optional

import aws_cdk as cdk
from constructs import Construct
from aws_cdk import (
    aws_ec2 as ec2,
    aws_elasticloadbalancingv2 as elbv2,
    aws_s3 as s3,
    CfnOutput,
    Duration,
)

from stacks import exports
from stacks.policies import removal_policy

HTTP_PORT = 80
HTTPS_PORT = 443
ACCESS_LOG_PREFIX = "alb-logs"
ACCESS_LOG_IA_TRANSITION_DAYS = 30


class AlbConstruct(Construct):
    """ALB with an HTTP listener, and an HTTPS one when a certificate is given.

    Without a certificate the HTTP listener answers with a fixed 200 response;
    with one, HTTP permanently redirects to HTTPS.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        vpc: ec2.IVpc,
        environment: str,
        enable_access_logs: bool,
        deletion_protection: bool,
        access_logs_retention_days: int,
        removal_policy_retain: bool,
        auto_delete_objects: bool,
        certificate_arn: Optional[str] = None,
    ) -> None:
        super().__init__(scope, construct_id)
        self.vpc = vpc
        self.https_listener: Optional[elbv2.ApplicationListener] = None

        self.security_group = ec2.SecurityGroup(
            self,
            "AlbSecurityGroup",
            vpc=vpc,
            description="Security group for Application Load Balancer",
            allow_all_outbound=True,
        )
        self.security_group.add_ingress_rule(
            ec2.Peer.any_ipv4(),
            ec2.Port.tcp(HTTP_PORT),
            "Allow HTTP from internet",
        )
        if certificate_arn:
            self.security_group.add_ingress_rule(
                ec2.Peer.any_ipv4(),
                ec2.Port.tcp(HTTPS_PORT),
                "Allow HTTPS from internet",
            )

        self.alb = elbv2.ApplicationLoadBalancer(
            self,
            "ApplicationLoadBalancer",
            vpc=vpc,
            internet_facing=True,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
            security_group=self.security_group,
            deletion_protection=deletion_protection,
        )

        if enable_access_logs:
            log_bucket = s3.Bucket(
                self,
                "AlbAccessLogsBucket",
                bucket_name=f"{environment}-alb-access-logs-{cdk.Aws.ACCOUNT_ID}",
                encryption=s3.BucketEncryption.S3_MANAGED,
                block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
                removal_policy=removal_policy(removal_policy_retain),
                # Emptying the bucket on delete only applies when it is destroyed
                auto_delete_objects=auto_delete_objects and not removal_policy_retain,
                lifecycle_rules=[
                    s3.LifecycleRule(
                        enabled=True,
                        expiration=Duration.days(access_logs_retention_days),
                        transitions=[
                            s3.Transition(
                                storage_class=s3.StorageClass.INFREQUENT_ACCESS,
                                transition_after=Duration.days(
                                    ACCESS_LOG_IA_TRANSITION_DAYS
                                ),
                            )
                        ],
                    )
                ],
            )
            self.alb.log_access_logs(log_bucket, ACCESS_LOG_PREFIX)

        if certificate_arn:
            self.https_listener = self.alb.add_listener(
                "HttpsListener",
                port=HTTPS_PORT,
                protocol=elbv2.ApplicationProtocol.HTTPS,
                certificates=[elbv2.ListenerCertificate.from_arn(certificate_arn)],
                default_action=elbv2.ListenerAction.fixed_response(
                    200, content_type="text/plain", message_body="OK"
                ),
            )
            self.http_listener = self.alb.add_listener(
                "HttpListener",
                port=HTTP_PORT,
                protocol=elbv2.ApplicationProtocol.HTTP,
                default_action=elbv2.ListenerAction.redirect(
                    protocol="HTTPS", port=str(HTTPS_PORT), permanent=True
                ),
            )
        else:
            self.http_listener = self.alb.add_listener(
                "HttpListener",
                port=HTTP_PORT,
                protocol=elbv2.ApplicationProtocol.HTTP,
                default_action=elbv2.ListenerAction.fixed_response(
                    200,
                    content_type="text/plain",
                    message_body="OK - HTTP Only (No SSL Certificate)",
                ),
            )

        cdk.Tags.of(self.alb).add("Environment", environment)
        cdk.Tags.of(self.alb).add("Component", "LoadBalancer")
        cdk.Tags.of(self.alb).add("ManagedBy", "CDK")

        CfnOutput(
            self,
            "AlbArn",
            value=self.alb.load_balancer_arn,
            description="ALB ARN",
            export_name=exports.alb_arn(environment),
        )

        CfnOutput(
            self,
            "AlbDnsName",
            value=self.alb.load_balancer_dns_name,
            description="ALB DNS Name",
            export_name=exports.alb_dns_name(environment),
        )

        CfnOutput(
            self,
            "AlbSecurityGroupId",
            value=self.security_group.security_group_id,
            description="ALB Security Group ID",
            export_name=exports.alb_security_group_id(environment),
        )

        CfnOutput(
            self,
            "HttpListenerArn",
            value=self.http_listener.listener_arn,
            description="HTTP Listener ARN",
            export_name=exports.http_listener_arn(environment),
        )

        if self.https_listener is not None:
            CfnOutput(
                self,
                "HttpsListenerArn",
                value=self.https_listener.listener_arn,
                description="HTTPS Listener ARN",
                export_name=exports.https_listener_arn(environment),
            )

    def create_target_group(
        self,
        target_group_id: str,
        port: int,
        health_check_path: str = "/health",
    ) -> elbv2.ApplicationTargetGroup:
        """Create an IP target group for a Fargate service behind this ALB.

        Args:
            target_group_id: Construct ID of the target group.
            port: Container port traffic is forwarded to.
            health_check_path: HTTP path the ALB probes.

        Returns:
            The new target group.
        """
        return elbv2.ApplicationTargetGroup(
            self,
            target_group_id,
            vpc=self.vpc,
            port=port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            target_type=elbv2.TargetType.IP,
            health_check=elbv2.HealthCheck(
                path=health_check_path,
                interval=Duration.seconds(30),
                timeout=Duration.seconds(5),
                healthy_threshold_count=2,
                unhealthy_threshold_count=3,
            ),
            deregistration_delay=Duration.seconds(30),
        )
