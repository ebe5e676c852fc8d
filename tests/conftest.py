"""Shared test fixtures."""

import boto3
import pytest
from moto import mock_aws

from stackplan.config import RunConfig
from stackplan.models import DeployedStack, DesiredStack, ResourceStatus, ResourceSummary


@pytest.fixture
def aws_credentials(monkeypatch):
    """Set dummy AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def cfn_client(aws_credentials):
    """Create a moto-mocked CloudFormation boto3 client."""
    with mock_aws():
        yield boto3.client("cloudformation", region_name="us-east-1")


@pytest.fixture
def config():
    return RunConfig(region="us-east-1")


@pytest.fixture
def config_no_drift():
    return RunConfig(region="us-east-1", drift_detection=False)


SIMPLE_TEMPLATE = """{
    "AWSTemplateFormatVersion": "2010-09-09",
    "Resources": {
        "MyQueue": {
            "Type": "AWS::SQS::Queue",
            "Properties": {
                "QueueName": "my-test-queue"
            }
        }
    }
}"""

TWO_QUEUE_TEMPLATE = """{
    "AWSTemplateFormatVersion": "2010-09-09",
    "Resources": {
        "QueueA": {
            "Type": "AWS::SQS::Queue",
            "Properties": {"QueueName": "queue-a"}
        },
        "QueueB": {
            "Type": "AWS::SQS::Queue",
            "Properties": {"QueueName": "queue-b"}
        }
    }
}"""


def stack_arn(name):
    return f"arn:aws:cloudformation:us-east-1:123456789012:stack/{name}/uuid"


def make_template(resources):
    """Build a template dict from ``{logical_id: type}`` or ``{logical_id: resource}``."""
    body = {}
    for logical_id, value in resources.items():
        body[logical_id] = {"Type": value} if isinstance(value, str) else value
    return {"Resources": body}


def make_desired(name, resources):
    return DesiredStack(name=name, template=make_template(resources))


def make_deployed(name):
    return DeployedStack(name=name, stack_id=stack_arn(name), status="UPDATE_COMPLETE")


def make_summaries(resources, status=ResourceStatus.IN_SYNC):
    """Build a resource index from ``{logical_id: type}``."""
    return {
        logical_id: ResourceSummary(
            logical_id=logical_id,
            resource_type=resource_type,
            drift_status=status,
        )
        for logical_id, resource_type in resources.items()
    }
