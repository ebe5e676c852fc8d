"""Tests for CloudFormationClient."""

from datetime import datetime
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from stackplan.aws.client import CloudFormationClient
from stackplan.errors import TransportError
from stackplan.models import (
    DetectionStatus,
    DriftRequest,
    ResourceStatus,
    StackStatus,
)
from tests.conftest import SIMPLE_TEMPLATE, TWO_QUEUE_TEMPLATE


@mock_aws
def test_list_stacks_returns_all(aws_credentials):
    """list_stacks returns all live stacks when no names are given."""
    boto_cfn = boto3.client("cloudformation", region_name="us-east-1")
    boto_cfn.create_stack(StackName="stack-a", TemplateBody=SIMPLE_TEMPLATE)
    boto_cfn.create_stack(StackName="stack-b", TemplateBody=TWO_QUEUE_TEMPLATE)

    client = CloudFormationClient(region="us-east-1")
    stacks = client.list_stacks()

    names = [s.name for s in stacks]
    assert "stack-a" in names
    assert "stack-b" in names
    assert all(s.stack_id.startswith("arn:aws:cloudformation") for s in stacks)


@mock_aws
def test_list_stacks_specific_names(aws_credentials):
    """list_stacks keeps only the requested stacks."""
    boto_cfn = boto3.client("cloudformation", region_name="us-east-1")
    boto_cfn.create_stack(StackName="stack-a", TemplateBody=SIMPLE_TEMPLATE)
    boto_cfn.create_stack(StackName="stack-b", TemplateBody=TWO_QUEUE_TEMPLATE)

    client = CloudFormationClient(region="us-east-1")
    stacks = client.list_stacks(stack_names=["stack-a", "not-deployed"])

    assert [s.name for s in stacks] == ["stack-a"]


@mock_aws
def test_list_stacks_skips_deleted(aws_credentials):
    boto_cfn = boto3.client("cloudformation", region_name="us-east-1")
    boto_cfn.create_stack(StackName="gone", TemplateBody=SIMPLE_TEMPLATE)
    boto_cfn.delete_stack(StackName="gone")

    client = CloudFormationClient(region="us-east-1")
    stacks = client.list_stacks(stack_names=["gone"])

    assert stacks == []


def test_list_stacks_skips_review_in_progress(aws_credentials):
    mock_boto = MagicMock()
    mock_boto.get_paginator.return_value.paginate.return_value = [
        {
            "StackSummaries": [
                {"StackName": "a", "StackId": "arn:a", "StackStatus": "REVIEW_IN_PROGRESS"},
                {"StackName": "b", "StackId": "arn:b", "StackStatus": "UPDATE_COMPLETE"},
                {"StackName": "c", "StackId": "arn:c", "StackStatus": "DELETE_COMPLETE"},
            ]
        }
    ]

    client = CloudFormationClient(region="us-east-1")
    client._client = mock_boto

    stacks = client.list_stacks()

    assert [(s.name, s.stack_id, s.status) for s in stacks] == [("b", "arn:b", "UPDATE_COMPLETE")]


@mock_aws
def test_get_template_returns_dict(aws_credentials):
    boto_cfn = boto3.client("cloudformation", region_name="us-east-1")
    boto_cfn.create_stack(StackName="stack-a", TemplateBody=SIMPLE_TEMPLATE)

    client = CloudFormationClient(region="us-east-1")
    template = client.get_template("stack-a")

    assert template["Resources"]["MyQueue"]["Type"] == "AWS::SQS::Queue"


def test_get_template_parses_string_body(aws_credentials):
    mock_boto = MagicMock()
    mock_boto.get_template.return_value = {"TemplateBody": SIMPLE_TEMPLATE}

    client = CloudFormationClient(region="us-east-1")
    client._client = mock_boto

    template = client.get_template("stack-a")

    assert list(template["Resources"]) == ["MyQueue"]


def test_get_template_empty_body(aws_credentials):
    mock_boto = MagicMock()
    mock_boto.get_template.return_value = {}

    client = CloudFormationClient(region="us-east-1")
    client._client = mock_boto

    assert client.get_template("stack-a") == {}


def test_get_template_rejects_non_json(aws_credentials):
    mock_boto = MagicMock()
    mock_boto.get_template.return_value = {"TemplateBody": "Resources:\n  Q: {}\n"}

    client = CloudFormationClient(region="us-east-1")
    client._client = mock_boto

    with pytest.raises(TransportError, match="not JSON"):
        client.get_template("stack-a")


def test_get_template_missing_stack_is_transport_error(aws_credentials):
    mock_boto = MagicMock()
    mock_boto.get_template.side_effect = ClientError(
        {"Error": {"Code": "ValidationError", "Message": "Stack does not exist"}},
        "GetTemplate",
    )

    client = CloudFormationClient(region="us-east-1")
    client._client = mock_boto

    with pytest.raises(TransportError, match="GetTemplate"):
        client.get_template("does-not-exist")


def test_detect_drift_returns_request(aws_credentials):
    """detect_drift calls DetectStackDrift and returns a DriftRequest."""
    mock_boto = MagicMock()
    mock_boto.detect_stack_drift.return_value = {"StackDriftDetectionId": "detection-123"}

    client = CloudFormationClient(region="us-east-1")
    client._client = mock_boto

    request = client.detect_drift("my-stack")

    assert isinstance(request, DriftRequest)
    assert request.detection_id == "detection-123"
    assert request.stack_name == "my-stack"
    mock_boto.detect_stack_drift.assert_called_once_with(StackName="my-stack")


def test_detect_drift_wraps_client_error(aws_credentials):
    mock_boto = MagicMock()
    mock_boto.detect_stack_drift.side_effect = ClientError(
        {"Error": {"Code": "ValidationError", "Message": "Stack is busy"}},
        "DetectStackDrift",
    )

    client = CloudFormationClient(region="us-east-1")
    client._client = mock_boto

    with pytest.raises(TransportError, match="Stack is busy"):
        client.detect_drift("my-stack")


def test_poll_detection_in_progress(aws_credentials):
    mock_boto = MagicMock()
    mock_boto.describe_stack_drift_detection_status.return_value = {
        "StackDriftDetectionId": "det-123",
        "StackId": "arn:aws:cloudformation:us-east-1:123:stack/s/uuid",
        "DetectionStatus": "DETECTION_IN_PROGRESS",
        "Timestamp": datetime(2026, 2, 25, 13, 0, 0),
    }

    client = CloudFormationClient(region="us-east-1")
    client._client = mock_boto

    run = client.poll_detection("det-123", "s")

    assert run.status == DetectionStatus.IN_PROGRESS
    assert run.stack_status is None


def test_poll_detection_complete(aws_credentials):
    mock_boto = MagicMock()
    mock_boto.describe_stack_drift_detection_status.return_value = {
        "StackDriftDetectionId": "det-123",
        "StackId": "arn:aws:cloudformation:us-east-1:123:stack/s/uuid",
        "DetectionStatus": "DETECTION_COMPLETE",
        "StackDriftStatus": "DRIFTED",
        "DriftedStackResourceCount": 2,
        "Timestamp": datetime(2026, 2, 25, 13, 0, 0),
    }

    client = CloudFormationClient(region="us-east-1")
    client._client = mock_boto

    run = client.poll_detection("det-123", "s")

    assert run.status == DetectionStatus.COMPLETE
    assert run.stack_status == StackStatus.DRIFTED
    assert run.drifted_resource_count == 2


def test_poll_detection_failed_keeps_reason(aws_credentials):
    mock_boto = MagicMock()
    mock_boto.describe_stack_drift_detection_status.return_value = {
        "StackDriftDetectionId": "det-123",
        "StackId": "arn:s",
        "DetectionStatus": "DETECTION_FAILED",
        "DetectionStatusReason": "Unsupported resource",
        "Timestamp": datetime(2026, 2, 25, 13, 0, 0),
    }

    client = CloudFormationClient(region="us-east-1")
    client._client = mock_boto

    run = client.poll_detection("det-123", "s")

    assert run.status == DetectionStatus.FAILED
    assert run.status_reason == "Unsupported resource"
    assert run.stack_status is None


def test_list_stack_resources_reads_drift_information(aws_credentials):
    mock_boto = MagicMock()
    mock_boto.get_paginator.return_value.paginate.return_value = [
        {
            "StackResourceSummaries": [
                {
                    "LogicalResourceId": "MyQueue",
                    "PhysicalResourceId": "https://sqs.us-east-1.amazonaws.com/123/q",
                    "ResourceType": "AWS::SQS::Queue",
                    "DriftInformation": {"StackResourceDriftStatus": "MODIFIED"},
                },
            ]
        },
        {
            "StackResourceSummaries": [
                {
                    "LogicalResourceId": "MyBucket",
                    "PhysicalResourceId": "my-bucket",
                    "ResourceType": "AWS::S3::Bucket",
                },
                {
                    "LogicalResourceId": "Odd",
                    "ResourceType": "Custom::Thing",
                    "DriftInformation": {"StackResourceDriftStatus": "SOMETHING_NEW"},
                },
            ]
        },
    ]

    client = CloudFormationClient(region="us-east-1")
    client._client = mock_boto

    resources = client.list_stack_resources("my-stack")

    mock_boto.get_paginator.assert_called_once_with("list_stack_resources")
    assert [r.logical_id for r in resources] == ["MyQueue", "MyBucket", "Odd"]
    assert resources[0].drift_status == ResourceStatus.MODIFIED
    assert resources[1].drift_status is None
    assert resources[2].drift_status == ResourceStatus.UNKNOWN


@mock_aws
def test_list_stack_resources_against_moto(aws_credentials):
    boto_cfn = boto3.client("cloudformation", region_name="us-east-1")
    boto_cfn.create_stack(StackName="stack-b", TemplateBody=TWO_QUEUE_TEMPLATE)

    client = CloudFormationClient(region="us-east-1")
    resources = client.list_stack_resources("stack-b")

    assert sorted(r.logical_id for r in resources) == ["QueueA", "QueueB"]
    assert {r.resource_type for r in resources} == {"AWS::SQS::Queue"}
