"""Thin boto3 wrapper for the CloudFormation calls stackplan needs."""

import json
from collections.abc import Iterable
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from stackplan.errors import TransportError
from stackplan.models import (
    DeployedStack,
    DetectionRun,
    DetectionStatus,
    DriftRequest,
    ResourceStatus,
    ResourceSummary,
    StackStatus,
)

EXCLUDED_STACK_STATUSES = frozenset({"DELETE_COMPLETE", "REVIEW_IN_PROGRESS"})


@contextmanager
def _transport(action: str):
    try:
        yield
    except (BotoCoreError, ClientError) as exc:
        raise TransportError(f"{action} failed: {exc}") from exc


def _resource_status(value: str | None) -> ResourceStatus | None:
    if value is None:
        return None
    try:
        return ResourceStatus(value)
    except ValueError:
        return ResourceStatus.UNKNOWN


class CloudFormationClient:
    """Wraps boto3 CloudFormation calls and returns stackplan dataclasses."""

    def __init__(self, region: str | None = None):
        self._client = boto3.client("cloudformation", **({"region_name": region} if region else {}))

    def list_stacks(self, stack_names: Iterable[str] | None = None) -> list[DeployedStack]:
        """List live stacks, skipping deleted stacks and unexecuted change-set stubs.

        When ``stack_names`` is given only those stacks are returned.
        """
        wanted = set(stack_names) if stack_names is not None else None
        stacks = []
        with _transport("ListStacks"):
            paginator = self._client.get_paginator("list_stacks")
            for page in paginator.paginate():
                for summary in page["StackSummaries"]:
                    status = summary.get("StackStatus", "")
                    if status in EXCLUDED_STACK_STATUSES:
                        continue
                    name = summary["StackName"]
                    if wanted is not None and name not in wanted:
                        continue
                    stacks.append(
                        DeployedStack(name=name, stack_id=summary["StackId"], status=status)
                    )
        return stacks

    def get_template(self, stack_name: str) -> dict[str, Any]:
        """Fetch the deployed template body of a stack as a dict."""
        with _transport(f"GetTemplate({stack_name})"):
            resp = self._client.get_template(StackName=stack_name)

        body = resp.get("TemplateBody")
        if not body:
            return {}
        # botocore decodes JSON bodies already; YAML ones come back as text
        if isinstance(body, dict):
            return dict(body)
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise TransportError(f"Template of {stack_name} is not JSON") from exc

    def detect_drift(self, stack_name: str) -> DriftRequest:
        """Trigger drift detection for a stack. Returns a DriftRequest for polling."""
        with _transport(f"DetectStackDrift({stack_name})"):
            response = self._client.detect_stack_drift(StackName=stack_name)

        return DriftRequest(
            stack_name=stack_name,
            detection_id=response["StackDriftDetectionId"],
            started_at=datetime.now(UTC),
        )

    def poll_detection(self, detection_id: str, stack_name: str) -> DetectionRun:
        """Check status of a drift detection operation."""
        with _transport(f"DescribeStackDriftDetectionStatus({stack_name})"):
            resp = self._client.describe_stack_drift_detection_status(
                StackDriftDetectionId=detection_id
            )

        status = DetectionStatus(resp["DetectionStatus"])
        stack_status = None
        drifted_count = None
        status_reason = None

        if status != DetectionStatus.IN_PROGRESS and resp.get("StackDriftStatus"):
            stack_status = StackStatus(resp["StackDriftStatus"])
            drifted_count = resp.get("DriftedStackResourceCount", 0)
        if status == DetectionStatus.FAILED:
            status_reason = resp.get("DetectionStatusReason")

        return DetectionRun(
            detection_id=detection_id,
            stack_id=resp["StackId"],
            stack_name=stack_name,
            status=status,
            stack_status=stack_status,
            drifted_resource_count=drifted_count,
            status_reason=status_reason,
        )

    def list_stack_resources(self, stack_name: str) -> list[ResourceSummary]:
        """List a stack's resources with their last-known drift status."""
        results = []
        with _transport(f"ListStackResources({stack_name})"):
            paginator = self._client.get_paginator("list_stack_resources")
            for page in paginator.paginate(StackName=stack_name):
                for resource in page["StackResourceSummaries"]:
                    drift = resource.get("DriftInformation") or {}
                    results.append(
                        ResourceSummary(
                            logical_id=resource["LogicalResourceId"],
                            resource_type=resource["ResourceType"],
                            drift_status=_resource_status(drift.get("StackResourceDriftStatus")),
                            physical_id=resource.get("PhysicalResourceId"),
                        )
                    )
        return results
