"""Core data models for stack diff and drift reconciliation."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

CDK_METADATA_TYPE = "AWS::CDK::Metadata"


class DetectionStatus(StrEnum):
    """Status of a drift detection operation."""

    IN_PROGRESS = "DETECTION_IN_PROGRESS"
    COMPLETE = "DETECTION_COMPLETE"
    FAILED = "DETECTION_FAILED"


class StackStatus(StrEnum):
    """Overall stack drift status."""

    DRIFTED = "DRIFTED"
    IN_SYNC = "IN_SYNC"
    NOT_CHECKED = "NOT_CHECKED"
    UNKNOWN = "UNKNOWN"


class ResourceStatus(StrEnum):
    """Individual resource drift status."""

    IN_SYNC = "IN_SYNC"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    NOT_CHECKED = "NOT_CHECKED"
    UNKNOWN = "UNKNOWN"


class ResourceImpact(StrEnum):
    """Predicted effect of a template update on a single resource."""

    NO_CHANGE = "NO_CHANGE"
    WILL_CREATE = "WILL_CREATE"
    WILL_UPDATE = "WILL_UPDATE"
    WILL_REPLACE = "WILL_REPLACE"
    MAY_REPLACE = "MAY_REPLACE"
    WILL_DESTROY = "WILL_DESTROY"
    WILL_ORPHAN = "WILL_ORPHAN"


class Classification(StrEnum):
    """How a desired stack relates to what is deployed."""

    NEW = "new"
    CHANGED = "diff"
    UNCHANGED = "not_changed"


@dataclass(frozen=True)
class DesiredStack:
    """A stack template produced by the local synth."""

    name: str
    template: dict[str, Any]

    @property
    def resources(self) -> dict[str, Any]:
        return self.template.get("Resources") or {}


@dataclass(frozen=True)
class DeployedStack:
    """A stack that currently exists in CloudFormation."""

    name: str
    stack_id: str
    status: str


@dataclass(frozen=True)
class PropertyChange:
    """A single changed property of a resource between two templates."""

    name: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class ResourceChange:
    """Diff outcome for one logical resource."""

    logical_id: str
    impact: ResourceImpact
    old_type: str | None = None
    new_type: str | None = None
    property_changes: tuple[PropertyChange, ...] = ()

    @property
    def resource_type(self) -> str | None:
        return self.new_type or self.old_type


@dataclass(frozen=True)
class SectionChange:
    """An added, removed or changed entry in a non-resource template section."""

    section: str
    key: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class TemplateDiff:
    """Difference between a deployed template and a desired template."""

    resource_changes: dict[str, ResourceChange] = field(default_factory=dict)
    section_changes: tuple[SectionChange, ...] = ()

    @property
    def difference_count(self) -> int:
        changed = sum(
            1 for c in self.resource_changes.values() if c.impact != ResourceImpact.NO_CHANGE
        )
        return changed + len(self.section_changes)

    @property
    def is_empty(self) -> bool:
        return self.difference_count == 0


@dataclass(frozen=True)
class DriftRequest:
    """Tracks an in-flight drift detection operation for polling."""

    stack_name: str
    detection_id: str
    started_at: datetime


@dataclass(frozen=True)
class DetectionRun:
    """A single observation of a drift detection operation's status."""

    detection_id: str
    stack_id: str
    stack_name: str
    status: DetectionStatus
    stack_status: StackStatus | None = None
    drifted_resource_count: int | None = None
    status_reason: str | None = None


@dataclass(frozen=True)
class DriftOutcome:
    """Terminal drift detection results across all polled stacks."""

    runs: dict[str, DetectionRun]

    @property
    def drifted(self) -> bool:
        return any(r.stack_status == StackStatus.DRIFTED for r in self.runs.values())


@dataclass(frozen=True)
class ResourceSummary:
    """A deployed resource with its last-known drift status."""

    logical_id: str
    resource_type: str
    drift_status: ResourceStatus | None = None
    physical_id: str | None = None


@dataclass(frozen=True)
class ResourceRow:
    """One rendered line of a stack's resource table."""

    logical_id: str
    resource_type: str
    impact: ResourceImpact
    diff_label: str
    drift_status: ResourceStatus | None
    drift_label: str
    drift_link: str | None = None


@dataclass(frozen=True)
class StackReport:
    """Reconciled view of one desired stack."""

    name: str
    classification: Classification
    diff: TemplateDiff | None
    drifted: bool
    rows: tuple[ResourceRow, ...]
    stack_id: str | None = None


@dataclass(frozen=True)
class ReconcileResult:
    """Ordered stack reports plus run-level summary values."""

    reports: tuple[StackReport, ...]
    edited_stack_count: int
    drift_detected: bool
