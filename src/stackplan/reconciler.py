"""Combines desired templates, deployed stacks, diffs and drift into stack reports."""

import logging
from collections.abc import Mapping, Sequence

from stackplan.collector import ResourceIndex, resources_for
from stackplan.config import RunConfig
from stackplan.errors import DataInconsistencyError
from stackplan.models import (
    CDK_METADATA_TYPE,
    Classification,
    DeployedStack,
    DesiredStack,
    ReconcileResult,
    ResourceChange,
    ResourceImpact,
    ResourceRow,
    ResourceStatus,
    ResourceSummary,
    StackReport,
    TemplateDiff,
)

logger = logging.getLogger(__name__)

DIFF_LABELS: dict[ResourceImpact, str] = {
    ResourceImpact.NO_CHANGE: "",
    ResourceImpact.WILL_UPDATE: "✏️ Update",
    ResourceImpact.WILL_CREATE: "🆕 Create",
    ResourceImpact.WILL_REPLACE: "♻️ Replace",
    ResourceImpact.MAY_REPLACE: "♻️ May Replace",
    ResourceImpact.WILL_DESTROY: "🔥 Destroy",
    ResourceImpact.WILL_ORPHAN: "🗑 Remove",
}

DRIFT_LABELS: dict[ResourceStatus, str] = {
    ResourceStatus.NOT_CHECKED: "⚠ NOT_CHECKED",
    ResourceStatus.MODIFIED: "🚨 MODIFIED",
    ResourceStatus.IN_SYNC: "✅ IN_SYNC",
}


def diff_label(impact: ResourceImpact | None) -> str:
    if impact is None:
        return ""
    return DIFF_LABELS[impact]


def drift_label(status: ResourceStatus | None) -> str:
    if status is None:
        return ""
    return DRIFT_LABELS.get(status, "")


def classify(name: str, deployed: Mapping[str, DeployedStack], diff: TemplateDiff) -> Classification:
    if name not in deployed:
        return Classification.NEW
    if diff.difference_count > 0:
        return Classification.CHANGED
    return Classification.UNCHANGED


def reconcile(
    desired: Sequence[DesiredStack],
    deployed: Sequence[DeployedStack],
    diffs: Mapping[str, TemplateDiff],
    summaries: Mapping[str, ResourceIndex],
    config: RunConfig,
    drift_detected: bool = False,
) -> ReconcileResult:
    """Build one report per desired stack, in desired order.

    ``diffs`` must hold exactly one diff per desired stack name. Drift
    information in ``summaries`` is ignored when drift detection is disabled
    in ``config``.
    """
    templates = {stack.name: stack for stack in desired}
    unknown = [name for name in diffs if name not in templates]
    if unknown:
        raise DataInconsistencyError(
            f"Diff computed for stacks without a template: {', '.join(unknown)}"
        )
    missing = [stack.name for stack in desired if stack.name not in diffs]
    if missing:
        raise DataInconsistencyError(f"No diff computed for stacks: {', '.join(missing)}")

    deployed_by_name = {stack.name: stack for stack in deployed}
    edited_stack_count = sum(1 for stack in desired if diffs[stack.name].difference_count > 0)

    reports = []
    for stack in desired:
        diff = diffs[stack.name]
        classification = classify(stack.name, deployed_by_name, diff)
        deployed_stack = deployed_by_name.get(stack.name)
        resources = resources_for(summaries, stack.name) if deployed_stack else {}

        rows = _build_rows(stack, classification, diff, resources, deployed_stack, config)
        drifted = any(row.drift_status == ResourceStatus.MODIFIED for row in rows)
        if classification == Classification.UNCHANGED and drifted:
            logger.info("Stack %s has no template changes but has drifted", stack.name)

        reports.append(
            StackReport(
                name=stack.name,
                classification=classification,
                diff=None if classification == Classification.NEW else diff,
                drifted=drifted,
                rows=tuple(rows),
                stack_id=deployed_stack.stack_id if deployed_stack else None,
            )
        )

    return ReconcileResult(
        reports=tuple(reports),
        edited_stack_count=edited_stack_count,
        drift_detected=drift_detected if config.drift_detection else False,
    )


def _display_ids(
    stack: DesiredStack,
    classification: Classification,
    diff: TemplateDiff,
    resources: ResourceIndex,
) -> list[str]:
    if classification == Classification.NEW:
        return list(stack.resources)

    ids = [
        logical_id
        for logical_id, change in diff.resource_changes.items()
        if change.impact != ResourceImpact.NO_CHANGE or logical_id in resources
    ]
    seen = set(ids)
    ids.extend(logical_id for logical_id in resources if logical_id not in seen)
    return ids


def _resource_type(
    change: ResourceChange | None,
    stack: DesiredStack,
    logical_id: str,
    summary: ResourceSummary | None,
) -> str:
    if change is not None and change.new_type:
        return change.new_type
    if change is not None and change.old_type:
        return change.old_type
    declared = stack.resources.get(logical_id) or {}
    if declared.get("Type"):
        return declared["Type"]
    if summary is not None:
        return summary.resource_type
    return ""


def _build_rows(
    stack: DesiredStack,
    classification: Classification,
    diff: TemplateDiff,
    resources: ResourceIndex,
    deployed_stack: DeployedStack | None,
    config: RunConfig,
) -> list[ResourceRow]:
    rows = []
    for logical_id in _display_ids(stack, classification, diff, resources):
        change = diff.resource_changes.get(logical_id)
        summary = resources.get(logical_id)
        resource_type = _resource_type(change, stack, logical_id, summary)
        if resource_type == CDK_METADATA_TYPE:
            continue

        if classification == Classification.NEW:
            impact = ResourceImpact.WILL_CREATE
        else:
            impact = change.impact if change is not None else ResourceImpact.NO_CHANGE

        status = summary.drift_status if (summary is not None and config.drift_detection) else None
        link = None
        if status == ResourceStatus.MODIFIED and deployed_stack is not None:
            link = config.resource_drift_url(deployed_stack.stack_id, logical_id)

        rows.append(
            ResourceRow(
                logical_id=logical_id,
                resource_type=resource_type,
                impact=impact,
                diff_label=diff_label(impact),
                drift_status=status,
                drift_label=drift_label(status),
                drift_link=link,
            )
        )
    return rows
