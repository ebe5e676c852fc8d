"""Template diffing between a deployed and a synthesized CloudFormation template."""

import json
import re
from typing import Any

from stackplan.models import (
    PropertyChange,
    ResourceChange,
    ResourceImpact,
    SectionChange,
    TemplateDiff,
)

SCALAR_SECTIONS = ("AWSTemplateFormatVersion", "Description", "Transform")
MAPPING_SECTIONS = ("Parameters", "Mappings", "Conditions", "Rules", "Metadata", "Outputs")

RETAIN_POLICIES = frozenset({"Retain", "RetainExceptOnCreate"})

# Resource attributes that do not change the deployed resource.
IGNORED_ATTRIBUTES = frozenset({"Type", "Properties", "Metadata"})

# Properties whose update requires CloudFormation to replace the resource.
REPLACEMENT_PROPERTIES: dict[str, frozenset[str]] = {
    "AWS::DynamoDB::Table": frozenset({"TableName", "KeySchema", "LocalSecondaryIndexes"}),
    "AWS::EC2::Instance": frozenset({"AvailabilityZone", "ImageId", "SubnetId", "KeyName"}),
    "AWS::EC2::SecurityGroup": frozenset({"GroupDescription", "GroupName", "VpcId"}),
    "AWS::EC2::Subnet": frozenset({"AvailabilityZone", "CidrBlock", "VpcId"}),
    "AWS::EC2::VPC": frozenset({"CidrBlock", "InstanceTenancy"}),
    "AWS::ECR::Repository": frozenset({"RepositoryName"}),
    "AWS::ECS::Cluster": frozenset({"ClusterName"}),
    "AWS::ECS::Service": frozenset({"ServiceName", "LaunchType", "Role"}),
    "AWS::ECS::TaskDefinition": frozenset(
        {"ContainerDefinitions", "Cpu", "Memory", "Family", "NetworkMode", "TaskRoleArn"}
    ),
    "AWS::Events::Rule": frozenset({"Name"}),
    "AWS::IAM::ManagedPolicy": frozenset({"ManagedPolicyName", "Path"}),
    "AWS::IAM::Role": frozenset({"RoleName", "Path"}),
    "AWS::IAM::User": frozenset({"UserName"}),
    "AWS::KMS::Alias": frozenset({"AliasName"}),
    "AWS::Lambda::Function": frozenset({"FunctionName", "PackageType"}),
    "AWS::Logs::LogGroup": frozenset({"LogGroupName"}),
    "AWS::RDS::DBCluster": frozenset({"DBClusterIdentifier", "Engine", "StorageEncrypted"}),
    "AWS::RDS::DBInstance": frozenset({"DBInstanceIdentifier", "Engine", "StorageEncrypted"}),
    "AWS::S3::Bucket": frozenset({"BucketName"}),
    "AWS::SNS::Topic": frozenset({"TopicName", "FifoTopic"}),
    "AWS::SQS::Queue": frozenset({"QueueName", "FifoQueue"}),
    "AWS::SSM::Parameter": frozenset({"Name"}),
    "AWS::SecretsManager::Secret": frozenset({"Name"}),
    "AWS::StepFunctions::StateMachine": frozenset({"StateMachineName", "StateMachineType"}),
}

_IMPACT_RANK = {
    ResourceImpact.NO_CHANGE: 0,
    ResourceImpact.WILL_UPDATE: 1,
    ResourceImpact.MAY_REPLACE: 2,
    ResourceImpact.WILL_REPLACE: 3,
}

_ANSI_ESCAPE = re.compile(r"[\u001b\u009b][\[()#;?]*(?:\d{1,4}(?:;\d{0,4})*)?[\dA-ORZcf-nqry=><]")


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences so diff text can sit in a code block."""
    return _ANSI_ESCAPE.sub("", text)


def is_intrinsic(value: Any) -> bool:
    """True for an unresolved intrinsic such as ``{"Ref": ...}`` or ``{"Fn::GetAtt": ...}``."""
    if not isinstance(value, dict) or len(value) != 1:
        return False
    (key,) = value
    return key == "Ref" or key.startswith("Fn::")


def diff_templates(old: dict[str, Any] | None, new: dict[str, Any] | None) -> TemplateDiff:
    """Compute the difference between a deployed template and a desired one.

    Either side may be empty or ``None``, which stands for "no template". The
    per-resource changes list every resource of the desired template in
    template order, followed by resources that exist only in the deployed one.
    """
    old = old or {}
    new = new or {}

    return TemplateDiff(
        resource_changes=_diff_resources(old.get("Resources") or {}, new.get("Resources") or {}),
        section_changes=tuple(_diff_sections(old, new)),
    )


def _diff_sections(old: dict[str, Any], new: dict[str, Any]) -> list[SectionChange]:
    changes = []
    for section in SCALAR_SECTIONS:
        if old.get(section) != new.get(section):
            changes.append(SectionChange(section, section, old.get(section), new.get(section)))

    for section in MAPPING_SECTIONS:
        old_entries = old.get(section) or {}
        new_entries = new.get(section) or {}
        for key in _ordered_union(new_entries, old_entries):
            if old_entries.get(key) != new_entries.get(key):
                changes.append(SectionChange(section, key, old_entries.get(key), new_entries.get(key)))
    return changes


def _diff_resources(old: dict[str, Any], new: dict[str, Any]) -> dict[str, ResourceChange]:
    changes = {}
    for logical_id in _ordered_union(new, old):
        changes[logical_id] = _diff_resource(logical_id, old.get(logical_id), new.get(logical_id))
    return changes


def _diff_resource(logical_id: str, old: dict | None, new: dict | None) -> ResourceChange:
    old_type = old.get("Type") if old else None
    new_type = new.get("Type") if new else None

    if old is None:
        return ResourceChange(logical_id, ResourceImpact.WILL_CREATE, None, new_type)

    if new is None:
        impact = (
            ResourceImpact.WILL_ORPHAN
            if old.get("DeletionPolicy") in RETAIN_POLICIES
            else ResourceImpact.WILL_DESTROY
        )
        return ResourceChange(logical_id, impact, old_type, None)

    property_changes = _diff_properties(old, new)

    if old_type != new_type:
        impact = ResourceImpact.WILL_REPLACE
    else:
        impact = ResourceImpact.NO_CHANGE
        replacing = REPLACEMENT_PROPERTIES.get(new_type or "", frozenset())
        for change in property_changes:
            candidate = ResourceImpact.WILL_UPDATE
            if change.name in replacing:
                if is_intrinsic(change.old_value) or is_intrinsic(change.new_value):
                    candidate = ResourceImpact.MAY_REPLACE
                else:
                    candidate = ResourceImpact.WILL_REPLACE
            if _IMPACT_RANK[candidate] > _IMPACT_RANK[impact]:
                impact = candidate

    return ResourceChange(logical_id, impact, old_type, new_type, tuple(property_changes))


def _diff_properties(old: dict, new: dict) -> list[PropertyChange]:
    changes = []
    old_props = old.get("Properties") or {}
    new_props = new.get("Properties") or {}
    for name in _ordered_union(new_props, old_props):
        if old_props.get(name) != new_props.get(name):
            changes.append(PropertyChange(name, old_props.get(name), new_props.get(name)))

    # DependsOn, DeletionPolicy, Condition and friends
    for name in _ordered_union(new, old):
        if name in IGNORED_ATTRIBUTES:
            continue
        if old.get(name) != new.get(name):
            changes.append(PropertyChange(name, old.get(name), new.get(name)))
    return changes


def _ordered_union(first: dict, second: dict) -> list[str]:
    keys = list(first)
    keys.extend(k for k in second if k not in first)
    return keys


_RESOURCE_MARKERS = {
    ResourceImpact.WILL_CREATE: "[+]",
    ResourceImpact.WILL_UPDATE: "[~]",
    ResourceImpact.MAY_REPLACE: "[~]",
    ResourceImpact.WILL_REPLACE: "[-/+]",
    ResourceImpact.WILL_DESTROY: "[-]",
    ResourceImpact.WILL_ORPHAN: "[-]",
}

_IMPACT_NOTES = {
    ResourceImpact.MAY_REPLACE: " (may be replaced)",
    ResourceImpact.WILL_REPLACE: " (replacement)",
    ResourceImpact.WILL_ORPHAN: " (orphan)",
    ResourceImpact.WILL_DESTROY: " (destroy)",
}


def _short(value: Any) -> str:
    if value is None:
        return "(absent)"
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, ensure_ascii=False)


def _section_marker(change: SectionChange) -> str:
    if change.old_value is None:
        return "[+]"
    if change.new_value is None:
        return "[-]"
    return "[~]"


def format_diff(diff: TemplateDiff) -> str:
    """Render a diff as plain text in the style of ``cdk diff``."""
    if diff.is_empty:
        return "There were no differences"

    lines: list[str] = []
    sections: dict[str, list[SectionChange]] = {}
    for change in diff.section_changes:
        sections.setdefault(change.section, []).append(change)

    for section in SCALAR_SECTIONS:
        for change in sections.pop(section, []):
            lines.append(f"{section}")
            lines.append(f"[~] {_short(change.old_value)} to {_short(change.new_value)}")
            lines.append("")

    if "Parameters" in sections:
        _format_section(lines, "Parameters", sections.pop("Parameters"))

    changed = [c for c in diff.resource_changes.values() if c.impact != ResourceImpact.NO_CHANGE]
    if changed:
        lines.append("Resources")
        for change in changed:
            marker = _RESOURCE_MARKERS[change.impact]
            note = _IMPACT_NOTES.get(change.impact, "")
            if change.old_type and change.new_type and change.old_type != change.new_type:
                type_text = f"{change.old_type} -> {change.new_type}"
            else:
                type_text = change.resource_type or ""
            lines.append(f"{marker} {type_text} {change.logical_id}{note}")
            for i, prop in enumerate(change.property_changes):
                branch = "└─" if i == len(change.property_changes) - 1 else "├─"
                lines.append(
                    f" {branch} [~] {prop.name}: {_short(prop.old_value)} -> {_short(prop.new_value)}"
                )
        lines.append("")

    for section in MAPPING_SECTIONS:
        if section in sections:
            _format_section(lines, section, sections.pop(section))

    return "\n".join(lines).rstrip("\n")


def _format_section(lines: list[str], section: str, changes: list[SectionChange]) -> None:
    lines.append(section)
    for change in changes:
        lines.append(f"{_section_marker(change)} {change.key}")
    lines.append("")
