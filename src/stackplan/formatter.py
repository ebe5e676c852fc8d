"""Output formatters for reconciled stack reports."""

import io
import json

from rich.console import Console
from rich.text import Text
from rich.tree import Tree

from stackplan.config import RunConfig
from stackplan.diff import format_diff, strip_ansi
from stackplan.models import Classification, ReconcileResult, ResourceStatus, StackReport

STACK_PREFIXES = {
    Classification.NEW: "🆕",
    Classification.CHANGED: "✏️",
    Classification.UNCHANGED: "🈚",
}

CLASSIFICATION_STYLES = {
    Classification.NEW: "green",
    Classification.CHANGED: "yellow",
    Classification.UNCHANGED: "dim",
}

DRIFT_BANNER = "🚨 **Stack Drift Detected** 🚨"

_LEGEND_CHANGES = [
    "> ### Emojis",
    "> - 🈚 No Change",
    "> - 🆕 New Resource",
    "> - ✏️ Update Resource",
    "> - ♻️ Replace Resource (CloudFormation recreates the resource)",
    "> - 🗑 Logical Remove (resource is retained)",
    "> - 🔥 Destroy Physical Resource",
]

_LEGEND_DRIFT = [
    "> ",
    "> ### Drift",
    "> - ⚠ NOT_CHECKED (resource type does not support drift detection)",
    "> - 🚨 MODIFIED (actual configuration differs from the template)",
    "> - ✅ IN_SYNC (no drift detected)",
    "> - Empty (resource is not yet created)",
]


def _escape_md_cell(value: str) -> str:
    """Escape characters that break markdown table cells."""
    return value.replace("|", "\\|").replace("\n", " ")


def any_drifted(result: ReconcileResult) -> bool:
    return result.drift_detected or any(r.drifted for r in result.reports)


def format_markdown(result: ReconcileResult, config: RunConfig) -> str:
    """Format the reports as the pull request comment body.

    The output depends only on ``result`` and ``config``, so re-running against
    unchanged stacks produces the same comment.
    """
    lines = [config.title, ""]
    if config.run_url:
        lines.extend([f"[View GitHub Action]({config.run_url})", ""])

    lines.extend(["<details>", "<summary>Legends</summary>", ""])
    lines.extend(_LEGEND_CHANGES)
    if config.drift_detection:
        lines.extend(_LEGEND_DRIFT)
    lines.extend(["", "</details>", ""])

    lines.append(_banner(result, config))
    lines.append("")

    for report in result.reports:
        lines.extend(_format_stack(report, config))

    return "\n".join(lines).rstrip("\n") + "\n"


def _banner(result: ReconcileResult, config: RunConfig) -> str:
    if result.edited_stack_count:
        noun = "stack" if result.edited_stack_count == 1 else "stacks"
        banner = f"### Stacks ({result.edited_stack_count} {noun} to update)"
    else:
        banner = "### Stacks (No Changes)"
    if config.drift_detection and any_drifted(result):
        banner += f" {DRIFT_BANNER}"
    return banner


def _stack_heading(report: StackReport, config: RunConfig) -> str:
    prefix = STACK_PREFIXES[report.classification]
    if report.stack_id is None:
        return f"#### {prefix} {report.name}"

    heading = f"#### {prefix} [{report.name}]({config.stack_url(report.stack_id)})"
    if config.drift_detection:
        heading += f" [Drift Detection]({config.stack_drifts_url(report.stack_id)})"
        if report.drifted:
            heading += " 🚨"
    return heading


def _format_stack(report: StackReport, config: RunConfig) -> list[str]:
    lines = [_stack_heading(report, config), ""]

    if report.diff is None:
        count = len(report.rows)
        noun = "resource" if count == 1 else "resources"
        diff_text = f"New stack: {count} {noun} will be created"
    else:
        diff_text = strip_ansi(format_diff(report.diff))

    lines.extend(
        [
            "<details>",
            "<summary>cdk diff</summary>",
            "",
            "```",
            diff_text,
            "```",
            "",
            "</details>",
            "",
        ]
    )

    if not report.rows:
        lines.extend(["_No resources_", ""])
        return lines

    if config.drift_detection:
        lines.append("|Diff|Drift|Type|Logical ID|")
        lines.append("|---|---|---|---|")
    else:
        lines.append("|Diff|Type|Logical ID|")
        lines.append("|---|---|---|")

    for row in report.rows:
        resource_type = _escape_md_cell(row.resource_type)
        logical_id = _escape_md_cell(row.logical_id)
        if config.drift_detection:
            drift = row.drift_label
            if row.drift_link:
                drift = f"[{drift}]({row.drift_link})"
            lines.append(f"|{row.diff_label}|{drift}|{resource_type}|{logical_id}|")
        else:
            lines.append(f"|{row.diff_label}|{resource_type}|{logical_id}|")

    lines.append("")
    return lines


def format_json(result: ReconcileResult, config: RunConfig) -> str:
    """Format the reports as JSON."""
    stacks = []
    for report in result.reports:
        rows = []
        for row in report.rows:
            entry = {
                "logical_id": row.logical_id,
                "resource_type": row.resource_type,
                "impact": row.impact.value,
            }
            if config.drift_detection:
                entry["drift_status"] = row.drift_status.value if row.drift_status else None
                entry["drift_link"] = row.drift_link
            rows.append(entry)

        stacks.append(
            {
                "stack_name": report.name,
                "stack_id": report.stack_id,
                "classification": report.classification.name,
                "difference_count": report.diff.difference_count if report.diff else None,
                "drifted": report.drifted,
                "resources": rows,
            }
        )

    return json.dumps(
        {
            "summary": {
                "total_stacks": len(result.reports),
                "edited_stacks": result.edited_stack_count,
                "drift_detection": config.drift_detection,
                "drift_detected": any_drifted(result) if config.drift_detection else False,
            },
            "stacks": stacks,
        },
        indent=2,
        ensure_ascii=False,
    )


def format_table(result: ReconcileResult, config: RunConfig) -> str:
    """Format the reports as a Rich tree view, returned as a string."""
    if not result.reports:
        return "No stacks found."

    console = Console(record=True, width=120, file=io.StringIO())
    tree = Tree(f"[bold]Stack Plan[/bold] — {result.edited_stack_count} to update")

    for report in result.reports:
        style = CLASSIFICATION_STYLES[report.classification]
        drift_note = " [red]DRIFTED[/red]" if report.drifted else ""
        stack_branch = tree.add(
            Text.from_markup(
                f"[{style}]{report.name}[/{style}]"
                f" — {report.classification.name}{drift_note}"
            )
        )
        for row in report.rows:
            label = Text(f"{row.logical_id} ({row.resource_type})")
            if row.diff_label:
                label.append(f" {row.diff_label}")
            if config.drift_detection and row.drift_label:
                color = "red" if row.drift_status == ResourceStatus.MODIFIED else "dim"
                label.append(f" {row.drift_label}", style=color)
            stack_branch.add(label)

    console.print(tree)
    return console.export_text()
