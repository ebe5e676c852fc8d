"""CLI entrypoint for stackplan."""

import logging
import os
import sys

import click
from rich.console import Console
from rich.logging import RichHandler

from stackplan.aws.client import CloudFormationClient
from stackplan.config import (
    DEFAULT_CLOUD_ASSEMBLY_DIR,
    DEFAULT_SYNTH_COMMAND,
    DEFAULT_TITLE,
    RunConfig,
    run_url_from_env,
)
from stackplan.errors import ConfigurationError, StackPlanError
from stackplan.formatter import any_drifted, format_json, format_markdown, format_table
from stackplan.integrations.github import check_repo, delete_previous_comments, post_to_github_pr
from stackplan.pipeline import plan
from stackplan.poller import DriftPoller
from stackplan.synth import load_desired_stacks, run_synth

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def write_action_outputs(path: str, edited_stack_count: int, drift_detected: bool) -> None:
    """Append step outputs in the GitHub Actions ``GITHUB_OUTPUT`` file format."""
    with open(path, "a", encoding="utf-8") as fh:
        fh.write(f"edited-stack-count={edited_stack_count}\n")
        fh.write(f"stack-drift-detected={'true' if drift_detected else 'false'}\n")


@click.command()
@click.option(
    "--synth-command",
    default=DEFAULT_SYNTH_COMMAND,
    show_default=True,
    help="Command that writes templates to the cloud assembly directory.",
)
@click.option(
    "--cdk-out",
    "cloud_assembly_dir",
    default=DEFAULT_CLOUD_ASSEMBLY_DIR,
    show_default=True,
    help="Directory of the synthesized cloud assembly.",
)
@click.option("--skip-synth", is_flag=True, help="Use an existing cloud assembly as-is.")
@click.option(
    "--drift-detection/--no-drift-detection",
    default=True,
    show_default=True,
    help="Run CloudFormation drift detection on deployed stacks.",
)
@click.option("--region", envvar="AWS_REGION", required=True, help="AWS region.")
@click.option("--title", default=DEFAULT_TITLE, show_default=True, help="Report title.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["markdown", "json", "table"]),
    default="markdown",
    help="Output format.",
)
@click.option("--post-github-pr", type=int, default=None, help="Post report as GitHub PR comment.")
@click.option(
    "--replace-comments/--no-replace-comments",
    default=True,
    show_default=True,
    help="Delete earlier report comments before posting.",
)
@click.option(
    "--max-concurrent",
    type=click.IntRange(1, 50),
    default=5,
    help="Max concurrent drift detection polls.",
)
@click.option("--fail-on-drift", is_flag=True, help="Exit 1 when drift is detected.")
@click.option("-v", "--verbose", is_flag=True, help="Log progress to stderr.")
def main(
    synth_command,
    cloud_assembly_dir,
    skip_synth,
    drift_detection,
    region,
    title,
    output_format,
    post_github_pr,
    replace_comments,
    max_concurrent,
    fail_on_drift,
    verbose,
):
    """Diff synthesized CDK stacks against CloudFormation and report drift."""
    _setup_logging(verbose)

    config = RunConfig(
        region=region,
        drift_detection=drift_detection,
        title=title,
        run_url=run_url_from_env(),
        synth_command=synth_command,
        cloud_assembly_dir=cloud_assembly_dir,
        replace_comments=replace_comments,
    )

    token = repo = None
    if post_github_pr is not None:
        token = os.environ.get("GITHUB_TOKEN")
        repo = os.environ.get("GITHUB_REPOSITORY") or os.environ.get("GITHUB_REPO")
        if not token or not repo:
            click.echo("Error: GITHUB_TOKEN and GITHUB_REPOSITORY env vars required.", err=True)
            sys.exit(2)
        try:
            check_repo(repo)
        except ConfigurationError as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(2)

    try:
        if not skip_synth:
            run_synth(config.synth_command)
        desired = load_desired_stacks(config.cloud_assembly_dir)

        client = CloudFormationClient(region=config.region)
        poller = DriftPoller(client, max_concurrent=max_concurrent)
        result = plan(client, poller, desired, config)

        formatters = {
            "markdown": format_markdown,
            "json": format_json,
            "table": format_table,
        }
        click.echo(formatters[output_format](result, config))

        if post_github_pr is not None:
            body = format_markdown(result, config)
            comment_id = post_to_github_pr(body=body, repo=repo, pr_number=post_github_pr, token=token)
            if config.replace_comments:
                delete_previous_comments(config.title, repo, post_github_pr, token, keep=comment_id)
    except StackPlanError as exc:
        logger.debug("Run failed", exc_info=True)
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    drift_detected = config.drift_detection and any_drifted(result)
    output_path = os.environ.get("GITHUB_OUTPUT")
    if output_path:
        write_action_outputs(output_path, result.edited_stack_count, drift_detected)

    sys.exit(1 if fail_on_drift and drift_detected else 0)
