"""Run configuration threaded through every stage."""

import os
from dataclasses import dataclass
from urllib.parse import quote

DEFAULT_TITLE = "🌎 Cloudformation Stack Diff"
DEFAULT_SYNTH_COMMAND = "npx cdk synth"
DEFAULT_CLOUD_ASSEMBLY_DIR = "cdk.out"


@dataclass(frozen=True)
class RunConfig:
    """Settings for a single reconcile-and-report run."""

    region: str
    drift_detection: bool = True
    title: str = DEFAULT_TITLE
    run_url: str | None = None
    synth_command: str = DEFAULT_SYNTH_COMMAND
    cloud_assembly_dir: str = DEFAULT_CLOUD_ASSEMBLY_DIR
    replace_comments: bool = True

    @property
    def console_base(self) -> str:
        """CloudFormation console URL prefix for stack pages in this region."""
        return (
            f"https://{self.region}.console.aws.amazon.com/cloudformation/home"
            f"?region={self.region}#/stacks"
        )

    def stack_url(self, stack_id: str) -> str:
        return f"{self.console_base}/stackinfo?stackId={quote(stack_id, safe='')}"

    def stack_drifts_url(self, stack_id: str) -> str:
        return f"{self.console_base}/drifts?stackId={quote(stack_id, safe='')}"

    def resource_drift_url(self, stack_id: str, logical_id: str) -> str:
        return (
            f"{self.console_base}/drifts/info?stackId={quote(stack_id, safe='')}"
            f"&logicalResourceId={quote(logical_id, safe='')}"
        )


def run_url_from_env(environ=None) -> str | None:
    """Build the GitHub Actions run link from the standard workflow variables."""
    env = os.environ if environ is None else environ
    server = env.get("GITHUB_SERVER_URL")
    repo = env.get("GITHUB_REPOSITORY")
    run_id = env.get("GITHUB_RUN_ID")
    if not (server and repo and run_id):
        return None
    return f"{server}/{repo}/actions/runs/{run_id}"
