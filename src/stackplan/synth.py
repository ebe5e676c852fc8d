"""Runs the CDK synth command and reads stack templates from the cloud assembly."""

import json
import logging
import subprocess
from pathlib import Path

from stackplan.errors import SynthError
from stackplan.models import DesiredStack

logger = logging.getLogger(__name__)

STACK_ARTIFACT_TYPE = "aws:cloudformation:stack"


def run_synth(command: str, cwd: str | None = None) -> None:
    """Run the synth command, failing the run when it exits non-zero."""
    logger.info("$ %s", command)
    proc = subprocess.run(command, shell=True, capture_output=True, text=True, cwd=cwd)
    if proc.stdout:
        logger.info(proc.stdout.rstrip())
    if proc.stderr:
        logger.warning(proc.stderr.rstrip())
    if proc.returncode != 0:
        raise SynthError(f"Synth command exited with status {proc.returncode}: {command}")


def _read_json(path: Path) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise SynthError(f"Cannot read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise SynthError(f"{path} is not valid JSON: {exc}") from exc


def load_desired_stacks(out_dir: str | Path) -> list[DesiredStack]:
    """Load every stack artifact of the cloud assembly, in manifest order."""
    out_dir = Path(out_dir)
    manifest = _read_json(out_dir / "manifest.json")

    stacks = []
    for artifact_id, artifact in (manifest.get("artifacts") or {}).items():
        if artifact.get("type") != STACK_ARTIFACT_TYPE:
            continue
        properties = artifact.get("properties") or {}
        template_file = properties.get("templateFile") or f"{artifact_id}.template.json"
        template = _read_json(out_dir / template_file)
        # the deployed stack name differs from the artifact id when stackName is set
        name = properties.get("stackName") or artifact_id
        stacks.append(DesiredStack(name=name, template=template))

    logger.info("Found %d stacks in %s", len(stacks), out_dir)
    return stacks
