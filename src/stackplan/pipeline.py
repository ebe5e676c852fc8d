"""Fetches live stack state and reconciles it against the synthesized templates."""

import logging
from collections.abc import Sequence

from stackplan.aws.client import CloudFormationClient
from stackplan.collector import collect_resource_summaries
from stackplan.config import RunConfig
from stackplan.diff import diff_templates
from stackplan.models import DesiredStack, ReconcileResult
from stackplan.poller import DriftPoller
from stackplan.reconciler import reconcile

logger = logging.getLogger(__name__)


def plan(
    client: CloudFormationClient,
    poller: DriftPoller,
    desired: Sequence[DesiredStack],
    config: RunConfig,
) -> ReconcileResult:
    """Fetch deployed state for ``desired``, detect drift, and reconcile.

    Every fetch happens before reconciliation starts; any failure propagates
    and no report is produced.
    """
    names = [stack.name for stack in desired]
    deployed = client.list_stacks(stack_names=names)
    deployed_names = [stack.name for stack in deployed]
    logger.info("%d of %d stacks are deployed", len(deployed), len(desired))

    deployed_templates = {name: client.get_template(name) for name in deployed_names}
    diffs = {
        stack.name: diff_templates(deployed_templates.get(stack.name, {}), stack.template)
        for stack in desired
    }

    drift_detected = False
    if config.drift_detection:
        drift_detected = poller.poll(deployed_names).drifted

    # drift detection fills in the resource drift status, so collect afterwards
    summaries = collect_resource_summaries(client, deployed_names)

    return reconcile(
        desired=desired,
        deployed=deployed,
        diffs=diffs,
        summaries=summaries,
        config=config,
        drift_detected=drift_detected,
    )
