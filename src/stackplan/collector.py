"""Collects deployed resources and their drift status per stack."""

import logging
from collections.abc import Iterable, Mapping

from stackplan.aws.client import CloudFormationClient
from stackplan.models import ResourceSummary

logger = logging.getLogger(__name__)

ResourceIndex = dict[str, ResourceSummary]


def collect_resource_summaries(
    client: CloudFormationClient, stack_names: Iterable[str]
) -> dict[str, ResourceIndex]:
    """Fetch each stack's resources indexed by logical id, keeping listing order.

    Call this only after drift detection has finished for these stacks: the
    drift status fields are filled in server-side by the detection run.
    """
    summaries: dict[str, ResourceIndex] = {}
    for name in stack_names:
        resources = client.list_stack_resources(name)
        summaries[name] = {r.logical_id: r for r in resources}
        logger.info("Collected %d resources for %s", len(resources), name)
    return summaries


def resources_for(summaries: Mapping[str, ResourceIndex], stack_name: str) -> ResourceIndex:
    """Resources of a stack, or an empty index when it was never deployed."""
    return summaries.get(stack_name) or {}
