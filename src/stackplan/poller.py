"""Starts CloudFormation drift detection and waits for every stack to finish."""

import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed

from stackplan.aws.client import CloudFormationClient
from stackplan.errors import DriftDetectionTimeout
from stackplan.models import DetectionRun, DetectionStatus, DriftOutcome, DriftRequest

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_TIMEOUT = 300.0


class DriftPoller:
    """Runs drift detection on several stacks under one shared deadline.

    Detection is started for every stack before any polling happens, so that a
    stack launched last does not lose part of the deadline to earlier ones.
    Each round polls every outstanding detection concurrently; stacks that
    finish drop out while the others keep being polled. If any detection is
    still in progress once ``timeout`` seconds have passed since the first
    launch, the whole operation fails and no partial outcome is returned.
    API errors are not retried: detection is stateful on the AWS side.
    """

    def __init__(
        self,
        client: CloudFormationClient,
        max_concurrent: int = 5,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self._max_concurrent = max_concurrent
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._clock = clock
        self._sleep = sleep

    def poll(self, stack_names: Iterable[str]) -> DriftOutcome:
        """Detect drift for ``stack_names`` and return every terminal status."""
        # one detection per stack name per run
        names = list(dict.fromkeys(stack_names))
        if not names:
            return DriftOutcome(runs={})

        started = self._clock()
        pending: dict[str, DriftRequest] = {}
        for name in names:
            pending[name] = self._client.detect_drift(name)
            logger.info("Started drift detection for %s (%s)", name, pending[name].detection_id)

        finished: dict[str, DetectionRun] = {}
        with ThreadPoolExecutor(max_workers=min(self._max_concurrent, len(names))) as executor:
            while True:
                for name, run in self._poll_round(executor, pending):
                    del pending[name]
                    finished[name] = run
                    self._log_terminal(name, run)

                if not pending:
                    break

                elapsed = self._clock() - started
                if elapsed > self._timeout:
                    logger.error(
                        "Drift detection still in progress after %.0fs: %s",
                        elapsed,
                        ", ".join(pending),
                    )
                    raise DriftDetectionTimeout(list(pending), self._timeout)

                logger.debug("Waiting on drift detection for %s", ", ".join(pending))
                self._sleep(self._poll_interval)

        return DriftOutcome(runs={name: finished[name] for name in names})

    def _poll_round(
        self, executor: ThreadPoolExecutor, pending: dict[str, DriftRequest]
    ) -> list[tuple[str, DetectionRun]]:
        """Poll every pending request once and return those no longer in progress."""
        futures = {
            executor.submit(self._client.poll_detection, req.detection_id, name): name
            for name, req in pending.items()
        }
        done = {}
        for future in as_completed(futures):
            run = future.result()
            if run.status != DetectionStatus.IN_PROGRESS:
                done[futures[future]] = run
        # report in launch order, not thread completion order
        return [(name, done[name]) for name in pending if name in done]

    @staticmethod
    def _log_terminal(name: str, run: DetectionRun) -> None:
        if run.status == DetectionStatus.FAILED:
            logger.warning(
                "Drift detection failed for %s: %s",
                name,
                run.status_reason,
            )
        else:
            logger.info(
                "Drift detection for %s finished: %s (%s drifted resources)",
                name,
                run.stack_status,
                run.drifted_resource_count or 0,
            )
