"""Exceptions raised by stackplan. All of them abort the run."""


class StackPlanError(Exception):
    """Base class for fatal stackplan errors."""


class DriftDetectionTimeout(StackPlanError, TimeoutError):
    """Drift detection did not finish for every stack before the shared deadline."""

    def __init__(self, pending: list[str], timeout: float):
        self.pending = pending
        self.timeout = timeout
        super().__init__(
            f"Stack drift detection timed out after {timeout:g}s "
            f"(still in progress: {', '.join(pending)})"
        )


class DataInconsistencyError(StackPlanError):
    """Inputs handed to the reconciler disagree with each other."""


class TransportError(StackPlanError):
    """A call to CloudFormation or GitHub failed."""


class SynthError(StackPlanError):
    """The synth command failed or produced an unreadable cloud assembly."""


class ConfigurationError(StackPlanError, ValueError):
    """A setting is unusable, detected before anything is sent to AWS or GitHub."""
