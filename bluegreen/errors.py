"""Error taxonomy for deploy runs.

Only ConfigurationError (exit 2) and the DeployErrors that escape the
orchestrator (exit 1) end a run. Cleanup of secondary resources reports
failures as results instead of raising.
"""


class DeployError(Exception):
    """Base class for every failure that aborts a deploy run.

    The last observed state of the resource and the time spent so far are
    appended to the message when known.
    """

    last_state = None
    elapsed = None

    def __str__(self):
        message = super().__str__()
        context = []
        if self.last_state is not None:
            context.append(f"last known state: {self.last_state}")
        if self.elapsed is not None:
            context.append(f"elapsed: {self.elapsed:.0f}s")
        if not context:
            return message
        return f"{message} ({', '.join(context)})"

    def add_context(self, last_state=None, elapsed=None):
        """Fill in state and elapsed time the raiser did not know. Existing values win."""
        if self.last_state is None:
            self.last_state = last_state
        if self.elapsed is None:
            self.elapsed = elapsed
        return self


class ConfigurationError(DeployError):
    """A required input is missing or invalid. Raised before any provider call."""


class MissingToolError(ConfigurationError):
    """A required local executable (the oci CLI) is not installed."""


class ProviderError(DeployError):
    """A provider control-plane call failed."""

    def __init__(self, message, command=None, stderr=""):
        super().__init__(message)
        self.command = command
        self.stderr = stderr


class ResourceNotFound(ProviderError):
    """The provider reports that the resource does not exist (or is not visible yet)."""


class TransientProviderError(ProviderError):
    """A failure that may resolve on retry: throttling, 5xx, truncated output."""


class OperationFailedError(DeployError):
    """A long-running operation ended FAILED or CANCELED."""

    def __init__(self, message, operation_id, status, errors=None):
        super().__init__(message)
        self.operation_id = operation_id
        self.status = status
        self.errors = errors or []
        self.last_state = status.value


class TargetFailedError(DeployError):
    """A compute target entered a terminal state while we waited for it."""

    def __init__(self, message, target_id, state):
        super().__init__(message)
        self.target_id = target_id
        self.state = state
        self.last_state = state.value if state is not None else "gone"


class VerificationError(DeployError):
    """The control plane accepted an update but does not report the desired image."""

    def __init__(self, message, target_id, expected, reported, last_state=None):
        super().__init__(message)
        self.target_id = target_id
        self.expected = expected
        self.reported = list(reported)
        self.last_state = last_state


class PollTimeout(DeployError, TimeoutError):
    """A poll loop exceeded its deadline."""

    def __init__(self, label, resource_id, last_state, elapsed):
        super().__init__(f"Timeout waiting for {label} on {resource_id}")
        self.label = label
        self.resource_id = resource_id
        self.last_state = last_state
        self.elapsed = elapsed


class PartialCleanupError(DeployError):
    """A non-authoritative deletion failed. Reported as a warning, never raised by the orchestrator."""

    def __init__(self, message, resource_id):
        super().__init__(message)
        self.resource_id = resource_id
