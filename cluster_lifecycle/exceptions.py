"""Error types raised by the cluster lifecycle controller.

Every error carries a short ``message`` for the status line and optional
``details`` that the CLI prints underneath it.
"""


class ClusterLifecycleError(Exception):
    """Root of the controller's error hierarchy."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        if not self.details:
            return self.message
        return f"{self.message}\n\nDetails: {self.details}"

    @property
    def user_message(self) -> str:
        """Text for a notification: the backend's detail when it sent one."""
        return self.details or self.message


class ValidationError(ClusterLifecycleError):
    """Local input checks failed before anything was sent."""


class WizardStateError(ClusterLifecycleError):
    """The wizard or edit session does not allow this transition."""


class NodeLockedError(ClusterLifecycleError):
    """Role edit on a host that is already a member of the cluster."""

    def __init__(self, host_id: str):
        self.host_id = host_id
        super().__init__(
            f"Role of host '{host_id}' cannot be changed",
            "The host is already a member of the cluster. Unlock it first.",
        )


class StaleResponseError(ClusterLifecycleError):
    """A response arrived for a draft that has since been discarded."""

    def __init__(self, generation: int, current: int):
        self.generation = generation
        self.current = current
        super().__init__(
            "Discarding a response for a cancelled draft",
            f"response generation {generation}, current generation {current}",
        )


class ConfigurationError(ClusterLifecycleError):
    """The config file is unreadable or holds invalid values."""


class ApiError(ClusterLifecycleError):
    """A backend call failed in transport or returned an error status.

    ``status_code`` is None when no response was received.
    """

    def __init__(self, message: str, details: str | None = None, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message, details)

    @property
    def not_found(self) -> bool:
        return self.status_code == 404
