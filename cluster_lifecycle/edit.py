"""Edit-mode reconciliation of an existing cluster."""

from cluster_lifecycle.api import ClusterBackend
from cluster_lifecycle.diff import ClusterDiffEngine
from cluster_lifecycle.dispatch import MutationDispatcher
from cluster_lifecycle.exceptions import ValidationError, WizardStateError
from cluster_lifecycle.logging_config import get_logger
from cluster_lifecycle.metadata import MergeResult, MetadataReconciler
from cluster_lifecycle.models.cluster import (
    AggregateOutcome,
    ClusterDraft,
    DiffResult,
    PersistedClusterSnapshot,
    has_version_marker,
)
from cluster_lifecycle.models.node import Host
from cluster_lifecycle.models.site import Site
from cluster_lifecycle.notifications import Notifier
from cluster_lifecycle.outcome import OutcomeAggregator
from cluster_lifecycle.selection import NodeSelectionAccumulator

logger = get_logger(__name__)

LAST_HOST_MESSAGE = (
    "This is the only host in {cluster}. Delete the cluster to remove host "
    "and return to an unassigned state"
)


class EditSession:
    """Edits one cluster against the snapshot fetched when the session opened.

    Nodes that were already members when the session opened are locked for
    role edits. Saving diffs the draft against the snapshot, dispatches the
    changed facets and reduces their outcomes into one result.
    """

    def __init__(
        self,
        backend: ClusterBackend,
        snapshot: PersistedClusterSnapshot,
        notifier: Notifier | None = None,
        reconciler: MetadataReconciler | None = None,
        site: Site | None = None,
    ):
        self.backend = backend
        self.snapshot = snapshot
        self.notifier = notifier
        self.reconciler = reconciler or MetadataReconciler()
        self.site = site
        self.diff_engine = ClusterDiffEngine()
        self.dispatcher = MutationDispatcher(backend)
        self.aggregator = OutcomeAggregator()
        self.generation = 0
        self.finished = False
        self._saving = False
        self._start()

    @classmethod
    async def open(cls, backend: ClusterBackend, cluster_name: str, **kwargs) -> "EditSession":
        """Fetch the cluster and start a session on it."""
        logger.info(f"Opening edit session for cluster '{cluster_name}'")
        snapshot = await backend.get_cluster(cluster_name)
        return cls(backend, snapshot, **kwargs)

    def _start(self) -> None:
        self.draft = ClusterDraft.from_snapshot(self.snapshot)
        self.selection = NodeSelectionAccumulator(self.draft, persisted=self.snapshot.nodes)
        self._metadata = self._merge(self.draft.labels)

    def _merge(self, labels: dict[str, str]) -> MergeResult:
        return self.reconciler.merge(
            self.site.inherited_location if self.site else [],
            self.site.metadata if self.site else [],
            labels,
        )

    def _ensure_open(self) -> None:
        if self.finished:
            raise WizardStateError(
                f"Edit session for '{self.snapshot.name}' is closed", "Open a new session"
            )

    # Draft editing

    def set_template(self, template: str) -> None:
        self._ensure_open()
        if not has_version_marker(template):
            raise ValidationError(
                f"Template '{template}' has no version", "Expected <name>-v<version>"
            )
        self.draft.template = template

    def set_labels(self, labels: dict[str, str]) -> MergeResult:
        """Replace the cluster labels.

        Returns:
            The merged metadata; save is blocked while it has errors
        """
        self._ensure_open()
        self.draft.labels = dict(labels)
        self._metadata = self._merge(self.draft.labels)
        return self._metadata

    def add_host(self, host: Host) -> bool:
        self._ensure_open()
        return self.selection.select(host, True)

    def remove_host(self, host: Host) -> AggregateOutcome | None:
        """Remove a host from the cluster.

        The last host cannot be removed; the cluster has to be deleted instead.

        Returns:
            A warning outcome when the host is the last one, otherwise None
        """
        self._ensure_open()
        if self.selection.would_remove_last_node(host.node_id):
            logger.warning(f"Refusing to remove the only host of cluster '{self.draft.name}'")
            return self._notify(
                AggregateOutcome(
                    status="warning", message=LAST_HOST_MESSAGE.format(cluster=self.draft.name)
                )
            )
        self.selection.select(host, False)
        return None

    def update_role(self, host_id: str, role: str) -> bool:
        self._ensure_open()
        return self.selection.update_role(host_id, role)

    @property
    def metadata(self) -> MergeResult:
        return self._metadata

    @property
    def diff(self) -> DiffResult:
        return self.diff_engine.diff(self.snapshot, self.draft)

    @property
    def can_save(self) -> bool:
        return (
            not self.finished
            and not self._saving
            and not self._metadata.has_validation_error
            and self.diff.any_changed
        )

    def cancel(self) -> None:
        """Discard the edits; responses still in flight are dropped."""
        logger.info(f"Edit of cluster '{self.snapshot.name}' cancelled")
        self.generation += 1
        self.finished = True
        self._start()

    def _notify(self, outcome: AggregateOutcome) -> AggregateOutcome:
        if self.notifier is not None and outcome.status != "noop":
            self.notifier.notify(outcome)
        return outcome

    async def save(self) -> AggregateOutcome:
        """Push the changed facets and report the combined result.

        On failure the session stays open with the draft intact, and a
        later save diffs against the same snapshot again.

        Raises:
            ValidationError: If the labels do not validate
            WizardStateError: If the session is closed or already saving
        """
        self._ensure_open()
        if self._saving:
            raise WizardStateError("A save is already in progress")
        if self._metadata.has_validation_error:
            messages = ", ".join(f"{e.field} {e.index}: {e.message}" for e in self._metadata.errors)
            raise ValidationError("Cluster labels are invalid", messages)

        diff = self.diff
        if not diff.any_changed:
            logger.debug(f"Nothing to save for cluster '{self.draft.name}'")
            return AggregateOutcome(status="noop")

        generation = self.generation
        self._saving = True
        try:
            metadata = self._metadata.metadata_list() if diff.labels_changed else None
            outcomes = await self.dispatcher.dispatch(self.draft, diff, metadata=metadata)
        finally:
            if generation == self.generation:
                self._saving = False

        if generation != self.generation:
            logger.warning(
                f"Discarding save results for cluster '{self.snapshot.name}', "
                "the session was cancelled while saving"
            )
            return AggregateOutcome(status="noop")

        outcome = self.aggregator.aggregate(outcomes)
        logger.info(f"Save of cluster '{self.draft.name}' finished: {outcome.status}")
        if outcome.navigate:
            self.finished = True
        return self._notify(outcome)
