"""Step-by-step cluster creation.

The wizard owns a single :class:`ClusterDraft` for its lifetime. Host and
site collaborators feed it through callbacks, each step is gated on the
draft being valid so far, and the last step submits the draft.
"""

from collections.abc import Callable

from cluster_lifecycle.api import ClusterBackend
from cluster_lifecycle.dispatch import error_detail
from cluster_lifecycle.exceptions import StaleResponseError, WizardStateError
from cluster_lifecycle.logging_config import get_logger
from cluster_lifecycle.metadata import MergeResult, MetadataReconciler
from cluster_lifecycle.models.cluster import (
    AggregateOutcome,
    ClusterDraft,
    WizardStepState,
    compose_template,
    has_version_marker,
)
from cluster_lifecycle.models.node import Host
from cluster_lifecycle.models.site import MetadataPair, Site
from cluster_lifecycle.notifications import Notifier
from cluster_lifecycle.providers import HostInventoryProvider, SiteTreeProvider
from cluster_lifecycle.selection import NodeSelectionAccumulator

logger = get_logger(__name__)

STEP_TITLES = [
    "Enter Cluster Details",
    "Select Site",
    "Select Host & Roles",
    "Add Deployment Metadata",
    "Review",
]
NAME_STEP, SITE_STEP, HOSTS_STEP, METADATA_STEP, REVIEW_STEP = range(len(STEP_TITLES))

CREATED_MESSAGE = "Cluster is created. redirecting you back to the Clusters page..."
METADATA_WARNING_MESSAGE = (
    "Cluster created successfully. Failed to store Metadata in the metadata-broker, "
    "this will not affect functionality."
)
CREATE_FAILED_MESSAGE = "Failed to create cluster"


class WizardController:
    """State machine for the cluster creation wizard.

    Transitions:
        next    current step must be valid
        back    any step but the first
        cancel  terminal, discards the draft
        submit  last step only, terminal on success
    """

    def __init__(
        self,
        backend: ClusterBackend,
        notifier: Notifier | None = None,
        reconciler: MetadataReconciler | None = None,
        preselected_host_id: str | None = None,
    ):
        """Initialize the wizard.

        Args:
            backend: Cluster manager and metadata operations
            notifier: Receives the result of each submit attempt
            reconciler: Metadata merge and validation rules
            preselected_host_id: Host to select when the host table first loads
        """
        self.backend = backend
        self.notifier = notifier
        self.reconciler = reconciler or MetadataReconciler()
        self.preselected_host_id = preselected_host_id
        self.generation = 0
        self.finished = False
        self._reset()

    def _reset(self) -> None:
        self.draft = ClusterDraft()
        self.selection = NodeSelectionAccumulator(
            self.draft, preselected_host_id=self.preselected_host_id
        )
        self.step = NAME_STEP
        self._user_pairs: list[MetadataPair] = []
        self._metadata = self.reconciler.merge([], [], [])
        self._submitting = False

    def _ensure_open(self) -> None:
        if self.finished:
            raise WizardStateError("The wizard is closed", "Start a new cluster creation")

    def _ensure_current(self, generation: int) -> None:
        if generation != self.generation or self.finished:
            raise StaleResponseError(generation, self.generation)

    def _guarded(self, callback: Callable) -> Callable:
        """Bind a collaborator callback to the current draft lifetime."""
        generation = self.generation

        def guarded(*args, **kwargs):
            try:
                self._ensure_current(generation)
            except StaleResponseError as e:
                logger.warning(e.message)
                return None
            return callback(*args, **kwargs)

        return guarded

    # Draft editing

    def set_name(self, name: str) -> None:
        self._ensure_open()
        self.draft.name = name.strip()

    def set_template(self, template: str) -> None:
        """Set the composite ``<name>-v<version>`` template."""
        self._ensure_open()
        self.draft.template = template

    def choose_template(self, name: str, version: str) -> None:
        self.set_template(compose_template(name, version))

    def select_site(self, site: Site) -> None:
        """Store the chosen site and inherit its region and site metadata.

        Choosing a different site drops the hosts picked for the previous one.
        """
        self._ensure_open()
        previous = self.draft.selected_site
        if previous is not None and previous.resource_id != site.resource_id and self.draft.nodes:
            logger.info(
                f"Site changed from '{previous.resource_id}' to '{site.resource_id}', "
                f"clearing {len(self.draft.nodes)} selected host(s)"
            )
            self.selection.clear()
        self.draft.selected_site = site
        self._remerge()

    def select_host(self, host: Host, is_selected: bool) -> bool:
        self._ensure_open()
        return self.selection.select(host, is_selected)

    def update_role(self, host_id: str, role: str) -> bool:
        self._ensure_open()
        return self.selection.update_role(host_id, role)

    def set_user_labels(self, pairs) -> MergeResult:
        """Replace the user-entered metadata pairs.

        Args:
            pairs: List of pairs or a key/value mapping

        Returns:
            The merged and validated metadata
        """
        self._ensure_open()
        if isinstance(pairs, dict):
            pairs = [MetadataPair(key=k, value=v) for k, v in pairs.items()]
        self._user_pairs = [
            p if isinstance(p, MetadataPair) else MetadataPair(**p) for p in pairs
        ]
        self._remerge()
        return self._metadata

    def _remerge(self) -> None:
        site = self.draft.selected_site
        self._metadata = self.reconciler.merge(
            site.inherited_location if site else [],
            site.metadata if site else [],
            self._user_pairs,
        )
        self.draft.labels = self._metadata.labels()

    @property
    def metadata(self) -> MergeResult:
        return self._metadata

    # Collaborators

    def attach_site_tree(self, tree: SiteTreeProvider) -> None:
        tree.attach(on_site_selected=self._guarded(self.select_site))

    def attach_host_table(self, table: HostInventoryProvider) -> None:
        table.attach(
            selected_ids=self.selection.selected_ids,
            on_select=self._guarded(self.select_host),
            on_data_load=self._guarded(self.selection.on_data_load),
        )

    # Step gating

    def is_valid(self, index: int) -> bool:
        """Check whether a step allows moving forward."""
        if index == NAME_STEP:
            return bool(self.draft.name) and has_version_marker(self.draft.template)
        if index == SITE_STEP:
            site = self.draft.selected_site
            return site is not None and bool(site.resource_id)
        if index == HOSTS_STEP:
            return len(self.draft.nodes) > 0
        if index == METADATA_STEP:
            return not self._metadata.has_validation_error
        if index == REVIEW_STEP:
            return True
        raise IndexError(f"step {index} is out of range")

    @property
    def steps(self) -> list[WizardStepState]:
        return [
            WizardStepState(index=i, title=title, is_valid=self.is_valid(i))
            for i, title in enumerate(STEP_TITLES)
        ]

    @property
    def is_last_step(self) -> bool:
        return self.step == REVIEW_STEP

    @property
    def can_next(self) -> bool:
        return not self.finished and not self.is_last_step and self.is_valid(self.step)

    @property
    def can_back(self) -> bool:
        return not self.finished and self.step > NAME_STEP and not self._submitting

    @property
    def can_submit(self) -> bool:
        return not self.finished and self.is_last_step and not self._submitting

    def next(self) -> int:
        """Advance one step.

        Raises:
            WizardStateError: If the current step is invalid or the last one
        """
        self._ensure_open()
        if self.is_last_step:
            raise WizardStateError("Already on the last step", "Submit the cluster instead")
        if not self.is_valid(self.step):
            raise WizardStateError(f"Step '{STEP_TITLES[self.step]}' is not complete")
        self.step += 1
        logger.debug(f"Wizard moved to step {self.step} ({STEP_TITLES[self.step]})")
        return self.step

    def back(self) -> int:
        self._ensure_open()
        if not self.can_back:
            raise WizardStateError("Cannot go back from the first step")
        self.step -= 1
        logger.debug(f"Wizard moved back to step {self.step} ({STEP_TITLES[self.step]})")
        return self.step

    def cancel(self) -> None:
        """Discard the draft and all step state.

        Requests already in flight keep running; their responses are dropped.
        """
        logger.info(f"Cluster creation cancelled at step {self.step}")
        self.generation += 1
        self._reset()
        self.finished = True

    # Submission

    def _notify(self, outcome: AggregateOutcome) -> AggregateOutcome:
        if self.notifier is not None:
            self.notifier.notify(outcome)
        return outcome

    async def submit(self) -> AggregateOutcome:
        """Create the cluster, then store its metadata.

        A failed create keeps the wizard on the review step with the draft
        intact. A failed metadata store is only a warning because the
        cluster already exists.

        Returns:
            The outcome shown to the user, ``noop`` if the draft was
            cancelled while the requests were in flight

        Raises:
            WizardStateError: If not on the last step, already submitting,
                or an earlier step became invalid
        """
        self._ensure_open()
        if not self.is_last_step:
            raise WizardStateError("Submit is only available on the review step")
        if self._submitting:
            raise WizardStateError("A submission is already in progress")
        invalid = [s.title for s in self.steps if not s.is_valid]
        if invalid:
            raise WizardStateError("Cluster draft is incomplete", ", ".join(invalid))

        generation = self.generation
        cluster_spec = self.draft.to_cluster_spec()
        metadata = self._metadata.metadata_list()
        self._submitting = True
        logger.info(f"Creating cluster '{self.draft.name}' with {len(self.draft.nodes)} node(s)")

        try:
            try:
                await self.backend.create_cluster(cluster_spec)
            except Exception as e:
                self._ensure_current(generation)
                self._submitting = False
                logger.error(f"Failed to create cluster '{cluster_spec['name']}': {e}")
                detail = error_detail(e)
                message = f"{CREATE_FAILED_MESSAGE}: {detail}" if detail else CREATE_FAILED_MESSAGE
                return self._notify(AggregateOutcome(status="failure", message=message))
            self._ensure_current(generation)

            try:
                await self.backend.create_or_update_metadata(metadata)
            except Exception as e:
                self._ensure_current(generation)
                logger.warning(f"Cluster '{cluster_spec['name']}' created, metadata failed: {e}")
                outcome = AggregateOutcome(
                    status="warning", message=METADATA_WARNING_MESSAGE, navigate=True
                )
            else:
                self._ensure_current(generation)
                logger.info(f"Cluster '{cluster_spec['name']}' created")
                outcome = AggregateOutcome(status="success", message=CREATED_MESSAGE, navigate=True)
        except StaleResponseError as e:
            logger.warning(f"{e.message} ({e.details})")
            return AggregateOutcome(status="noop")

        self._reset()
        self.finished = True
        return self._notify(outcome)
