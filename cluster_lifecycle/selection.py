"""Host selection and role tracking for a cluster draft.

Hosts are picked in an externally owned host table. This module folds the
table's select/deselect events and per-host role edits into the draft's
deduplicated node list.
"""

from collections.abc import Iterable

from cluster_lifecycle.exceptions import NodeLockedError
from cluster_lifecycle.logging_config import get_logger
from cluster_lifecycle.models.cluster import ClusterDraft
from cluster_lifecycle.models.node import ROLE_ALL, Host, NodeSelection, normalize_role

logger = get_logger(__name__)


class NodeSelectionAccumulator:
    """Merges host selection events into ``draft.nodes``."""

    def __init__(
        self,
        draft: ClusterDraft,
        locked: Iterable[str] = (),
        preselected_host_id: str | None = None,
        persisted: Iterable[NodeSelection] = (),
    ):
        """Initialize the accumulator.

        Args:
            draft: Draft whose node list is owned by this accumulator
            locked: Host ids already part of the persisted cluster
            preselected_host_id: Host resource id to select on first data load
            persisted: Nodes of the persisted cluster; they are locked and keep
                their persisted role when deselected and selected again
        """
        self.draft = draft
        self._persisted_roles = {node.host_id: node.role for node in persisted}
        self._locked: set[str] = set(locked) | set(self._persisted_roles)
        self._preselected_host_id = preselected_host_id
        self._data_loaded = False

    @property
    def nodes(self) -> list[NodeSelection]:
        return list(self.draft.nodes)

    @property
    def selected_ids(self) -> set[str]:
        return {node.host_id for node in self.draft.nodes}

    def _find(self, host_id: str) -> NodeSelection | None:
        return next((n for n in self.draft.nodes if n.host_id == host_id), None)

    def select(self, host: Host, is_selected: bool) -> bool:
        """Add or remove a host.

        Selecting an already selected host and deselecting an absent one are
        no-ops. Deselecting drops the node together with its role. A locked
        host that is selected again gets its persisted role back.

        Returns:
            True if the node list changed
        """
        host_id = host.node_id
        current = self._find(host_id)

        if is_selected:
            if current is not None:
                logger.debug(f"Host '{host_id}' already selected")
                return False
            role = ROLE_ALL
            if host_id in self._locked:
                role = self._persisted_roles.get(host_id, ROLE_ALL)
            self.draft.nodes.append(NodeSelection(host_id=host_id, role=role))
            logger.debug(f"Selected host '{host_id}' as '{role}'")
            return True

        if current is None:
            return False
        self.draft.nodes = [n for n in self.draft.nodes if n.host_id != host_id]
        logger.debug(f"Deselected host '{host_id}'")
        return True

    # Host table callback name
    on_select = select

    def update_role(self, host_id: str, role: str) -> bool:
        """Change the role of a selected host.

        The wire spelling ``controlplane`` is accepted, and unrecognized
        roles fall back to ``all``.

        Returns:
            True if the role changed, False for unselected hosts

        Raises:
            NodeLockedError: If the host is locked
        """
        role = normalize_role(role)

        current = self._find(host_id)
        if current is None:
            logger.debug(f"Ignoring role edit for unselected host '{host_id}'")
            return False

        if host_id in self._locked:
            raise NodeLockedError(host_id)

        if current.role == role:
            return False
        current.role = role
        logger.debug(f"Host '{host_id}' role set to '{role}'")
        return True

    def lock(self, host_ids: Iterable[str]) -> None:
        """Mark hosts as pre-existing cluster members."""
        self._locked.update(host_ids)

    def unlock(self, host_id: str) -> None:
        self._locked.discard(host_id)

    def is_locked(self, host_id: str) -> bool:
        return host_id in self._locked

    def on_data_load(self, hosts: list[Host]) -> list[Host]:
        """Handle the host table's one-shot initial data callback.

        When a preselected host id is configured and nothing is selected yet,
        the matching host is selected. Otherwise the loaded hosts already in
        the draft are returned so the table can render them as checked.

        Returns:
            Loaded hosts that are selected after the call
        """
        if self._data_loaded:
            logger.debug("Ignoring repeated host data load")
            return [h for h in hosts if h.node_id in self.selected_ids]
        self._data_loaded = True

        if self._preselected_host_id and not self.draft.nodes:
            host = next((h for h in hosts if h.resource_id == self._preselected_host_id), None)
            if host is not None:
                logger.info(f"Preselecting host '{host.resource_id}'")
                self.select(host, True)
            else:
                logger.warning(
                    f"Preselected host '{self._preselected_host_id}' not found in loaded hosts"
                )

        selected = self.selected_ids
        return [h for h in hosts if h.node_id in selected]

    def would_remove_last_node(self, host_id: str) -> bool:
        """Check whether deselecting a host would leave the cluster empty."""
        return len(self.draft.nodes) == 1 and self.draft.nodes[0].host_id == host_id

    def clear(self) -> None:
        self.draft.nodes = []
        self._data_loaded = False
