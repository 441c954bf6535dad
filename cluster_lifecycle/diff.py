"""Change detection between a persisted cluster and an edited draft."""

from cluster_lifecycle.models.cluster import ClusterDraft, DiffResult, PersistedClusterSnapshot
from cluster_lifecycle.models.node import NodeSelection


def _host_ids(nodes) -> set[str]:
    return {node.host_id for node in nodes}


class ClusterDiffEngine:
    """Decides which facets of a cluster an edit actually touched.

    Comparisons are by value: label maps by content and node lists as sets of
    host ids, so copies and reorderings of unchanged data are not changes.
    """

    @staticmethod
    def template_changed(persisted: PersistedClusterSnapshot, draft: ClusterDraft) -> bool:
        # An empty draft template means the template was never touched
        return bool(draft.template) and draft.template != persisted.template

    @staticmethod
    def labels_changed(persisted: PersistedClusterSnapshot, draft: ClusterDraft) -> bool:
        return dict(draft.labels) != dict(persisted.labels)

    @staticmethod
    def nodes_changed(persisted: PersistedClusterSnapshot, draft: ClusterDraft) -> bool:
        return _host_ids(draft.nodes) != _host_ids(persisted.nodes)

    def diff(self, persisted: PersistedClusterSnapshot, draft: ClusterDraft) -> DiffResult:
        """Compare a snapshot with a draft.

        Args:
            persisted: Last confirmed backend state
            draft: Current edit draft

        Returns:
            DiffResult with one flag per facet
        """
        return DiffResult(
            template_changed=self.template_changed(persisted, draft),
            labels_changed=self.labels_changed(persisted, draft),
            nodes_changed=self.nodes_changed(persisted, draft),
        )

    @staticmethod
    def role_changes(
        persisted: PersistedClusterSnapshot, draft: ClusterDraft
    ) -> list[tuple[NodeSelection, NodeSelection]]:
        """List hosts present on both sides whose role differs.

        Returns:
            Pairs of (persisted node, draft node)
        """
        before = {node.host_id: node for node in persisted.nodes}
        return [
            (before[node.host_id], node)
            for node in draft.nodes
            if node.host_id in before and before[node.host_id].role != node.role
        ]
