"""Concurrent dispatch of per-facet cluster mutations."""

import asyncio

from cluster_lifecycle.api import ClusterBackend
from cluster_lifecycle.exceptions import ClusterLifecycleError
from cluster_lifecycle.logging_config import get_logger
from cluster_lifecycle.models.cluster import ClusterDraft, DiffResult, OperationOutcome

logger = get_logger(__name__)


def error_detail(error: BaseException) -> str:
    """Best user-facing text for a failed backend call."""
    if isinstance(error, ClusterLifecycleError):
        return error.user_message
    return str(error) or type(error).__name__


class MutationDispatcher:
    """Issues one backend call per changed facet and settles them all.

    The calls for template, labels and nodes are started together. A failing
    facet neither cancels nor delays the others, and nothing is retried.
    """

    def __init__(self, backend: ClusterBackend):
        self.backend = backend

    async def _update_labels(self, draft: ClusterDraft, metadata: list[dict] | None) -> None:
        calls = [self.backend.update_labels(draft.name, dict(draft.labels))]
        if metadata is not None:
            calls.append(self.backend.create_or_update_metadata(metadata))
        results = await asyncio.gather(*calls, return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            raise ClusterLifecycleError(
                "Label update failed", "; ".join(error_detail(f) for f in failures)
            )

    def _facet_call(self, facet: str, draft: ClusterDraft, metadata: list[dict] | None):
        if facet == "template":
            return self.backend.update_template(draft.name, draft.template)
        if facet == "labels":
            return self._update_labels(draft, metadata)
        return self.backend.update_nodes(draft.name, list(draft.nodes))

    async def dispatch(
        self, draft: ClusterDraft, diff: DiffResult, metadata: list[dict] | None = None
    ) -> list[OperationOutcome]:
        """Fire the mutations for every changed facet.

        Args:
            draft: Edited cluster definition
            diff: Facets that changed relative to the persisted snapshot
            metadata: Pairs to store in the metadata service along with labels

        Returns:
            One outcome per changed facet, available only once all have settled
        """
        facets = diff.changed_facets()
        if not facets:
            logger.debug(f"No changes to dispatch for cluster '{draft.name}'")
            return []

        logger.info(f"Dispatching {', '.join(facets)} update(s) for cluster '{draft.name}'")
        results = await asyncio.gather(
            *(self._facet_call(facet, draft, metadata) for facet in facets),
            return_exceptions=True,
        )

        outcomes = []
        for facet, result in zip(facets, results):
            if isinstance(result, BaseException):
                detail = error_detail(result)
                logger.error(f"Cluster '{draft.name}' {facet} update failed: {detail}")
                outcomes.append(OperationOutcome(facet=facet, ok=False, error_detail=detail))
            else:
                logger.debug(f"Cluster '{draft.name}' {facet} update succeeded")
                outcomes.append(OperationOutcome(facet=facet, ok=True))
        return outcomes
