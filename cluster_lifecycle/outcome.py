"""Reduction of per-facet outcomes into one user-facing result."""

from cluster_lifecycle.models.cluster import AggregateOutcome, OperationOutcome

CORE_FACETS = ("template", "nodes")

SUCCESS_MESSAGE = "Cluster updated, redirecting you back to the Clusters page..."
FAILURE_MESSAGE = "Failed to edit cluster, try again"
WARNING_MESSAGE = "Cluster updated. Failed to update metadata"


def _details(outcomes: list[OperationOutcome]) -> str:
    return "; ".join(f"{o.facet}: {o.error_detail}" if o.error_detail else o.facet for o in outcomes)


class OutcomeAggregator:
    """Maps a settled outcome set onto success, warning, failure or no-op.

    Rules, first match wins:

    1. A template or nodes failure is a failure. The user stays and retries Save.
    2. A labels failure next to a saved core facet is a warning. The core
       change landed, so navigation proceeds.
    3. A labels failure on its own is a failure, since labels were the only
       change requested.
    4. No outcomes at all is a no-op with no message.
    5. Anything else is a success.
    """

    def aggregate(self, outcomes: list[OperationOutcome]) -> AggregateOutcome:
        if not outcomes:
            return AggregateOutcome(status="noop")

        failed = [o for o in outcomes if not o.ok]
        core_failed = [o for o in failed if o.facet in CORE_FACETS]
        if core_failed:
            return AggregateOutcome(
                status="failure", message=f"{FAILURE_MESSAGE}: {_details(failed)}"
            )

        if failed:
            core_saved = any(o.ok and o.facet in CORE_FACETS for o in outcomes)
            if core_saved:
                return AggregateOutcome(
                    status="warning",
                    message=f"{WARNING_MESSAGE}: {_details(failed)}",
                    navigate=True,
                )
            return AggregateOutcome(
                status="failure", message=f"{FAILURE_MESSAGE}: {_details(failed)}"
            )

        return AggregateOutcome(status="success", message=SUCCESS_MESSAGE, navigate=True)
