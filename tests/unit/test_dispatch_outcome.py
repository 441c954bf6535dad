"""Unit tests for mutation dispatch and outcome aggregation."""

import asyncio

import pytest

from cluster_lifecycle.diff import ClusterDiffEngine
from cluster_lifecycle.dispatch import MutationDispatcher
from cluster_lifecycle.exceptions import ApiError
from cluster_lifecycle.models.cluster import (
    AggregateOutcome,
    ClusterDraft,
    DiffResult,
    OperationOutcome,
    PersistedClusterSnapshot,
)
from cluster_lifecycle.models.node import NodeSelection
from cluster_lifecycle.outcome import (
    FAILURE_MESSAGE,
    SUCCESS_MESSAGE,
    WARNING_MESSAGE,
    OutcomeAggregator,
)


@pytest.fixture
def draft(snapshot):
    return ClusterDraft.from_snapshot(snapshot)


def test_identical_snapshot_and_draft_is_a_noop(backend):
    """Diff, dispatch and aggregate all agree that nothing happened."""
    snapshot = PersistedClusterSnapshot(
        name="c1", template="tpl-v1", nodes=(NodeSelection(host_id="h1", role="all"),)
    )
    draft = ClusterDraft(
        name="c1", template="tpl-v1", nodes=[NodeSelection(host_id="h1", role="all")]
    )

    diff = ClusterDiffEngine().diff(snapshot, draft)
    outcomes = asyncio.run(MutationDispatcher(backend).dispatch(draft, diff))

    assert diff == DiffResult(template_changed=False, labels_changed=False, nodes_changed=False)
    assert outcomes == []
    assert backend.calls == []
    assert OutcomeAggregator().aggregate(outcomes) == AggregateOutcome(status="noop")


def test_diff_ignores_empty_template_and_node_order(snapshot):
    draft = ClusterDraft.from_snapshot(snapshot)
    draft.template = ""
    draft.nodes.reverse()

    diff = ClusterDiffEngine().diff(snapshot, draft)

    assert not diff.any_changed


def test_role_changes_are_reported_without_node_change(snapshot):
    draft = ClusterDraft.from_snapshot(snapshot)
    draft.nodes[1].role = "all"
    engine = ClusterDiffEngine()

    assert not engine.nodes_changed(snapshot, draft)
    changes = engine.role_changes(snapshot, draft)
    assert [(before.role, after.role) for before, after in changes] == [("worker", "all")]


async def test_dispatch_one_call_per_changed_facet(backend, draft):
    draft.template = "baseline-v0.2.0"
    diff = DiffResult(template_changed=True)

    outcomes = await MutationDispatcher(backend).dispatch(draft, diff)

    assert outcomes == [OperationOutcome(facet="template", ok=True)]
    assert backend.calls == [("update_template", "edge-1", "baseline-v0.2.0")]


async def test_failing_facet_does_not_stop_the_others(backend, draft):
    backend.failures["update_template"] = ApiError("PUT template returned 400", "bad version")
    diff = DiffResult(template_changed=True, labels_changed=True, nodes_changed=True)

    outcomes = await MutationDispatcher(backend).dispatch(draft, diff)

    assert [(o.facet, o.ok) for o in outcomes] == [
        ("template", False),
        ("labels", True),
        ("nodes", True),
    ]
    assert outcomes[0].error_detail == "bad version"
    assert len(backend.called("update_labels")) == 1
    assert len(backend.called("update_nodes")) == 1


async def test_labels_facet_stores_metadata(backend, draft):
    metadata = [{"key": "env", "value": "prod"}]

    outcomes = await MutationDispatcher(backend).dispatch(
        draft, DiffResult(labels_changed=True), metadata=metadata
    )

    assert outcomes == [OperationOutcome(facet="labels", ok=True)]
    assert backend.called("create_or_update_metadata") == [(metadata,)]


async def test_metadata_failure_fails_the_labels_facet(backend, draft):
    backend.failures["create_or_update_metadata"] = ApiError("POST metadata returned 503")

    outcomes = await MutationDispatcher(backend).dispatch(
        draft, DiffResult(labels_changed=True), metadata=[]
    )

    assert outcomes[0].ok is False
    assert "POST metadata returned 503" in outcomes[0].error_detail
    assert len(backend.called("update_labels")) == 1


@pytest.mark.parametrize(
    "outcomes,status,navigate",
    [
        ([], "noop", False),
        ([OperationOutcome(facet="labels", ok=True)], "success", True),
        (
            [OperationOutcome(facet="nodes", ok=True), OperationOutcome(facet="labels", ok=True)],
            "success",
            True,
        ),
        ([OperationOutcome(facet="labels", ok=False, error_detail="down")], "failure", False),
        (
            [
                OperationOutcome(facet="nodes", ok=True),
                OperationOutcome(facet="labels", ok=False, error_detail="down"),
            ],
            "warning",
            True,
        ),
        (
            [
                OperationOutcome(facet="template", ok=False, error_detail="bad"),
                OperationOutcome(facet="labels", ok=False, error_detail="down"),
            ],
            "failure",
            False,
        ),
        (
            [
                OperationOutcome(facet="nodes", ok=False, error_detail="busy"),
                OperationOutcome(facet="template", ok=True),
            ],
            "failure",
            False,
        ),
    ],
)
def test_aggregate_priority(outcomes, status, navigate):
    result = OutcomeAggregator().aggregate(outcomes)

    assert result.status == status
    assert result.navigate is navigate


def test_aggregate_messages():
    aggregator = OutcomeAggregator()

    assert aggregator.aggregate([OperationOutcome(facet="nodes", ok=True)]).message == (
        SUCCESS_MESSAGE
    )
    assert aggregator.aggregate([]).message == ""

    warning = aggregator.aggregate(
        [
            OperationOutcome(facet="template", ok=True),
            OperationOutcome(facet="labels", ok=False, error_detail="label store down"),
        ]
    )
    assert warning.message == f"{WARNING_MESSAGE}: labels: label store down"

    failure = aggregator.aggregate(
        [OperationOutcome(facet="nodes", ok=False, error_detail="host busy")]
    )
    assert failure.message == f"{FAILURE_MESSAGE}: nodes: host busy"
