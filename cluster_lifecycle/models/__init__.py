"""Data models for cluster drafts, nodes and sites."""

from cluster_lifecycle.models.cluster import (
    AggregateOutcome,
    ClusterDraft,
    DiffResult,
    OperationOutcome,
    PersistedClusterSnapshot,
    WizardStepState,
)
from cluster_lifecycle.models.node import Host, NodeSelection
from cluster_lifecycle.models.site import FieldError, MetadataPair, Site

__all__ = [
    "AggregateOutcome",
    "ClusterDraft",
    "DiffResult",
    "FieldError",
    "Host",
    "MetadataPair",
    "NodeSelection",
    "OperationOutcome",
    "PersistedClusterSnapshot",
    "Site",
    "WizardStepState",
]
