"""Data models for cluster drafts, snapshots and save outcomes."""

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cluster_lifecycle.models.node import NodeSelection
from cluster_lifecycle.models.site import Site

Facet = Literal["template", "labels", "nodes"]
FACETS: list[str] = ["template", "labels", "nodes"]

# Greedy name, so the version starts at the last "-v<digit>"
TEMPLATE_PATTERN = re.compile(r"^(?P<name>.+)-(?P<version>v[0-9]\S*)$")


def has_version_marker(template: str | None) -> bool:
    """Check a composite template string is <name>-v<version>."""
    return bool(template) and TEMPLATE_PATTERN.match(template) is not None


def split_template(template: str) -> tuple[str, str]:
    """Split ``<name>-v<version>`` into ``(name, "v<version>")``.

    Raises:
        ValueError: If the template has no version marker
    """
    match = TEMPLATE_PATTERN.match(template or "")
    if match is None:
        raise ValueError(f"template '{template}' must look like '<name>-v<version>'")
    return match.group("name"), match.group("version")


def compose_template(name: str, version: str) -> str:
    """Build the composite template string from a name and a version."""
    version = version if version.startswith("v") else f"v{version}"
    return f"{name}-{version}"


def _check_unique_hosts(nodes: list[NodeSelection]) -> list[NodeSelection]:
    seen = set()
    for node in nodes:
        if node.host_id in seen:
            raise ValueError(f"host '{node.host_id}' appears more than once in nodes")
        seen.add(node.host_id)
    return nodes


class PersistedClusterSnapshot(BaseModel):
    """Last confirmed backend state of a cluster."""

    model_config = ConfigDict(frozen=True)

    name: str
    template: str = ""
    nodes: tuple[NodeSelection, ...] = ()
    labels: dict[str, str] = Field(default_factory=dict)

    @field_validator("nodes")
    @classmethod
    def validate_unique_nodes(cls, v: tuple[NodeSelection, ...]) -> tuple[NodeSelection, ...]:
        """Validate host ids are unique."""
        _check_unique_hosts(list(v))
        return v

    @classmethod
    def from_cluster_detail(cls, data: dict) -> "PersistedClusterSnapshot":
        """Parse from the cluster manager ClusterDetailInfo payload."""
        return cls(
            name=data.get("name") or "",
            template=data.get("template") or "",
            nodes=tuple(
                NodeSelection.from_node_info(n) for n in data.get("nodes") or [] if n.get("id")
            ),
            labels={str(k): str(v) for k, v in (data.get("labels") or {}).items()},
        )


class ClusterDraft(BaseModel):
    """In-memory, not yet persisted definition of a cluster."""

    name: str = ""
    template: str = ""
    selected_site: Site | None = None
    nodes: list[NodeSelection] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)

    @field_validator("nodes")
    @classmethod
    def validate_unique_nodes(cls, v: list[NodeSelection]) -> list[NodeSelection]:
        """Validate host ids are unique."""
        return _check_unique_hosts(v)

    @classmethod
    def from_snapshot(cls, snapshot: PersistedClusterSnapshot) -> "ClusterDraft":
        """Start an edit draft from a persisted snapshot."""
        return cls(
            name=snapshot.name,
            template=snapshot.template,
            nodes=[node.model_copy() for node in snapshot.nodes],
            labels=dict(snapshot.labels),
        )

    def to_cluster_spec(self) -> dict:
        """Convert to the cluster manager ClusterSpec payload."""
        return {
            "name": self.name,
            "template": self.template,
            "labels": dict(self.labels),
            "nodes": [node.to_node_spec() for node in self.nodes],
        }


class DiffResult(BaseModel):
    """Which facets differ between a snapshot and a draft."""

    template_changed: bool = False
    labels_changed: bool = False
    nodes_changed: bool = False

    @property
    def any_changed(self) -> bool:
        return self.template_changed or self.labels_changed or self.nodes_changed

    def changed_facets(self) -> list[str]:
        """Return the changed facets in dispatch order."""
        flags = {
            "template": self.template_changed,
            "labels": self.labels_changed,
            "nodes": self.nodes_changed,
        }
        return [facet for facet in FACETS if flags[facet]]


class OperationOutcome(BaseModel):
    """Result of one facet mutation."""

    facet: Facet
    ok: bool
    error_detail: str | None = None


class AggregateOutcome(BaseModel):
    """The single user-facing result of a submit or save attempt."""

    status: Literal["success", "warning", "failure", "noop"]
    message: str = ""
    navigate: bool = False


class WizardStepState(BaseModel):
    """Validity of one wizard step."""

    index: int
    title: str
    is_valid: bool = False
