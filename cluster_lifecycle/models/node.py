"""Data models for cluster node membership."""

from pydantic import BaseModel, field_validator

ROLE_ALL = "all"
ROLE_CONTROL_PLANE = "control-plane"
ROLE_WORKER = "worker"
ALLOWED_ROLES = [ROLE_ALL, ROLE_CONTROL_PLANE, ROLE_WORKER]

# The cluster manager API spells the control plane role without a hyphen
_WIRE_ROLES = {ROLE_CONTROL_PLANE: "controlplane"}
_ROLE_ALIASES = {"controlplane": ROLE_CONTROL_PLANE}


def normalize_role(role: str | None) -> str:
    """Map a raw role string onto one of the allowed roles.

    Missing or unrecognized roles fall back to ``all``.
    """
    if not role:
        return ROLE_ALL
    role = _ROLE_ALIASES.get(role, role)
    if role not in ALLOWED_ROLES:
        return ROLE_ALL
    return role


class Host(BaseModel):
    """A host row emitted by the host inventory provider."""

    resource_id: str
    uuid: str | None = None
    name: str | None = None
    site_id: str | None = None

    @property
    def node_id(self) -> str:
        """Identifier the cluster manager uses for this host."""
        return self.uuid or self.resource_id

    @property
    def display_name(self) -> str:
        return self.name or self.resource_id


class NodeSelection(BaseModel):
    """A host selected as cluster member, with its role."""

    host_id: str
    role: str = ROLE_ALL

    @field_validator("host_id")
    @classmethod
    def validate_host_id(cls, v: str) -> str:
        """Validate host_id is not empty."""
        if not v:
            raise ValueError("host_id cannot be empty")
        return v

    @field_validator("role", mode="before")
    @classmethod
    def validate_role(cls, v: str | None) -> str:
        """Default the role to 'all' when absent or unrecognized."""
        return normalize_role(v)

    def to_node_spec(self) -> dict:
        """Convert to the cluster manager NodeSpec format."""
        return {"id": self.host_id, "role": _WIRE_ROLES.get(self.role, self.role)}

    @classmethod
    def from_node_info(cls, data: dict) -> "NodeSelection":
        """Parse from a cluster manager NodeInfo entry."""
        return cls(host_id=data["id"], role=data.get("role"))
