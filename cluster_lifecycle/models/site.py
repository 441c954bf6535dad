"""Data models for sites and their metadata."""

from typing import Literal

from pydantic import BaseModel, Field

MetadataOrigin = Literal["region", "site", "user"]


class MetadataPair(BaseModel):
    """A key/value metadata pair and where it came from."""

    key: str
    value: str
    origin: MetadataOrigin = "user"

    @property
    def editable(self) -> bool:
        """Only user-entered pairs can be edited."""
        return self.origin == "user"

    def to_api_dict(self) -> dict:
        return {"key": self.key, "value": self.value}


class FieldError(BaseModel):
    """A validation error attached to one field of one user metadata pair."""

    index: int
    field: Literal["key", "value"]
    message: str


class Site(BaseModel):
    """A site picked from the region/site tree."""

    resource_id: str
    name: str | None = None
    region: str | None = None
    metadata: list[MetadataPair] = Field(default_factory=list)
    inherited_location: list[MetadataPair] = Field(default_factory=list)

    @classmethod
    def from_api_dict(cls, data: dict) -> "Site":
        """Parse from the inventory API site payload.

        Only ``region``, ``metadata`` and ``inheritedMetadata.location`` are read.
        """
        region = data.get("region") or {}
        inherited = data.get("inheritedMetadata") or {}
        return cls(
            resource_id=data.get("resourceId") or data.get("siteID") or "",
            name=data.get("name"),
            region=region.get("resourceId") if isinstance(region, dict) else region,
            metadata=[
                MetadataPair(key=m["key"], value=m["value"], origin="site")
                for m in data.get("metadata") or []
            ],
            inherited_location=[
                MetadataPair(key=m["key"], value=m["value"], origin="region")
                for m in inherited.get("location") or []
            ],
        )
