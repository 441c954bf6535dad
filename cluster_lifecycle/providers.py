"""Interfaces of the host table and site tree the controller listens to.

The concrete table and tree are injected. The static implementations below
serve hosts and sites loaded from a file, for the CLI and for tests.
"""

from collections.abc import Callable
from typing import Protocol

from cluster_lifecycle.logging_config import get_logger
from cluster_lifecycle.models.node import Host
from cluster_lifecycle.models.site import Site

logger = get_logger(__name__)

SelectCallback = Callable[[Host, bool], object]
DataLoadCallback = Callable[[list[Host]], object]
SiteCallback = Callable[[Site], object]


class HostInventoryProvider(Protocol):
    """Producer of host selection events and an initial host list."""

    def attach(
        self,
        selected_ids: set[str],
        on_select: SelectCallback,
        on_data_load: DataLoadCallback,
    ) -> None: ...


class SiteTreeProvider(Protocol):
    """Producer of site selection events."""

    def attach(self, on_site_selected: SiteCallback) -> None: ...


class StaticHostInventory:
    """HostInventoryProvider over a fixed list of hosts."""

    def __init__(self, hosts: list[Host]):
        self.hosts = list(hosts)
        self._on_select: SelectCallback | None = None

    def attach(
        self,
        selected_ids: set[str],
        on_select: SelectCallback,
        on_data_load: DataLoadCallback,
    ) -> None:
        self._on_select = on_select
        logger.debug(f"Host table loaded {len(self.hosts)} hosts, {len(selected_ids)} preselected")
        on_data_load(list(self.hosts))

    def toggle(self, host_id: str, is_selected: bool = True) -> None:
        """Emit a selection event for a host, as a click on its row would."""
        if self._on_select is None:
            raise RuntimeError("host table is not attached")
        host = next(
            (h for h in self.hosts if host_id in (h.resource_id, h.uuid, h.name)), None
        )
        if host is None:
            raise KeyError(f"Host '{host_id}' is not in the host table")
        self._on_select(host, is_selected)


class StaticSiteTree:
    """SiteTreeProvider over a fixed list of sites."""

    def __init__(self, sites: list[Site]):
        self.sites = list(sites)
        self._on_site_selected: SiteCallback | None = None

    def attach(self, on_site_selected: SiteCallback) -> None:
        self._on_site_selected = on_site_selected

    def pick(self, site_id: str) -> None:
        """Emit a site selection event."""
        if self._on_site_selected is None:
            raise RuntimeError("site tree is not attached")
        site = next((s for s in self.sites if site_id in (s.resource_id, s.name)), None)
        if site is None:
            raise KeyError(f"Site '{site_id}' is not in the site tree")
        self._on_site_selected(site)
