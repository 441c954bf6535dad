"""Notification surface for submit and save results."""

from typing import Protocol

from rich.console import Console

from cluster_lifecycle.models.cluster import AggregateOutcome

_STYLES = {
    "success": ("green", "✓"),
    "warning": ("yellow", "⚠"),
    "failure": ("red", "✗"),
}


class Notifier(Protocol):
    """Receives exactly one outcome per submit or save attempt."""

    def notify(self, outcome: AggregateOutcome) -> None: ...


class ConsoleNotifier:
    """Renders outcomes as one line on a rich console."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def notify(self, outcome: AggregateOutcome) -> None:
        if outcome.status == "noop":
            return
        color, icon = _STYLES[outcome.status]
        self.console.print(f"[{color}]{icon}[/{color}] {outcome.message}")
