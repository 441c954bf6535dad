"""Main CLI entry point for the cluster lifecycle controller."""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from cluster_lifecycle.api import ClusterManagerClient
from cluster_lifecycle.config import ConsoleConfig
from cluster_lifecycle.exceptions import ApiError, ClusterLifecycleError, ValidationError
from cluster_lifecycle.logging_config import get_logger, setup_logging
from cluster_lifecycle.metadata import MergeResult, MetadataReconciler
from cluster_lifecycle.models.cluster import DiffResult
from cluster_lifecycle.models.node import ROLE_ALL, Host, normalize_role
from cluster_lifecycle.models.site import Site
from cluster_lifecycle.notifications import ConsoleNotifier

app = typer.Typer(
    name="cluster-lifecycle",
    help="Create and edit clusters: host membership, roles, templates and metadata",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to configuration file")
API_URL_OPTION = typer.Option(None, "--api-url", help="Cluster manager API URL")
PROJECT_OPTION = typer.Option(None, "--project", "-p", help="Project name")


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    logger.debug("Logging initialized")


def read_draft_file(path: str) -> dict:
    """Read a YAML cluster definition.

    Expected keys: ``name``, ``template``, ``site``, ``hosts`` (list of
    ``{resourceId, uuid, name, role}``) and ``labels``; all optional.
    """
    draft_path = Path(path)
    if not draft_path.exists():
        raise ClusterLifecycleError(f"Draft file not found: {path}")
    try:
        with open(draft_path) as f:
            data = YAML(typ="safe").load(f) or {}
    except YAMLError as e:
        raise ClusterLifecycleError(f"Failed to parse draft file: {path}", str(e))
    if not isinstance(data, dict):
        raise ClusterLifecycleError(f"Draft file must contain a mapping: {path}")
    return data


def _hosts_from_draft(data: dict) -> list[tuple[Host, str]]:
    hosts = []
    for entry in data.get("hosts") or []:
        if isinstance(entry, str):
            entry = {"resourceId": entry}
        host = Host(
            resource_id=entry.get("resourceId") or entry["id"],
            uuid=entry.get("uuid"),
            name=entry.get("name"),
        )
        hosts.append((host, normalize_role(entry.get("role"))))
    return hosts


def _load_config(config_path, api_url, project) -> ConsoleConfig:
    return ConsoleConfig.load(config_path, api_url=api_url, project_name=project)


def _print_metadata_errors(result: MergeResult) -> None:
    for error in result.errors:
        pair = result.user[error.index]
        console.print(f"  - label '{pair.key}' {error.field}: {error.message}")


def _print_diff(name: str, diff: DiffResult) -> None:
    table = Table(title=f"Changes for cluster '{name}'")
    table.add_column("Facet", style="cyan")
    table.add_column("Changed", style="magenta")
    for facet, changed in (
        ("template", diff.template_changed),
        ("labels", diff.labels_changed),
        ("nodes", diff.nodes_changed),
    ):
        table.add_row(facet, "[yellow]yes[/yellow]" if changed else "no")
    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    from cluster_lifecycle import __version__

    typer.echo(f"cluster-lifecycle version {__version__}")


@app.command()
def create(
    draft_file: str = typer.Argument(..., help="YAML file describing the new cluster"),
    host_id: str | None = typer.Option(
        None, "--host-id", help="Host resource id to preselect when the host list loads"
    ),
    config_path: str | None = CONFIG_OPTION,
    api_url: str | None = API_URL_OPTION,
    project: str | None = PROJECT_OPTION,
) -> None:
    """
    Create a cluster by walking the creation wizard.

    Each wizard step is filled from the draft file and must be valid before
    the next one is reached. The last step creates the cluster and stores its
    deployment metadata.
    """
    from cluster_lifecycle.providers import StaticHostInventory, StaticSiteTree
    from cluster_lifecycle.wizard import STEP_TITLES, WizardController

    async def run(config: ConsoleConfig, data: dict):
        async with ClusterManagerClient.from_config(config) as client:
            wizard = WizardController(
                client,
                notifier=ConsoleNotifier(console),
                reconciler=MetadataReconciler(config.label_precedence),
                preselected_host_id=host_id,
            )

            wizard.set_name(str(data.get("name") or ""))
            wizard.set_template(str(data.get("template") or ""))
            wizard.next()

            if data.get("site"):
                site = Site.from_api_dict(data["site"])
                tree = StaticSiteTree([site])
                wizard.attach_site_tree(tree)
                tree.pick(site.resource_id)
            wizard.next()

            hosts = _hosts_from_draft(data)
            table = StaticHostInventory([host for host, _ in hosts])
            wizard.attach_host_table(table)
            for host, role in hosts:
                table.toggle(host.resource_id, True)
                if role != ROLE_ALL:
                    wizard.update_role(host.node_id, role)
            wizard.next()

            result = wizard.set_user_labels(
                {str(k): str(v) for k, v in (data.get("labels") or {}).items()}
            )
            if result.has_validation_error:
                console.print(f"[red]Error:[/red] Step '{STEP_TITLES[wizard.step]}' has errors:")
                _print_metadata_errors(result)
                raise typer.Exit(code=1)
            wizard.next()

            return await wizard.submit()

    try:
        config = _load_config(config_path, api_url, project)
        data = read_draft_file(draft_file)
        outcome = asyncio.run(run(config, data))
    except ClusterLifecycleError as e:
        logger.error(f"Cluster creation failed: {e.message}")
        console.print(f"[red]Error:[/red] {e.message}")
        if e.details:
            console.print(f"\n{e.details}")
        raise typer.Exit(code=1)

    if outcome.status == "failure":
        raise typer.Exit(code=1)


def _apply_edits(session, data: dict) -> None:
    if data.get("template"):
        session.set_template(str(data["template"]))

    if "labels" in data:
        result = session.set_labels(
            {str(k): str(v) for k, v in (data.get("labels") or {}).items()}
        )
        if result.has_validation_error:
            console.print("[red]Validation Error:[/red]")
            _print_metadata_errors(result)
            raise typer.Exit(code=1)

    if "hosts" in data:
        wanted = _hosts_from_draft(data)
        wanted_ids = {host.node_id for host, _ in wanted}
        for host, role in wanted:
            session.add_host(host)
            if session.selection.is_locked(host.node_id):
                current = next(n for n in session.draft.nodes if n.host_id == host.node_id)
                if current.role != role:
                    console.print(
                        f"[yellow]Warning:[/yellow] Role of existing host '{host.node_id}' "
                        "cannot be changed, keeping "
                        f"'{current.role}'"
                    )
            else:
                session.update_role(host.node_id, role)
        # Removals go last so a cluster can swap all of its hosts
        for node in list(session.draft.nodes):
            if node.host_id not in wanted_ids:
                warning = session.remove_host(Host(resource_id=node.host_id))
                if warning is not None:
                    raise typer.Exit(code=1)


@app.command()
def edit(
    cluster_name: str = typer.Argument(..., help="Name of the cluster to edit"),
    draft_file: str = typer.Argument(..., help="YAML file with the edited fields"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the changes without saving"),
    config_path: str | None = CONFIG_OPTION,
    api_url: str | None = API_URL_OPTION,
    project: str | None = PROJECT_OPTION,
) -> None:
    """
    Edit an existing cluster.

    Only the fields present in the draft file are changed. Template, labels
    and node membership are saved independently; a failed label update after
    a successful template or node update is reported as a warning.
    """
    from cluster_lifecycle.edit import EditSession

    async def run(config: ConsoleConfig, data: dict):
        async with ClusterManagerClient.from_config(config) as client:
            site = Site.from_api_dict(data["site"]) if data.get("site") else None
            session = await EditSession.open(
                client,
                cluster_name,
                notifier=ConsoleNotifier(console),
                reconciler=MetadataReconciler(config.label_precedence),
                site=site,
            )
            _apply_edits(session, data)
            diff = session.diff
            _print_diff(cluster_name, diff)
            if dry_run:
                return None
            if not diff.any_changed:
                console.print("Nothing to save")
            return await session.save()

    try:
        config = _load_config(config_path, api_url, project)
        data = read_draft_file(draft_file)
        outcome = asyncio.run(run(config, data))
    except ValidationError as e:
        console.print(f"[red]Validation Error:[/red] {e.message}")
        if e.details:
            console.print(f"  {e.details}")
        raise typer.Exit(code=1)
    except ClusterLifecycleError as e:
        logger.error(f"Editing cluster '{cluster_name}' failed: {e.message}")
        if isinstance(e, ApiError) and e.not_found:
            console.print(f"[red]Error:[/red] Cluster '{cluster_name}' does not exist")
            console.print(f"\n{e.user_message}")
            raise typer.Exit(code=1)
        console.print(f"[red]Error:[/red] {e.message}")
        if e.details:
            console.print(f"\n{e.details}")
        raise typer.Exit(code=1)

    if outcome is not None and outcome.status == "failure":
        raise typer.Exit(code=1)


@app.command()
def config_show(
    config_path: str | None = CONFIG_OPTION,
    api_url: str | None = API_URL_OPTION,
    project: str | None = PROJECT_OPTION,
) -> None:
    """Show the effective configuration."""
    from rich.json import JSON

    try:
        config = _load_config(config_path, api_url, project)
    except ClusterLifecycleError as e:
        console.print(f"[red]Configuration Error:[/red] {e.message}")
        if e.details:
            console.print(f"\n{e.details}")
        raise typer.Exit(code=1)

    console.print(JSON.from_data(config.model_dump()))


if __name__ == "__main__":
    app()
