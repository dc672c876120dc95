import logging
from pathlib import Path

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shipctl import registry
from shipctl.config import Config
from shipctl.errors import ConfigurationError, NotReadyError, ProvisionError
from shipctl.models import ClusterRecord

app = typer.Typer(help="Cluster derivation and control plane provisioning")
console = Console()
logger = logging.getLogger("shipctl.commands.cluster")

STATUS_STYLE = {"True": "green", "False": "red", "Unknown": "yellow"}


def load_cluster_file(path: Path) -> ClusterRecord:
    """Parse a cluster YAML file into a record."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return ClusterRecord.model_validate(data)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"cannot read {path}: {e}")
    except ValidationError as e:
        raise ConfigurationError(f"invalid cluster file {path}: {e}")


def conditions_table(title: str, conditions) -> Table:
    table = Table(title=title)
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Reason")
    table.add_column("Message", overflow="fold")
    for condition in conditions:
        status = condition.status.value
        table.add_row(condition.type, f"[{STATUS_STYLE[status]}]{status}[/]", condition.reason, escape(condition.message))
    return table


def fail(e: ProvisionError) -> None:
    console.print(f"[red]❌ {escape(str(e))}[/red]")
    raise typer.Exit(code=1)


@app.command("derive")
def derive(
    file: Path = typer.Option(..., "--file", "-f", exists=True, help="Cluster YAML file"),
):
    """Register a cluster and derive its networking, addresses and credentials."""
    from shipctl.modules.complete import ensure_cluster_complete

    try:
        record = load_cluster_file(file)
        existing = registry.load_registry().get(record.name)
        if existing:
            # Keep issued credentials and status across re-derivation.
            previous = ClusterRecord.model_validate(existing)
            record.credential = previous.credential
            record.status.conditions = previous.status.conditions
        ensure_cluster_complete(record)
    except ProvisionError as e:
        fail(e)
    registry.save_cluster(record)
    status = record.status
    console.print(f"✅ Cluster [bold]{record.name}[/bold] derived")
    console.print(f"   service CIDR: {status.service_cidr}  node mask: /{status.node_cidr_mask_size}  DNS: {status.dns_ip}")
    for address in status.addresses:
        console.print(f"   {address.type.value:<9} {address.host}:{address.port}")


@app.command("provision")
def provision(
    name: str = typer.Option(..., "--name", "-n", help="Cluster name"),
    kubeconfig: str = typer.Option(None, help="Management cluster kubeconfig"),
    force_certs: bool = typer.Option(False, help="Reissue certificates and kubeconfigs"),
    timeout: int = typer.Option(Config.PASS_TIMEOUT, help="Deadline for the whole pass in seconds"),
):
    """Run the cluster phases once: certificates, control plane and addons."""
    from shipctl.modules.provision import build_cluster_provider, notify
    from shipctl.modules.provider.pipeline import PhaseContext

    try:
        record = registry.get_cluster(name)
        provider = build_cluster_provider(kubeconfig)
    except ProvisionError as e:
        fail(e)
    ctx = PhaseContext.with_timeout(timeout, force_certs=force_certs)
    try:
        provider.on_create(record, ctx)
    except ProvisionError as e:
        notify(f"[shipctl] cluster {name} failed at {e.phase}: {e.message}")
        fail(e)
    finally:
        registry.save_cluster(record)
    notify(f"[shipctl] cluster {name} provisioned")
    console.print(conditions_table(f"Cluster {name}", provider.conditions(record)))


@app.command("regenerate-credential")
def regenerate_credential(
    name: str = typer.Option(..., "--name", "-n", help="Cluster name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Rotate the cluster token, bootstrap token and certificate key."""
    from shipctl.modules.complete import regenerate_credential as regenerate

    if not yes:
        typer.confirm(f"Rotate credentials of cluster {name}? Joined nodes keep working "
                      f"but node kubeconfigs must be reinstalled", abort=True)
    try:
        record = registry.get_cluster(name)
    except ProvisionError as e:
        fail(e)
    regenerate(record)
    registry.save_cluster(record)
    console.print(f"🔑 Credentials of {name} regenerated; run 'shipctl cluster provision -n {name}'")


@app.command("endpoint")
def endpoint(
    name: str = typer.Option(..., "--name", "-n", help="Cluster name"),
):
    """Print the API server endpoint nodes join through."""
    from shipctl.modules.endpoint import get_join_endpoint

    try:
        record = registry.get_cluster(name)
        typer.echo(get_join_endpoint(record))
    except ProvisionError as e:
        fail(e)


@app.command("conditions")
def conditions(
    name: str = typer.Option(..., "--name", "-n", help="Cluster name"),
):
    """Show the outcome of every cluster phase."""
    from shipctl.modules.provider.pipeline import condition_report
    from shipctl.modules.provider.cluster import ClusterProvider

    try:
        record = registry.get_cluster(name)
    except ProvisionError as e:
        fail(e)
    steps = ClusterProvider(config=None, management_store=None).steps
    console.print(conditions_table(f"Cluster {name}", condition_report(record.status.conditions, steps)))


@app.command("nodes")
def nodes(
    name: str = typer.Option(..., "--name", "-n", help="Cluster name"),
):
    """Count master and worker nodes registered in the cluster."""
    from shipctl.modules.kube import count_nodes
    from shipctl.modules.provision import _cluster_manager

    try:
        record = registry.get_cluster(name)
        counts = count_nodes(_cluster_manager.get(record).core_v1)
    except NotReadyError as e:
        logger.debug(f"Cluster {name} not ready: {e}")
        counts = {"masters": 0, "workers": 0, "total": 0}
    except ProvisionError as e:
        fail(e)
    console.print(f"{name}: {counts['total']} node(s) ({counts['masters']} master, {counts['workers']} worker)")


@app.command("list")
def list_clusters():
    """List registered clusters."""
    table = Table(title="Clusters")
    for column in ("Name", "Version", "Phase", "Machines", "Service CIDR"):
        table.add_column(column)
    for record in registry.list_clusters():
        table.add_row(record.name, record.status.version or record.spec.version, record.status.phase,
                      str(len(record.spec.machines)), record.status.service_cidr or "-")
    console.print(table)
