import typer
from rich.console import Console
from rich.markup import escape

from shipctl import registry
from shipctl.commands.cluster import conditions_table, fail
from shipctl.config import Config
from shipctl.errors import ConfigurationError, ProvisionError

app = typer.Typer(help="Machine bootstrap over SSH")
console = Console()


def require_machine(record, ip: str):
    machine = record.machine(ip)
    if machine is None:
        raise ConfigurationError(f"machine {ip} is not part of cluster {record.name}")
    return machine


@app.command("provision")
def provision(
    cluster: str = typer.Option(..., "--cluster", "-c", help="Cluster name"),
    ip: str = typer.Option(None, "--ip", help="Only this machine (default: all machines of the cluster)"),
    parallel: int = typer.Option(1, "--parallel", "-p", min=1, help="Machines bootstrapped at once"),
    reset: bool = typer.Option(False, "--reset", help="Wipe /etc/kubernetes and rejoin"),
    timeout: int = typer.Option(Config.PASS_TIMEOUT, help="Deadline for the whole pass in seconds"),
):
    """Join machines to a provisioned cluster."""
    from shipctl.modules.provider.pipeline import PhaseContext
    from shipctl.modules.provision import build_machine_provider, provision_machines

    try:
        record = registry.get_cluster(cluster)
        provider = build_machine_provider()
        machines = [require_machine(record, ip)] if ip else list(record.spec.machines)
    except ProvisionError as e:
        fail(e)
    if not machines:
        console.print(f"⚠️ Cluster {cluster} has no machines")
        return

    console.print(f"🚀 Provisioning {len(machines)} machine(s) of {cluster}")
    ctx = PhaseContext.with_timeout(timeout, reset=reset)
    results = provision_machines(provider, record, machines, parallel=parallel, ctx=ctx)
    registry.save_cluster(record)

    for machine in machines:
        error = results.get(machine.ip)
        if error:
            console.print(f"[red]❌ {machine.ip}: {escape(str(error))}[/red]")
        else:
            console.print(f"[green]✅ {machine.ip}: {machine.status.phase}[/green]")
    if any(results.values()):
        raise typer.Exit(code=1)


@app.command("conditions")
def conditions(
    cluster: str = typer.Option(..., "--cluster", "-c", help="Cluster name"),
    ip: str = typer.Option(..., "--ip", help="Machine IP"),
):
    """Show the outcome of every machine phase."""
    from shipctl.modules.provider.machine import MachineProvider

    try:
        machine = require_machine(registry.get_cluster(cluster), ip)
    except ProvisionError as e:
        fail(e)
    provider = MachineProvider(config=None)
    console.print(conditions_table(f"Machine {ip}", provider.conditions(machine)))
