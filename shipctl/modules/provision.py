"""Wiring of providers for one provisioning pass."""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional

from shipctl.config import Config
from shipctl.errors import ProvisionError
from shipctl.models import ClusterRecord, Machine
from shipctl.modules.config import get_config
from shipctl.modules.kube import ClusterManager, KubeStore, load_kubeconfig
from shipctl.modules.provider.cluster import ClusterProvider
from shipctl.modules.provider.machine import MachineProvider
from shipctl.modules.provider.pipeline import PhaseContext
from shipctl.utils.notify import send_slack_alert

logger = logging.getLogger("shipctl.provision")

_cluster_manager = ClusterManager()


def build_cluster_provider(kubeconfig: Optional[str] = None, config=None) -> ClusterProvider:
    config = config or get_config(Config.PROVIDER_CONFIG or None)
    store = KubeStore(load_kubeconfig(kubeconfig or Config.MANAGEMENT_KUBECONFIG or None))
    return ClusterProvider(config, store, _cluster_manager)


def build_machine_provider(config=None) -> MachineProvider:
    config = config or get_config(Config.PROVIDER_CONFIG or None)
    return MachineProvider(config, _cluster_manager)


def notify(message: str) -> None:
    if Config.SLACK_WEBHOOK:
        send_slack_alert(Config.SLACK_WEBHOOK, message)


def provision_machines(provider: MachineProvider, record: ClusterRecord, machines: List[Machine],
                       parallel: int = 1, ctx: Optional[PhaseContext] = None) -> Dict[str, Optional[ProvisionError]]:
    """Run the machine pipeline for each machine, ``parallel`` at a time.

    A failure on one machine does not stop the others.

    Returns:
        Map of machine IP to its error, or None on success
    """
    ctx = ctx or PhaseContext()
    results: Dict[str, Optional[ProvisionError]] = {}
    with ThreadPoolExecutor(max_workers=max(1, parallel)) as pool:
        futures = {pool.submit(provider.on_create, machine, record, ctx): machine for machine in machines}
        for future in as_completed(futures):
            machine = futures[future]
            try:
                future.result()
                results[machine.ip] = None
            except ProvisionError as e:
                results[machine.ip] = e
    failed = [ip for ip, err in results.items() if err]
    if failed:
        notify(f"[shipctl] {record.name}: {len(failed)}/{len(machines)} machine(s) failed: {', '.join(failed)}")
    else:
        notify(f"[shipctl] {record.name}: {len(machines)} machine(s) provisioned")
    return results
