"""Machine-scope provisioning phases."""
import logging
import random
from typing import Callable, List, Optional

from shipctl.errors import (
    NodeReadyTimeout,
    NotReadyError,
    PipelineCancelled,
    ProvisionError,
    RemoteCommandError,
    SSHConnectionError,
)
from shipctl.models import ClusterRecord, HookType, Machine
from shipctl.modules.endpoint import get_join_endpoint
from shipctl.modules.kube import ClusterManager, mark_node, node_is_ready
from shipctl.modules.kubeconfig import install_node_kubeconfig
from shipctl.modules.phases import cni, joinnode, k8scomponent, system
from shipctl.modules.phases.hosts import RemoteHosts
from shipctl.modules.phases.preflight import run_node_checks
from shipctl.modules.provider.pipeline import Phase, PhaseContext, condition_report, run_phases
from shipctl.modules.ssh import ssh_for_machine

logger = logging.getLogger("shipctl.provider.machine")

KUBERNETES_DIR = "/etc/kubernetes"


class MachineProvider:
    """Bootstraps one machine into a cluster over SSH.

    Args:
        config: Provider configuration
        cluster_manager: Client cache for the provisioned clusters
        ssh_factory: Callable returning a remote shell for a machine
        rng: Random source for endpoint selection
    """

    def __init__(self, config, cluster_manager: Optional[ClusterManager] = None,
                 ssh_factory: Optional[Callable[[Machine], object]] = None,
                 rng: Optional[random.Random] = None):
        self.config = config
        self.cluster_manager = cluster_manager or ClusterManager()
        self.ssh_factory = ssh_factory or (
            lambda machine: ssh_for_machine(machine, timeout=config.ssh.connect_timeout,
                                            command_timeout=config.ssh.command_timeout))
        self.rng = rng
        self.phases: List[Phase] = [
            Phase("EnsureCopyFiles", self.ensure_copy_files),
            Phase("EnsurePreInstallHook", self.ensure_pre_install_hook),
            Phase("EnsurePreflight", self.ensure_preflight),
            Phase("EnsureRegistryHosts", self.ensure_registry_hosts),
            Phase("EnsureClean", self.ensure_clean),
            Phase("EnsureSystem", self.ensure_system),
            Phase("EnsureK8sComponent", self.ensure_k8s_component),
            Phase("EnsureKubeconfig", self.ensure_kubeconfig),
            Phase("EnsureJoinNode", self.ensure_join_node),
            Phase("EnsureEth", self.ensure_eth),
            Phase("EnsureCni", self.ensure_cni),
            Phase("EnsurePostInstallHook", self.ensure_post_install_hook),
            Phase("EnsureMarkNode", self.ensure_mark_node, benign=(NotReadyError,)),
            Phase("EnsureNodeReady", self.ensure_node_ready, benign=(NotReadyError,)),
        ]

    @property
    def steps(self) -> List[str]:
        return [phase.name for phase in self.phases]

    def ensure_copy_files(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        files = record.spec.features.files
        if not files:
            return
        ssh = self.ssh_factory(machine)
        for file in files:
            system.copy_file(ssh, file)

    def _run_hook(self, machine: Machine, record: ClusterRecord, key: str) -> None:
        hook = record.spec.features.hooks.get(key)
        if not hook:
            return
        ssh = self.ssh_factory(machine)
        try:
            ssh.execf("chmod +x %s", hook.split(" ")[0])
            _, stderr, code = ssh.exec(hook)
        except SSHConnectionError as e:
            raise RemoteCommandError(hook, -1, e.message, host=machine.ip) from e
        if code != 0:
            raise RemoteCommandError(hook, code, stderr, host=machine.ip)
        logger.info(f"✅ [{machine.ip}] {key} hook finished")

    def ensure_pre_install_hook(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        self._run_hook(machine, record, HookType.PRE_INSTALL)

    def ensure_post_install_hook(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        self._run_hook(machine, record, HookType.POST_INSTALL)

    def ensure_preflight(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        run_node_checks(self.ssh_factory(machine))

    def ensure_registry_hosts(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        if not self.config.need_set_hosts():
            return
        ssh = self.ssh_factory(machine)
        domain = self.config.registry.domain
        tenant = machine.tenant_id or record.spec.tenant_id
        domains = [domain, f"{tenant}.{domain}"] if tenant else [domain]
        for name in domains:
            RemoteHosts(name, ssh).set(self.config.registry.ip)

    def ensure_clean(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        if not ctx.options.get("reset"):
            return
        self.ssh_factory(machine).combined_output(f"rm -rf {KUBERNETES_DIR}")
        logger.warning(f"🧹 [{machine.ip}] removed {KUBERNETES_DIR}")

    def ensure_system(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        system.install(self.ssh_factory(machine), self.config, record)

    def ensure_k8s_component(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        k8scomponent.install(self.ssh_factory(machine), self.config, record)

    def ensure_kubeconfig(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        install_node_kubeconfig(self.ssh_factory(machine), record)

    def ensure_join_node(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        endpoint = get_join_endpoint(record, self.rng)
        logger.info(f"[{machine.ip}] join apiserver: {endpoint}")
        joinnode.join_node_phase(self.ssh_factory(machine), self.config, record, endpoint,
                                 rejoin=bool(ctx.options.get("reset")), machine=machine)

    def ensure_eth(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        if not cni.uses_dke_cni(record):
            return
        cni.apply_eth(self.ssh_factory(machine), self.config, record)

    def ensure_cni(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        if not cni.uses_dke_cni(record):
            return
        cni.apply_cni_cfg(self.ssh_factory(machine), self.config, record, machine)

    def ensure_mark_node(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        cluster = self.cluster_manager.get(record)
        mark_node(cluster.core_v1, machine.node_name, machine.labels, machine.taints)

    def ensure_node_ready(self, ctx: PhaseContext, machine: Machine, record: ClusterRecord) -> None:
        """Poll the node's Ready condition, checking immediately and then every interval.

        Raises:
            NodeReadyTimeout: If the node is not Ready within the configured timeout
            PipelineCancelled: If the pass is cancelled while waiting
        """
        cluster = self.cluster_manager.get(record)
        interval = self.config.node_ready.poll_interval
        timeout = self.config.node_ready.timeout
        deadline = ctx.clock() + timeout
        while True:
            if node_is_ready(cluster.core_v1, machine.node_name):
                logger.info(f"✅ Node {machine.node_name} is Ready")
                return
            remaining = deadline - ctx.clock()
            if remaining <= 0:
                raise NodeReadyTimeout(f"node {machine.node_name} not Ready after {timeout:g}s")
            if ctx.wait(min(interval, remaining)):
                raise PipelineCancelled(f"cancelled while waiting for node {machine.node_name}")

    def on_create(self, machine: Machine, record: ClusterRecord,
                  ctx: Optional[PhaseContext] = None) -> Machine:
        """Run every machine phase once.

        Raises:
            ProvisionError: The first phase failure, stamped with phase and host
        """
        ctx = ctx or PhaseContext()
        machine.cluster_name = machine.cluster_name or record.name
        logger.info(f"🚀 Provisioning machine {machine.ip} into {record.name}")
        try:
            run_phases(self.phases, ctx, machine.status.conditions, machine, record, host=machine.ip)
        except ProvisionError:
            machine.status.phase = "Failed"
            raise
        machine.status.phase = "Running"
        logger.info(f"✅ Machine {machine.ip} joined {record.name}")
        return machine

    def conditions(self, machine: Machine):
        return condition_report(machine.status.conditions, self.steps)
