"""Cluster-scope provisioning phases."""
import logging
from typing import List, Optional

from shipctl.errors import NotReadyError, ProvisionError
from shipctl.models import ClusterRecord
from shipctl.modules.addons import ensure_addons
from shipctl.modules.certs import ensure_certs
from shipctl.modules.complete import ensure_cluster_complete
from shipctl.modules.controlplane import ensure_control_plane
from shipctl.modules.kube import ClusterManager
from shipctl.modules.kubeconfig import ensure_external_kubeconfig, ensure_kubeconfigs
from shipctl.modules.provider.pipeline import Phase, PhaseContext, condition_report, run_phases
from shipctl.utils.ids import IdGenerator

logger = logging.getLogger("shipctl.provider.cluster")


class ClusterProvider:
    """Drives a cluster record towards a running hosted control plane.

    Args:
        config: Provider configuration
        management_store: Store of the cluster hosting the control planes
        cluster_manager: Client cache for the provisioned clusters
        ids: Token generator (default: system random)
    """

    def __init__(self, config, management_store, cluster_manager: Optional[ClusterManager] = None,
                 ids: Optional[IdGenerator] = None):
        self.config = config
        self.management_store = management_store
        self.cluster_manager = cluster_manager or ClusterManager()
        self.ids = ids
        self.phases: List[Phase] = [
            Phase("EnsureComplete", self.ensure_complete),
            Phase("EnsureCerts", self.ensure_certs),
            Phase("EnsureKubeconfig", self.ensure_kubeconfig),
            Phase("EnsureKubeMaster", self.ensure_kube_master),
            Phase("EnsureExtKubeconfig", self.ensure_ext_kubeconfig),
            Phase("EnsureAddons", self.ensure_addons, benign=(NotReadyError,)),
        ]

    @property
    def steps(self) -> List[str]:
        return [phase.name for phase in self.phases]

    def ensure_complete(self, ctx: PhaseContext, record: ClusterRecord) -> None:
        ensure_cluster_complete(record, self.ids)

    def ensure_certs(self, ctx: PhaseContext, record: ClusterRecord) -> None:
        ensure_certs(record, force=bool(ctx.options.get("force_certs")))

    def ensure_kubeconfig(self, ctx: PhaseContext, record: ClusterRecord) -> None:
        ensure_kubeconfigs(record, force=bool(ctx.options.get("force_certs")))

    def ensure_kube_master(self, ctx: PhaseContext, record: ClusterRecord) -> None:
        ensure_control_plane(self.management_store, self.config, record)

    def ensure_ext_kubeconfig(self, ctx: PhaseContext, record: ClusterRecord) -> None:
        ensure_external_kubeconfig(record, force=bool(ctx.options.get("force_certs")))

    def ensure_addons(self, ctx: PhaseContext, record: ClusterRecord) -> None:
        cluster = self.cluster_manager.get(record)
        ensure_addons(cluster.store, self.config, record)

    def on_create(self, record: ClusterRecord, ctx: Optional[PhaseContext] = None) -> ClusterRecord:
        """Run every cluster phase once. Safe to repeat after a partial failure.

        Raises:
            ProvisionError: The first phase failure, stamped with the phase name
        """
        ctx = ctx or PhaseContext()
        logger.info(f"🚀 Provisioning cluster {record.name}")
        try:
            run_phases(self.phases, ctx, record.status.conditions, record)
        except ProvisionError:
            record.status.phase = "Failed"
            raise
        record.status.phase = "Running"
        logger.info(f"✅ Cluster {record.name} phases completed")
        return record

    def conditions(self, record: ClusterRecord):
        return condition_report(record.status.conditions, self.steps)
