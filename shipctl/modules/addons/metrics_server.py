"""metrics-server and its aggregated API registration."""
from shipctl.modules import manifests as m
from shipctl.modules.manifests import KUBE_SYSTEM

NAME = "metrics-server"
LABELS = {"k8s-app": NAME}


def api_service() -> dict:
    return {
        "apiVersion": "apiregistration.k8s.io/v1",
        "kind": "APIService",
        "metadata": m.metadata("v1beta1.metrics.k8s.io", labels=LABELS),
        "spec": {
            "group": "metrics.k8s.io",
            "version": "v1beta1",
            "groupPriorityMinimum": 100,
            "versionPriority": 100,
            "insecureSkipTLSVerify": True,
            "service": {"name": NAME, "namespace": KUBE_SYSTEM},
        },
    }


def build(config, record) -> list:
    subject = [m.sa_subject(NAME, KUBE_SYSTEM)]
    template = m.pod_template(
        LABELS,
        [m.container(
            NAME,
            config.images.metrics_server,
            args=["--cert-dir=/tmp", "--secure-port=10250",
                  "--kubelet-preferred-address-types=InternalIP,ExternalIP,Hostname",
                  "--kubelet-use-node-status-port", "--metric-resolution=15s",
                  "--kubelet-insecure-tls"],
            ports=[{"name": "https", "containerPort": 10250, "protocol": "TCP"}],
            mounts=[m.mount("tmp-dir", "/tmp")],
            readinessProbe={"httpGet": {"path": "/readyz", "port": "https", "scheme": "HTTPS"},
                            "initialDelaySeconds": 20, "periodSeconds": 10},
            securityContext={"readOnlyRootFilesystem": True, "runAsNonRoot": True, "runAsUser": 1000},
        )],
        volumes=[{"name": "tmp-dir", "emptyDir": {}}],
        serviceAccountName=NAME,
        priorityClassName="system-cluster-critical",
        nodeSelector={"kubernetes.io/os": "linux"},
    )
    return [
        m.service_account(NAME, KUBE_SYSTEM, labels=LABELS),
        m.cluster_role("system:aggregated-metrics-reader", [
            {"apiGroups": ["metrics.k8s.io"], "resources": ["pods", "nodes"], "verbs": ["get", "list", "watch"]},
        ], labels={**LABELS, "rbac.authorization.k8s.io/aggregate-to-view": "true"}),
        m.cluster_role("system:metrics-server", [
            {"apiGroups": [""], "resources": ["nodes/metrics"], "verbs": ["get"]},
            {"apiGroups": [""], "resources": ["pods", "nodes"], "verbs": ["get", "list", "watch"]},
        ], labels=LABELS),
        m.role_binding("metrics-server-auth-reader", KUBE_SYSTEM, "Role",
                       "extension-apiserver-authentication-reader", subject, labels=LABELS),
        m.role_binding("metrics-server:system:auth-delegator", None, "ClusterRole",
                       "system:auth-delegator", subject, labels=LABELS),
        m.role_binding("system:metrics-server", None, "ClusterRole", "system:metrics-server",
                       subject, labels=LABELS),
        m.service(NAME, KUBE_SYSTEM, LABELS,
                  [{"name": "https", "port": 443, "targetPort": "https", "protocol": "TCP"}], labels=LABELS),
        m.deployment(NAME, KUBE_SYSTEM, LABELS, template),
        api_service(),
    ]
