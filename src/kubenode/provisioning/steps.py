#!/usr/bin/env python3
"""
KUBENODE STEP LIBRARY - The Playbook
------------------------------------
Every unit of provisioning work, written as a method that runs external
commands through the CommandRunner and writes files under the RunContext
root. Steps are idempotent: removals tolerate absence, files are
overwritten whole and existing cluster resources are accepted.

build_steps() binds the methods into Step objects in the order the
node role's plan requires.

Author: KubeNode Team
Date: 2026-10-18
"""

import logging
import re
import shutil
import time
from typing import Callable, Dict, List, Optional, Tuple

from kubenode.core.errors import CommandError, ReadinessTimeout
from kubenode.core.models import RunContext, Step
from kubenode.core.roles import plan_for_role
from kubenode.provisioning.assets import render_template
from kubenode.provisioning.exporter import ConfigExporter
from kubenode.provisioning.preflight import check_distribution, detect_main_ip
from kubenode.provisioning.readiness import ReadinessWaiter
from kubenode.provisioning.validator import KubeVersionValidator

logger = logging.getLogger("kubenode.steps")

CRI_SOCKET = "unix:///run/containerd/containerd.sock"
KEYRING = "/etc/apt/keyrings/kubernetes-apt-keyring.gpg"
POD_SUBNET = "192.168.0.0/16"
API_SERVER_PORT = 6443
KUBEADM_API_VERSION = "kubeadm.k8s.io/v1beta3"
ADMIN_CONF = "/etc/kubernetes/admin.conf"
CALICO_MANIFESTS = ("tigera-operator", "custom-resources")
TAINT_SETTLE_SECONDS = 10

KUBE_PACKAGES = ("kubelet", "kubeadm", "kubectl")
HELD_PACKAGES = KUBE_PACKAGES + ("kubernetes-cni",)
# GitHub runners ship moby; it conflicts with the containerd package
MOBY_PACKAGES = (
    "moby-buildx", "moby-cli", "moby-compose", "moby-containerd", "moby-engine", "moby-runc",
)
CONFLICTING_PACKAGES = ("docker.io", "containerd") + KUBE_PACKAGES
PREREQUISITE_PACKAGES = (
    "apt-transport-https",
    "ca-certificates",
    "curl",
    "gnupg",
    "lsb-release",
    "software-properties-common",
    "wget",
    "jq",
)

_swap_line = re.compile(r"\sswap\s")


class NodeSteps:
    """The step actions for one run, bound to its context and runner."""

    def __init__(self, context: RunContext, runner,
                 waiter: Optional[ReadinessWaiter] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.ctx = context
        self.runner = runner
        self.waiter = waiter or ReadinessWaiter(runner, sleep=sleep)
        self.exporter = ConfigExporter()
        self.sleep = sleep

    # --- NODE PREPARATION ---

    def check_distribution(self):
        release = check_distribution(self.ctx.host_path("/etc/lsb-release"), self.ctx.ubuntu_version)
        return f"Ubuntu {release}"

    def disable_swap(self):
        self.runner.run(["swapoff", "-a"])
        fstab = self.ctx.host_path("/etc/fstab")
        if not fstab.exists():
            logger.info("No %s, nothing to comment out", fstab)
            return None
        lines = fstab.read_text(encoding="utf-8").splitlines(keepends=True)
        changed = 0
        for i, line in enumerate(lines):
            if line.lstrip().startswith("#"):
                continue
            if _swap_line.search(line):
                lines[i] = "#" + line
                changed += 1
        if changed:
            self.exporter.write_text(fstab, "".join(lines))
        logger.info("Commented out %d swap entries in %s", changed, fstab)
        return None

    def remove_conflicting_packages(self):
        self.runner.run_tolerant(["apt-mark", "unhold", *HELD_PACKAGES])
        self.runner.run_tolerant(["apt-get", "remove", "-y", *MOBY_PACKAGES])
        self.runner.run(["apt-get", "autoremove", "-y"])
        self.runner.run_tolerant(["apt-get", "remove", "-y", *CONFLICTING_PACKAGES])
        self.runner.run(["apt-get", "autoremove", "-y"])
        self.runner.run(["systemctl", "daemon-reload"])

    def install_prerequisites(self):
        self.runner.run(["apt-get", "update"])
        self.runner.run(["apt-get", "install", "-y", *PREREQUISITE_PACKAGES])

    def install_kubernetes_binaries(self):
        # Keyring first: apt rejects a source whose signed-by file is missing
        keyring = self.ctx.host_path(KEYRING)
        keyring.parent.mkdir(parents=True, exist_ok=True)
        release_key = self.runner.capture_bytes(["curl", "-fsSL", self.ctx.kube_repo_url + "Release.key"])
        self.runner.run(["gpg", "--dearmor", "--yes", "-o", str(keyring)], input=release_key)
        self.exporter.write_text(
            self.ctx.host_path("/etc/apt/sources.list.d/kubernetes.list"),
            render_template("kubernetes.list", keyring=KEYRING, repo_url=self.ctx.kube_repo_url),
        )
        self.runner.run(["apt-get", "update"])
        pinned = [f"{name}={self.ctx.kube_version}-*" for name in KUBE_PACKAGES]
        self.runner.run(["apt-get", "install", "-y", "--allow-downgrades", *pinned])
        self.runner.run(["apt-mark", "hold", *KUBE_PACKAGES])
        return f"kubelet/kubeadm/kubectl {self.ctx.kube_version}"

    def configure_kernel_and_sysctl(self):
        self.exporter.write_text(
            self.ctx.host_path("/etc/modules-load.d/containerd.conf"),
            render_template("containerd-modules.conf"),
        )
        self.exporter.write_text(
            self.ctx.host_path("/etc/sysctl.d/99-kubernetes-cri.conf"),
            render_template("99-kubernetes-cri.conf"),
        )
        self.runner.run(["modprobe", "overlay"])
        self.runner.run(["modprobe", "br_netfilter"])
        self.runner.run(["sysctl", "--system"])

    def configure_cri_shim(self):
        self.exporter.write_yaml(self.ctx.host_path("/etc/crictl.yaml"), {"runtime-endpoint": CRI_SOCKET})

    def configure_kubelet_runtime(self):
        self.exporter.write_text(
            self.ctx.host_path("/etc/default/kubelet"),
            render_template("kubelet.default", cri_socket=CRI_SOCKET),
        )

    def configure_containerd_config(self):
        self.exporter.write_text(
            self.ctx.host_path("/etc/containerd/config.toml"),
            render_template("containerd-config.toml"),
        )

    def install_containerd(self):
        logger.info("Installing distribution containerd (pinned reference %s)", self.ctx.containerd_version)
        self.runner.run(["apt-get", "update"])
        self.runner.run(["apt-get", "install", "-y", "containerd"])

    def start_core_services(self):
        self.runner.run(["systemctl", "daemon-reload"])
        self.runner.run(["systemctl", "enable", "containerd"])
        self.runner.run(["systemctl", "restart", "containerd"])
        self.runner.run(["systemctl", "enable", "kubelet"])
        self.runner.run(["systemctl", "start", "kubelet"])

    # --- WORKER ---

    def check_worker_services(self):
        # Until the node joins a cluster only containerd is expected to be up
        self.runner.run(["systemctl", "is-active", "containerd"])
        return "containerd is active"

    # --- CONTROL PLANE ---

    def kubeadm_init(self):
        main_ip = detect_main_ip(self.runner)
        config_path = self.ctx.work_dir / "kubeadm-config.yaml"
        self.exporter.write_yaml(config_path, {
            "apiVersion": KUBEADM_API_VERSION,
            "kind": "ClusterConfiguration",
            "kubernetesVersion": self.ctx.requested_server_version,
            "networking": {"podSubnet": POD_SUBNET},
            "controlPlaneEndpoint": f"{main_ip}:{API_SERVER_PORT}",
        })
        self.runner.run(["kubeadm", "init", "--config", str(config_path)])
        return f"Control plane endpoint {main_ip}:{API_SERVER_PORT}"

    def configure_kubeconfig(self):
        admin_conf = self.ctx.host_path(ADMIN_CONF)
        root_config = self.ctx.host_path("/root/.kube/config")
        root_config.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(admin_conf, root_config)
        root_config.chmod(0o600)
        logger.info("Copied %s to %s", admin_conf, root_config)

        # The secondary account may not exist on this image
        user = self.ctx.secondary_user
        user_config = self.ctx.host_path(f"/home/{user}/.kube/config")
        try:
            user_config.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(admin_conf, user_config)
            user_config.chmod(0o600)
        except OSError as e:
            logger.warning("Could not install kubeconfig for %s: %s", user, e)
            return None
        self.runner.run_tolerant(["chown", f"{user}:{user}", str(user_config)])
        return None

    def install_cni(self):
        for manifest in CALICO_MANIFESTS:
            url = f"{self.ctx.calico_url}/{manifest}.yaml"
            logger.info("Installing Calico %s", manifest)
            # 'create' refuses existing objects; on a re-run they are already there
            if not self.runner.run_tolerant(["kubectl", "create", "-f", url]):
                self.runner.run(["kubectl", "get", "-f", url])
        return f"Calico v{self.ctx.calico_version}"

    def wait_for_nodes(self):
        result = self.waiter.wait_for_nodes()
        if not result.ready:
            raise ReadinessTimeout(result)
        return result.describe()

    def check_kubernetes_version(self):
        return KubeVersionValidator(self.ctx.kube_version).check(self.runner)

    def install_metrics_server(self):
        self.runner.run(["kubectl", "apply", "-f", self.ctx.metrics_server_url])

    def print_join_command(self):
        join_command = self.runner.capture(["kubeadm", "token", "create", "--print-join-command", "--ttl", "0"])
        return join_command.strip()

    # --- SINGLE NODE ---

    def configure_as_single_node(self):
        try:
            self.runner.run([
                "kubectl", "taint", "nodes", "--all",
                "node-role.kubernetes.io/control-plane:NoSchedule-",
            ])
        except CommandError:
            # kubectl exits non-zero when the taint is already gone
            self.runner.run(["kubectl", "get", "nodes"])
            logger.info("Control-plane taint already removed")
        logger.info("Sleeping for %d seconds to allow taint to take effect", TAINT_SETTLE_SECONDS)
        self.sleep(TAINT_SETTLE_SECONDS)

    def smoke_test(self):
        pod = ["--namespace", "default"]
        self.runner.run_tolerant(["kubectl", "delete", "pod", "nginx", *pod, "--ignore-not-found"])
        self.runner.run(["kubectl", "run", "--image", "nginx", *pod, "nginx"])
        self.runner.run([
            "kubectl", "wait", "--for=condition=Ready", "--all", "pods", *pod, "--timeout=180s",
        ])
        self.runner.run(["kubectl", "delete", "pod", "nginx", *pod])

        result = self.waiter.wait_for_pods()
        if not result.ready:
            # Not fatal: the node works, some add-on pods are still starting
            logger.warning(result.describe())
        return result.describe()

    # --- REGISTRY ---

    def registry(self) -> Dict[str, Tuple[str, Callable[[], Optional[str]]]]:
        return {
            "check_distribution": ("Checking Linux distribution", self.check_distribution),
            "disable_swap": ("Disabling swap", self.disable_swap),
            "remove_conflicting_packages": ("Removing packages", self.remove_conflicting_packages),
            "install_prerequisites": ("Installing required packages", self.install_prerequisites),
            "install_kubernetes_binaries": ("Installing Kubernetes packages", self.install_kubernetes_binaries),
            "configure_kernel_and_sysctl": ("Configuring system", self.configure_kernel_and_sysctl),
            "configure_cri_shim": ("Configuring crictl", self.configure_cri_shim),
            "configure_kubelet_runtime": ("Configuring kubelet", self.configure_kubelet_runtime),
            "configure_containerd_config": ("Configuring containerd", self.configure_containerd_config),
            "install_containerd": ("Installing containerd", self.install_containerd),
            "start_core_services": ("Starting services", self.start_core_services),
            "check_worker_services": ("Check worker services", self.check_worker_services),
            "kubeadm_init": ("Initialising the Kubernetes cluster via Kubeadm", self.kubeadm_init),
            "configure_kubeconfig": (
                "Configuring kubeconfig for root and ubuntu users", self.configure_kubeconfig),
            "install_cni": ("Installing Calico CNI", self.install_cni),
            "wait_for_nodes": ("Waiting for nodes to be ready", self.wait_for_nodes),
            "check_kubernetes_version": ("Checking Kubernetes version", self.check_kubernetes_version),
            "install_metrics_server": ("Installing metrics server", self.install_metrics_server),
            "configure_as_single_node": ("Configuring as a single node cluster", self.configure_as_single_node),
            "smoke_test": ("Deploying test nginx pod", self.smoke_test),
            "print_join_command": ("Creating worker join command", self.print_join_command),
        }


def build_steps(context: RunContext, runner, **kwargs) -> List[Step]:
    """Resolves the role's plan into bound Step objects."""
    registry = NodeSteps(context, runner, **kwargs).registry()
    steps = []
    for name in plan_for_role(context.role):
        description, action = registry[name]
        steps.append(Step(name=name, description=description, action=action))
    return steps
