#!/usr/bin/env python3
"""
KUBENODE ROLES - The Planner
----------------------------
Maps command-line flags to a NodeRole and a NodeRole to the ordered list
of step names the sequencer runs. The plans are plain data so that every
branch of the install is visible in one place.

Author: KubeNode Team
Date: 2026-10-18
"""

import logging
from typing import Dict, Tuple

from kubenode.core.models import NodeRole

logger = logging.getLogger("kubenode.roles")

# Shared by every role: turns a bare Ubuntu host into a node that can run kubelet
NODE_PREPARATION: Tuple[str, ...] = (
    "check_distribution",
    "disable_swap",
    "remove_conflicting_packages",
    "install_prerequisites",
    "install_kubernetes_binaries",
    "configure_kernel_and_sysctl",
    "configure_cri_shim",
    "configure_kubelet_runtime",
    "configure_containerd_config",
    "install_containerd",
    "start_core_services",
)

CONTROL_PLANE_SETUP: Tuple[str, ...] = (
    "kubeadm_init",
    "configure_kubeconfig",
    "install_cni",
    "wait_for_nodes",
    "check_kubernetes_version",
    "install_metrics_server",
)

SINGLE_NODE_SETUP: Tuple[str, ...] = (
    "configure_as_single_node",
    "smoke_test",
)

ROLE_PLANS: Dict[NodeRole, Tuple[str, ...]] = {
    NodeRole.WORKER: NODE_PREPARATION + ("check_worker_services",),
    NodeRole.CONTROL_PLANE: NODE_PREPARATION + CONTROL_PLANE_SETUP + ("print_join_command",),
    NodeRole.SINGLE_NODE: (
        NODE_PREPARATION + CONTROL_PLANE_SETUP + SINGLE_NODE_SETUP + ("print_join_command",)
    ),
}


def resolve_role(control: bool = False, single: bool = False) -> NodeRole:
    """
    Total over the four flag combinations. A single-node cluster is a
    control plane as well, so '-s' takes precedence when both are given.
    """
    if single:
        if control:
            logger.debug("Both -c and -s given, single-node takes precedence")
        return NodeRole.SINGLE_NODE
    if control:
        return NodeRole.CONTROL_PLANE
    return NodeRole.WORKER


def plan_for_role(role: NodeRole) -> Tuple[str, ...]:
    return ROLE_PLANS[role]
