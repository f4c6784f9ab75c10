import pytest

from kubenode.core.models import NodeRole
from kubenode.core.roles import (
    NODE_PREPARATION,
    SINGLE_NODE_SETUP,
    plan_for_role,
    resolve_role,
)
from kubenode.provisioning.steps import NodeSteps


@pytest.mark.parametrize("control, single, expected", [
    (False, False, NodeRole.WORKER),
    (True, False, NodeRole.CONTROL_PLANE),
    (False, True, NodeRole.SINGLE_NODE),
    (True, True, NodeRole.SINGLE_NODE),
])
def test_resolve_role_is_total(control, single, expected):
    assert resolve_role(control=control, single=single) is expected


@pytest.mark.parametrize("role", list(NodeRole))
def test_plan_is_deterministic_and_not_empty(role):
    first = plan_for_role(role)
    assert first
    assert first == plan_for_role(role)
    assert first[:len(NODE_PREPARATION)] == NODE_PREPARATION
    assert len(set(first)) == len(first), "a step is scheduled twice"


def test_single_node_adds_exactly_taint_and_smoke_test():
    control = plan_for_role(NodeRole.CONTROL_PLANE)
    single = plan_for_role(NodeRole.SINGLE_NODE)
    assert set(control) <= set(single)
    assert set(single) - set(control) == set(SINGLE_NODE_SETUP)
    assert set(SINGLE_NODE_SETUP) == {"configure_as_single_node", "smoke_test"}


def test_worker_never_touches_the_cluster():
    worker = plan_for_role(NodeRole.WORKER)
    assert "kubeadm_init" not in worker
    assert worker[-1] == "check_worker_services"


def test_control_plane_checks_version_after_nodes_are_ready():
    control = plan_for_role(NodeRole.CONTROL_PLANE)
    assert control.index("kubeadm_init") < control.index("wait_for_nodes")
    assert control.index("wait_for_nodes") < control.index("check_kubernetes_version")
    assert control[-1] == "print_join_command"


@pytest.mark.parametrize("role", list(NodeRole))
def test_every_planned_step_is_registered(role, make_context, fake_runner):
    registry = NodeSteps(make_context(role), fake_runner).registry()
    missing = [name for name in plan_for_role(role) if name not in registry]
    assert not missing
