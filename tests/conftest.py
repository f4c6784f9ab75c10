import json
import os
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest

# Ensure the 'src' directory is in the python path so we can import kubenode
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))

from kubenode.core.errors import CommandError
from kubenode.core.models import NodeRole, RunContext

KUBECTL_VERSION_OK = json.dumps({
    "clientVersion": {"gitVersion": "v1.31.0"},
    "serverVersion": {"gitVersion": "v1.31.0"},
})

DEFAULT_RESPONSES = {
    "ip route get 1": "1.0.0.0 via 10.0.0.1 dev eth0 src 10.0.0.5 uid 0\n    cache\n",
    "curl -fsSL": "-----BEGIN PGP PUBLIC KEY BLOCK-----\n",
    "kubectl get nodes --no-headers": "node-1   Ready   control-plane   2m   v1.31.0\n",
    "kubectl get pods --all-namespaces --no-headers":
        "kube-system   coredns-7db6d8ff4d-abcde   1/1   Running   0   2m\n",
    "kubectl version -o json": KUBECTL_VERSION_OK,
    "kubeadm token create":
        "kubeadm join 10.0.0.5:6443 --token abc.def --discovery-token-ca-cert-hash sha256:123\n",
}


class FakeRunner:
    """
    Stands in for CommandRunner. Commands are matched by string prefix
    against 'responses' (captured output) and 'failures' (non-zero exit).
    """

    def __init__(self, responses: Optional[Dict[str, str]] = None, failures: Iterable[str] = ()):
        self.responses = dict(DEFAULT_RESPONSES)
        self.responses.update(responses or {})
        self.failures = list(failures)
        self.commands: List[str] = []

    def _record(self, command) -> str:
        line = " ".join(str(arg) for arg in command)
        self.commands.append(line)
        return line

    def _fails(self, line: str) -> bool:
        return any(line.startswith(prefix) for prefix in self.failures)

    def run(self, command, input=None):
        line = self._record(command)
        if self._fails(line):
            raise CommandError(command, 1)

    def run_tolerant(self, command) -> bool:
        line = self._record(command)
        return not self._fails(line)

    def capture(self, command) -> str:
        line = self._record(command)
        if self._fails(line):
            raise CommandError(command, 1)
        for prefix, output in self.responses.items():
            if line.startswith(prefix):
                return output
        return ""

    def capture_bytes(self, command) -> bytes:
        return self.capture(command).encode("utf-8")

    def ran(self, prefix: str) -> bool:
        return any(line.startswith(prefix) for line in self.commands)


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def host_root(tmp_path) -> Path:
    """A scratch filesystem shaped like a fresh Ubuntu 22.04 host."""
    root = tmp_path / "host"
    etc = root / "etc"
    etc.mkdir(parents=True)
    (etc / "lsb-release").write_text(
        "DISTRIB_ID=Ubuntu\n"
        "DISTRIB_RELEASE=22.04\n"
        "DISTRIB_CODENAME=jammy\n"
        'DISTRIB_DESCRIPTION="Ubuntu 22.04.4 LTS"\n'
    )
    (etc / "fstab").write_text(
        "UUID=1234 / ext4 defaults 0 1\n"
        "/swap.img\tnone\tswap\tsw\t0\t0\n"
    )
    kubernetes = etc / "kubernetes"
    kubernetes.mkdir()
    (kubernetes / "admin.conf").write_text("apiVersion: v1\nkind: Config\n")
    (root / "home" / "ubuntu").mkdir(parents=True)
    return root


@pytest.fixture
def make_context(host_root, tmp_path):
    def factory(role: NodeRole = NodeRole.WORKER, **overrides) -> RunContext:
        work_dir = tmp_path / "work"
        work_dir.mkdir(exist_ok=True)
        values = dict(role=role, root_dir=host_root, work_dir=work_dir)
        values.update(overrides)
        return RunContext(**values)
    return factory
