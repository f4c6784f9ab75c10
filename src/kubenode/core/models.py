#!/usr/bin/env python3
"""
KUBENODE CORE MODELS
--------------------
Defines the fundamental data structures shared by the engine, the step
library and the CLI. A run is described once by a RunContext and produces
one StepResult per executed Step.

Author: KubeNode Team
Date: 2026-10-18
"""

import enum
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, List, Optional

# Pinned software versions
KUBE_VERSION = "1.31.0"
CONTAINERD_VERSION = "1.7.20"
CALICO_VERSION = "3.25.0"
UBUNTU_VERSION = "22.04"
METRICS_SERVER_URL = (
    "https://github.com/kubernetes-sigs/metrics-server/releases/latest/download/components.yaml"
)


class NodeRole(enum.Enum):
    """The part this host plays in the cluster."""

    WORKER = "worker"
    CONTROL_PLANE = "control"
    SINGLE_NODE = "single"

    @property
    def is_control_plane(self) -> bool:
        return self in (NodeRole.CONTROL_PLANE, NodeRole.SINGLE_NODE)


@dataclass(frozen=True)
class RunContext:
    """
    Configuration resolved once at start-up.

    Every host path a step touches is resolved under root_dir so the whole
    sequence can be pointed at a scratch directory.
    """
    role: NodeRole = NodeRole.WORKER
    kube_version: str = KUBE_VERSION
    containerd_version: str = CONTAINERD_VERSION
    calico_version: str = CALICO_VERSION
    ubuntu_version: str = UBUNTU_VERSION
    metrics_server_url: str = METRICS_SERVER_URL
    verbose: bool = False
    root_dir: Path = Path("/")
    work_dir: Path = field(default_factory=Path.cwd)
    secondary_user: str = "ubuntu"

    @property
    def kube_minor(self) -> str:
        """'1.31.0' -> '1.31', used by the package repository URL."""
        return ".".join(self.kube_version.split(".")[:2])

    @property
    def kube_repo_url(self) -> str:
        return f"https://pkgs.k8s.io/core:/stable:/v{self.kube_minor}/deb/"

    @property
    def calico_url(self) -> str:
        return f"https://raw.githubusercontent.com/projectcalico/calico/v{self.calico_version}/manifests"

    @property
    def requested_server_version(self) -> str:
        return f"v{self.kube_version}"

    def host_path(self, path: str) -> Path:
        """Maps an absolute host path such as /etc/crictl.yaml under root_dir."""
        relative = PurePosixPath(path).relative_to("/")
        return self.root_dir / relative


@dataclass(frozen=True)
class Step:
    """
    A named unit of work. The action takes no arguments, signals failure
    by raising and may return a short note for the final report.
    """
    name: str
    description: str
    action: Callable[[], Optional[str]]


@dataclass
class StepResult:
    name: str
    succeeded: bool
    error: Optional[BaseException] = None
    note: Optional[str] = None
    seconds: float = 0.0

    @classmethod
    def success(cls, name: str, note: Optional[str] = None, seconds: float = 0.0) -> "StepResult":
        return cls(name=name, succeeded=True, note=note, seconds=seconds)

    @classmethod
    def failure(cls, name: str, error: BaseException, seconds: float = 0.0) -> "StepResult":
        return cls(name=name, succeeded=False, error=error, seconds=seconds)


class RunState(enum.Enum):
    NOT_STARTED = "not-started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RunOutcome:
    state: RunState
    results: List[StepResult] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.SUCCEEDED

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def notes(self) -> List[str]:
        return [r.note for r in self.results if r.note]
