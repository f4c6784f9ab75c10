#!/usr/bin/env python3
"""
KUBENODE READINESS - The Waiting Room
-------------------------------------
Bounded polling of cluster state. A query returns the resources that are
not ready yet; the wait ends as soon as that list is empty, or once the
wall-clock time spent waiting reaches the timeout.

Author: KubeNode Team
Date: 2026-10-18
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List

logger = logging.getLogger("kubenode.readiness")

POLL_INTERVAL = 10
NODES_TIMEOUT = 180
PODS_TIMEOUT = 300


@dataclass
class WaitResult:
    resource: str
    ready: bool
    outstanding: List[str] = field(default_factory=list)
    elapsed: float = 0.0

    def describe(self) -> str:
        if self.ready:
            return f"All {self.resource} ready after {self.elapsed:.0f}s"
        listing = "\n".join(f"  - {item}" for item in self.outstanding)
        return (
            f"Timed out after {self.elapsed:.0f}s waiting for {self.resource}, "
            f"{len(self.outstanding)} not ready:\n{listing}"
        )


def wait_until(
        resource: str,
        query: Callable[[], List[str]],
        timeout: float,
        interval: float = POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        ) -> WaitResult:
    """Poll, check, sleep, repeat until nothing is outstanding or time is up."""
    start = clock()
    while True:
        outstanding = query()
        elapsed = clock() - start
        if not outstanding:
            logger.info("All %s ready after %.0fs", resource, elapsed)
            return WaitResult(resource, True, [], elapsed)
        if elapsed >= timeout:
            logger.warning("Timeout waiting for %s: %s", resource, ", ".join(outstanding))
            return WaitResult(resource, False, outstanding, elapsed)
        logger.info("Waiting for %d %s to become ready...", len(outstanding), resource)
        sleep(interval)


def not_ready_nodes(listing: str) -> List[str]:
    """Parses 'kubectl get nodes --no-headers' into the nodes whose STATUS is not Ready."""
    outstanding = []
    for line in listing.splitlines():
        fields = line.split()
        if len(fields) < 2:
            continue
        name, status = fields[0], fields[1]
        # 'Ready,SchedulingDisabled' still counts as not ready for a fresh install
        if status != "Ready":
            outstanding.append(f"{name} ({status})")
    return outstanding


def not_running_pods(listing: str) -> List[str]:
    """Parses 'kubectl get pods --all-namespaces --no-headers' into pods not Running."""
    outstanding = []
    for line in listing.splitlines():
        fields = line.split()
        if len(fields) < 4:
            continue
        namespace, name, status = fields[0], fields[1], fields[3]
        if status != "Running":
            outstanding.append(f"{namespace}/{name} ({status})")
    return outstanding


class ReadinessWaiter:
    """Cluster-specific waits built on wait_until and kubectl."""

    def __init__(self, runner, clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.runner = runner
        self.clock = clock
        self.sleep = sleep

    def wait_for_nodes(self, timeout: float = NODES_TIMEOUT) -> WaitResult:
        # An empty node list means the API has not registered us yet
        def query():
            listing = self.runner.capture(["kubectl", "get", "nodes", "--no-headers"])
            if not listing.strip():
                return ["<no nodes registered>"]
            return not_ready_nodes(listing)
        return wait_until("nodes", query, timeout, clock=self.clock, sleep=self.sleep)

    def wait_for_pods(self, timeout: float = PODS_TIMEOUT) -> WaitResult:
        def query():
            listing = self.runner.capture(["kubectl", "get", "pods", "--all-namespaces", "--no-headers"])
            return not_running_pods(listing)
        result = wait_until("pods", query, timeout, clock=self.clock, sleep=self.sleep)
        if not result.ready:
            # Full listing goes to the log for diagnosis
            self.runner.run_tolerant(["kubectl", "get", "pods", "--all-namespaces"])
        return result
