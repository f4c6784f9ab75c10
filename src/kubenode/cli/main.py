#!/usr/bin/env python3
"""
KUBENODE CLI - Node Installer Front Door
----------------------------------------
Parses the installer flags, resolves the node role, builds the immutable
RunContext and hands it to the engine. The exit status is the outcome's:
0 on success, 1 on any failed step.

Author: KubeNode Team
Date: 2026-10-18
"""

import argparse
import logging
import re
import signal
import sys
from typing import List, Optional

from kubenode.cli.formatter import NodeFormatter, err_console
from kubenode.core import models
from kubenode.core.engine import provision
from kubenode.core.models import RunContext
from kubenode.core.roles import resolve_role

logger = logging.getLogger("kubenode.cli")

EPILOG = """\
On a control plane node use the '-c' option:
  kubenode -c
On a worker node, run with no options:
  kubenode
For a single node, control plane and worker together, use the '-s' option:
  kubenode -s
For verbose output, use the '-v' option:
  kubenode -v
"""

_full_version = re.compile(r"^\d+\.\d+\.\d+$")


def _kube_version(value: str) -> str:
    if not _full_version.match(value):
        raise argparse.ArgumentTypeError(f"expected MAJOR.MINOR.PATCH such as 1.31.0, got {value!r}")
    return value


def _terminate(signum, frame):
    # Unwinds through open_log_sink() so the temporary log is still removed
    raise SystemExit(128 + signum)


def install_signal_handlers():
    for signum in (signal.SIGTERM, signal.SIGHUP):
        signal.signal(signum, _terminate)


class KubeNodeCLI:
    """
    CLI wrapper that translates flags into a RunContext and an engine run.
    """

    def __init__(self, formatter: Optional[NodeFormatter] = None):
        self.formatter = formatter or NodeFormatter()
        self.parser = argparse.ArgumentParser(
            prog="kubenode",
            description="KubeNode - provision this Ubuntu host as a Kubernetes node",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=EPILOG,
            add_help=False,
        )
        self._setup_args()

    def _setup_args(self):
        """Configures the command-line flags."""
        self.parser.add_argument("-h", "-?", action="help", help="Show this message and exit")
        self.parser.add_argument("-c", dest="control", action="store_true", help="Install a control plane node")
        self.parser.add_argument(
            "-s", dest="single", action="store_true",
            help="Install a single node cluster (control plane and worker together, wins over -c)")
        self.parser.add_argument("-v", dest="verbose", action="store_true", help="Print the full log at the end")
        self.parser.add_argument(
            "--kube-version", type=_kube_version, default=models.KUBE_VERSION,
            help=f"Kubernetes version to install (default: {models.KUBE_VERSION})")
        self.parser.add_argument(
            "--calico-version", default=models.CALICO_VERSION,
            help=f"Calico CNI version (default: {models.CALICO_VERSION})")
        self.parser.add_argument(
            "--ubuntu-version", default=models.UBUNTU_VERSION,
            help=f"Required Ubuntu release (default: {models.UBUNTU_VERSION})")
        self.parser.add_argument(
            "--metrics-server-url", default=models.METRICS_SERVER_URL,
            help="metrics-server manifest to apply on control plane nodes")

    def build_context(self, args: argparse.Namespace) -> RunContext:
        return RunContext(
            role=resolve_role(control=args.control, single=args.single),
            kube_version=args.kube_version,
            calico_version=args.calico_version,
            ubuntu_version=args.ubuntu_version,
            metrics_server_url=args.metrics_server_url,
            verbose=args.verbose,
        )

    def run(self, argv: Optional[List[str]] = None, **engine_options) -> int:
        """Primary routing entry point."""
        args = self.parser.parse_args(argv)
        _configure_logging(args.verbose)
        context = self.build_context(args)

        self.formatter.print_header(context)
        outcome = provision(context, reporter=self.formatter, **engine_options)
        if outcome.succeeded:
            self.formatter.print_follow_up(context, outcome)
        return outcome.exit_code


def _configure_logging(verbose: bool):
    # Records always reach the log sink; the terminal only shows what matters
    handler = logging.StreamHandler()
    handler.setLevel(logging.INFO if verbose else logging.ERROR)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    logging.basicConfig(level=logging.DEBUG, handlers=[handler])


def main():
    """Application entry point with interrupt handling."""
    install_signal_handlers()
    try:
        sys.exit(KubeNodeCLI().run())
    except KeyboardInterrupt:
        err_console.print("\n[bold red]Terminated by user.[/bold red]")
        sys.exit(130)


if __name__ == "__main__":
    main()
