import dataclasses
import io
import logging

import pytest
from rich.console import Console

from kubenode.cli.formatter import NodeFormatter
from kubenode.cli.main import KubeNodeCLI, _configure_logging
from kubenode.core.errors import CommandError
from kubenode.core.models import KUBE_VERSION, NodeRole, RunOutcome, RunState
from conftest import FakeRunner


def _formatter():
    out = Console(file=io.StringIO(), width=200)
    err = Console(file=io.StringIO(), width=200)
    return NodeFormatter(out=out, err=err), out, err


class ScratchHostCLI(KubeNodeCLI):
    """Points the resolved context at the test's scratch host."""

    def __init__(self, host_root, work_dir, **kwargs):
        super().__init__(**kwargs)
        self.host_root = host_root
        self.work_dir = work_dir

    def build_context(self, args):
        context = super().build_context(args)
        return dataclasses.replace(context, root_dir=self.host_root, work_dir=self.work_dir)


@pytest.mark.parametrize("flag", ["-h", "-?"])
def test_help_exits_zero(flag, capsys):
    with pytest.raises(SystemExit) as excinfo:
        KubeNodeCLI().parser.parse_args([flag])
    assert excinfo.value.code == 0
    assert "-c" in capsys.readouterr().out


@pytest.mark.parametrize("argv, role", [
    ([], NodeRole.WORKER),
    (["-c"], NodeRole.CONTROL_PLANE),
    (["-s"], NodeRole.SINGLE_NODE),
    (["-c", "-s"], NodeRole.SINGLE_NODE),
    (["-s", "-c"], NodeRole.SINGLE_NODE),
])
def test_flags_resolve_role(argv, role):
    cli = KubeNodeCLI()
    context = cli.build_context(cli.parser.parse_args(argv))
    assert context.role is role
    assert context.kube_version == KUBE_VERSION
    assert not context.verbose


def test_version_overrides():
    cli = KubeNodeCLI()
    context = cli.build_context(cli.parser.parse_args(["-v", "--kube-version", "1.30.2"]))
    assert context.verbose
    assert context.kube_minor == "1.30"
    assert context.requested_server_version == "v1.30.2"


def test_rejects_partial_kube_version():
    with pytest.raises(SystemExit) as excinfo:
        KubeNodeCLI().parser.parse_args(["--kube-version", "1.31"])
    assert excinfo.value.code == 2


def test_worker_run_prints_join_instructions(host_root, tmp_path):
    formatter, out, err = _formatter()
    cli = ScratchHostCLI(host_root, tmp_path, formatter=formatter)
    code = cli.run([], runner_factory=lambda sink: FakeRunner())
    assert code == 0
    text = out.file.getvalue()
    assert "Checking Linux distribution" in text
    assert "Install complete!" in text
    assert "kubeadm token create --print-join-command --ttl 0" in text
    assert err.file.getvalue() == ""


def test_control_plane_run_prints_join_command(host_root, tmp_path):
    formatter, out, err = _formatter()
    cli = ScratchHostCLI(host_root, tmp_path, formatter=formatter)
    code = cli.run(["-c"], runner_factory=lambda sink: FakeRunner(), sleep=lambda seconds: None)
    assert code == 0
    assert "kubeadm join 10.0.0.5:6443" in out.file.getvalue()


def test_failed_run_exits_one_with_error_on_stderr(host_root, tmp_path):
    formatter, out, err = _formatter()
    cli = ScratchHostCLI(host_root, tmp_path, formatter=formatter)
    code = cli.run([], runner_factory=lambda sink: FakeRunner(failures=["modprobe"]))
    assert code == 1
    text = err.file.getvalue()
    assert text.startswith("Error on step configure_kernel_and_sysctl:")
    assert "### Log file ###" in text
    assert "Install complete!" not in out.file.getvalue()


def test_version_mismatch_exits_one(host_root, tmp_path):
    formatter, out, err = _formatter()
    cli = ScratchHostCLI(host_root, tmp_path, formatter=formatter)
    runner = FakeRunner(responses={
        "kubectl version -o json":
            '{"clientVersion": {"gitVersion": "v1.31.0"}, "serverVersion": {"gitVersion": "v1.30.5"}}',
    })
    code = cli.run(["-c"], runner_factory=lambda sink: runner, sleep=lambda seconds: None)
    assert code == 1
    text = err.file.getvalue()
    assert "check_kubernetes_version" in text
    assert "v1.30.5" in text
    assert not runner.ran("kubectl apply")


def test_log_is_printed_verbatim_on_a_narrow_terminal():
    out = Console(file=io.StringIO(), width=40)
    err = Console(file=io.StringIO(), width=40)
    formatter = NodeFormatter(out=out, err=err)
    line = "Run: apt-get install -y kubelet=1.31.0-* kubeadm=1.31.0-* :smile: [bold]x[/bold]"
    outcome = RunOutcome(state=RunState.FAILED, results=[], failed_step="install_kubernetes_binaries",
                         error=CommandError(["apt-get"], 100))
    formatter.run_failed(outcome, line + "\n")
    assert line in err.file.getvalue().splitlines()


@pytest.mark.parametrize("verbose, level", [(False, logging.ERROR), (True, logging.INFO)])
def test_console_log_level(monkeypatch, verbose, level):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
    _configure_logging(verbose)
    [kwargs] = calls
    assert kwargs["level"] == logging.DEBUG
    [handler] = kwargs["handlers"]
    assert handler.level == level
