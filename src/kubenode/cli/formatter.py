# src/kubenode/cli/formatter.py
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from kubenode.core.logsink import LogSink
from kubenode.core.models import RunContext, RunOutcome, Step, StepResult

# Regular progress goes to stdout, failures to stderr
console = Console()
err_console = Console(stderr=True)


class NodeFormatter:
    """
    NodeFormatter: renders the run for a human.
    Implements the reporter interface the engine calls into.
    """

    def __init__(self, out: Optional[Console] = None, err: Optional[Console] = None):
        self.out = out or console
        self.err = err or err_console

    def print_header(self, context: RunContext):
        self.out.print(Panel.fit(
            f"[bold cyan]KubeNode[/bold cyan] - Kubernetes {context.kube_version} on Ubuntu {context.ubuntu_version}\n"
            "══════════════════════════════════════════════════════════════════",
            title=f"[bold white]{context.role.value} node[/bold white]",
            border_style="cyan"
        ))

    def run_started(self, context: RunContext, sink: LogSink):
        self.out.print("Starting install...")
        self.out.print(f"Logging all output to [dim]{sink.path}[/dim]")

    def step_started(self, index: int, step: Step):
        self.out.print(f"[bold]{step.description}[/bold]")

    def step_finished(self, index: int, step: Step, result: StepResult):
        if result.succeeded and result.note:
            self.out.print(f"==> {result.note}", markup=False, highlight=False)

    def run_failed(self, outcome: RunOutcome, log_text: str):
        self.err.print(
            f"[bold red]Error on step {outcome.failed_step}:[/bold red] {escape(str(outcome.error))}",
            highlight=False)
        self.err.print("### Log file ###", style="dim")
        self._print_log(self.err, log_text)

    def run_succeeded(self, outcome: RunOutcome, log_text: Optional[str]):
        self.print_final_table(outcome)
        self.out.print("[bold green]Install complete![/bold green]")
        if log_text is not None:
            self.out.print()
            self.out.print("### Log file ###", style="dim")
            self._print_log(self.out, log_text)

    @staticmethod
    def _print_log(target: Console, log_text: str):
        # Verbatim: no wrapping at console width, no :emoji: expansion
        target.print(log_text, markup=False, highlight=False, emoji=False, soft_wrap=True)

    def print_final_table(self, outcome: RunOutcome):
        """Builds the summary table shown at the very end of a run."""
        table = Table(title="KubeNode Execution Report", show_header=True, header_style="bold magenta")
        table.add_column("Step", style="cyan")
        table.add_column("Seconds", justify="right")
        table.add_column("Result", justify="center")

        for r in outcome.results:
            result_icon = "✅" if r.succeeded else "❌"
            table.add_row(r.name, f"{r.seconds:.1f}", result_icon)

        self.out.print(table)

    def print_follow_up(self, context: RunContext, outcome: RunOutcome):
        if context.role.is_control_plane:
            join = next((r.note for r in outcome.results if r.name == "print_join_command" and r.note), None)
            if join:
                self.out.print()
                self.out.print("### Command to add a worker node ###")
                self.out.print(join, markup=False, highlight=False)
            return
        self.out.print(Panel(
            "Run the below on the control plane node:\n"
            "kubeadm token create --print-join-command --ttl 0\n"
            "and execute the output on the worker nodes",
            title="To add this node as a worker node",
            border_style="dim"
        ))
