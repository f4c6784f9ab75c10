#!/usr/bin/env python3
"""
KUBENODE ENGINE - The High Orchestrator
---------------------------------------
Runs the provisioning steps strictly in order and stops at the first
failure. provision() is the single top-level call chain: it owns the log
sink for the whole run, reports the failing step together with the full
captured log, and releases the sink on every exit path.

Author: KubeNode Team
Date: 2026-10-18
"""

import logging
import time
from typing import Callable, List, Optional, Sequence

from kubenode.core.logsink import LogSink, open_log_sink
from kubenode.core.models import RunContext, RunOutcome, RunState, Step, StepResult
from kubenode.core.shell import CommandRunner
from kubenode.provisioning.steps import build_steps

logger = logging.getLogger("kubenode.engine")


class SilentReporter:
    """Reporter interface; the CLI formatter implements the visible one."""

    def run_started(self, context: RunContext, sink: LogSink):
        pass

    def step_started(self, index: int, step: Step):
        pass

    def step_finished(self, index: int, step: Step, result: StepResult):
        pass

    def run_failed(self, outcome: RunOutcome, log_text: str):
        pass

    def run_succeeded(self, outcome: RunOutcome, log_text: Optional[str]):
        pass


class RunSequencer:
    """
    Fail-fast sequencer: NOT_STARTED -> RUNNING -> SUCCEEDED | FAILED.
    Any Exception from a step ends the run; KeyboardInterrupt and
    SystemExit pass through untouched.
    """

    def __init__(self, steps: Sequence[Step], reporter=None,
                 clock: Callable[[], float] = time.monotonic):
        self.steps: List[Step] = list(steps)
        self.reporter = reporter or SilentReporter()
        self.clock = clock
        self.state = RunState.NOT_STARTED
        self.current_index: Optional[int] = None

    def run(self) -> RunOutcome:
        if self.state is not RunState.NOT_STARTED:
            raise RuntimeError(f"Sequencer already ran (state: {self.state.value})")
        self.state = RunState.RUNNING
        results = []

        for index, step in enumerate(self.steps):
            self.current_index = index
            self.reporter.step_started(index, step)
            logger.info("=== Step %d/%d: %s ===", index + 1, len(self.steps), step.name)
            started = self.clock()
            try:
                note = step.action()
            except Exception as e:
                seconds = self.clock() - started
                logger.warning("Step %s failed: %s", step.name, e)
                result = StepResult.failure(step.name, e, seconds)
                results.append(result)
                self.reporter.step_finished(index, step, result)
                self.state = RunState.FAILED
                return RunOutcome(RunState.FAILED, results, failed_step=step.name, error=e)
            result = StepResult.success(step.name, note, self.clock() - started)
            results.append(result)
            self.reporter.step_finished(index, step, result)

        self.current_index = None
        self.state = RunState.SUCCEEDED
        return RunOutcome(RunState.SUCCEEDED, results)


def provision(context: RunContext, reporter=None,
              runner_factory: Callable[[LogSink], object] = CommandRunner,
              **step_options) -> RunOutcome:
    """
    Executes the whole install for context.role.

    The log is read back while the sink is still open: on failure it is
    handed to the reporter's error channel, on success only if verbose.
    """
    reporter = reporter or SilentReporter()
    with open_log_sink() as sink:
        reporter.run_started(context, sink)
        logger.info("Starting install as %s node", context.role.value)
        logger.info(
            "Kubernetes %s, containerd %s, Calico %s",
            context.kube_version, context.containerd_version, context.calico_version)
        logger.info("Logging all output to %s", sink.path)

        runner = runner_factory(sink)
        steps = build_steps(context, runner, **step_options)
        outcome = RunSequencer(steps, reporter).run()

        if outcome.succeeded:
            logger.info("Install complete!")
            reporter.run_succeeded(outcome, sink.dump() if context.verbose else None)
        else:
            reporter.run_failed(outcome, sink.dump())
    return outcome
