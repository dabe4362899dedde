# runner.py
from __future__ import annotations

import threading
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Deque, Dict, Iterable, Optional

from .config import RunConfig
from .dag import JobGraph, build_graph
from .errors import InvalidTransitionError
from .executor import ActionRouter, JobExecutor, JobOutcome, ShellDelegate, StepDelegate
from .model import TRANSITIONS, JobFailure, JobInstance, JobStatus, TriggerContext, WorkflowSpec
from .reporter import RunListener, RunReporter, RunResult
from .trigger import should_run


class Scheduler:
    """
    Walks the job graph and dispatches ready instances to the executor.

    All status transitions happen on the thread calling `run()`; executor
    threads only hand back a JobOutcome. "Ready" is recomputed from the
    dependency statuses every time, so an instance can't be queued twice.
    """

    def __init__(
        self,
        graph: JobGraph,
        executor: JobExecutor,
        *,
        max_concurrency: Optional[int] = None,
        fail_fast: bool = False,
        reporter: Optional[RunReporter] = None,
        poll_interval: float = 0.1,
        cancel_event: Optional[threading.Event] = None,
    ):
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.graph = graph
        self.executor = executor
        self.max_concurrency = max_concurrency
        self.fail_fast = fail_fast
        self.reporter = reporter or RunReporter()
        self.poll_interval = poll_interval

        # Shared with delegates that can stop a running step.
        self._cancel = cancel_event or threading.Event()
        self._ready: Deque[JobInstance] = deque()

    # ------------------------------------------------------------------
    # External control
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Stop the run: running instances are signalled, the rest are skipped."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    # ------------------------------------------------------------------
    # Transitions (scheduler thread only)
    # ------------------------------------------------------------------

    def _transition(self, instance: JobInstance, status: JobStatus) -> None:
        if status not in TRANSITIONS[instance.status]:
            raise InvalidTransitionError(
                f"Illegal transition {instance.status.value} -> {status.value}",
                job=instance.name,
            )
        instance.status = status

    def _is_ready(self, instance: JobInstance) -> bool:
        return instance.status == JobStatus.PENDING and all(
            self.graph.get(dep).status == JobStatus.SUCCEEDED for dep in instance.needs
        )

    def _promote(self, candidates: Iterable[JobInstance]) -> None:
        for instance in candidates:
            if self._is_ready(instance):
                self._transition(instance, JobStatus.READY)
                self._ready.append(instance)

    def _skip(self, instance: JobInstance) -> None:
        if instance.status == JobStatus.READY:
            self._ready.remove(instance)
        self._transition(instance, JobStatus.SKIPPED)
        self.reporter.instance_finished(instance)

    def _skip_undispatched(self) -> None:
        for instance in self.graph.instances:
            if instance.status in (JobStatus.PENDING, JobStatus.READY):
                self._skip(instance)

    def _finish(self, instance: JobInstance, outcome: JobOutcome) -> None:
        if outcome.success:
            self._transition(instance, JobStatus.SUCCEEDED)
            self.reporter.instance_finished(instance)
            self._promote(self.graph.get(d) for d in self.graph.dependents(instance.id))
            return

        instance.failure = outcome.failure
        self._transition(instance, JobStatus.FAILED)
        self.reporter.instance_finished(instance)

        # No partial credit: everything downstream never runs.
        for dep_id in self.graph.transitive_dependents(instance.id):
            dependent = self.graph.get(dep_id)
            if dependent.status in (JobStatus.PENDING, JobStatus.READY):
                self._skip(dependent)
        if self.fail_fast:
            self._skip_undispatched()

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def _has_capacity(self, in_flight: int) -> bool:
        return self.max_concurrency is None or in_flight < self.max_concurrency

    def run(self) -> RunResult:
        self._promote(self.graph.instances)

        workers = self.max_concurrency or max(1, len(self.graph))
        in_flight: Dict[Future, JobInstance] = {}

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="matrixci") as pool:
            while True:
                if self._cancel.is_set():
                    self._skip_undispatched()

                # schedule all currently ready, up to the concurrency cap
                while self._ready and self._has_capacity(len(in_flight)):
                    instance = self._ready.popleft()
                    self._transition(instance, JobStatus.RUNNING)
                    self.reporter.instance_started(instance)
                    fut = pool.submit(self.executor.run, instance, self._cancel)
                    in_flight[fut] = instance

                if not in_flight:
                    break

                # wait for whichever finishes first, then loop to schedule newly-ready jobs
                try:
                    done, _ = wait(list(in_flight), timeout=self.poll_interval, return_when=FIRST_COMPLETED)
                except KeyboardInterrupt:
                    # Ctrl-C turns into a cancellation so partial results still get reported.
                    self.cancel()
                    continue
                for fut in done:
                    instance = in_flight.pop(fut)
                    try:
                        outcome = fut.result()
                    except Exception as e:
                        outcome = JobOutcome(
                            False,
                            JobFailure(step="<executor>", index=-1, diagnostic=f"{type(e).__name__}: {e}"),
                        )
                    self._finish(instance, outcome)

        return self.reporter.finalize(self.graph, cancelled=self._cancel.is_set())


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def make_executor(
    config: RunConfig,
    delegate: Optional[StepDelegate] = None,
    cancel_event: Optional[threading.Event] = None,
) -> JobExecutor:
    if delegate is None:
        delegate = ActionRouter(
            shell=ShellDelegate(
                repo_root=config.repo_root,
                cancel_event=cancel_event,
                poll_interval=config.poll_interval,
            ),
            allow_unknown=config.allow_unknown_actions,
        )
    return JobExecutor(delegate)


def run_graph(
    graph: JobGraph,
    *,
    config: Optional[RunConfig] = None,
    delegate: Optional[StepDelegate] = None,
    listeners: Iterable[RunListener] = (),
    scheduler_hook: Optional[Callable[[Scheduler], None]] = None,
) -> RunResult:
    """
    Schedule an already-built graph to completion.

    `scheduler_hook`, if given, receives the Scheduler before it starts
    (e.g. to wire up cancellation from another thread).
    """
    config = config or RunConfig()
    cancel_event = threading.Event()
    scheduler = Scheduler(
        graph,
        make_executor(config, delegate, cancel_event),
        max_concurrency=config.max_concurrency,
        fail_fast=config.fail_fast,
        reporter=RunReporter(listeners),
        poll_interval=config.poll_interval,
        cancel_event=cancel_event,
    )
    if scheduler_hook is not None:
        scheduler_hook(scheduler)
    return scheduler.run()


def run_workflow(
    spec: WorkflowSpec,
    *,
    context: Optional[TriggerContext] = None,
    config: Optional[RunConfig] = None,
    delegate: Optional[StepDelegate] = None,
    listeners: Iterable[RunListener] = (),
    scheduler_hook: Optional[Callable[[Scheduler], None]] = None,
) -> Optional[RunResult]:
    """
    Trigger check -> graph build -> scheduled run.

    Returns None when the trigger context does not start a run. Build-time
    errors propagate before anything executes.
    """
    if context is not None and not should_run(spec.triggers, context):
        return None
    return run_graph(
        build_graph(spec),
        config=config,
        delegate=delegate,
        listeners=listeners,
        scheduler_hook=scheduler_hook,
    )
