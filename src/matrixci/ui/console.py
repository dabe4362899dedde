"""Console output formatting utilities for matrixci."""

from __future__ import annotations

import sys
import threading
from typing import Optional, TYPE_CHECKING

from matrixci.model import JobInstance, JobStatus

if TYPE_CHECKING:
    from matrixci.dag import JobGraph
    from matrixci.reporter import RunResult


_STATUS_LABELS = {
    JobStatus.SUCCEEDED: "SUCCESS",
    JobStatus.FAILED: "FAILED",
    JobStatus.SKIPPED: "SKIPPED",
}


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, stream=None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            stream: Where normal output goes (defaults to stdout)
        """
        self.debug = debug
        self.stream = stream
        self._lock = threading.Lock()

    def _out(self, text: str = "") -> None:
        with self._lock:
            print(text, file=self.stream or sys.stdout)

    def _err(self, text: str = "") -> None:
        with self._lock:
            print(text, file=sys.stderr)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._out(f"\n{title}")
        self._out("-" * len(title))

    def print_run_started(
        self,
        workflow: str,
        event: str,
        branch: Optional[str],
        instance_count: int,
    ) -> None:
        """Print run start information."""
        self._out("\nRUN STARTED")
        self._out(f"Workflow: {workflow}")
        self._out(f"Event: {event}" + (f" ({branch})" if branch else ""))
        self._out(f"Jobs: {instance_count}")
        self._out()

    def print_job_start(self, name: str) -> None:
        self._out(f"JOB STARTED: {name}")

    def print_job_finished(self, instance: JobInstance) -> None:
        """Print a job's terminal status as soon as it is known."""
        label = _STATUS_LABELS.get(instance.status, instance.status.value.upper())
        self._out(f"JOB {label}: {instance.display_name}")
        if instance.failure is not None:
            self.print_failure(instance.failure.step, instance.failure.diagnostic, instance.failure.exit_code)

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
    ) -> None:
        """
        Print a step failure.

        Args:
            name: Step name
            reason: Failure reason / captured output
            exit_code: Optional exit code
        """
        self._out(f"  STEP FAILED: {name}")
        if exit_code is not None:
            self._out(f"  Exit code: {exit_code}")
        if not reason:
            return
        if self.debug:
            self._out("  Error details:")
            for line in reason.splitlines():
                self._out(f"    {line}")
        else:
            # Last non-empty line is usually the useful one
            lines = [line for line in reason.splitlines() if line.strip()]
            if lines:
                self._out(f"  Error: {lines[-1]}")

    def print_plan(self, graph: "JobGraph") -> None:
        """Print the expanded job graph stage by stage."""
        for idx, level in enumerate(graph.levels()):
            self._out(f"=== Stage {idx + 1} ===")
            for instance_id in level:
                instance = graph.get(instance_id)
                needs = ", ".join(str(n) for n in instance.needs)
                suffix = f"  <- {needs}" if needs else ""
                self._out(f"  {instance.name}{suffix}")

    def print_results(self, result: "RunResult") -> None:
        """Print final results summary."""
        self._out("\n" + "=" * 40)
        self._out("RESULTS")
        self._out("=" * 40)
        for name, status, _failure in result.rows():
            status_display = _STATUS_LABELS.get(status, status.value.upper())
            self._out(f"  {name}: {status_display}")
        counts = result.counts()
        self._out(
            f"\n{counts['succeeded']} succeeded, {counts['failed']} failed, {counts['skipped']} skipped"
        )
        if result.cancelled:
            self._out("Run was cancelled.")
        self._out("RUN " + ("SUCCEEDED" if result.succeeded else "FAILED"))

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        self._err(f"\nERROR: {title}")
        self._err(message)
        if details:
            for detail in details:
                self._err(f"  {detail}")
        if suggestion:
            self._err(f"\n{suggestion}")

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._err(f"Error: {exc}")

    def print_info(self, message: str) -> None:
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._err(f"[DEBUG] {message}")


class ConsoleListener:
    """Streams run progress to a Console as the scheduler reports it."""

    def __init__(self, console: Console):
        self.console = console

    def instance_started(self, instance: JobInstance) -> None:
        self.console.print_job_start(instance.display_name)
        self.console.print_debug(f"{instance.name}: {len(instance.steps)} step(s)")

    def instance_finished(self, instance: JobInstance) -> None:
        self.console.print_job_finished(instance)

    def run_finished(self, result: "RunResult") -> None:
        self.console.print_results(result)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
