# cli.py
from __future__ import annotations

import sys
from pathlib import Path

import click

from matrixci.config import RunConfig
from matrixci.dag import build_graph
from matrixci.errors import WorkflowError
from matrixci.git_facts.git import detect_branch
from matrixci.loader import load_workflow
from matrixci.model import TriggerContext, WorkflowSpec
from matrixci.runner import run_graph
from matrixci.trigger import KNOWN_EVENTS, WORKFLOW_DISPATCH, should_run
from matrixci.ui.console import Console, ConsoleListener, get_console, set_console

EXIT_FAILED = 1
EXIT_INVALID = 2
EXIT_INTERRUPTED = 130

DEFAULT_WORKFLOWS = ("matrixci.yml", "matrixci.yaml", "matrixci_workflow.py")


def find_workflow_files(root: Path = Path(".")) -> list[Path]:
    """
    Find all workflow files in a directory.

    Looks for the default names first, then *_workflow.py and
    .github/workflows/*.yml.
    """
    found: list[Path] = []
    for name in DEFAULT_WORKFLOWS:
        path = root / name
        if path.exists():
            found.append(path)

    for pattern in ("*_workflow.py", ".github/workflows/*.yml", ".github/workflows/*.yaml"):
        for path in sorted(root.glob(pattern)):
            if path not in found:
                found.append(path)
    return found


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If no workflow or more than one candidate is found
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  matrixci run --workflow ci.yml",
            )
            sys.exit(EXIT_INVALID)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                *[f"  {name}" for name in DEFAULT_WORKFLOWS],
                "  *_workflow.py",
                "  .github/workflows/*.yml",
            ],
            suggestion="Specify a workflow explicitly:\n  matrixci run --workflow ci.yml",
        )
        sys.exit(EXIT_INVALID)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion="Specify a workflow explicitly:\n  matrixci run --workflow matrixci.yml",
        )
        sys.exit(EXIT_INVALID)

    return workflow_files[0]


def _load(workflow: str | None) -> tuple[Path, WorkflowSpec]:
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        return workflow_path, load_workflow(workflow_path)
    except WorkflowError as e:
        console.print_error("Invalid workflow", str(e))
        sys.exit(EXIT_INVALID)
    except Exception as e:
        console.print_error(
            "Failed to load workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        console.print_exception(e)
        sys.exit(EXIT_INVALID)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """matrixci — run a job/matrix CI workflow locally."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.yml/.yaml/.py)")
@click.option(
    "--event",
    type=click.Choice(KNOWN_EVENTS),
    default=WORKFLOW_DISPATCH,
    show_default=True,
    help="Trigger event kind",
)
@click.option("--branch", default=None, help="Branch for the trigger filter (defaults to the current git branch)")
@click.option("--max-concurrency", default=None, type=click.IntRange(min=1), help="At most N jobs running at once")
@click.option("--fail-fast/--no-fail-fast", default=None, help="Stop scheduling new jobs after first failure")
@click.option(
    "--allow-unknown-actions/--no-allow-unknown-actions",
    default=None,
    help="Treat `uses:` steps without a registered handler as no-ops",
)
@click.option("--repo-root", default=".", show_default=True, help="Directory shell steps run in")
@click.pass_context
def run(ctx, workflow, event, branch, max_concurrency, fail_fast, allow_unknown_actions, repo_root):
    """Run a workflow: expand the matrix, schedule jobs, report results."""
    console = get_console()
    workflow_path, spec = _load(workflow)

    try:
        config = RunConfig.from_env().with_overrides(
            max_concurrency=max_concurrency,
            fail_fast=fail_fast,
            allow_unknown_actions=allow_unknown_actions,
            repo_root=repo_root,
        )
    except ValueError as e:
        console.print_error("Invalid configuration", str(e))
        sys.exit(EXIT_INVALID)

    if branch is None:
        branch = detect_branch(repo_root)
    context = TriggerContext(event=event, branch=branch)
    console.print_debug(f"config={config} context={context}")

    if not should_run(spec.triggers, context):
        console.print_info(f"Trigger '{event}' on branch '{branch}' does not match the workflow; nothing to run.")
        return

    try:
        graph = build_graph(spec)
    except WorkflowError as e:
        console.print_error("Invalid workflow", str(e))
        sys.exit(EXIT_INVALID)

    console.print_run_started(
        workflow=f"{spec.name} ({workflow_path.name})",
        event=event,
        branch=branch,
        instance_count=len(graph),
    )
    try:
        result = run_graph(graph, config=config, listeners=[ConsoleListener(console)])
    except Exception as e:
        console.print_exception(e)
        sys.exit(EXIT_FAILED)

    if result.cancelled:
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_INTERRUPTED)
    if not result.succeeded:
        sys.exit(result.exit_code())


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.yml/.yaml/.py)")
def plan(workflow):
    """Show the expanded job graph stage by stage without running it."""
    console = get_console()
    _path, spec = _load(workflow)
    try:
        graph = build_graph(spec)
    except WorkflowError as e:
        console.print_error("Invalid workflow", str(e))
        sys.exit(EXIT_INVALID)
    console.print_header(f"{spec.name}: {len(graph)} job(s)")
    console.print_plan(graph)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.yml/.yaml/.py)")
def validate(workflow):
    """Check a workflow for duplicate jobs, unknown needs, cycles and bad matrices."""
    console = get_console()
    workflow_path, spec = _load(workflow)
    try:
        graph = build_graph(spec)
    except WorkflowError as e:
        console.print_error("Invalid workflow", str(e))
        sys.exit(EXIT_INVALID)
    console.print_info(f"{workflow_path.name}: OK ({len(spec.jobs)} job(s), {len(graph)} instance(s))")


if __name__ == "__main__":
    cli()
