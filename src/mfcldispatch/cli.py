# cli.py
from __future__ import annotations

import sys
from pathlib import Path

import click

from mfcldispatch.backends import make_backend
from mfcldispatch.errors import ValidationError
from mfcldispatch.model import BackendKind, ExecutionConfig, JobResult, default_concurrency
from mfcldispatch.plan import build_plan
from mfcldispatch.runner import CancelToken, run_plan
from mfcldispatch.ui.console import Console, get_console, set_console


def _print_plan(plan, config, backend) -> None:
    console = get_console()
    console.print_header("PLAN")
    for job in plan:
        console.print_plan_job(job.index, job.label, backend.describe(job, config))


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """mfcl-dispatch: run one command across many job directories."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option(
    "--base-dir",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Project directory holding the job subdirectories",
)
@click.option("--sub-dir", "sub_dirs", multiple=True, help="Job subdirectory, relative to --base-dir (repeatable)")
@click.option(
    "--command",
    "commands",
    multiple=True,
    required=True,
    help="Command to run; give once for all subdirectories or once per --sub-dir",
)
@click.option(
    "--backend",
    type=click.Choice(["auto", "local", "volume", "copy"]),
    default="auto",
    show_default=True,
    help="Where jobs run: host process, bind-mounted container, or copy-isolated container",
)
@click.option("--image", default=None, help="Container image (required unless --backend local)")
@click.option("--workers", default=None, type=int, help="Number of parallel workers (default: cores - 1)")
@click.option("--verbose/--quiet", default=True, show_default=True, help="Echo job output, or append it to the log file")
@click.option(
    "--log-file",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Log file for --quiet runs (default: <base-dir>/output.log)",
)
@click.option("--dry-run", is_flag=True, default=False, help="Print the resolved commands without running them")
@click.pass_context
def run(ctx, base_dir, sub_dirs, commands, backend, image, workers, verbose, log_file, dry_run):
    """Run a command in each job directory and report per-job results."""
    console = get_console()

    try:
        config = ExecutionConfig(
            backend_kind=BackendKind.parse(backend),
            image=image,
            concurrency_limit=default_concurrency() if workers is None else workers,
            verbose=verbose,
            log_file=log_file,
        ).resolved(base_dir)
        plan = build_plan(base_dir, list(sub_dirs) or None, list(commands))
    except ValidationError as e:
        console.print_error(
            "Invalid dispatch request",
            str(e),
            suggestion="Fix the options above and run again; no job was started.",
        )
        sys.exit(2)

    executor = make_backend(config.backend_kind)

    console.print_run_started(
        base_dir=str(Path(base_dir).resolve()),
        backend=config.backend_kind.value,
        job_count=len(plan),
        workers=1 if config.sequential else min(config.concurrency_limit, len(plan)),
        log_file=str(config.log_file) if config.log_file else None,
    )
    _print_plan(plan, config, executor)

    if dry_run:
        return

    def on_progress(done: int, total: int, result: JobResult) -> None:
        job = plan[result.index]
        console.print_job_finished(job.label, result.ok, done, total, reason=result.error)

    cancel = CancelToken()
    try:
        results = run_plan(plan, config, executor, cancel=cancel, on_progress=on_progress)
    except KeyboardInterrupt:
        cancel.cancel()
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    console.print_results([(plan[r.index].label, r.ok) for r in results])

    if any(not r.ok for r in results):
        sys.exit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
