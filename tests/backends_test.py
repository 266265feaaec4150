from __future__ import annotations

import os
import shutil
from pathlib import Path, PureWindowsPath

import pytest

from mfcldispatch.backends import (
    CopyIsolatedBackend,
    LocalBackend,
    ProcessOutput,
    VolumeMountBackend,
    container_path,
    make_backend,
    run_process,
)
from mfcldispatch.errors import MissingLogFile
from mfcldispatch.logsink import LogSink
from mfcldispatch.model import BackendKind, ExecutionConfig, Failure, Success
from mfcldispatch.plan import build_plan

from conftest import FakeRunner

needs_sh = pytest.mark.skipif(shutil.which("sh") is None, reason="needs a POSIX shell")


def test_make_backend_selects_by_kind():
    assert isinstance(make_backend("local"), LocalBackend)
    assert isinstance(make_backend(BackendKind.VOLUME_MOUNT), VolumeMountBackend)
    assert isinstance(make_backend("copy"), CopyIsolatedBackend)


# ---------------------------------------------------------------------
# Local
# ---------------------------------------------------------------------

@needs_sh
def test_local_runs_in_job_directory(project):
    job = build_plan(project, ["a"], "pwd; cat input.frq")[0]
    before = os.getcwd()

    result = LocalBackend().execute(job, ExecutionConfig())

    assert os.getcwd() == before
    assert isinstance(result.outcome, Success)
    assert Path(result.output[0]).resolve() == job.working_directory
    assert result.output[1] == "frq a"
    assert result.command_executed == "pwd; cat input.frq"


@needs_sh
def test_local_captures_stderr_interleaved(project):
    job = build_plan(project, ["a"], "echo one; echo two 1>&2; echo three")[0]
    result = LocalBackend().execute(job, ExecutionConfig())
    assert result.output == ("one", "two", "three")


@needs_sh
def test_local_nonzero_exit_is_a_failure(project):
    job = build_plan(project, ["a"], "echo partial; exit 3")[0]
    result = LocalBackend().execute(job, ExecutionConfig())

    assert isinstance(result.outcome, Failure)
    assert result.outcome.exit_code == 3
    assert "exit=3" in result.outcome.message
    assert result.outcome.output == ("partial",)


def test_local_missing_program_is_a_failure(project):
    job = build_plan(project, ["a"], [["definitely-not-a-real-binary-xyz"]])[0]
    result = LocalBackend().execute(job, ExecutionConfig())

    assert not result.ok
    assert "not available" in result.error


@needs_sh
def test_quiet_output_goes_to_log_file(project):
    log = project / "output.log"
    config = ExecutionConfig(verbose=False, log_file=log)
    job = build_plan(project, ["b"], "echo hello")[0]

    result = LocalBackend().execute(job, config)

    assert result.ok and result.output == ()
    text = log.read_text()
    assert f"[job 0] {job.working_directory} :: echo hello" in text
    assert "hello\n" in text


@needs_sh
def test_quiet_failure_keeps_its_output(project):
    config = ExecutionConfig(verbose=False, log_file=project / "output.log")
    job = build_plan(project, ["c"], "echo bad input; exit 2")[0]

    result = LocalBackend().execute(job, config)

    assert result.outcome.output == ("bad input",)
    assert "bad input" in (project / "output.log").read_text()


def test_quiet_execute_needs_a_log_file(project, capsys):
    runner = FakeRunner()
    job = build_plan(project, ["a"], "echo secret-output")[0]

    with pytest.raises(MissingLogFile):
        LocalBackend(runner).execute(job, ExecutionConfig(verbose=False))

    assert runner.calls == []
    assert capsys.readouterr().out == ""


def test_quiet_output_goes_to_the_given_sink(project):
    sink = LogSink(project / "run.log")
    config = ExecutionConfig(verbose=False, log_file=project / "other.log")
    runner = FakeRunner(lambda argv: ProcessOutput(0, ("hello",)))
    job = build_plan(project, ["a"], "echo hello")[0]

    LocalBackend(runner).execute(job, config, sink)

    assert "hello" in (project / "run.log").read_text()
    assert not (project / "other.log").exists()


@needs_sh
def test_run_process_streams_lines_as_they_arrive(project):
    seen = []
    out = run_process("echo one; echo two 1>&2; echo three", project, on_line=seen.append)

    assert out.returncode == 0
    assert seen == ["one", "two", "three"]
    assert out.lines == ("one", "two", "three")


def test_verbose_output_is_echoed_once(project, capsys):
    runner = FakeRunner(lambda argv: ProcessOutput(0, ("iteration 1", "iteration 2")))
    job = build_plan(project, ["a"], "./mfclo64")[0]

    LocalBackend(runner).execute(job, ExecutionConfig())

    out = capsys.readouterr().out
    assert out.count("[a] iteration 1") == 1
    assert out.count("[a] iteration 2") == 1


def test_unstreamed_failure_output_is_still_echoed(project, tmp_path, capsys):
    runner = FakeRunner(lambda argv: ProcessOutput(1, ("no space left",)) if argv[1] == "cp" else None)
    backend = _copy_backend(runner, tmp_path / "staging")
    job = build_plan(project, ["a"], "run")[0]

    result = backend.execute(job, ExecutionConfig(backend_kind="copy", image="img"))

    assert not result.ok
    assert "[a] no space left" in capsys.readouterr().out


# ---------------------------------------------------------------------
# Volume mount
# ---------------------------------------------------------------------

def test_container_path_posix_is_identity():
    assert container_path("/data/runs/a", windows=False) == "/data/runs/a"


def test_container_path_windows_drive_mapping():
    assert container_path(PureWindowsPath(r"C:\runs\a"), windows=True) == "/mnt/C/runs/a"
    assert container_path("d:/x", windows=True) == "/mnt/d/x"


def test_volume_mount_command_without_socket(project, tmp_path):
    runner = FakeRunner()
    backend = VolumeMountBackend(runner, docker="docker", socket=str(tmp_path / "no.sock"))
    job = build_plan(project, ["a"], "./mfclo64 input.frq")[0]
    config = ExecutionConfig(backend_kind="volume", image="mfcl:1.0")

    result = backend.execute(job, config)

    host = str(job.working_directory)
    assert runner.calls == [[
        "docker", "run", "--rm",
        "-v", f"{host}:{container_path(host)}",
        "-w", container_path(host),
        "mfcl:1.0", "sh", "-c", "./mfclo64 input.frq",
    ]]
    assert result.ok
    assert result.command_executed.startswith("docker run --rm -v ")


def test_volume_mount_adds_engine_socket_when_present(project, tmp_path):
    sock = tmp_path / "docker.sock"
    sock.touch()
    runner = FakeRunner()
    backend = VolumeMountBackend(runner, socket=str(sock))
    job = build_plan(project, ["a"], ["./mfclo64", "in.frq"])[0]

    backend.execute(job, ExecutionConfig(backend_kind="volume", image="img"))

    argv = runner.calls[0]
    assert ["-v", f"{sock}:{sock}"] == argv[5:7]
    assert argv[-3:] == ["img", "./mfclo64", "in.frq"]


def test_volume_mount_failure_is_captured(project, tmp_path):
    runner = FakeRunner(lambda argv: ProcessOutput(125, ("Unable to find image",)))
    backend = VolumeMountBackend(runner, socket=str(tmp_path / "none"))
    job = build_plan(project, ["a"], "run")[0]

    result = backend.execute(job, ExecutionConfig(backend_kind="volume", image="img"))

    assert not result.ok
    assert result.outcome.exit_code == 125
    assert result.outcome.output == ("Unable to find image",)


# ---------------------------------------------------------------------
# Copy isolated
# ---------------------------------------------------------------------

def _copy_backend(runner, staging_root):
    return CopyIsolatedBackend(runner, docker="docker", staging_root=staging_root, prefix="t")


def test_copy_isolated_step_order_and_results(project, tmp_path):
    staging_root = tmp_path / "staging"

    def handler(argv):
        # emulate the job writing a result file inside the container
        if argv[1] == "cp" and argv[2].endswith(":/jobs/."):
            Path(argv[3], "plot.rep").write_text("results\n")
        if argv[1] == "exec":
            return ProcessOutput(0, ("converged",))
        return None

    runner = FakeRunner(handler)
    job = build_plan(project, ["a"], "./mfclo64 input.frq")[0]
    config = ExecutionConfig(backend_kind="copy", image="mfcl:1.0")

    result = _copy_backend(runner, staging_root).execute(job, config)

    assert runner.subcommands() == ["run", "cp", "exec", "cp", "rm"]
    name = runner.find("run")[0][4]
    assert runner.find("run")[0] == ["docker", "run", "-d", "--name", name, "mfcl:1.0", "tail", "-f", "/dev/null"]
    assert runner.find("cp")[0][3] == f"{name}:/jobs"
    assert runner.find("exec")[0] == ["docker", "exec", "-w", "/jobs", name, "sh", "-c", "./mfclo64 input.frq"]
    assert runner.find("rm")[0] == ["docker", "rm", "-f", name]

    assert result.ok and result.output == ("converged",)
    assert (job.working_directory / "plot.rep").read_text() == "results\n"
    assert (job.working_directory / "input.frq").read_text() == "frq a\n"
    assert list(staging_root.iterdir()) == []


def test_copy_isolated_cleans_up_when_command_fails(project, tmp_path):
    staging_root = tmp_path / "staging"
    runner = FakeRunner(lambda argv: ProcessOutput(1, ("segfault",)) if argv[1] == "exec" else None)
    job = build_plan(project, ["a"], "./mfclo64 broken.frq")[0]

    result = _copy_backend(runner, staging_root).execute(job, ExecutionConfig(backend_kind="copy", image="img"))

    assert isinstance(result.outcome, Failure)
    assert result.outcome.exit_code == 1
    assert result.outcome.output == ("segfault",)
    # container removed, staging directory gone
    name = runner.find("run")[0][4]
    assert ["docker", "rm", "-f", name] in runner.calls
    assert list(staging_root.iterdir()) == []
    # partial outputs are still copied out of the container
    assert runner.subcommands() == ["run", "cp", "exec", "cp", "rm"]


def test_copy_isolated_removes_container_when_copy_in_fails(project, tmp_path):
    staging_root = tmp_path / "staging"
    runner = FakeRunner(
        lambda argv: ProcessOutput(1, ("no space left",)) if argv[1] == "cp" else None
    )
    job = build_plan(project, ["a"], "run")[0]

    result = _copy_backend(runner, staging_root).execute(job, ExecutionConfig(backend_kind="copy", image="img"))

    assert not result.ok
    assert "docker cp failed" in result.error
    assert runner.subcommands() == ["run", "cp", "rm"]
    assert list(staging_root.iterdir()) == []


def test_copy_isolated_container_start_failure_still_attempts_removal(project, tmp_path):
    staging_root = tmp_path / "staging"
    runner = FakeRunner(lambda argv: ProcessOutput(125, ("conflict",)) if argv[1] == "run" else None)
    job = build_plan(project, ["a"], "run")[0]

    result = _copy_backend(runner, staging_root).execute(job, ExecutionConfig(backend_kind="copy", image="img"))

    assert not result.ok and result.outcome.exit_code == 125
    assert runner.subcommands() == ["run", "rm"]
    assert list(staging_root.iterdir()) == []


def test_cleanup_failure_does_not_mask_success(project, tmp_path, capsys):
    staging_root = tmp_path / "staging"
    runner = FakeRunner(lambda argv: ProcessOutput(1, ("busy",)) if argv[1] == "rm" else None)
    job = build_plan(project, ["a"], "run")[0]

    result = _copy_backend(runner, staging_root).execute(job, ExecutionConfig(backend_kind="copy", image="img"))

    assert result.ok
    assert "cleanup step 'docker rm' failed" in capsys.readouterr().err


def test_copy_isolated_container_names_are_unique(tmp_path):
    backend = _copy_backend(FakeRunner(), tmp_path)
    names = {backend.container_name() for _ in range(200)}
    assert len(names) == 200
    assert all(n.startswith("t_") for n in names)


def test_uncreatable_staging_directory_is_a_job_failure(project, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    runner = FakeRunner()
    job = build_plan(project, ["a"], "run")[0]

    result = _copy_backend(runner, blocker / "staging").execute(
        job, ExecutionConfig(backend_kind="copy", image="img")
    )

    assert not result.ok
    assert "staging directory" in result.error
    assert runner.calls == []
