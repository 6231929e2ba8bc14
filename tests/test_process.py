"""Running host commands and containers.

Uses real POSIX processes. The container tests use a shell script standing in
for the docker client, so no docker daemon is needed.
"""

import shutil
import threading
import time
from pathlib import Path

import pytest

from eth_localnet.errors import ProcessCancelled, ProcessFailed
from eth_localnet.process import ContainerRunOptions, ProcessRunner

pytestmark = pytest.mark.skipif(shutil.which("sh") is None or shutil.which("sleep") is None, reason="Needs a POSIX shell")


@pytest.fixture()
def fake_docker(tmp_path: Path) -> str:
    """A docker client that prints its arguments and one environment variable."""
    script = tmp_path / "docker"
    script.write_text('#!/bin/sh\necho "ARGS $*"\necho "SECRET=$DEPLOYER_PRIVATE_KEY"\nexit 0\n')
    script.chmod(0o755)
    return str(script)


def test_run_command_output():
    runner = ProcessRunner()
    assert runner.run_command(["sh", "-c", "echo hello"]) == "hello\n"


def test_run_command_env_and_cwd(tmp_path: Path):
    runner = ProcessRunner()
    out = runner.run_command(["sh", "-c", 'echo "$GREETING"; pwd'], cwd=str(tmp_path), env={"GREETING": "hi"})
    lines = out.splitlines()
    assert lines[0] == "hi"
    assert Path(lines[1]).resolve() == tmp_path.resolve()


def test_run_command_failure_keeps_output():
    """Both streams are in the error, including the last lines."""
    runner = ProcessRunner()
    with pytest.raises(ProcessFailed) as exc_info:
        runner.run_command(["sh", "-c", "echo out; echo err >&2; exit 3"], stream_logs=False)
    assert exc_info.value.exit_code == 3
    assert "out" in exc_info.value.output
    assert "err" in exc_info.value.output


def test_run_command_missing_binary():
    runner = ProcessRunner()
    with pytest.raises(ProcessFailed) as exc_info:
        runner.run_command(["this-binary-does-not-exist-anywhere"])
    assert exc_info.value.exit_code == 127


def test_run_command_timeout():
    runner = ProcessRunner()
    started = time.monotonic()
    with pytest.raises(ProcessCancelled, match="timed out"):
        runner.run_command(["sleep", "30"], timeout=0.5)
    assert time.monotonic() - started < 10


def test_run_command_cancel():
    runner = ProcessRunner()
    cancel = threading.Event()
    timer = threading.Timer(0.3, cancel.set)
    timer.start()
    try:
        with pytest.raises(ProcessCancelled, match="cancelled"):
            runner.run_command(["sleep", "30"], cancel=cancel)
    finally:
        timer.cancel()


def test_run_container_command_line(fake_docker: str):
    """Secrets travel in the client environment, not on the command line."""
    runner = ProcessRunner(docker_binary=fake_docker)
    out = runner.run_container(
        ContainerRunOptions(
            image="example/deployer:v1",
            command=["apply", "--deployment-target", "live"],
            entrypoint="/usr/local/bin/deployer",
            env={"DEPLOYER_PRIVATE_KEY": "0xsecret"},
            volumes={"/host/state": "/work"},
            workdir="/work",
            user="1000:1000",
            name="localnet-test",
        )
    )
    args_line, secret_line = out.splitlines()
    assert args_line == (
        "ARGS run --rm --name localnet-test --entrypoint /usr/local/bin/deployer -w /work -u 1000:1000 "
        "-v /host/state:/work -e DEPLOYER_PRIVATE_KEY example/deployer:v1 apply --deployment-target live"
    )
    assert "0xsecret" not in args_line
    assert secret_line == "SECRET=0xsecret"


def test_cancel_kills_grandchildren():
    """A shell waiting on its own child does not hold up the cancellation."""
    runner = ProcessRunner()
    cancel = threading.Event()
    timer = threading.Timer(0.3, cancel.set)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(ProcessCancelled, match="cancelled"):
            runner.run_command(["sh", "-c", "sleep 30; echo done"], cancel=cancel, stream_logs=False)
    finally:
        timer.cancel()
    assert time.monotonic() - started < 10


def test_timeout_kills_backgrounded_process():
    runner = ProcessRunner()
    started = time.monotonic()
    with pytest.raises(ProcessCancelled, match="timed out"):
        runner.run_command(["sh", "-c", "sleep 30 & wait"], timeout=0.5, stream_logs=False)
    assert time.monotonic() - started < 10
