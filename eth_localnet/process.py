"""Run external commands and ephemeral containers to completion.

- Output pipes are set up when the child is spawned, so nothing is lost
  from containers that remove themselves on exit.

- Reader threads drain stdout and stderr while we wait. They are joined
  before a call returns, so the trailing output always makes it to the log
  and to the error message.

- A caller supplied :py:class:`threading.Event` or a timeout kills the child
  and its whole process tree.
  For containers we also force-remove the container, as killing the docker CLI
  does not stop it.

Containers are run through the ``docker`` command line client.
"""

import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from subprocess import DEVNULL, PIPE
from typing import IO, Callable, Optional

import psutil

from eth_localnet.errors import ProcessCancelled, ProcessFailed

logger = logging.getLogger(__name__)

#: How often we check for cancellation while waiting for a child, seconds
POLL_INTERVAL = 0.1


@dataclass
class ContainerRunOptions:
    """How to run one ephemeral container."""

    image: str

    #: Arguments after the image name
    command: list[str] = field(default_factory=list)

    #: Override the image entrypoint
    entrypoint: Optional[str] = None

    #: Environment given to the container. Nothing else from the host leaks in.
    env: dict[str, str] = field(default_factory=dict)

    #: Host path -> container path bind mounts
    volumes: dict[str, str] = field(default_factory=dict)

    workdir: Optional[str] = None

    #: ``uid:gid`` to run as, so the files written to bind mounts are ours
    user: Optional[str] = None

    #: Remove the container when it exits
    auto_remove: bool = True

    #: Echo the container output to the log while it runs
    stream_logs: bool = False

    #: Container name. Generated when not given.
    name: Optional[str] = None


def current_user() -> str:
    """``uid:gid`` of this process, for :py:attr:`ContainerRunOptions.user`."""
    return f"{os.getuid()}:{os.getgid()}"


def _kill_tree(proc: psutil.Popen):
    """Kill the child and everything it spawned.

    Grandchildren inherit our output pipes, so the readers only finish once they are gone too.
    """
    try:
        children = proc.children(recursive=True)
    except psutil.NoSuchProcess:
        children = []

    for p in [proc] + children:
        try:
            p.kill()
        except psutil.NoSuchProcess:
            # Already exited
            continue

    psutil.wait_procs(children, timeout=10)
    proc.wait()


class _StreamReader:
    """Drain one pipe on a background thread."""

    def __init__(self, stream: IO[bytes], label: str, echo: bool):
        self.lines: list[str] = []
        self.stream = stream
        self.label = label
        self.echo = echo
        self.thread = threading.Thread(target=self._run, name=f"output-{label}", daemon=True)

    def start(self):
        self.thread.start()

    def join(self):
        self.thread.join()

    def _run(self):
        for raw in iter(self.stream.readline, b""):
            line = raw.decode("utf-8", errors="replace")
            self.lines.append(line)
            if self.echo:
                logger.info("[%s] %s", self.label, line.rstrip())
        self.stream.close()

    @property
    def text(self) -> str:
        return "".join(self.lines)


class ProcessRunner:
    """Run commands and containers, blocking until they finish.

    .. code-block:: python

        runner = ProcessRunner()
        out = runner.run_container(ContainerRunOptions(image="alpine:3", command=["echo", "hi"]))
        assert out.strip() == "hi"
    """

    def __init__(self, docker_binary: str = "docker"):
        self.docker_binary = docker_binary

    def run_command(
        self,
        cmd: list[str],
        cwd: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
        stream_logs: bool = True,
        censored_command: Optional[str] = None,
    ) -> str:
        """Run a host binary.

        :param env:
            Overrides merged on top of the current process environment

        :param censored_command:
            What to show in logs and errors instead of the command line, when it contains secrets

        :return:
            Captured stdout

        :raise ProcessFailed:
            Non-zero exit

        :raise ProcessCancelled:
            Timeout or cancel
        """
        for x in cmd:
            assert type(x) == str, f"Got non-string in command line: {x} in {cmd}"

        full_env = os.environ.copy()
        if env:
            full_env.update(env)

        description = censored_command or " ".join(cmd)
        logger.info("Running: %s", description)
        return self._execute(cmd, cwd, full_env, timeout, cancel, stream_logs, description, label=cmd[0])

    def run_container(
        self,
        options: ContainerRunOptions,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """Run an ephemeral container.

        :return:
            Captured stdout of the container

        :raise ProcessFailed:
            Container exited with non-zero code, or could not be started

        :raise ProcessCancelled:
            Timeout or cancel. The container is force-removed.
        """
        name = options.name or f"localnet-{uuid.uuid4().hex[:12]}"
        cmd = [self.docker_binary, "run"]
        if options.auto_remove:
            cmd.append("--rm")
        cmd += ["--name", name]
        if options.entrypoint:
            cmd += ["--entrypoint", options.entrypoint]
        if options.workdir:
            cmd += ["-w", options.workdir]
        if options.user:
            cmd += ["-u", options.user]
        for host_path, container_path in options.volumes.items():
            cmd += ["-v", f"{host_path}:{container_path}"]

        # Pass values through the docker client environment, so secrets stay out of the process list
        client_env = os.environ.copy()
        for key, value in options.env.items():
            cmd += ["-e", key]
            client_env[key] = value

        cmd.append(options.image)
        cmd += options.command

        description = f"container {options.image} {' '.join(options.command)}"
        logger.info("Running %s as %s", description, name)

        def _remove_container():
            logger.warning("Force removing container %s", name)
            proc = psutil.Popen([self.docker_binary, "rm", "-f", name], stdin=DEVNULL, stdout=DEVNULL, stderr=DEVNULL)
            proc.wait(30)

        return self._execute(
            cmd,
            None,
            client_env,
            timeout,
            cancel,
            options.stream_logs,
            description,
            label=name,
            on_cancel=_remove_container,
        )

    def _execute(
        self,
        cmd: list[str],
        cwd: Optional[str],
        env: dict[str, str],
        timeout: Optional[float],
        cancel: Optional[threading.Event],
        stream_logs: bool,
        description: str,
        label: str,
        on_cancel: Optional[Callable[[], None]] = None,
    ) -> str:
        try:
            proc = psutil.Popen(cmd, cwd=cwd, env=env, stdin=DEVNULL, stdout=PIPE, stderr=PIPE)
        except FileNotFoundError as e:
            raise ProcessFailed(description, 127, f"{cmd[0]} not found") from e

        stdout = _StreamReader(proc.stdout, label, stream_logs)
        stderr = _StreamReader(proc.stderr, label, stream_logs)
        stdout.start()
        stderr.start()

        deadline = time.monotonic() + timeout if timeout else None
        reason = None
        while True:
            try:
                exit_code = proc.wait(POLL_INTERVAL)
                break
            except psutil.TimeoutExpired:
                pass

            if cancel is not None and cancel.is_set():
                reason = "cancelled"
            elif deadline is not None and time.monotonic() > deadline:
                reason = f"timed out after {timeout} seconds"

            if reason:
                _kill_tree(proc)
                stdout.join()
                stderr.join()
                if on_cancel:
                    on_cancel()
                raise ProcessCancelled(f"{description} {reason}\nOutput is:\n{stdout.text}{stderr.text}")

        stdout.join()
        stderr.join()

        if exit_code != 0:
            raise ProcessFailed(description, exit_code, stdout.text + stderr.text)

        logger.debug("%s result:\n%s", description, stdout.text)
        return stdout.text
