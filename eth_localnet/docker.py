"""Docker images and docker compose services."""

import logging
import threading
from pathlib import Path
from typing import Optional

from eth_localnet.errors import ProcessFailed
from eth_localnet.process import ProcessRunner

logger = logging.getLogger(__name__)


class DockerClient:
    """Image and compose operations over the ``docker`` command line client."""

    def __init__(self, runner: ProcessRunner, cancel: Optional[threading.Event] = None):
        self.runner = runner
        self.cancel = cancel

    def image_exists(self, image: str) -> bool:
        try:
            self.runner.run_command(
                [self.runner.docker_binary, "image", "inspect", image],
                stream_logs=False,
                cancel=self.cancel,
            )
            return True
        except ProcessFailed as e:
            if "No such image" in e.output or "not found" in e.output.lower():
                return False
            raise

    def pull_image(self, image: str):
        self.runner.run_command([self.runner.docker_binary, "pull", image], cancel=self.cancel)

    def ensure_image(self, image: str):
        """Pull a public image unless we have it already."""
        if self.image_exists(image):
            logger.info("Image %s already exists", image)
            return
        logger.info("Pulling image %s", image)
        self.pull_image(image)
        logger.info("Image %s pulled", image)


class ComposeProject:
    """Services of one compose file.

    Every command gets the host environment plus the explicit ``env`` map.
    """

    def __init__(self, runner: ProcessRunner, compose_file: Path, cancel: Optional[threading.Event] = None):
        self.runner = runner
        self.compose_file = Path(compose_file)
        self.cancel = cancel

    def build(self, env: dict[str, str], services: list[str]):
        self._run(env, ["build", "--parallel", *services])

    def up(self, env: dict[str, str], services: list[str]):
        self._run(env, ["up", "-d", *services])

    def recreate(self, env: dict[str, str], services: list[str]):
        """Restart services so they pick up a changed environment."""
        self._run(env, ["up", "-d", "--force-recreate", *services])

    def _run(self, env: dict[str, str], args: list[str]):
        cmd = [self.runner.docker_binary, "compose", "-f", str(self.compose_file), *args]
        self.runner.run_command(
            cmd,
            cwd=str(self.compose_file.parent),
            env=env,
            cancel=self.cancel,
            censored_command=f"docker compose {' '.join(args)}",
        )
