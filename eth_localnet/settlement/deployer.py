"""Drive the settlement contract deployer tool in ephemeral containers.

The tool keeps its state in a directory we bind mount at ``/work``:

- ``init`` creates the state, skipped when ``state.json`` is already there
- ``apply`` deploys, using the ``intent.toml`` we write between the two
- ``inspect genesis`` and ``inspect rollup`` export per-chain configuration
"""

import logging
import threading
from pathlib import Path
from typing import Optional

from eth_localnet.docker import DockerClient
from eth_localnet.errors import ExternalToolError
from eth_localnet.process import ContainerRunOptions, ProcessRunner, current_user
from eth_localnet.utils import get_host_path

logger = logging.getLogger(__name__)

#: Public image repository of the deployer
DEPLOYER_IMAGE = "us-docker.pkg.dev/oplabs-tools-artifacts/images/op-deployer"

DEPLOYER_ENTRYPOINT = "/usr/local/bin/op-deployer"

#: Where the state directory is mounted in the container
WORK_DIR = "/work"

#: Where the inspect rollup output directory is mounted in the container
OUTPUT_DIR = "/output"


class OpDeployer:
    """Settlement deployer wrapper.

    :param state_dir:
        Deployer state directory, ``.localnet/state``

    :param image_tag:
        Tag of :py:data:`DEPLOYER_IMAGE` e.g. ``v0.4.5``
    """

    def __init__(
        self,
        state_dir: Path,
        image_tag: str,
        runner: ProcessRunner,
        docker: DockerClient,
        cancel: Optional[threading.Event] = None,
    ):
        self.state_dir = Path(state_dir)
        self.image = f"{DEPLOYER_IMAGE}:{image_tag}"
        self.runner = runner
        self.docker = docker
        self.cancel = cancel

    @property
    def state_file(self) -> Path:
        return self.state_dir / "state.json"

    def ensure_state_dir(self):
        (self.state_dir / ".cache").mkdir(parents=True, exist_ok=True)

    def ensure_image(self):
        try:
            self.docker.ensure_image(self.image)
        except ExternalToolError as e:
            raise ExternalToolError(f"Failed to ensure deployer image {self.image}") from e

    def init(self, l1_chain_id: int, l2_chain_ids: list[int]) -> bool:
        """Initialise the deployer state.

        :return:
            False if the state already existed and nothing was done
        """
        if self.state_file.exists():
            logger.info("Deployer state %s already exists, skipping init", self.state_file)
            return False

        self.ensure_state_dir()
        logger.info("Initialising deployer state in %s", self.state_dir)
        self._run(
            [
                "init",
                "--intent-type",
                "custom",
                "--l1-chain-id",
                str(l1_chain_id),
                "--l2-chain-ids",
                ",".join(str(c) for c in l2_chain_ids),
            ],
            env={"DEPLOYER_CACHE_DIR": f"{WORK_DIR}/.cache"},
            stream_logs=True,
            what="init",
        )
        return True

    def apply(self, l1_rpc_url: str, private_key: str, deployment_target: str):
        """Deploy the settlement contracts.

        Performs on-chain transactions. Re-running after a partial failure is left to the tool.
        """
        assert deployment_target in ("live", "calldata"), f"Bad deployment target {deployment_target}"
        logger.info("Running deployer apply, target %s", deployment_target)
        self._run(
            ["apply", "--deployment-target", deployment_target],
            env={
                "DEPLOYER_CACHE_DIR": f"{WORK_DIR}/.cache",
                "L1_RPC_URL": l1_rpc_url,
                "DEPLOYER_PRIVATE_KEY": private_key,
            },
            stream_logs=True,
            what="apply",
        )

    def inspect_genesis(self, chain_id: int) -> str:
        """Export the genesis document of a rollup.

        :return:
            Genesis JSON text
        """
        return self._run(["inspect", "genesis", str(chain_id)], what="inspect genesis")

    def inspect_rollup(self, chain_id: int, output_path: Path):
        """Export the rollup node configuration of a rollup to ``output_path``."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self._run(
            ["inspect", "rollup", "--outfile", f"{OUTPUT_DIR}/{output_path.name}", str(chain_id)],
            extra_volumes={get_host_path(output_path.parent): OUTPUT_DIR},
            what="inspect rollup",
        )

    def _run(
        self,
        command: list[str],
        what: str,
        env: Optional[dict[str, str]] = None,
        extra_volumes: Optional[dict[str, str]] = None,
        stream_logs: bool = False,
    ) -> str:
        volumes = {get_host_path(self.state_dir): WORK_DIR}
        volumes.update(extra_volumes or {})
        options = ContainerRunOptions(
            image=self.image,
            entrypoint=DEPLOYER_ENTRYPOINT,
            command=command,
            env={"HOME": WORK_DIR, **(env or {})},
            volumes=volumes,
            workdir=WORK_DIR,
            user=current_user(),
            auto_remove=True,
            stream_logs=stream_logs,
        )
        try:
            return self.runner.run_container(options, cancel=self.cancel)
        except ExternalToolError as e:
            raise ExternalToolError(f"Failed to run deployer {what}") from e
